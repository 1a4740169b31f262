"""Health check endpoints.

Learn: /health only says the process is up (load balancer probe).
/db-health also round-trips to the database.
"""

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy import text

logger = structlog.get_logger()

router = APIRouter()


@router.get("/health", response_class=PlainTextResponse)
async def health_check():
    """Server is running."""
    return "RUNNING"


@router.get("/db-health", response_class=PlainTextResponse)
async def db_health_check(request: Request):
    """Check database connectivity."""
    try:
        async with request.app.state.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("health.database_unreachable", error=str(e))
        return PlainTextResponse("Database connection failed", status_code=500)
    return "RUNNING"
