"""Health endpoint tests."""

import pytest
from sqlalchemy.ext.asyncio import create_async_engine


@pytest.mark.asyncio
async def test_health_returns_running(client):
    """Health endpoint answers without touching the database."""
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.text == "RUNNING"


@pytest.mark.asyncio
async def test_db_health_round_trips(client):
    resp = await client.get("/db-health")
    assert resp.status_code == 200
    assert resp.text == "RUNNING"


@pytest.mark.asyncio
async def test_db_health_reports_unreachable_database(client, app):
    """SQLite can't open a file in a directory that doesn't exist."""
    broken = create_async_engine("sqlite+aiosqlite:////nonexistent/dir/authgate.db")
    app.state.engine = broken
    try:
        resp = await client.get("/db-health")
    finally:
        await broken.dispose()
    assert resp.status_code == 500
    assert resp.text == "Database connection failed"
