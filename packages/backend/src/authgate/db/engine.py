"""Async SQLAlchemy engine and session factory.

Learn: SQLAlchemy 2.0 async mode — create_async_engine for connection pooling,
AsyncSession for per-request database access, dependency injection via FastAPI.

The engine is built from the Settings object by the app factory and kept on
app.state, so tests can swap in an in-memory SQLite engine without touching
module globals.
"""

from collections.abc import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from authgate.config import Settings


def build_engine(settings: Settings) -> AsyncEngine:
    """Connection pool: min 5, max 20 connections on PostgreSQL.

    echo=True in debug to see SQL queries.
    """
    kwargs = {"echo": settings.debug}
    if settings.database_url.startswith("postgresql"):
        kwargs.update(pool_size=5, max_overflow=15)
    return create_async_engine(settings.database_url, **kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Each request gets its own session."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """FastAPI dependency — yields a session per request, auto-closes."""
    async with request.app.state.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
