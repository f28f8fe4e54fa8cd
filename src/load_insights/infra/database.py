"""Async database engine and session management.

The engine is built on first use and lives for the rest of the process.
Routes receive sessions through the ``get_db`` dependency; services take an
``AsyncSession`` argument and never reach for a global handle.
"""

from functools import lru_cache

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from load_insights.app.config import get_settings


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""
    pass


def _is_sqlite(url: str) -> bool:
    return "sqlite" in url


@lru_cache
def get_engine() -> AsyncEngine:
    """Create the process-wide async engine (once)."""
    settings = get_settings()
    connect_args = {}
    engine_kwargs = {"echo": False}
    if _is_sqlite(settings.database_url):
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = 30  # Wait up to 30s for write lock (default 5s)
    else:
        engine_kwargs["pool_size"] = 5
        engine_kwargs["max_overflow"] = 10
    return create_async_engine(
        settings.database_url, connect_args=connect_args, **engine_kwargs
    )


@lru_cache
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the process-wide engine."""
    return async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)


async def get_db():
    """FastAPI dependency: yield an async database session."""
    async with get_session_factory()() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db() -> None:
    """Create all tables (for local dev and single-node deployments)."""
    # Register models with Base.metadata
    import load_insights.domain.models  # noqa: F401

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # WAL lets the background broker sync read while a request writes
    if _is_sqlite(get_settings().database_url):
        async with engine.begin() as conn:
            await conn.execute(text("PRAGMA journal_mode=WAL"))
            await conn.execute(text("PRAGMA busy_timeout=30000"))
