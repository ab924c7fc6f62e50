"""Database engine and session management.

The engine is created lazily by :func:`init_database` during application
startup, so importing this module never touches configuration or the
network. PostgreSQL goes through psycopg3 (``postgresql+psycopg``); SQLite
through aiosqlite.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from chat_service.core.database import Base
from chat_service.core.settings import get_db_settings
from chat_service.utils.retry import retry

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from chat_service.core.settings.postgres import PostgresSettings

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def build_engine(url: str, **engine_kwargs: object) -> AsyncEngine:
    """Create an async engine, pinning in-memory SQLite to one connection.

    Every connection to ``sqlite://`` without a file gets its own empty
    database, so in-memory engines must share a single StaticPool connection.
    """
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database in (None, "", ":memory:"):
        return create_async_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=bool(engine_kwargs.get("echo", False)),
        )
    return create_async_engine(url, **engine_kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to ``engine`` with the service's session defaults."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_tables(engine: AsyncEngine | None = None) -> None:
    """Create every mapped table that does not exist yet."""
    # Registers the chat tables on Base.metadata
    from chat_service.features.chat import models  # noqa: F401

    target = engine or get_engine()
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ensured", extra={"tables": sorted(Base.metadata.tables)})


async def init_database(settings: PostgresSettings | None = None) -> AsyncEngine:
    """Create the engine, verify connectivity and optionally create the schema.

    Connectivity is retried with exponential backoff using the
    ``startup_retry_*`` settings, which covers containers where the database
    comes up after the service.

    Raises:
        RetryError: If the database is unreachable after all attempts.
    """
    global _engine, _session_factory

    settings = settings or get_db_settings()
    engine = build_engine(settings.url, **settings.sqlalchemy_engine_kwargs())

    @retry(
        max_attempts=settings.startup_retry_attempts,
        initial_delay=settings.startup_retry_delay,
    )
    async def _ping() -> None:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    logger.info(
        "Initializing database connection",
        extra={
            "backend": make_url(settings.url).get_backend_name(),
            "max_attempts": settings.startup_retry_attempts,
        },
    )
    try:
        await _ping()
    except Exception:
        await engine.dispose()
        raise

    _engine = engine
    _session_factory = build_session_factory(engine)

    if settings.should_create_tables:
        await create_tables(engine)

    logger.info("Database connection established successfully")
    return engine


def get_engine() -> AsyncEngine:
    """Return the initialized engine.

    Raises:
        RuntimeError: If init_database() has not run.
    """
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the initialized session factory.

    Raises:
        RuntimeError: If init_database() has not run.
    """
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _session_factory


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """Get an async database session.

    Example:
        async with get_async_session() as session:
            result = await session.execute(select(User))
    """
    async with get_session_factory()() as session:
        yield session


async def close_database() -> None:
    """Dispose of the engine. Safe to call when never initialized."""
    global _engine, _session_factory

    if _engine is None:
        return

    logger.info("Closing database connection")
    try:
        await _engine.dispose()
    finally:
        _engine = None
        _session_factory = None
    logger.info("Database connection closed successfully")


__all__ = [
    "build_engine",
    "build_session_factory",
    "close_database",
    "create_tables",
    "get_async_session",
    "get_engine",
    "get_session_factory",
    "init_database",
]
