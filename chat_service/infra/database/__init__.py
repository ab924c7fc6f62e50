"""Database infrastructure: async engine lifecycle and session factory.

Example:
    from chat_service.infra.database import get_async_session

    async with get_async_session() as session:
        result = await session.execute(...)
"""

from chat_service.infra.database.session import (
    build_engine,
    build_session_factory,
    close_database,
    create_tables,
    get_async_session,
    get_engine,
    get_session_factory,
    init_database,
)

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
