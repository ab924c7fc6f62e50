"""Database dependencies for FastAPI route handlers.

Two session getters exist for different callers:

1. `get_db_session()` (this module) - FastAPI dependency
   - Use in route handlers with `Depends(get_db_session)`
   - Session lifecycle tied to the HTTP request

2. `get_async_session()` (infra.database) - general context manager
   - Use in CLI commands and background tasks

Both use the same session factory.

Usage:
    from chat_service.core.dependencies.database import DBSessionDep

    @router.get("/conversations")
    async def list_conversations(session: DBSessionDep):
        ...
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from chat_service.infra.database import get_async_session


async def get_db_session() -> AsyncGenerator[AsyncSession]:
    """FastAPI dependency for a database session.

    Yields:
        Database session that is closed after the request.
    """
    async with get_async_session() as session:
        yield session


DBSessionDep = Annotated[AsyncSession, Depends(get_db_session)]

__all__ = ["DBSessionDep", "get_db_session"]
