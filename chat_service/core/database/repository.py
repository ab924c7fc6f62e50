"""Minimal generic repository for SQLAlchemy models.

Provides basic CRUD operations with explicit session passing.
For complex queries, use the session directly.

Example:
    class UserRepository(BaseRepository[User]):
        async def get_by_session_id(self, session: AsyncSession, session_id: str) -> User | None:
            return await self.get_by(session, User.session_id, session_id)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import Select, func, select

from chat_service.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.orm import InstrumentedAttribute


@dataclass(slots=True, frozen=True)
class SearchResult[T]:
    """Paginated search result container.

    Attributes:
        items: List of items for current page
        total: Total count across all pages
        limit: Page size
        offset: Current offset
    """

    items: Sequence[T]
    total: int
    limit: int
    offset: int

    @property
    def has_next(self) -> bool:
        """Whether there are more pages after current."""
        return self.offset + len(self.items) < self.total


class BaseRepository[T]:
    """Minimal generic repository for CRUD operations.

    Provides:
        - get(session, id) -> T | None
        - get_by(session, attr, value) -> T | None
        - search(session, statement, limit, offset) -> SearchResult[T]
        - create(session, instance) -> T

    Session is always explicit, no hidden state.
    """

    __slots__ = ("model", "_lazy")

    def __init__(self, model: type[T]) -> None:
        self.model = model
        self._lazy = get_lazy_logger(f"repository.{model.__name__}")

    async def get(self, session: AsyncSession, id: Any) -> T | None:  # noqa: A002
        """Get entity by primary key."""
        instance = await session.get(self.model, id)
        self._lazy.debug(
            lambda: f"db.get: {self.model.__name__}({id}) -> {'found' if instance else 'not found'}"
        )
        return instance

    async def get_by(
        self,
        session: AsyncSession,
        attr: InstrumentedAttribute[Any],
        value: Any,
    ) -> T | None:
        """Get the first entity whose ``attr`` equals ``value``."""
        result = await session.execute(select(self.model).where(attr == value))
        instance = result.scalars().first()
        self._lazy.debug(
            lambda: f"db.get_by: {self.model.__name__}.{attr.key}={value!r} -> {'found' if instance else 'not found'}"
        )
        return instance

    async def search(
        self,
        session: AsyncSession,
        statement: Select[tuple[T]],
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> SearchResult[T]:
        """Execute a pre-built statement with pagination and total count."""
        count_stmt = select(func.count()).select_from(statement.order_by(None).subquery())
        total = (await session.execute(count_stmt)).scalar_one()

        result = await session.execute(statement.limit(limit).offset(offset))
        items = result.scalars().all()

        self._lazy.debug(
            lambda: f"db.search: {self.model.__name__}(limit={limit}, offset={offset}) -> {len(items)}/{total} items"
        )
        return SearchResult(items=items, total=total, limit=limit, offset=offset)

    async def create(self, session: AsyncSession, instance: T) -> T:
        """Persist a new entity.

        Adds to session and flushes so generated values (id, timestamps)
        are populated. The caller owns the commit.
        """
        session.add(instance)
        await session.flush()
        self._lazy.debug(
            lambda: f"db.create: {self.model.__name__}(id={getattr(instance, 'id', None)})"
        )
        return instance
