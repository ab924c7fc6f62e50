"""Repositories for the durable conversation store."""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import aliased

from chat_service.core.database.repository import BaseRepository, SearchResult
from chat_service.features.chat.models import (
    Conversation,
    ConversationParticipant,
    Message,
    MessageRead,
    User,
    conversation_pair_key,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from datetime import datetime
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession


class UserRepository(BaseRepository[User]):
    """User lookups plus the durable presence write."""

    def __init__(self) -> None:
        super().__init__(User)

    async def get_by_session_id(self, session: AsyncSession, session_id: str) -> User | None:
        return await self.get_by(session, User.session_id, session_id)

    async def get_many(self, session: AsyncSession, user_ids: Iterable[UUID]) -> dict[UUID, User]:
        ids = set(user_ids)
        if not ids:
            return {}
        result = await session.execute(select(User).where(User.id.in_(ids)))
        return {user.id: user for user in result.scalars()}

    async def update_presence(
        self,
        session: AsyncSession,
        user_id: UUID,
        status: str,
        last_active: datetime | None,
    ) -> bool:
        """Write the durable presence copy. Returns False if the user is unknown."""
        result = await session.execute(
            update(User)
            .where(User.id == user_id)
            .values(online_status=status, last_active=last_active)
        )
        return result.rowcount > 0

    async def reset_presence(self, session: AsyncSession, at: datetime) -> int:
        """Mark every user recorded as online or away as offline.

        Used once at startup: connections do not survive a restart, so any
        live status left in the store is stale. Users without a
        ``last_active`` get ``at``.
        """
        result = await session.execute(
            update(User)
            .where(User.online_status != "offline")
            .values(
                online_status="offline",
                last_active=func.coalesce(User.last_active, at),
            )
        )
        return result.rowcount


class ConversationRepository(BaseRepository[Conversation]):
    """Conversation membership, summary pointer and unread counters."""

    def __init__(self) -> None:
        super().__init__(Conversation)

    async def is_participant(
        self, session: AsyncSession, conversation_id: UUID, user_id: UUID
    ) -> bool:
        participant = await session.get(ConversationParticipant, (conversation_id, user_id))
        return participant is not None

    async def participants(
        self, session: AsyncSession, conversation_id: UUID
    ) -> Sequence[ConversationParticipant]:
        result = await session.execute(
            select(ConversationParticipant)
            .where(ConversationParticipant.conversation_id == conversation_id)
            .order_by(ConversationParticipant.joined_at)
        )
        return result.scalars().all()

    async def find_between(
        self, session: AsyncSession, user_a: UUID, user_b: UUID
    ) -> Conversation | None:
        """Find an existing conversation shared by ``user_a`` and ``user_b``."""
        first = aliased(ConversationParticipant)
        second = aliased(ConversationParticipant)
        stmt = (
            select(Conversation)
            .join(first, first.conversation_id == Conversation.id)
            .join(second, second.conversation_id == Conversation.id)
            .where(first.user_id == user_a, second.user_id == user_b)
            .order_by(Conversation.created_at)
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    async def create_with_participants(
        self, session: AsyncSession, user_a: UUID, user_b: UUID
    ) -> Conversation:
        """Insert the conversation between two users and both memberships.

        Raises:
            IntegrityError: If the pair already has a conversation.
        """
        conversation = await self.create(
            session, Conversation(pair_key=conversation_pair_key(user_a, user_b))
        )
        session.add_all(
            ConversationParticipant(conversation_id=conversation.id, user_id=user_id)
            for user_id in (user_a, user_b)
        )
        await session.flush()
        return conversation

    async def list_for_user(
        self, session: AsyncSession, user_id: UUID
    ) -> Sequence[Conversation]:
        stmt = (
            select(Conversation)
            .join(
                ConversationParticipant,
                ConversationParticipant.conversation_id == Conversation.id,
            )
            .where(ConversationParticipant.user_id == user_id)
            .order_by(Conversation.updated_at.desc())
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def record_message(
        self,
        session: AsyncSession,
        conversation_id: UUID,
        message_id: UUID,
        sender_id: UUID,
        at: datetime,
    ) -> None:
        """Move the last-message pointer and bump every other participant's unread count.

        The pointer only moves to a message at least as new as the one it
        already names, so two sends committing out of order leave it on the
        newer message. The increment is a single
        ``UPDATE ... SET unread_count = unread_count + 1`` so concurrent sends
        to the same conversation never lose an update.
        """
        await session.execute(
            update(Conversation)
            .where(
                Conversation.id == conversation_id,
                or_(
                    Conversation.last_message_at.is_(None),
                    Conversation.last_message_at <= at,
                ),
            )
            .values(last_message_id=message_id, last_message_at=at, updated_at=at)
        )
        await session.execute(
            update(ConversationParticipant)
            .where(
                and_(
                    ConversationParticipant.conversation_id == conversation_id,
                    ConversationParticipant.user_id != sender_id,
                )
            )
            .values(unread_count=ConversationParticipant.unread_count + 1)
        )

    async def reset_unread(
        self, session: AsyncSession, conversation_id: UUID, user_id: UUID
    ) -> None:
        await session.execute(
            update(ConversationParticipant)
            .where(
                and_(
                    ConversationParticipant.conversation_id == conversation_id,
                    ConversationParticipant.user_id == user_id,
                )
            )
            .values(unread_count=0)
        )


class MessageRepository(BaseRepository[Message]):
    """Message history and read receipts."""

    def __init__(self) -> None:
        super().__init__(Message)

    async def history(
        self,
        session: AsyncSession,
        conversation_id: UUID,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> SearchResult[Message]:
        """Messages of a conversation, oldest first."""
        stmt = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
        )
        return await self.search(session, stmt, limit=limit, offset=offset)

    async def add_read_receipt(
        self, session: AsyncSession, message_id: UUID, user_id: UUID
    ) -> bool:
        """Add ``user_id`` to the message's read set. Returns False if already present."""
        if await session.get(MessageRead, (message_id, user_id)) is not None:
            return False
        session.add(MessageRead(message_id=message_id, user_id=user_id))
        await session.flush()
        return True

    async def readers(
        self, session: AsyncSession, message_ids: Iterable[UUID]
    ) -> dict[UUID, list[UUID]]:
        ids = list(message_ids)
        if not ids:
            return {}
        result = await session.execute(
            select(MessageRead.message_id, MessageRead.user_id)
            .where(MessageRead.message_id.in_(ids))
            .order_by(MessageRead.read_at)
        )
        readers: dict[UUID, list[UUID]] = {}
        for message_id, user_id in result.all():
            readers.setdefault(message_id, []).append(user_id)
        return readers


@lru_cache(maxsize=1)
def get_user_repository() -> UserRepository:
    return UserRepository()


@lru_cache(maxsize=1)
def get_conversation_repository() -> ConversationRepository:
    return ConversationRepository()


@lru_cache(maxsize=1)
def get_message_repository() -> MessageRepository:
    return MessageRepository()


__all__ = [
    "ConversationRepository",
    "MessageRepository",
    "UserRepository",
    "get_conversation_repository",
    "get_message_repository",
    "get_user_repository",
]
