"""Conversation room subscriptions for targeted delivery."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from chat_service.core.exceptions import NotParticipantError, PersistenceError
from chat_service.core.services.base import BaseService
from chat_service.features.chat.repository import (
    ConversationRepository,
    get_conversation_repository,
)
from chat_service.infra.metrics.prometheus import realtime_fanout_recipients

if TYPE_CHECKING:
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from chat_service.core.schemas import CustomBase
    from chat_service.infra.realtime.manager import ConnectionManager


class ConversationRoomRouter(BaseService):
    """Maps conversations to the connections subscribed to them.

    Subscriptions live only in memory and belong to the connection: they
    are never persisted and vanish with the connection. Delivery is
    at-most-once; a connection that is not subscribed at broadcast time
    does not get the event later.

    With ``require_participant`` enabled, a join is admitted only when the
    connection's user belongs to the conversation.

    Example:
        rooms = ConversationRoomRouter(manager, session_factory)
        await rooms.join(connection_id, conversation_id)
        await rooms.broadcast_to_conversation(conversation_id, NewMessageEvent(...))
    """

    def __init__(
        self,
        manager: ConnectionManager,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        conversations: ConversationRepository | None = None,
        require_participant: bool = True,
    ) -> None:
        super().__init__()
        self._manager = manager
        self._session_factory = session_factory
        self._conversations = conversations or get_conversation_repository()
        self._require_participant = require_participant
        self._rooms: dict[UUID, set[str]] = {}

    async def join(self, connection_id: str, conversation_id: UUID) -> bool:
        """Subscribe a connection to a conversation. Idempotent.

        Returns:
            True if the subscription is new, False if it already existed or
            the connection is unknown.

        Raises:
            NotParticipantError: If participation is required and missing.
            PersistenceError: If the participation check cannot be made.
        """
        info = self._manager.get(connection_id)
        if info is None:
            return False
        if conversation_id in info.rooms:
            return False

        if self._require_participant:
            try:
                async with self._session_factory() as session:
                    allowed = await self._conversations.is_participant(
                        session, conversation_id, info.user_id
                    )
            except SQLAlchemyError as e:
                raise PersistenceError("Could not verify conversation membership") from e
            if not allowed:
                self.logger.warning(
                    "Join rejected: not a participant",
                    extra={
                        "connection_id": connection_id,
                        "conversation_id": str(conversation_id),
                        "operation": "rooms.join",
                    },
                )
                raise NotParticipantError(conversation_id, info.user_id)

            # The connection may have gone away during the membership check
            if self._manager.get(connection_id) is None or conversation_id in info.rooms:
                return False

        self._rooms.setdefault(conversation_id, set()).add(connection_id)
        info.rooms.add(conversation_id)
        self._lazy.debug(lambda: f"rooms.join({connection_id}, {conversation_id})")
        return True

    def leave(self, connection_id: str, conversation_id: UUID) -> bool:
        """Unsubscribe a connection. Leaving a room it is not in is a no-op."""
        subscribers = self._rooms.get(conversation_id)
        if subscribers is None or connection_id not in subscribers:
            return False

        subscribers.discard(connection_id)
        if not subscribers:
            del self._rooms[conversation_id]

        info = self._manager.get(connection_id)
        if info is not None:
            info.rooms.discard(conversation_id)
        return True

    def drop_connection(self, connection_id: str) -> int:
        """Remove every subscription of a connection. Returns how many."""
        info = self._manager.get(connection_id)
        rooms = set(info.rooms) if info is not None else {
            conversation_id
            for conversation_id, subscribers in self._rooms.items()
            if connection_id in subscribers
        }
        for conversation_id in rooms:
            self.leave(connection_id, conversation_id)
        return len(rooms)

    def is_subscribed(self, connection_id: str, conversation_id: UUID) -> bool:
        return connection_id in self._rooms.get(conversation_id, ())

    def subscribers(self, conversation_id: UUID) -> frozenset[str]:
        return frozenset(self._rooms.get(conversation_id, ()))

    async def broadcast_to_conversation(
        self,
        conversation_id: UUID,
        event: CustomBase,
        exclude: set[str] | None = None,
    ) -> int:
        """Send an event to every connection subscribed to a conversation.

        The event is serialized once. Returns the number of connections the
        frame was handed to.
        """
        recipients = list(self._rooms.get(conversation_id, ()))
        if not recipients:
            realtime_fanout_recipients.observe(0)
            return 0

        frame = event.to_wire()
        sent = await self._manager.send_many(recipients, frame, exclude)
        realtime_fanout_recipients.observe(sent)
        self._lazy.debug(
            lambda: f"rooms.broadcast({conversation_id}, {frame.get('type')}) -> {sent}/{len(recipients)}"
        )
        return sent

    @property
    def room_count(self) -> int:
        """Conversations with at least one subscribed connection."""
        return len(self._rooms)


__all__ = ["ConversationRoomRouter"]
