"""Message delivery: persist first, then fan out, then acknowledge.

The durable write is the source of truth. Live delivery only happens after
the transaction commits, and a failed fan-out never undoes the write, so
every acknowledged message can be read back from history.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from chat_service.core.database import utcnow
from chat_service.core.exceptions import (
    AppException,
    InvalidInputError,
    NotFoundException,
    NotParticipantError,
    PersistenceError,
)
from chat_service.core.services.base import BaseService
from chat_service.features.chat.models import Message
from chat_service.features.chat.repository import (
    ConversationRepository,
    MessageRepository,
    get_conversation_repository,
    get_message_repository,
)
from chat_service.features.chat.schemas import MessageResponse
from chat_service.features.realtime.schemas import (
    MessageAckEvent,
    MessageErrorEvent,
    MessageReadEvent,
    NewMessageEvent,
)
from chat_service.infra.metrics.prometheus import (
    realtime_delivery_duration_seconds,
    realtime_messages_total,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from chat_service.features.realtime.rooms import ConversationRoomRouter
    from chat_service.features.realtime.schemas import MarkReadEvent, SendMessageEvent
    from chat_service.infra.realtime.manager import ConnectionInfo, ConnectionManager


class MessageDeliveryPipeline(BaseService):
    """The single path from a submitted message to every subscriber.

    Steps for one submission:
        1. validate content and the sender's participation
        2. insert the message, move the conversation's last-message pointer
           and bump the other participants' unread counters in one
           transaction
        3. fan ``new_message`` out to the conversation's room
        4. acknowledge the sender with its ``tempId``

    The sender is always the connection's authenticated user.

    Example:
        pipeline = MessageDeliveryPipeline(manager, rooms, session_factory)
        await pipeline.handle_send(connection, event)
    """

    def __init__(
        self,
        manager: ConnectionManager,
        rooms: ConversationRoomRouter,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        max_content_length: int = 4000,
        conversations: ConversationRepository | None = None,
        messages: MessageRepository | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__()
        self._manager = manager
        self._rooms = rooms
        self._session_factory = session_factory
        self._max_content_length = max_content_length
        self._conversations = conversations or get_conversation_repository()
        self._messages = messages or get_message_repository()
        self._clock = clock

    async def submit(self, connection: ConnectionInfo, event: SendMessageEvent) -> MessageResponse:
        """Persist a message and fan it out to the conversation's room.

        Raises:
            InvalidInputError: Empty or oversized content, or a bad reply target.
            NotParticipantError: The sender is not in the conversation.
            PersistenceError: The store rejected the write.
        """
        temp_id = event.temp_id
        conversation_id = event.conversation_id
        content = event.content.strip()

        if not content:
            raise InvalidInputError("Message content cannot be empty", temp_id=temp_id)
        if len(content) > self._max_content_length:
            raise InvalidInputError(
                f"Message content exceeds {self._max_content_length} characters",
                temp_id=temp_id,
            )

        async with self._session_factory() as session:
            try:
                if not await self._conversations.is_participant(
                    session, conversation_id, connection.user_id
                ):
                    raise NotParticipantError(conversation_id, connection.user_id, temp_id=temp_id)

                if event.reply_to is not None:
                    parent = await self._messages.get(session, event.reply_to)
                    if parent is None or parent.conversation_id != conversation_id:
                        raise InvalidInputError(
                            "Reply target is not a message of this conversation",
                            temp_id=temp_id,
                        )

                message = await self._messages.create(
                    session,
                    Message(
                        conversation_id=conversation_id,
                        sender_id=connection.user_id,
                        content=content,
                        reply_to_id=event.reply_to,
                        created_at=self._clock(),
                    ),
                )
                await self._conversations.record_message(
                    session,
                    conversation_id,
                    message.id,
                    connection.user_id,
                    message.created_at,
                )
                await session.commit()
            except SQLAlchemyError as e:
                self.logger.exception(
                    "Failed to persist message",
                    extra={
                        "conversation_id": str(conversation_id),
                        "temp_id": temp_id,
                        "operation": "pipeline.submit",
                    },
                )
                raise PersistenceError("Failed to save message", temp_id=temp_id) from e

        response = MessageResponse.from_message(message, sender_name=connection.username)
        self.logger.info(
            "Message persisted",
            extra={
                "message_id": str(message.id),
                "conversation_id": str(conversation_id),
                "operation": "pipeline.submit",
            },
        )

        try:
            await self._rooms.broadcast_to_conversation(
                conversation_id,
                NewMessageEvent(conversation_id=conversation_id, message=response),
            )
        except Exception:
            # Already durable; subscribers that missed it recover through history
            self.logger.exception(
                "Fan-out failed after persistence",
                extra={"message_id": str(message.id), "operation": "pipeline.fanout"},
            )

        return response

    async def handle_send(self, connection: ConnectionInfo, event: SendMessageEvent) -> bool:
        """Run :meth:`submit` and answer the sender with an ack or an error.

        Every outcome, including unexpected failures, is answered with a
        frame that carries the submission's ``tempId``.

        Returns:
            True if the message was persisted.
        """
        started = time.perf_counter()
        try:
            response = await self.submit(connection, event)
        except AppException as e:
            result = "failed" if isinstance(e, PersistenceError) else "rejected"
            realtime_messages_total.labels(result=result).inc()
            self._lazy.debug(lambda: f"pipeline.handle_send -> {e.type}: {e.detail}")
            await self._send_error(connection, event, e.detail, e.type)
            return False
        except Exception:
            realtime_messages_total.labels(result="failed").inc()
            self.logger.exception(
                "Unexpected error delivering message",
                extra={"temp_id": event.temp_id, "operation": "pipeline.handle_send"},
            )
            await self._send_error(connection, event, "Internal server error", "internal-error")
            return False

        await self._manager.send(
            connection.connection_id,
            MessageAckEvent(
                temp_id=event.temp_id,
                conversation_id=event.conversation_id,
                message_id=response.id,
                message=response,
            ).to_wire(),
        )
        realtime_messages_total.labels(result="delivered").inc()
        realtime_delivery_duration_seconds.observe(time.perf_counter() - started)
        return True

    async def mark_read(self, connection: ConnectionInfo, event: MarkReadEvent) -> bool:
        """Record a read receipt and reset the reader's unread counter.

        ``message_read`` is relayed to the room only the first time a user
        reads a message.

        Returns:
            True if the receipt was new.

        Raises:
            NotParticipantError: The reader is not in the conversation.
            NotFoundException: The message is not part of the conversation.
            PersistenceError: The store rejected the write.
        """
        conversation_id = event.conversation_id
        user_id = connection.user_id

        async with self._session_factory() as session:
            try:
                if not await self._conversations.is_participant(session, conversation_id, user_id):
                    raise NotParticipantError(conversation_id, user_id)

                message = await self._messages.get(session, event.message_id)
                if message is None or message.conversation_id != conversation_id:
                    raise NotFoundException(
                        "Message not found in this conversation",
                        type="message-not-found",
                        extra={"message_id": str(event.message_id)},
                    )

                added = await self._messages.add_read_receipt(session, event.message_id, user_id)
                await self._conversations.reset_unread(session, conversation_id, user_id)
                await session.commit()
            except IntegrityError:
                # Another connection of the same user recorded it first
                await session.rollback()
                added = False
            except SQLAlchemyError as e:
                raise PersistenceError("Failed to record read receipt") from e

        if added:
            await self._rooms.broadcast_to_conversation(
                conversation_id,
                MessageReadEvent(
                    conversation_id=conversation_id,
                    message_id=event.message_id,
                    user_id=user_id,
                    read_at=self._clock(),
                ),
            )
        return added

    async def _send_error(
        self,
        connection: ConnectionInfo,
        event: SendMessageEvent,
        error: str,
        code: str,
    ) -> None:
        await self._manager.send(
            connection.connection_id,
            MessageErrorEvent(
                error=error,
                code=code,
                temp_id=event.temp_id,
                conversation_id=event.conversation_id,
            ).to_wire(),
        )


__all__ = ["MessageDeliveryPipeline"]
