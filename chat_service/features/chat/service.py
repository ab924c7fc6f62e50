"""Service layer for conversation creation and history reads."""
from __future__ import annotations

import secrets
import string
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from chat_service.core.database import ensure_utc
from chat_service.core.exceptions import InvalidInputError, NotFoundException, NotParticipantError
from chat_service.core.services.base import BaseService
from chat_service.features.chat.models import User
from chat_service.features.chat.repository import (
    ConversationRepository,
    MessageRepository,
    UserRepository,
    get_conversation_repository,
    get_message_repository,
    get_user_repository,
)
from chat_service.features.chat.schemas import (
    ConversationResponse,
    MessageHistoryResponse,
    MessageResponse,
    ParticipantResponse,
)

if TYPE_CHECKING:
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

    from chat_service.features.chat.models import Conversation

_ALNUM = string.ascii_uppercase + string.digits


def generate_session_id() -> str:
    """Generate a pairing code shaped like ``AB-12CD-3456E``."""
    return (
        "".join(secrets.choice(string.ascii_uppercase) for _ in range(2))
        + "-"
        + "".join(secrets.choice(_ALNUM) for _ in range(4))
        + "-"
        + "".join(secrets.choice(string.digits) for _ in range(4))
        + secrets.choice(string.ascii_uppercase)
    )


class ChatService(BaseService):
    """Orchestrates the durable read paths clients use to hydrate state."""

    def __init__(
        self,
        session: AsyncSession,
        users: UserRepository | None = None,
        conversations: ConversationRepository | None = None,
        messages: MessageRepository | None = None,
    ) -> None:
        super().__init__()
        self._session = session
        self._users = users or get_user_repository()
        self._conversations = conversations or get_conversation_repository()
        self._messages = messages or get_message_repository()

    async def create_user(self, username: str) -> User:
        """Register a user under a freshly generated session id."""
        username = username.strip()
        if not username:
            raise InvalidInputError("Username cannot be empty")

        session_id = generate_session_id()
        while await self._users.get_by_session_id(self._session, session_id) is not None:
            session_id = generate_session_id()

        user = await self._users.create(
            self._session, User(username=username, session_id=session_id)
        )
        await self._session.commit()

        self.logger.info(
            "User created",
            extra={"user_id": str(user.id), "operation": "service.create_user"},
        )
        return user

    async def create_conversation(self, owner_id: UUID, participant_id: UUID) -> ConversationResponse:
        """Return the two-party conversation between the users, creating it if needed.

        Two concurrent calls for the same pair both end up with the one
        conversation: the loser of the insert race reads back the winner's.
        """
        if owner_id == participant_id:
            raise InvalidInputError("Cannot start a conversation with yourself")

        if await self._users.get(self._session, participant_id) is None:
            raise NotFoundException(
                detail="Participant not found",
                type="user-not-found",
                extra={"user_id": str(participant_id)},
            )

        conversation = await self._conversations.find_between(
            self._session, owner_id, participant_id
        )
        if conversation is not None:
            self._lazy.debug(
                lambda: f"service.create_conversation -> existing {conversation.id}"
            )
            return await self._describe(conversation)

        try:
            conversation = await self._conversations.create_with_participants(
                self._session, owner_id, participant_id
            )
            await self._session.commit()
        except IntegrityError:
            await self._session.rollback()
            conversation = await self._conversations.find_between(
                self._session, owner_id, participant_id
            )
            if conversation is None:
                raise
            self.logger.info(
                "Conversation created concurrently; using existing",
                extra={
                    "conversation_id": str(conversation.id),
                    "operation": "service.create_conversation",
                },
            )
            return await self._describe(conversation)

        self.logger.info(
            "Conversation created",
            extra={
                "conversation_id": str(conversation.id),
                "operation": "service.create_conversation",
            },
        )
        return await self._describe(conversation)

    async def list_conversations(self, user_id: UUID) -> list[ConversationResponse]:
        conversations = await self._conversations.list_for_user(self._session, user_id)
        result = [await self._describe(conversation) for conversation in conversations]
        self._lazy.debug(
            lambda: f"service.list_conversations({user_id}) -> {len(result)} items"
        )
        return result

    async def get_history(
        self,
        conversation_id: UUID,
        user_id: UUID,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> MessageHistoryResponse:
        """Read a page of history. Only participants may read.

        Raises:
            NotParticipantError: If ``user_id`` is not in the conversation.
        """
        if not await self._conversations.is_participant(self._session, conversation_id, user_id):
            raise NotParticipantError(conversation_id, user_id)

        page = await self._messages.history(
            self._session, conversation_id, limit=limit, offset=offset
        )
        senders = await self._users.get_many(
            self._session, (message.sender_id for message in page.items)
        )
        readers = await self._messages.readers(
            self._session, (message.id for message in page.items)
        )

        items = [
            MessageResponse.from_message(
                message,
                sender_name=senders[message.sender_id].username
                if message.sender_id in senders
                else "",
                read_by=readers.get(message.id, ()),
            )
            for message in page.items
        ]
        return MessageHistoryResponse(
            items=items,
            total=page.total,
            limit=page.limit,
            offset=page.offset,
            has_next=page.has_next,
        )

    async def _describe(self, conversation: Conversation) -> ConversationResponse:
        participants = await self._conversations.participants(self._session, conversation.id)
        users = await self._users.get_many(
            self._session, (participant.user_id for participant in participants)
        )
        return ConversationResponse(
            id=conversation.id,
            participants=[
                ParticipantResponse(
                    user_id=participant.user_id,
                    username=users[participant.user_id].username
                    if participant.user_id in users
                    else "",
                    unread_count=participant.unread_count,
                )
                for participant in participants
            ],
            last_message_id=conversation.last_message_id,
            last_message_at=ensure_utc(conversation.last_message_at),
            created_at=ensure_utc(conversation.created_at),
            updated_at=ensure_utc(conversation.updated_at),
        )


__all__ = ["ChatService", "generate_session_id"]
