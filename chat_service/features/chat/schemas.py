"""Pydantic schemas for conversations and messages.

These shapes are shared by the REST history endpoints and the realtime
``new_message``/``message_ack`` frames, so a message looks the same
whether it arrives live or is loaded from history.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from pydantic import Field

from chat_service.core.database import ensure_utc
from chat_service.core.schemas import CustomBase

if TYPE_CHECKING:
    from chat_service.features.chat.models import Message


class MessageResponse(CustomBase):
    """A persisted message with the sender's display name resolved."""

    id: UUID
    conversation_id: UUID
    sender: UUID = Field(description="Sender user id")
    sender_name: str
    content: str
    reply_to: UUID | None = None
    read_by: list[UUID] = Field(default_factory=list)
    created_at: datetime

    @classmethod
    def from_message(
        cls,
        message: Message,
        sender_name: str,
        read_by: Iterable[UUID] = (),
    ) -> MessageResponse:
        return cls(
            id=message.id,
            conversation_id=message.conversation_id,
            sender=message.sender_id,
            sender_name=sender_name,
            content=message.content,
            reply_to=message.reply_to_id,
            read_by=list(read_by),
            created_at=ensure_utc(message.created_at),
        )


class MessageHistoryResponse(CustomBase):
    """One page of a conversation's history, oldest first."""

    items: list[MessageResponse]
    total: int
    limit: int
    offset: int
    has_next: bool


class ConversationCreate(CustomBase):
    """Request body for starting a conversation with another user."""

    participant_id: UUID


class ParticipantResponse(CustomBase):
    user_id: UUID
    username: str
    unread_count: int = 0


class ConversationResponse(CustomBase):
    id: UUID
    participants: list[ParticipantResponse]
    last_message_id: UUID | None = None
    last_message_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


__all__ = [
    "ConversationCreate",
    "ConversationResponse",
    "MessageHistoryResponse",
    "MessageResponse",
    "ParticipantResponse",
]
