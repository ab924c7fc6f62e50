"""SQLAlchemy models for users, conversations and messages."""
from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from chat_service.core.database import Base, TimestampMixin, UUIDPKMixin, utcnow


class User(Base, UUIDPKMixin, TimestampMixin):
    """Chat user with the durable copy of their presence.

    ``online_status`` and ``last_active`` are written only by the presence
    tracker; they are what a status query falls back to when the user has
    no live connection.
    """

    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(50), nullable=False)
    session_id: Mapped[str] = mapped_column(
        String(16),
        unique=True,
        nullable=False,
        comment="Generated pairing code, e.g. AB-12CD-3456E",
    )
    online_status: Mapped[str] = mapped_column(
        String(10),
        default="offline",
        server_default="offline",
        nullable=False,
    )
    last_active: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Conversation(Base, UUIDPKMixin, TimestampMixin):
    """Two-party conversation.

    ``last_message_id`` is a plain column rather than a foreign key so that
    conversations and messages can be created without a dependency cycle.
    ``last_message_at`` is the creation time of that message; the pointer
    only ever moves forward in time.

    ``pair_key`` identifies the two participants independently of order, so
    at most one conversation exists per pair.
    """

    __tablename__ = "conversations"

    last_message_id: Mapped[UUID | None] = mapped_column(nullable=True)
    last_message_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    pair_key: Mapped[str | None] = mapped_column(String(73), unique=True, nullable=True)


def conversation_pair_key(user_a: UUID, user_b: UUID) -> str:
    """Order-independent key for the conversation between two users."""
    return ":".join(sorted((str(user_a), str(user_b))))


class ConversationParticipant(Base):
    """Membership row carrying the participant's unread counter."""

    __tablename__ = "conversation_participants"

    conversation_id: Mapped[UUID] = mapped_column(
        ForeignKey("conversations.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )
    unread_count: Mapped[int] = mapped_column(
        Integer(), default=0, server_default="0", nullable=False
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


class Message(Base, UUIDPKMixin, TimestampMixin):
    """Persisted chat message. Content is immutable once written."""

    __tablename__ = "messages"

    conversation_id: Mapped[UUID] = mapped_column(
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sender_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    content: Mapped[str] = mapped_column(Text(), nullable=False)
    reply_to_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("messages.id", ondelete="SET NULL"),
        nullable=True,
    )


class MessageRead(Base):
    """Read receipt. The set of receipts per message only ever grows."""

    __tablename__ = "message_reads"

    message_id: Mapped[UUID] = mapped_column(
        ForeignKey("messages.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    read_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


__all__ = [
    "Conversation",
    "ConversationParticipant",
    "Message",
    "MessageRead",
    "User",
    "conversation_pair_key",
]
