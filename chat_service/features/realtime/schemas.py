"""Pydantic schemas for realtime WebSocket frames.

Every frame is a JSON object tagged by ``type``. Inbound frames are parsed
into one of the client event models through :func:`parse_client_event`;
outbound frames are built from the server event models and sent with
``to_wire()``.

Frame Types:
- Client → Server: login, ping, join_conversation, leave_conversation,
  send_message, typing, mark_read, get_user_status, update_status
- Server → Client: connected, pong, new_message, message_ack,
  message_error, user_status_change, user_status, user_typing,
  message_read, joined_conversation, left_conversation,
  conversation_error, error
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import Field, TypeAdapter

from chat_service.core.schemas import CustomBase
from chat_service.features.chat.schemas import MessageResponse
from chat_service.features.presence.schemas import PresenceStatus


class ClientEventType(str, Enum):
    """Frame types sent from client to server."""

    LOGIN = "login"
    PING = "ping"
    JOIN_CONVERSATION = "join_conversation"
    LEAVE_CONVERSATION = "leave_conversation"
    SEND_MESSAGE = "send_message"
    TYPING = "typing"
    MARK_READ = "mark_read"
    GET_USER_STATUS = "get_user_status"
    UPDATE_STATUS = "update_status"


class ServerEventType(str, Enum):
    """Frame types sent from server to client."""

    CONNECTED = "connected"
    PONG = "pong"
    NEW_MESSAGE = "new_message"
    MESSAGE_ACK = "message_ack"
    MESSAGE_ERROR = "message_error"
    USER_STATUS_CHANGE = "user_status_change"
    USER_STATUS = "user_status"
    USER_TYPING = "user_typing"
    MESSAGE_READ = "message_read"
    JOINED_CONVERSATION = "joined_conversation"
    LEFT_CONVERSATION = "left_conversation"
    CONVERSATION_ERROR = "conversation_error"
    ERROR = "error"


# ──────────────────────────────────────────────────────────────
# Client → Server Events
# ──────────────────────────────────────────────────────────────


class LoginEvent(CustomBase):
    """Handshake frame for clients that cannot pass a query token."""

    type: Literal[ClientEventType.LOGIN] = ClientEventType.LOGIN
    token: str = Field(..., min_length=1)


class PingEvent(CustomBase):
    type: Literal[ClientEventType.PING] = ClientEventType.PING


class JoinConversationEvent(CustomBase):
    """Subscribe this connection to a conversation's live events."""

    type: Literal[ClientEventType.JOIN_CONVERSATION] = ClientEventType.JOIN_CONVERSATION
    conversation_id: UUID


class LeaveConversationEvent(CustomBase):
    type: Literal[ClientEventType.LEAVE_CONVERSATION] = ClientEventType.LEAVE_CONVERSATION
    conversation_id: UUID


class SendMessageEvent(CustomBase):
    """Message submission.

    There is no sender field: the sender is always the
    connection's authenticated user. Content is validated by the delivery
    pipeline so that an empty message still gets a ``message_error`` that
    carries the ``tempId``.
    """

    type: Literal[ClientEventType.SEND_MESSAGE] = ClientEventType.SEND_MESSAGE
    conversation_id: UUID
    content: str = ""
    reply_to: UUID | None = None
    temp_id: str | None = Field(None, max_length=128, description="Client correlation token")


class TypingEvent(CustomBase):
    type: Literal[ClientEventType.TYPING] = ClientEventType.TYPING
    conversation_id: UUID
    is_typing: bool = True


class MarkReadEvent(CustomBase):
    type: Literal[ClientEventType.MARK_READ] = ClientEventType.MARK_READ
    conversation_id: UUID
    message_id: UUID


class GetUserStatusEvent(CustomBase):
    type: Literal[ClientEventType.GET_USER_STATUS] = ClientEventType.GET_USER_STATUS
    user_id: UUID


class UpdateStatusEvent(CustomBase):
    type: Literal[ClientEventType.UPDATE_STATUS] = ClientEventType.UPDATE_STATUS
    status: PresenceStatus


ClientEvent = Annotated[
    Union[
        LoginEvent,
        PingEvent,
        JoinConversationEvent,
        LeaveConversationEvent,
        SendMessageEvent,
        TypingEvent,
        MarkReadEvent,
        GetUserStatusEvent,
        UpdateStatusEvent,
    ],
    Field(discriminator="type"),
]

_client_event_adapter: TypeAdapter[ClientEvent] = TypeAdapter(ClientEvent)

CLIENT_EVENT_TYPES = frozenset(event_type.value for event_type in ClientEventType)


def parse_client_event(payload: dict[str, Any]) -> ClientEvent:
    """Validate a decoded frame into its client event model.

    Raises:
        pydantic.ValidationError: If the frame does not match its type.
    """
    return _client_event_adapter.validate_python(payload)


# ──────────────────────────────────────────────────────────────
# Server → Client Events
# ──────────────────────────────────────────────────────────────


class ConnectedEvent(CustomBase):
    """Sent once the handshake has bound an identity to the connection."""

    type: Literal[ServerEventType.CONNECTED] = ServerEventType.CONNECTED
    connection_id: str
    user_id: UUID
    username: str


class PongEvent(CustomBase):
    type: Literal[ServerEventType.PONG] = ServerEventType.PONG


class NewMessageEvent(CustomBase):
    """Fan-out of a persisted message to a conversation's room."""

    type: Literal[ServerEventType.NEW_MESSAGE] = ServerEventType.NEW_MESSAGE
    conversation_id: UUID
    message: MessageResponse


class MessageAckEvent(CustomBase):
    """Acknowledges a persisted submission to its sender only."""

    type: Literal[ServerEventType.MESSAGE_ACK] = ServerEventType.MESSAGE_ACK
    temp_id: str | None = None
    conversation_id: UUID
    message_id: UUID
    status: Literal["success"] = "success"
    message: MessageResponse


class MessageErrorEvent(CustomBase):
    """A rejected or failed submission, correlated by ``tempId``."""

    type: Literal[ServerEventType.MESSAGE_ERROR] = ServerEventType.MESSAGE_ERROR
    error: str
    code: str
    temp_id: str | None = None
    conversation_id: UUID | None = None


class UserStatusChangeEvent(CustomBase):
    """Global presence broadcast."""

    type: Literal[ServerEventType.USER_STATUS_CHANGE] = ServerEventType.USER_STATUS_CHANGE
    user_id: UUID
    status: PresenceStatus
    last_active: datetime | None = None


class UserStatusEvent(CustomBase):
    """Answer to ``get_user_status``, sent to the asking connection only."""

    type: Literal[ServerEventType.USER_STATUS] = ServerEventType.USER_STATUS
    user_id: UUID
    status: PresenceStatus
    last_active: datetime | None = None


class UserTypingEvent(CustomBase):
    type: Literal[ServerEventType.USER_TYPING] = ServerEventType.USER_TYPING
    conversation_id: UUID
    user_id: UUID
    username: str
    is_typing: bool


class MessageReadEvent(CustomBase):
    type: Literal[ServerEventType.MESSAGE_READ] = ServerEventType.MESSAGE_READ
    conversation_id: UUID
    message_id: UUID
    user_id: UUID
    read_at: datetime


class JoinedConversationEvent(CustomBase):
    type: Literal[ServerEventType.JOINED_CONVERSATION] = ServerEventType.JOINED_CONVERSATION
    conversation_id: UUID


class LeftConversationEvent(CustomBase):
    type: Literal[ServerEventType.LEFT_CONVERSATION] = ServerEventType.LEFT_CONVERSATION
    conversation_id: UUID


class ConversationErrorEvent(CustomBase):
    """Join, leave or typing failure, kept apart from ``message_error``."""

    type: Literal[ServerEventType.CONVERSATION_ERROR] = ServerEventType.CONVERSATION_ERROR
    conversation_id: UUID
    code: str
    error: str


class ErrorEvent(CustomBase):
    """Connection-level error: bad frames, auth failures, failed queries."""

    type: Literal[ServerEventType.ERROR] = ServerEventType.ERROR
    code: str = Field(..., description="Error code")
    message: str = Field(..., description="Human-readable error message")


# ──────────────────────────────────────────────────────────────
# REST API Schemas
# ──────────────────────────────────────────────────────────────


class ConnectionStats(CustomBase):
    """Statistics about WebSocket connections."""

    total_connections: int = Field(..., ge=0)
    online_users: int = Field(..., ge=0)
    active_rooms: int = Field(..., ge=0)
    max_connections: int = Field(..., ge=0)


__all__ = [
    "CLIENT_EVENT_TYPES",
    "ClientEvent",
    "ClientEventType",
    "ConnectedEvent",
    "ConnectionStats",
    "ConversationErrorEvent",
    "ErrorEvent",
    "GetUserStatusEvent",
    "JoinConversationEvent",
    "JoinedConversationEvent",
    "LeaveConversationEvent",
    "LeftConversationEvent",
    "LoginEvent",
    "MarkReadEvent",
    "MessageAckEvent",
    "MessageErrorEvent",
    "MessageReadEvent",
    "NewMessageEvent",
    "PingEvent",
    "PongEvent",
    "ServerEventType",
    "SendMessageEvent",
    "TypingEvent",
    "UpdateStatusEvent",
    "UserStatusChangeEvent",
    "UserStatusEvent",
    "UserTypingEvent",
    "parse_client_event",
]
