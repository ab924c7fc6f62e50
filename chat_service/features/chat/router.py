"""API router for conversations and message history.

These are the durable read paths clients use to hydrate state after
connecting or reconnecting; live events arrive over the WebSocket.

Endpoints:
    POST /conversations                      - Start (or reopen) a conversation
    GET  /conversations                      - List the caller's conversations
    GET  /conversations/{id}/messages        - Read history, oldest first

Example Usage:
    POST /conversations
    {"participantId": "uuid"}

    GET /conversations/{id}/messages?limit=50&offset=0
"""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from chat_service.core.dependencies import CurrentIdentity, DBSessionDep
from chat_service.features.chat.schemas import (
    ConversationCreate,
    ConversationResponse,
    MessageHistoryResponse,
)
from chat_service.features.chat.service import ChatService

router = APIRouter(prefix="/conversations", tags=["conversations"])
logger = logging.getLogger(__name__)


@router.post(
    "",
    response_model=ConversationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start a conversation",
    description="Create the two-party conversation with another user, or return the existing one.",
)
async def create_conversation(
    payload: ConversationCreate,
    identity: CurrentIdentity,
    session: DBSessionDep,
) -> ConversationResponse:
    service = ChatService(session)
    return await service.create_conversation(identity.user_id, payload.participant_id)


@router.get(
    "",
    response_model=list[ConversationResponse],
    summary="List conversations",
    description="Conversations of the caller, most recently active first.",
)
async def list_conversations(
    identity: CurrentIdentity,
    session: DBSessionDep,
) -> list[ConversationResponse]:
    service = ChatService(session)
    return await service.list_conversations(identity.user_id)


@router.get(
    "/{conversation_id}/messages",
    response_model=MessageHistoryResponse,
    summary="Read message history",
    description="A page of the conversation's messages, oldest first. Participants only.",
)
async def get_messages(
    conversation_id: UUID,
    identity: CurrentIdentity,
    session: DBSessionDep,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> MessageHistoryResponse:
    """Read history.

    Args:
        conversation_id: Conversation to read
        identity: Authenticated caller
        session: Database session
        limit: Page size
        offset: Messages to skip

    Returns:
        One page of messages with the total count
    """
    service = ChatService(session)
    return await service.get_history(
        conversation_id, identity.user_id, limit=limit, offset=offset
    )
