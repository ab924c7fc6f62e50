"""WebSocket router for realtime chat.

Endpoints:
- GET /ws: WebSocket connection endpoint
- GET /ws/stats: Connection statistics
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Query, WebSocket, status

from chat_service.core.dependencies.realtime import (
    RealtimeServicesDep,
    get_optional_realtime_services,
)
from chat_service.core.settings import get_websocket_settings
from chat_service.features.realtime.schemas import ConnectionStats

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/ws", tags=["realtime"])


@router.websocket("")
async def websocket_endpoint(
    websocket: WebSocket,
    token: Annotated[
        str | None,
        Query(description="JWT; alternatively send a login frame after connecting"),
    ] = None,
) -> None:
    """WebSocket connection endpoint.

    Message Protocol:
        Client → Server:
        - {"type": "login", "token": "..."}
        - {"type": "join_conversation", "conversationId": "..."}
        - {"type": "leave_conversation", "conversationId": "..."}
        - {"type": "send_message", "conversationId": "...", "content": "...", "tempId": "..."}
        - {"type": "typing", "conversationId": "...", "isTyping": true}
        - {"type": "mark_read", "conversationId": "...", "messageId": "..."}
        - {"type": "get_user_status", "userId": "..."}
        - {"type": "update_status", "status": "away"}
        - {"type": "ping"}

        Server → Client:
        - {"type": "connected", "connectionId": "...", "userId": "...", "username": "..."}
        - {"type": "new_message", "conversationId": "...", "message": {...}}
        - {"type": "message_ack", "tempId": "...", "messageId": "...", "status": "success", ...}
        - {"type": "message_error", "error": "...", "code": "...", "tempId": "..."}
        - {"type": "user_status_change", "userId": "...", "status": "...", "lastActive": ...}
        - {"type": "error", "code": "...", "message": "..."}
    """
    if not get_websocket_settings().enabled:
        await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER, reason="WebSocket disabled")
        return

    services = get_optional_realtime_services()
    if services is None:
        await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER, reason="Server not ready")
        return

    await services.gateway.serve(websocket, token)


@router.get(
    "/stats",
    response_model=ConnectionStats,
    summary="Get WebSocket connection statistics",
    description="Returns current connection, online user and room counts.",
)
async def get_stats(services: RealtimeServicesDep) -> ConnectionStats:
    """Get current WebSocket connection statistics."""
    return services.gateway.stats()
