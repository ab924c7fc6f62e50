"""Connection lifecycle for the realtime WebSocket endpoint.

A connection moves through connecting (handshake), connected (identity
bound, presence updated) and active (frames dispatched) until the socket
closes. Cleanup always drops its room subscriptions, removes it from the
connection table and updates presence, whatever ended the connection.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
from typing import TYPE_CHECKING, Any

from fastapi import WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError

from chat_service.core.exceptions import AppException, AuthenticationError, InvalidInputError
from chat_service.core.services.base import BaseService
from chat_service.core.settings import get_websocket_settings
from chat_service.features.realtime.schemas import (
    CLIENT_EVENT_TYPES,
    ClientEventType,
    ConnectedEvent,
    ConnectionStats,
    ConversationErrorEvent,
    ErrorEvent,
    JoinConversationEvent,
    JoinedConversationEvent,
    LeaveConversationEvent,
    LeftConversationEvent,
    LoginEvent,
    MarkReadEvent,
    MessageErrorEvent,
    PongEvent,
    TypingEvent,
    UserStatusChangeEvent,
    UserStatusEvent,
    UserTypingEvent,
    parse_client_event,
)
from chat_service.infra.logging import log_context
from chat_service.infra.metrics.prometheus import (
    realtime_connections_total,
    realtime_frames_total,
)

if TYPE_CHECKING:
    from uuid import UUID

    from chat_service.core.schemas import CustomBase
    from chat_service.core.settings.websocket import WebSocketSettings
    from chat_service.features.presence.schemas import PresenceState
    from chat_service.features.presence.tracker import PresenceTracker
    from chat_service.features.realtime.pipeline import MessageDeliveryPipeline
    from chat_service.features.realtime.rooms import ConversationRoomRouter
    from chat_service.features.realtime.schemas import ClientEvent
    from chat_service.infra.auth.models import Identity
    from chat_service.infra.auth.protocols import IdentityProvider
    from chat_service.infra.realtime.manager import ConnectionInfo, ConnectionManager

# Frames that concern one conversation report failures as conversation_error
_CONVERSATION_EVENTS = (JoinConversationEvent, LeaveConversationEvent, TypingEvent, MarkReadEvent)


class RealtimeGateway(BaseService):
    """Owns every realtime connection from handshake to cleanup.

    Frames of one connection are handled strictly one after another: the
    receive loop awaits each handler before reading the next frame. Errors
    raised by a handler are turned into an error frame for that connection
    and never end the loop.

    Example:
        gateway = RealtimeGateway(provider, manager, tracker, rooms, pipeline)

        @router.websocket("/ws")
        async def websocket_endpoint(websocket: WebSocket, token: str | None = None):
            await gateway.serve(websocket, token)
    """

    def __init__(
        self,
        identity_provider: IdentityProvider,
        manager: ConnectionManager,
        tracker: PresenceTracker,
        rooms: ConversationRoomRouter,
        pipeline: MessageDeliveryPipeline,
        *,
        settings: WebSocketSettings | None = None,
    ) -> None:
        super().__init__()
        self._identity_provider = identity_provider
        self._manager = manager
        self._tracker = tracker
        self._rooms = rooms
        self._pipeline = pipeline
        self._settings = settings or get_websocket_settings()
        self._unsubscribe_presence = tracker.subscribe(self._broadcast_presence)

    def close(self) -> None:
        """Stop relaying presence changes."""
        self._unsubscribe_presence()

    # ──────────────────────────────────────────────────────────────
    # Connection lifecycle
    # ──────────────────────────────────────────────────────────────

    async def serve(self, websocket: WebSocket, token: str | None = None) -> None:
        """Run one connection until it closes."""
        await websocket.accept()

        try:
            identity = await self._authenticate(websocket, token)
        except AuthenticationError as e:
            realtime_connections_total.labels(outcome="auth_failed").inc()
            self.logger.info("WebSocket authentication failed", extra={"reason": e.detail})
            await self._refuse(
                websocket,
                ErrorEvent(code=e.type, message=e.detail),
                code=status.WS_1008_POLICY_VIOLATION,
                reason="Authentication failed",
            )
            return
        except WebSocketDisconnect:
            realtime_connections_total.labels(outcome="abandoned").inc()
            return

        if len(self._manager.connections_for_user(identity.user_id)) >= (
            self._settings.max_connections_per_user
        ):
            realtime_connections_total.labels(outcome="refused").inc()
            self.logger.warning(
                "Connection refused: per-user limit reached",
                extra={"user_id": str(identity.user_id)},
            )
            await self._refuse(
                websocket,
                ErrorEvent(code="too-many-connections", message="Too many connections for this user"),
                code=status.WS_1013_TRY_AGAIN_LATER,
                reason="Too many connections",
            )
            return

        try:
            info = self._manager.add(websocket, identity)
        except ConnectionRefusedError as e:
            realtime_connections_total.labels(outcome="refused").inc()
            await self._refuse(
                websocket,
                ErrorEvent(code="server-full", message=str(e)),
                code=status.WS_1013_TRY_AGAIN_LATER,
                reason=str(e),
            )
            return

        realtime_connections_total.labels(outcome="accepted").inc()
        with log_context(connection_id=info.connection_id, user_id=str(info.user_id)):
            try:
                await self._send(
                    info,
                    ConnectedEvent(
                        connection_id=info.connection_id,
                        user_id=info.user_id,
                        username=info.username,
                    ),
                )
                await self._tracker.connection_opened(identity, info.connection_id)
                await self._receive_loop(info)
            except WebSocketDisconnect:
                self._lazy.debug(lambda: f"gateway.serve({info.connection_id}) -> disconnected")
            finally:
                await self._cleanup(info)

    async def _authenticate(self, websocket: WebSocket, token: str | None) -> Identity:
        """Resolve the connection's identity from the query token or a login frame.

        Raises:
            AuthenticationError: If no valid token arrives in time.
        """
        if not token:
            try:
                raw = await asyncio.wait_for(
                    websocket.receive_text(), timeout=self._settings.auth_timeout
                )
            except TimeoutError:
                raise AuthenticationError("Authentication timed out") from None

            try:
                event = parse_client_event(json.loads(raw))
            except ValueError:
                raise AuthenticationError("Expected a login frame") from None
            if not isinstance(event, LoginEvent):
                raise AuthenticationError("Expected a login frame")
            token = event.token

        try:
            return await self._identity_provider.authenticate(token)
        except AuthenticationError:
            raise
        except Exception as e:
            self.logger.exception("Identity provider failed")
            raise AuthenticationError("Authentication unavailable") from e

    async def _receive_loop(self, info: ConnectionInfo) -> None:
        max_size = self._settings.max_message_size
        async for raw in info.websocket.iter_text():
            if len(raw.encode()) > max_size:
                await self._send(
                    info,
                    ErrorEvent(code="message-too-large", message=f"Frames are limited to {max_size} bytes"),
                )
                continue
            await self.dispatch(info, raw)

    async def _cleanup(self, info: ConnectionInfo) -> None:
        self._rooms.drop_connection(info.connection_id)
        self._manager.remove(info.connection_id)
        await self._tracker.connection_closed(info.user_id, info.connection_id)

    async def disconnect_user(
        self,
        user_id: UUID,
        code: int = status.WS_1008_POLICY_VIOLATION,
        reason: str = "Session revoked",
    ) -> int:
        """Force-close every connection of a user, e.g. after token revocation.

        Every connection is told why with a ``session-revoked`` error frame
        before it is closed. Each connection's own cleanup runs when its
        receive loop sees the close.
        """
        connections = self._manager.connections_for_user(user_id)
        if connections:
            await self._manager.send_to_user(
                user_id, ErrorEvent(code="session-revoked", message=reason).to_wire()
            )
        for info in connections:
            await self._manager.close(info.connection_id, code=code, reason=reason)
        if connections:
            self.logger.info(
                "Closed user connections",
                extra={"user_id": str(user_id), "count": len(connections), "reason": reason},
            )
        return len(connections)

    def stats(self) -> ConnectionStats:
        return ConnectionStats(
            total_connections=self._manager.connection_count,
            online_users=self._tracker.online_count,
            active_rooms=self._rooms.room_count,
            max_connections=self._settings.max_connections,
        )

    # ──────────────────────────────────────────────────────────────
    # Frame dispatch
    # ──────────────────────────────────────────────────────────────

    async def dispatch(self, info: ConnectionInfo, raw: str) -> None:
        """Parse one inbound frame and run its handler.

        Malformed frames and handler failures are answered on this
        connection only.

        Every JSON object frame except ``update_status`` counts as activity
        for the idle sweep.
        """
        try:
            payload = json.loads(raw)
        except ValueError:
            await self._send(info, ErrorEvent(code="invalid-json", message="Frame is not valid JSON"))
            return

        if not isinstance(payload, dict):
            await self._send(info, ErrorEvent(code="invalid-payload", message="Frame must be a JSON object"))
            return

        event_type = payload.get("type")
        # An explicit status update sets presence on its own; touching first
        # would flash an idle-demoted user online before the new status lands
        if event_type != ClientEventType.UPDATE_STATUS:
            await self._tracker.touch(info.user_id)

        if event_type not in CLIENT_EVENT_TYPES:
            realtime_frames_total.labels(type="unknown").inc()
            await self._send(
                info,
                ErrorEvent(code="unknown-type", message=f"Unknown message type: {event_type}"),
            )
            return
        realtime_frames_total.labels(type=event_type).inc()

        try:
            event = parse_client_event(payload)
        except ValidationError as e:
            await self._reject_payload(info, event_type, payload, e)
            return

        try:
            await self._handle(info, event)
        except AppException as e:
            await self._send_app_error(info, event, e)
        except Exception:
            self.logger.exception("Unhandled error processing frame", extra={"event_type": event_type})
            await self._send(info, ErrorEvent(code="internal-error", message="Internal server error"))

    async def _handle(self, info: ConnectionInfo, event: ClientEvent) -> None:
        event_type = event.type

        if event_type == ClientEventType.PING:
            await self._send(info, PongEvent())

        elif event_type == ClientEventType.LOGIN:
            await self._send(
                info,
                ErrorEvent(code="already-authenticated", message="Connection is already authenticated"),
            )

        elif event_type == ClientEventType.JOIN_CONVERSATION:
            await self._rooms.join(info.connection_id, event.conversation_id)
            await self._send(info, JoinedConversationEvent(conversation_id=event.conversation_id))

        elif event_type == ClientEventType.LEAVE_CONVERSATION:
            self._rooms.leave(info.connection_id, event.conversation_id)
            await self._send(info, LeftConversationEvent(conversation_id=event.conversation_id))

        elif event_type == ClientEventType.SEND_MESSAGE:
            await self._pipeline.handle_send(info, event)

        elif event_type == ClientEventType.TYPING:
            if not self._rooms.is_subscribed(info.connection_id, event.conversation_id):
                raise InvalidInputError("Join the conversation before sending typing signals")
            await self._rooms.broadcast_to_conversation(
                event.conversation_id,
                UserTypingEvent(
                    conversation_id=event.conversation_id,
                    user_id=info.user_id,
                    username=info.username,
                    is_typing=event.is_typing,
                ),
                exclude={info.connection_id},
            )

        elif event_type == ClientEventType.MARK_READ:
            await self._pipeline.mark_read(info, event)

        elif event_type == ClientEventType.GET_USER_STATUS:
            state = await self._tracker.get_status(event.user_id)
            await self._send(
                info,
                UserStatusEvent(
                    user_id=state.user_id,
                    status=state.status,
                    last_active=state.last_active,
                ),
            )

        elif event_type == ClientEventType.UPDATE_STATUS:
            await self._tracker.set_status(info.user_id, event.status)

    async def _reject_payload(
        self,
        info: ConnectionInfo,
        event_type: str,
        payload: dict[str, Any],
        error: ValidationError,
    ) -> None:
        first = error.errors()[0] if error.error_count() else {}
        field = ".".join(str(part) for part in first.get("loc", ())[1:])
        detail = f"Invalid {event_type} payload" + (f": {field} {first.get('msg', '')}" if field else "")

        if event_type == ClientEventType.SEND_MESSAGE:
            # A malformed submission still owes its sender a correlated failure
            temp_id = payload.get("tempId", payload.get("temp_id"))
            await self._send(
                info,
                MessageErrorEvent(
                    error=detail,
                    code="invalid-input",
                    temp_id=temp_id if isinstance(temp_id, str) else None,
                ),
            )
            return

        await self._send(info, ErrorEvent(code="invalid-payload", message=detail))

    async def _send_app_error(self, info: ConnectionInfo, event: ClientEvent, error: AppException) -> None:
        if isinstance(event, _CONVERSATION_EVENTS):
            await self._send(
                info,
                ConversationErrorEvent(
                    conversation_id=event.conversation_id,
                    code=error.type,
                    error=error.detail,
                ),
            )
            return
        await self._send(info, ErrorEvent(code=error.type, message=error.detail))

    # ──────────────────────────────────────────────────────────────
    # Outbound
    # ──────────────────────────────────────────────────────────────

    async def _broadcast_presence(self, state: PresenceState) -> None:
        await self._manager.broadcast(
            UserStatusChangeEvent(
                user_id=state.user_id,
                status=state.status,
                last_active=state.last_active,
            ).to_wire()
        )

    async def _send(self, info: ConnectionInfo, event: CustomBase) -> bool:
        return await self._manager.send(info.connection_id, event.to_wire())

    @staticmethod
    async def _refuse(websocket: WebSocket, event: CustomBase, *, code: int, reason: str) -> None:
        # The peer may already be gone; the socket is closed either way
        with contextlib.suppress(Exception):
            await websocket.send_json(event.to_wire())
        with contextlib.suppress(Exception):
            await websocket.close(code=code, reason=reason)


__all__ = ["RealtimeGateway"]
