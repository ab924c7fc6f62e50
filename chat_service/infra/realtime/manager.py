"""WebSocket connection table for the realtime gateway.

The manager owns the live socket objects: it hands out connection ids,
sends JSON frames, and closes sockets on shutdown. Who is online is the
ConnectionRegistry's concern, and which conversation a socket listens to
belongs to the room router.
"""

from __future__ import annotations

import contextlib
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from chat_service.infra.metrics.prometheus import realtime_connections_active

if TYPE_CHECKING:
    from uuid import UUID

    from fastapi import WebSocket

    from chat_service.infra.auth.models import Identity

logger = logging.getLogger(__name__)


@dataclass
class ConnectionInfo:
    """A single admitted WebSocket connection.

    ``rooms`` mirrors the room router's index so a connection's
    subscriptions can be dropped without scanning every room.
    """

    connection_id: str
    websocket: WebSocket
    user_id: UUID
    username: str
    rooms: set[UUID] = field(default_factory=set)
    connected_at: float = field(default_factory=time.time)


class ConnectionManager:
    """Tracks admitted WebSocket connections and sends frames to them.

    Sends are best effort: a failed send is logged and reported as False.
    The connection's own receive loop notices the dead socket and runs the
    normal disconnect path, so the manager never tears down state itself.

    Example:
        manager = ConnectionManager(max_connections=10_000)
        info = manager.add(websocket, identity)
        try:
            async for frame in websocket.iter_text():
                ...
        finally:
            manager.remove(info.connection_id)
    """

    def __init__(self, max_connections: int = 10000) -> None:
        self._max_connections = max_connections
        self._connections: dict[str, ConnectionInfo] = {}

    async def start(self) -> None:
        logger.info(
            "Connection manager started",
            extra={"max_connections": self._max_connections},
        )

    async def stop(self) -> None:
        """Close every open socket with 1001 (going away)."""
        closed = len(self._connections)

        for info in list(self._connections.values()):
            await self.close(info.connection_id, code=1001, reason="Server shutdown")

        self._connections.clear()
        realtime_connections_active.set(0)
        logger.info("Connection manager stopped", extra={"connections_closed": closed})

    def has_capacity(self) -> bool:
        return len(self._connections) < self._max_connections

    def add(self, websocket: WebSocket, identity: Identity) -> ConnectionInfo:
        """Admit an already-accepted socket.

        Raises:
            ConnectionRefusedError: If the instance is at max_connections.
        """
        if not self.has_capacity():
            logger.warning(
                "Connection refused: max connections reached",
                extra={"max": self._max_connections, "user_id": str(identity.user_id)},
            )
            raise ConnectionRefusedError("Maximum connections reached")

        info = ConnectionInfo(
            connection_id=str(uuid4()),
            websocket=websocket,
            user_id=identity.user_id,
            username=identity.username,
        )
        self._connections[info.connection_id] = info
        realtime_connections_active.set(len(self._connections))

        logger.info(
            "WebSocket connected",
            extra={
                "connection_id": info.connection_id,
                "user_id": str(identity.user_id),
                "total_connections": len(self._connections),
            },
        )
        return info

    def remove(self, connection_id: str) -> ConnectionInfo | None:
        """Forget a connection without closing its socket."""
        info = self._connections.pop(connection_id, None)
        if info is None:
            return None

        realtime_connections_active.set(len(self._connections))
        logger.info(
            "WebSocket disconnected",
            extra={
                "connection_id": connection_id,
                "user_id": str(info.user_id),
                "duration_seconds": round(time.time() - info.connected_at, 3),
                "total_connections": len(self._connections),
            },
        )
        return info

    async def close(self, connection_id: str, code: int = 1000, reason: str = "") -> bool:
        """Close a connection's socket. Returns False if the id is unknown."""
        info = self._connections.get(connection_id)
        if info is None:
            return False
        # Closing an already-closed socket raises; the outcome is the same
        with contextlib.suppress(Exception):
            await info.websocket.close(code=code, reason=reason)
        return True

    async def send(self, connection_id: str, message: dict[str, Any]) -> bool:
        """Send one JSON frame. Returns False if unknown or the send failed."""
        info = self._connections.get(connection_id)
        if info is None:
            return False

        try:
            await info.websocket.send_json(message)
        except Exception as e:
            logger.warning(
                "Failed to send message to connection",
                extra={
                    "connection_id": connection_id,
                    "event_type": message.get("type"),
                    "error": str(e),
                },
            )
            return False
        return True

    async def send_many(
        self,
        connection_ids: list[str],
        message: dict[str, Any],
        exclude: set[str] | None = None,
    ) -> int:
        """Send the same frame to several connections. Returns successful sends."""
        exclude = exclude or set()
        count = 0
        for connection_id in connection_ids:
            if connection_id in exclude:
                continue
            if await self.send(connection_id, message):
                count += 1
        return count

    async def send_to_user(self, user_id: UUID, message: dict[str, Any]) -> int:
        """Send a frame to every connection of one user."""
        return await self.send_many(
            [info.connection_id for info in self.connections_for_user(user_id)],
            message,
        )

    async def broadcast(self, message: dict[str, Any], exclude: set[str] | None = None) -> int:
        """Send a frame to every open connection."""
        return await self.send_many(list(self._connections), message, exclude)

    def get(self, connection_id: str) -> ConnectionInfo | None:
        return self._connections.get(connection_id)

    def connections_for_user(self, user_id: UUID) -> list[ConnectionInfo]:
        return [info for info in self._connections.values() if info.user_id == user_id]

    @property
    def connection_count(self) -> int:
        """Total number of admitted connections."""
        return len(self._connections)
