"""Test helpers shared across the suite.

Usage:
    from tests.utils import frames_of, make_websocket

    websocket = make_websocket()
    await manager.send(connection_id, {"type": "pong"})
    assert frames_of(websocket, "pong")
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from unittest.mock import AsyncMock

from fastapi import WebSocketDisconnect


def make_websocket() -> AsyncMock:
    """Accepted-socket double that records every JSON frame sent to it."""
    websocket = AsyncMock()
    websocket.sent = []

    async def send_json(data, mode="text"):
        websocket.sent.append(data)

    websocket.send_json.side_effect = send_json
    return websocket


def frames_of(websocket: AsyncMock, event_type: str) -> list[dict]:
    """Frames of one type, in the order they were sent."""
    return [frame for frame in websocket.sent if frame.get("type") == event_type]


class FakeWebSocket:
    """Scriptable stand-in for a FastAPI WebSocket driven by the gateway.

    Inbound frames are queued with :meth:`push`; :meth:`disconnect` ends the
    receive side the way a client closing the socket would.
    """

    _CLOSED = object()

    def __init__(self, *frames: str | dict) -> None:
        self.sent: list[dict] = []
        self.accepted = False
        self.closed: tuple[int, str | None] | None = None
        self._inbound: asyncio.Queue = asyncio.Queue()
        for frame in frames:
            self.push(frame)

    def push(self, frame: str | dict) -> None:
        self._inbound.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def disconnect(self) -> None:
        self._inbound.put_nowait(self._CLOSED)

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, data: dict, mode: str = "text") -> None:
        if self.closed is not None:
            raise RuntimeError("Cannot send once the socket is closed")
        self.sent.append(data)

    async def receive_text(self) -> str:
        frame = await self._inbound.get()
        if frame is self._CLOSED:
            raise WebSocketDisconnect(code=1000)
        return frame

    async def iter_text(self) -> AsyncIterator[str]:
        while True:
            frame = await self._inbound.get()
            if frame is self._CLOSED:
                return
            yield frame

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed = (code, reason)
        self.disconnect()


async def wait_for_frame(websocket, event_type: str, count: int = 1) -> list[dict]:
    """Yield to the loop until ``count`` frames of a type have arrived."""
    for _ in range(500):
        frames = frames_of(websocket, event_type)
        if len(frames) >= count:
            return frames
        await asyncio.sleep(0.001)
    raise AssertionError(f"No {event_type!r} frame after waiting; got {websocket.sent!r}")
