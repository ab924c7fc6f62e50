"""Realtime infrastructure for WebSocket connections.

- ConnectionRegistry: who is connected, counted per user
- ConnectionManager: the live socket table and frame sending

Usage:
    from chat_service.infra.realtime import ConnectionManager, ConnectionRegistry
"""

from chat_service.infra.realtime.manager import ConnectionInfo, ConnectionManager
from chat_service.infra.realtime.registry import ConnectionRegistry

__all__ = [
    "ConnectionInfo",
    "ConnectionManager",
    "ConnectionRegistry",
]
