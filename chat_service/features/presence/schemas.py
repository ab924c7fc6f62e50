"""Presence status types shared by the tracker, the gateway and REST."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from chat_service.core.schemas import CustomBase


class PresenceStatus(str, Enum):
    """A user's realtime availability."""

    ONLINE = "online"
    AWAY = "away"
    OFFLINE = "offline"


class PresenceState(CustomBase):
    """Point-in-time presence of one user.

    ``last_active`` is null while the user is online and set when they go
    away or offline.
    """

    user_id: UUID
    status: PresenceStatus
    last_active: datetime | None = None


__all__ = ["PresenceState", "PresenceStatus"]
