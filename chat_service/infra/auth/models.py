"""Identity bound to an authenticated connection or request."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Identity:
    """An authenticated user.

    Attributes:
        user_id: Stable durable user identifier.
        username: Display name shown to other participants.
    """

    user_id: UUID
    username: str
