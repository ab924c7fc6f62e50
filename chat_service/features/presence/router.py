"""Presence query over HTTP."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter

from chat_service.core.dependencies import CurrentIdentity, RealtimeServicesDep
from chat_service.features.presence.schemas import PresenceState

router = APIRouter(prefix="/users", tags=["presence"])


@router.get(
    "/{user_id}/status",
    response_model=PresenceState,
    response_model_by_alias=True,
    summary="Get a user's presence",
)
async def get_user_status(
    user_id: UUID,
    identity: CurrentIdentity,
    services: RealtimeServicesDep,
) -> PresenceState:
    """Current status and last-active time. Unknown users report offline."""
    _ = identity
    return await services.tracker.get_status(user_id)
