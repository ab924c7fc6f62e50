"""Realtime dependencies for FastAPI route handlers.

Usage:
    from chat_service.core.dependencies.realtime import RealtimeServicesDep

    @router.get("/ws/stats")
    async def stats(services: RealtimeServicesDep):
        return services.gateway.stats()
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, status

from chat_service.features.realtime.container import RealtimeServices, get_realtime_services


def get_optional_realtime_services() -> RealtimeServices | None:
    """Return the running realtime services, or None before startup."""
    try:
        return get_realtime_services()
    except RuntimeError:
        return None


async def require_realtime_services(
    services: Annotated[RealtimeServices | None, Depends(get_optional_realtime_services)],
) -> RealtimeServices:
    """Dependency that requires the realtime services to be running.

    Raises:
        HTTPException: 503 Service Unavailable if they are not.
    """
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "realtime_unavailable",
                "message": "Realtime services are not available",
            },
        )
    return services


RealtimeServicesDep = Annotated[RealtimeServices, Depends(require_realtime_services)]

__all__ = [
    "RealtimeServicesDep",
    "get_optional_realtime_services",
    "require_realtime_services",
]
