"""Process-wide realtime services and their start/stop lifecycle.

The services are built once at startup and injected into each other;
nothing below reaches for ambient globals except through
:func:`get_realtime_services`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from chat_service.core.settings import get_auth_settings, get_websocket_settings
from chat_service.features.chat.repository import get_user_repository
from chat_service.features.presence.tracker import PresenceTracker
from chat_service.features.realtime.gateway import RealtimeGateway
from chat_service.features.realtime.pipeline import MessageDeliveryPipeline
from chat_service.features.realtime.rooms import ConversationRoomRouter
from chat_service.infra.auth import JWTIdentityProvider
from chat_service.infra.realtime import ConnectionManager, ConnectionRegistry

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from chat_service.core.settings.websocket import WebSocketSettings
    from chat_service.infra.auth.protocols import IdentityProvider

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RealtimeServices:
    """The wired realtime component graph."""

    registry: ConnectionRegistry
    manager: ConnectionManager
    tracker: PresenceTracker
    rooms: ConversationRoomRouter
    pipeline: MessageDeliveryPipeline
    gateway: RealtimeGateway
    identity_provider: IdentityProvider


def build_realtime_services(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    identity_provider: IdentityProvider | None = None,
    settings: WebSocketSettings | None = None,
) -> RealtimeServices:
    """Wire registry -> manager -> tracker -> rooms -> pipeline -> gateway."""
    settings = settings or get_websocket_settings()
    if identity_provider is None:
        identity_provider = JWTIdentityProvider(
            get_auth_settings(), session_factory, get_user_repository()
        )

    registry = ConnectionRegistry()
    manager = ConnectionManager(max_connections=settings.max_connections)
    tracker = PresenceTracker(
        registry,
        session_factory,
        idle_timeout=settings.presence_idle_timeout,
        sweep_interval=settings.presence_sweep_interval,
    )
    rooms = ConversationRoomRouter(
        manager,
        session_factory,
        require_participant=settings.require_participant_for_join,
    )
    pipeline = MessageDeliveryPipeline(
        manager,
        rooms,
        session_factory,
        max_content_length=settings.max_content_length,
    )
    gateway = RealtimeGateway(
        identity_provider,
        manager,
        tracker,
        rooms,
        pipeline,
        settings=settings,
    )
    return RealtimeServices(
        registry=registry,
        manager=manager,
        tracker=tracker,
        rooms=rooms,
        pipeline=pipeline,
        gateway=gateway,
        identity_provider=identity_provider,
    )


_services: RealtimeServices | None = None


def get_realtime_services() -> RealtimeServices:
    """Return the running realtime services.

    Raises:
        RuntimeError: If start_realtime() has not run.
    """
    if _services is None:
        raise RuntimeError("Realtime services not started. Call start_realtime() first.")
    return _services


async def start_realtime(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    identity_provider: IdentityProvider | None = None,
    settings: WebSocketSettings | None = None,
) -> RealtimeServices:
    """Build the realtime services and start the connection manager and idle sweep."""
    global _services

    if _services is not None:
        return _services

    services = build_realtime_services(
        session_factory, identity_provider=identity_provider, settings=settings
    )
    await services.manager.start()
    await services.tracker.start()
    _services = services
    logger.info("Realtime services started")
    return services


async def stop_realtime() -> None:
    """Stop the sweep, take everyone offline and close every socket with 1001."""
    global _services

    services, _services = _services, None
    if services is None:
        return

    await services.tracker.stop()
    users = await services.tracker.disconnect_all()
    services.gateway.close()
    await services.manager.stop()
    logger.info("Realtime services stopped", extra={"users_disconnected": users})


__all__ = [
    "RealtimeServices",
    "build_realtime_services",
    "get_realtime_services",
    "start_realtime",
    "stop_realtime",
]
