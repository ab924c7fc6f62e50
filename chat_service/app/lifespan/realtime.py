"""Realtime services lifespan management."""

from __future__ import annotations

import logging

from .registry import lifespan_registry

logger = logging.getLogger(__name__)


@lifespan_registry.register(
    name="realtime",
    startup_order=20,
    requires=["database"],
)
async def startup_realtime(
    ws_settings: object,
    **kwargs: object,
) -> None:
    """Build the realtime component graph and start the presence sweep.

    The services start even when ``WS_ENABLED`` is false so that REST
    presence queries keep working; the flag only gates the WebSocket
    endpoint.

    Args:
        ws_settings: WebSocket settings
        **kwargs: Additional settings (ignored)
    """
    from chat_service.core.settings import WebSocketSettings
    from chat_service.features.realtime.container import start_realtime
    from chat_service.infra.database import get_session_factory

    ws = (
        WebSocketSettings.model_validate(ws_settings)
        if not isinstance(ws_settings, WebSocketSettings)
        else ws_settings
    )

    await start_realtime(get_session_factory(), settings=ws)
    logger.info(
        "Realtime services initialized",
        extra={
            "websocket_enabled": ws.enabled,
            "max_connections": ws.max_connections,
            "presence_idle_timeout": ws.presence_idle_timeout,
        },
    )


@lifespan_registry.register(name="realtime")
async def shutdown_realtime(**kwargs: object) -> None:
    """Cancel the sweep, mark everyone offline and close all sockets."""
    from chat_service.features.realtime.container import stop_realtime

    await stop_realtime()
