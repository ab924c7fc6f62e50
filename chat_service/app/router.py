"""Router registry and setup."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from chat_service.core.settings import get_app_settings, get_websocket_settings
from chat_service.features.chat.router import router as conversations_router
from chat_service.features.metrics.router import router as metrics_router
from chat_service.features.presence.router import router as presence_router
from chat_service.features.realtime.router import router as realtime_router

if TYPE_CHECKING:
    from fastapi import FastAPI

    from chat_service.core.settings.app import AppSettings
    from chat_service.core.settings.websocket import WebSocketSettings

logger = logging.getLogger(__name__)


def setup_routers(
    app: FastAPI,
    app_settings: AppSettings | None = None,
    websocket_settings: WebSocketSettings | None = None,
) -> None:
    """Register all feature routers with the application.

    REST routes live under the API prefix. ``/ws`` and ``/metrics`` are
    mounted at the root.
    """
    app_settings = app_settings or get_app_settings()
    websocket_settings = websocket_settings or get_websocket_settings()
    api_prefix = app_settings.api_prefix

    app.include_router(metrics_router)
    app.include_router(conversations_router, prefix=api_prefix)
    app.include_router(presence_router, prefix=api_prefix)
    app.include_router(realtime_router)

    logger.info(
        "Router setup complete",
        extra={
            "api_prefix": api_prefix,
            "websocket_enabled": websocket_settings.enabled,
        },
    )
