"""Application lifespan management.

The lifespan runs the hooks registered by the modules below in dependency
order: core (logging), database, realtime. Shutdown runs them in reverse.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

# Import all lifespan modules to register their hooks
from chat_service.app.lifespan import core, database, realtime
from chat_service.app.lifespan.registry import lifespan_registry
from chat_service.core.settings import (
    get_app_settings,
    get_auth_settings,
    get_db_settings,
    get_logging_settings,
    get_websocket_settings,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI

# Ensure modules are imported (for side effects - hook registration)
_ = (core, database, realtime)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle.

    Args:
        app: FastAPI application instance.

    Yields:
        None during application runtime.
    """
    _ = app

    app_settings = get_app_settings()
    ws_settings = get_websocket_settings()
    settings_dict = {
        "app_settings": app_settings,
        "auth_settings": get_auth_settings(),
        "db_settings": get_db_settings(),
        "log_settings": get_logging_settings(),
        "ws_settings": ws_settings,
    }

    await lifespan_registry.startup(**settings_dict)

    logger.info(
        "Application is LIVE and ready to serve requests on http://%s:%s",
        app_settings.host,
        app_settings.port,
        extra={
            "service": app_settings.service_name,
            "environment": app_settings.environment,
            "version": app_settings.version,
            "websocket_enabled": ws_settings.enabled,
        },
    )

    try:
        yield
    finally:
        logger.info("Application shutting down", extra={"service": app_settings.service_name})
        await lifespan_registry.shutdown(**settings_dict)


__all__ = ["lifespan"]
