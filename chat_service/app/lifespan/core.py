"""Core lifespan services: logging.

Runs first and has no dependencies.
"""

from __future__ import annotations

import logging

from chat_service.infra.logging.config import setup_logging, shutdown

from .registry import lifespan_registry

logger = logging.getLogger(__name__)


@lifespan_registry.register(
    name="core",
    startup_order=1,
)
async def startup_core(
    app_settings: object,
    log_settings: object,
    **kwargs: object,
) -> None:
    """Configure logging from LOG_* settings.

    Args:
        app_settings: Application settings
        log_settings: Logging settings
        **kwargs: Additional settings (ignored)
    """
    from chat_service.core.settings import AppSettings, LoggingSettings

    app = (
        AppSettings.model_validate(app_settings)
        if not isinstance(app_settings, AppSettings)
        else app_settings
    )
    log = (
        LoggingSettings.model_validate(log_settings)
        if not isinstance(log_settings, LoggingSettings)
        else log_settings
    )

    setup_logging(log_settings=log, force=True)
    logger.info(
        "Application starting",
        extra={
            "service": app.service_name,
            "environment": app.environment,
            "version": app.version,
        },
    )


@lifespan_registry.register(name="core")
async def shutdown_core(**kwargs: object) -> None:
    """Flush and stop the logging queue listener."""
    logger.debug("Stopping log listener")
    shutdown()
