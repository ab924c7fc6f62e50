"""Modular Pydantic Settings v2 configuration.

Settings are split by domain (app/db/auth/logging/websocket), read from
environment variables (and an optional .env file), validated once and
cached.

Import settings via cached loaders:
    from chat_service.core.settings import get_websocket_settings

Configuration precedence (highest to lowest):
    1. init kwargs (testing/overrides)
    2. Environment variables (production)
    3. .env file (development only)
"""

from __future__ import annotations

from .app import AppSettings
from .auth import AuthSettings
from .loader import (
    clear_all_caches,
    get_app_settings,
    get_auth_settings,
    get_db_settings,
    get_logging_settings,
    get_websocket_settings,
)
from .logs import LoggingSettings
from .postgres import PostgresSettings
from .websocket import WebSocketSettings

__all__ = [
    "AppSettings",
    "AuthSettings",
    "LoggingSettings",
    "PostgresSettings",
    "WebSocketSettings",
    "clear_all_caches",
    "get_app_settings",
    "get_auth_settings",
    "get_db_settings",
    "get_logging_settings",
    "get_websocket_settings",
]
