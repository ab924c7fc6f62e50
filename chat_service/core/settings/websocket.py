"""Realtime gateway and presence settings."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class WebSocketSettings(BaseSettings):
    """WebSocket gateway, presence and delivery settings.

    Environment variables use WS_ prefix.
    Example: WS_PRESENCE_IDLE_TIMEOUT=30
    """

    # ──────────────────────────────────────────────────────────────
    # Connection limits
    # ──────────────────────────────────────────────────────────────

    max_connections: int = Field(
        default=10000,
        ge=1,
        le=100000,
        description="Maximum concurrent WebSocket connections per instance",
    )

    max_connections_per_user: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum simultaneous connections (tabs/devices) per user",
    )

    max_message_size: int = Field(
        default=65536,
        ge=1024,
        le=1048576,
        description="Maximum incoming frame size in bytes (default 64KB)",
    )

    # ──────────────────────────────────────────────────────────────
    # Authentication
    # ──────────────────────────────────────────────────────────────

    auth_timeout: float = Field(
        default=10.0,
        ge=0.1,
        le=60.0,
        description="Seconds to wait for a login frame when no token query parameter is given",
    )

    # ──────────────────────────────────────────────────────────────
    # Presence
    # ──────────────────────────────────────────────────────────────

    presence_idle_timeout: float = Field(
        default=30.0,
        gt=0,
        le=3600,
        description="Seconds without inbound activity before a user is demoted to away",
    )

    presence_sweep_interval: float = Field(
        default=5.0,
        gt=0,
        le=300,
        description="Seconds between idle sweeps (0 < interval)",
    )

    # ──────────────────────────────────────────────────────────────
    # Messaging
    # ──────────────────────────────────────────────────────────────

    max_content_length: int = Field(
        default=4000,
        ge=1,
        le=100000,
        description="Maximum message content length after trimming",
    )

    require_participant_for_join: bool = Field(
        default=True,
        description="Only admit conversation participants to a conversation room",
    )

    # ──────────────────────────────────────────────────────────────
    # Feature flags
    # ──────────────────────────────────────────────────────────────

    enabled: bool = Field(
        default=True,
        description="Enable WebSocket endpoints",
    )

    model_config = SettingsConfigDict(
        env_prefix="WS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )
