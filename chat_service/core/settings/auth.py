"""Token verification settings for the identity provider."""

from __future__ import annotations

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class AuthSettings(BaseSettings):
    """JWT verification settings.

    Environment variables use AUTH_ prefix.
    Example: AUTH_JWT_SECRET=change-me, AUTH_TOKEN_TTL_SECONDS=604800
    """

    jwt_secret: SecretStr = Field(
        default=SecretStr("change-me"),
        description="Shared secret used to verify (and in development, mint) tokens",
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="Signing algorithm accepted when decoding tokens",
    )
    token_ttl_seconds: int = Field(
        default=7 * 24 * 3600,
        ge=60,
        description="Lifetime of tokens minted by the issue-token command",
    )
    user_claim: str = Field(
        default="_id",
        min_length=1,
        description="Claim holding the user id. Falls back to 'sub' when absent.",
    )
    leeway_seconds: int = Field(
        default=0,
        ge=0,
        le=300,
        description="Clock skew tolerance applied to exp/iat checks",
    )

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )
