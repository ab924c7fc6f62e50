"""Core database package: declarative base, mixins and the thin repository layer."""

from chat_service.core.database.base import (
    NAMING_CONVENTION,
    Base,
    TimestampMixin,
    UUIDPKMixin,
    ensure_utc,
    utcnow,
)
from chat_service.core.database.repository import BaseRepository, SearchResult

__all__ = [
    "NAMING_CONVENTION",
    "Base",
    "BaseRepository",
    "SearchResult",
    "TimestampMixin",
    "UUIDPKMixin",
    "ensure_utc",
    "utcnow",
]
