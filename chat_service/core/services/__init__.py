"""Shared service-layer building blocks."""

from chat_service.core.services.base import BaseService

__all__ = ["BaseService"]
