"""Shared pydantic schemas."""

from chat_service.core.schemas.base import CustomBase
from chat_service.core.schemas.problem_details import ProblemDetails

__all__ = ["CustomBase", "ProblemDetails"]
