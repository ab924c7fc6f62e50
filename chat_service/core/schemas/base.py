"""Base schema classes for API and socket payloads."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CustomBase(BaseModel):
    """Base model with common configuration for all schemas.

    Python attributes are snake_case; the wire format is camelCase
    (``conversationId``, ``lastActive``). Both spellings are accepted on
    input. Serialize with ``model_dump(by_alias=True, mode="json")``.

    Example:
        class ParticipantResponse(CustomBase):
            user_id: UUID
            unread_count: int
    """

    model_config = ConfigDict(
        # Allow creation from ORM models (SQLAlchemy)
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        # Ignore extra fields (silently drop unexpected data)
        extra="ignore",
    )

    def to_wire(self) -> dict:
        """Serialize to the camelCase JSON-compatible dict sent to clients."""
        return self.model_dump(by_alias=True, mode="json")
