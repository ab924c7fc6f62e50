"""RFC 7807 Problem Details schema for error responses."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ProblemDetails(BaseModel):
    """RFC 7807 Problem Details for HTTP APIs.

    See: https://datatracker.ietf.org/doc/html/rfc7807
    """

    type: str = Field(default="about:blank", description="Problem type identifier")
    title: str = Field(description="Short, human-readable summary of the problem")
    status: int = Field(ge=100, le=599, description="HTTP status code")
    detail: str | None = Field(default=None, description="Explanation specific to this occurrence")
    instance: str | None = Field(default=None, description="URI of the specific occurrence")

    model_config = ConfigDict(
        extra="allow",
        json_schema_extra={
            "example": {
                "type": "not-participant",
                "title": "Forbidden",
                "status": 403,
                "detail": "Not a participant of this conversation",
                "instance": "/api/v1/conversations/3fa85f64-5717-4562-b3fc-2c963f66afa6/messages",
            }
        },
    )
