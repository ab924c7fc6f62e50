"""Exception hierarchy for the chat service.

Every error raised by the service derives from :class:`AppException`, which
carries RFC 7807 problem-detail fields. HTTP handlers render these as
``application/problem+json``; the realtime gateway renders them as error
frames where ``type`` becomes the frame's ``code``.
"""

from __future__ import annotations

from typing import Any, ClassVar


class AppException(Exception):
    """Base application exception.

    Attributes:
        status_code: HTTP status code for the error.
        detail: Human-readable error message.
        type: Error type identifier, also used as the socket error code.
        title: Short, human-readable summary of the problem type.
        instance: URI reference that identifies the specific occurrence.
        extra: Additional context-specific information about the error.

    Example:
        raise AppException(
            status_code=404,
            detail="Conversation not found",
            type="conversation-not-found",
            extra={"conversation_id": "abc123"},
        )
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        type: str = "about:blank",
        title: str | None = None,
        instance: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        self.status_code = status_code
        self.detail = detail
        self.type = type
        self.title = title or self._default_title(status_code)
        self.instance = instance
        self.extra = extra or {}
        super().__init__(detail)

    @staticmethod
    def _default_title(status_code: int) -> str:
        titles = {
            400: "Bad Request",
            401: "Unauthorized",
            403: "Forbidden",
            404: "Not Found",
            422: "Unprocessable Entity",
            500: "Internal Server Error",
            503: "Service Unavailable",
        }
        return titles.get(status_code, "Error")


class _StatusException(AppException):
    """An AppException whose status, type and title are fixed per subclass."""

    http_status: ClassVar[int] = 500
    default_type: ClassVar[str] = "about:blank"
    default_title: ClassVar[str | None] = None

    def __init__(
        self,
        detail: str,
        type: str | None = None,
        instance: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            status_code=self.http_status,
            detail=detail,
            type=type or self.default_type,
            title=self.default_title,
            instance=instance,
            extra=extra,
        )


class NotFoundException(_StatusException):
    """A user, conversation or message that does not exist."""

    http_status = 404
    default_type = "not-found"


class ValidationException(_StatusException):
    http_status = 422
    default_type = "validation-error"
    default_title = "Validation Error"


class UnauthorizedException(_StatusException):
    http_status = 401
    default_type = "unauthorized"


class ForbiddenException(_StatusException):
    http_status = 403
    default_type = "forbidden"


class ServiceUnavailableException(_StatusException):
    """A backing service (usually the database) cannot serve the request."""

    http_status = 503
    default_type = "service-unavailable"


# ============================================================================
# Chat Domain Exceptions
# ============================================================================


class AuthenticationError(UnauthorizedException):
    """Raised when a handshake or bearer token cannot be bound to a user.

    The connection is never admitted; clients must obtain a fresh token and
    reconnect.

    Example:
        raise AuthenticationError("Token has expired")
    """

    def __init__(
        self,
        detail: str = "Authentication failed",
        instance: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            detail=detail,
            type="authentication-failed",
            instance=instance,
            extra=extra,
        )


class NotParticipantError(ForbiddenException):
    """Raised when a user acts on a conversation they do not belong to.

    Example:
        raise NotParticipantError(conversation_id, user_id)
    """

    def __init__(
        self,
        conversation_id: Any,
        user_id: Any,
        detail: str = "Not a participant of this conversation",
        temp_id: str | None = None,
    ) -> None:
        extra: dict[str, Any] = {
            "conversation_id": str(conversation_id),
            "user_id": str(user_id),
        }
        if temp_id is not None:
            extra["temp_id"] = temp_id
        super().__init__(detail=detail, type="not-participant", extra=extra)
        self.conversation_id = conversation_id
        self.temp_id = temp_id


class InvalidInputError(ValidationException):
    """Raised when a submitted payload fails domain validation.

    Example:
        raise InvalidInputError("Message content cannot be empty", temp_id="t1")
    """

    def __init__(
        self,
        detail: str,
        temp_id: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        final_extra = {"temp_id": temp_id} if temp_id is not None else {}
        if extra:
            final_extra.update(extra)
        super().__init__(detail=detail, type="invalid-input", extra=final_extra or None)
        self.temp_id = temp_id


class PersistenceError(ServiceUnavailableException):
    """Raised when the durable store rejects or cannot accept a write.

    Example:
        raise PersistenceError("Failed to save message", temp_id="t1")
    """

    def __init__(
        self,
        detail: str = "Failed to persist data",
        temp_id: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        final_extra = {"temp_id": temp_id} if temp_id is not None else {}
        if extra:
            final_extra.update(extra)
        super().__init__(detail=detail, type="persistence-failed", extra=final_extra or None)
        self.temp_id = temp_id
