"""Global exception handlers for FastAPI application.

Every error leaves the REST surface as an RFC 7807 ``application/problem+json``
body. Socket errors are rendered by the realtime gateway instead.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from chat_service.core.exceptions import AppException
from chat_service.core.schemas import ProblemDetails

logger = logging.getLogger(__name__)

PROBLEM_JSON = "application/problem+json"


def _get_request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def _problem_response(
    request: Request,
    status_code: int,
    detail: str,
    type_: str = "about:blank",
    title: str | None = None,
    instance: str | None = None,
    extra: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    problem = ProblemDetails(
        type=type_,
        title=title or AppException._default_title(status_code),
        status=status_code,
        detail=detail,
        instance=instance or request.url.path,
    )
    content = problem.model_dump(exclude_none=True)
    if extra:
        content.update(extra)

    request_id = _get_request_id(request)
    if request_id:
        content["request_id"] = request_id

    return JSONResponse(
        status_code=status_code, content=content, media_type=PROBLEM_JSON, headers=headers
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Convert an AppException into a problem-details response."""
    logger.warning(
        "Application exception occurred",
        extra={
            "request_id": _get_request_id(request),
            "path": request.url.path,
            "method": request.method,
            "exception_type": exc.type,
            "status_code": exc.status_code,
            "detail": exc.detail,
        },
    )
    unauthorized = exc.status_code == status.HTTP_401_UNAUTHORIZED
    return _problem_response(
        request,
        status_code=exc.status_code,
        detail=exc.detail,
        type_=exc.type,
        title=exc.title,
        instance=exc.instance,
        extra=exc.extra,
        headers={"WWW-Authenticate": "Bearer"} if unauthorized else None,
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Convert request validation failures into a 422 problem with field errors."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning(
        "Request validation failed",
        extra={
            "request_id": _get_request_id(request),
            "path": request.url.path,
            "method": request.method,
            "error_count": len(errors),
        },
    )
    return _problem_response(
        request,
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=f"Request validation failed for {len(errors)} field(s)",
        type_="validation-error",
        title="Validation Error",
        extra={"errors": errors},
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all: log the traceback and hide internals from the client."""
    logger.error(
        "Unexpected exception occurred",
        extra={
            "request_id": _get_request_id(request),
            "path": request.url.path,
            "method": request.method,
            "exception_type": type(exc).__name__,
        },
        exc_info=exc,
    )
    return _problem_response(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="An unexpected error occurred while processing your request",
        type_="internal-error",
        title="Internal Server Error",
    )


def configure_exception_handlers(app: FastAPI) -> None:
    """Register the problem-details exception handlers on ``app``."""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
    logger.debug("Exception handlers configured")
