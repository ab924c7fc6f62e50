"""HTTP middleware configuration.

- RequestIDMiddleware: X-Request-ID in request state, log context and response
- CORSMiddleware: only when APP_CORS_ORIGINS is set
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from fastapi.middleware.cors import CORSMiddleware
from starlette.datastructures import MutableHeaders

from chat_service.infra.logging.context import remove_from_log_context, set_log_context

if TYPE_CHECKING:
    from fastapi import FastAPI
    from starlette.types import ASGIApp, Message, Receive, Scope, Send

    from chat_service.core.settings.app import AppSettings

logger = logging.getLogger(__name__)


class RequestIDMiddleware:
    """Tag each HTTP request with an id for log correlation.

    The id comes from the ``X-Request-ID`` header or is generated. WebSocket
    scopes pass through untouched; the gateway binds its own connection id.

    Pure ASGI, so it never buffers responses.
    """

    header_name = "x-request-id"

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = self._extract(scope) or str(uuid.uuid4())
        scope.setdefault("state", {})["request_id"] = request_id
        set_log_context(request_id=request_id)

        async def send_with_header(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message).append(self.header_name, request_id)
            await send(message)

        try:
            await self.app(scope, receive, send_with_header)
        finally:
            remove_from_log_context("request_id")

    def _extract(self, scope: Scope) -> str | None:
        for name, value in scope.get("headers", ()):
            if name.decode("latin-1").lower() == self.header_name:
                candidate = value.decode("latin-1").strip()
                # Bound the length so a client cannot flood the logs
                if candidate and len(candidate) <= 128:
                    return candidate
        return None


def configure_middleware(app: FastAPI, app_settings: AppSettings) -> None:
    """Add middleware in order; the last added runs first."""
    if app_settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=app_settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["X-Request-ID"],
        )
        logger.debug("CORS enabled", extra={"origins": app_settings.cors_origins})

    app.add_middleware(RequestIDMiddleware)
