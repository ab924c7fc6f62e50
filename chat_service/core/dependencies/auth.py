"""Authentication dependencies for the REST surface.

REST calls authenticate with ``Authorization: Bearer <token>`` through the
same identity provider the WebSocket handshake uses, so a token that opens
a socket also works for history reads.

Usage:
    from chat_service.core.dependencies.auth import CurrentIdentity

    @router.get("/conversations")
    async def list_conversations(identity: CurrentIdentity):
        return await service.list_conversations(identity.user_id)
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from chat_service.core.dependencies.realtime import RealtimeServicesDep
from chat_service.core.exceptions import AuthenticationError
from chat_service.infra.auth.models import Identity

bearer_scheme = HTTPBearer(auto_error=False, description="JWT issued by the chat service")


async def get_current_identity(
    services: RealtimeServicesDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> Identity:
    """Resolve the caller's identity from the bearer token.

    Raises:
        AuthenticationError: If the header is missing or the token is invalid.
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Authentication token required")
    return await services.identity_provider.authenticate(credentials.credentials)


CurrentIdentity = Annotated[Identity, Depends(get_current_identity)]

__all__ = ["CurrentIdentity", "bearer_scheme", "get_current_identity"]
