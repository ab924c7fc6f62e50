"""JWT-backed identity provider."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any
from uuid import UUID

import jwt
from sqlalchemy.exc import SQLAlchemyError

from chat_service.core.exceptions import AuthenticationError
from chat_service.features.chat.repository import UserRepository, get_user_repository
from chat_service.infra.auth.models import Identity

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from chat_service.core.settings.auth import AuthSettings

logger = logging.getLogger(__name__)


def issue_token(
    settings: AuthSettings,
    user_id: UUID,
    *,
    username: str | None = None,
    session_id: str | None = None,
    ttl: timedelta | None = None,
) -> str:
    """Mint a signed token for ``user_id``.

    Token issuance belongs to the login service; this exists for the
    ``issue-token`` development command and for tests.
    """
    now = datetime.now(UTC)
    claims: dict[str, Any] = {
        settings.user_claim: str(user_id),
        "iat": now,
        "exp": now + (ttl or timedelta(seconds=settings.token_ttl_seconds)),
    }
    if username is not None:
        claims["username"] = username
    if session_id is not None:
        claims["sessionId"] = session_id
    return jwt.encode(
        claims,
        settings.jwt_secret.get_secret_value(),
        algorithm=settings.jwt_algorithm,
    )


class JWTIdentityProvider:
    """Verify HS256 (by default) tokens and bind them to an existing user.

    The display name always comes from the store, never from the token, so
    renaming a user takes effect on their next connection.
    """

    def __init__(
        self,
        settings: AuthSettings,
        session_factory: async_sessionmaker[AsyncSession],
        users: UserRepository | None = None,
    ) -> None:
        self._settings = settings
        self._session_factory = session_factory
        self._users = users or get_user_repository()

    def decode(self, token: str) -> UUID:
        """Verify the signature and expiry and return the user id claim.

        Raises:
            AuthenticationError: If verification fails or the claim is unusable.
        """
        if not token:
            raise AuthenticationError("Authentication token required")
        try:
            claims = jwt.decode(
                token,
                self._settings.jwt_secret.get_secret_value(),
                algorithms=[self._settings.jwt_algorithm],
                leeway=self._settings.leeway_seconds,
            )
        except jwt.ExpiredSignatureError as e:
            raise AuthenticationError("Token has expired") from e
        except jwt.InvalidTokenError as e:
            raise AuthenticationError("Invalid token") from e

        raw_user_id = claims.get(self._settings.user_claim) or claims.get("sub")
        try:
            return UUID(str(raw_user_id))
        except (TypeError, ValueError) as e:
            raise AuthenticationError("Token does not identify a user") from e

    async def authenticate(self, token: str) -> Identity:
        user_id = self.decode(token)
        try:
            async with self._session_factory() as session:
                user = await self._users.get(session, user_id)
        except SQLAlchemyError as e:
            logger.warning(
                "User lookup failed during authentication",
                extra={"user_id": str(user_id), "error": str(e)},
            )
            raise AuthenticationError("Unable to verify user") from e

        if user is None:
            raise AuthenticationError("User not found", extra={"user_id": str(user_id)})
        return Identity(user_id=user.id, username=user.username)
