"""Identity provider protocol.

The realtime gateway and the REST dependencies only need one thing from
authentication: turn a bearer token into an :class:`Identity` or refuse.
Any class with a matching ``authenticate`` coroutine satisfies the protocol
(structural subtyping), which keeps test doubles free of mocking libraries.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from chat_service.infra.auth.models import Identity


@runtime_checkable
class IdentityProvider(Protocol):
    """Protocol for resolving bearer tokens to identities.

    Implementations:
        - JWTIdentityProvider: PyJWT verification plus a user lookup
        - MockIdentityProvider: Test double with a token registry

    Example:
        identity = await provider.authenticate(token)
        set_log_context(user_id=str(identity.user_id))
    """

    async def authenticate(self, token: str) -> Identity:
        """Resolve ``token`` to the identity it was issued for.

        Raises:
            AuthenticationError: If the token is missing, malformed, expired,
                badly signed, or names a user that does not exist.
        """
        ...
