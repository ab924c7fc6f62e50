"""Identity provider test double.

MockIdentityProvider satisfies the IdentityProvider protocol without a
database or signing keys. Tokens are registered explicitly; anything else
is refused exactly like an invalid JWT would be.

Usage:
    provider = MockIdentityProvider()
    alice = provider.register("alice-token", username="alice")

    identity = await provider.authenticate("alice-token")
    assert identity == alice
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from chat_service.core.exceptions import AuthenticationError
from chat_service.infra.auth.models import Identity

if TYPE_CHECKING:
    from typing import Self


class MockIdentityProvider:
    """Token registry implementing IdentityProvider via structural subtyping."""

    def __init__(self) -> None:
        self._tokens: dict[str, Identity] = {}
        self.calls: list[str] = []

    def register(
        self,
        token: str,
        *,
        username: str,
        user_id: UUID | None = None,
    ) -> Identity:
        identity = Identity(user_id=user_id or uuid4(), username=username)
        self._tokens[token] = identity
        return identity

    def revoke(self, token: str) -> None:
        self._tokens.pop(token, None)

    @classmethod
    def with_identities(cls, **tokens: Identity) -> Self:
        """Build a provider from ``token=Identity(...)`` pairs."""
        provider = cls()
        provider._tokens.update(tokens)
        return provider

    async def authenticate(self, token: str) -> Identity:
        self.calls.append(token)
        identity = self._tokens.get(token)
        if identity is None:
            raise AuthenticationError("Invalid token")
        return identity
