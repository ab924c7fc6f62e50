"""Unit tests for JWT identity resolution."""

from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

import jwt
import pytest

from chat_service.core.exceptions import AuthenticationError
from chat_service.core.settings import AuthSettings
from chat_service.infra.auth import (
    Identity,
    IdentityProvider,
    JWTIdentityProvider,
    MockIdentityProvider,
    issue_token,
)

pytestmark = pytest.mark.unit

SECRET = "unit-test-secret-with-enough-bytes-for-hs256"


@pytest.fixture
def auth_settings() -> AuthSettings:
    return AuthSettings(jwt_secret=SECRET)


@pytest.fixture
def provider(auth_settings, session_factory) -> JWTIdentityProvider:
    return JWTIdentityProvider(auth_settings, session_factory)


class TestJWTIdentityProvider:
    async def test_authenticate_resolves_stored_user(self, provider, auth_settings, chat):
        token = issue_token(auth_settings, chat.alice.id, username="ignored")

        identity = await provider.authenticate(token)

        # Display name comes from the store, not the token
        assert identity == Identity(user_id=chat.alice.id, username="alice")

    async def test_sub_claim_is_accepted(self, provider, chat):
        token = jwt.encode({"sub": str(chat.bob.id)}, SECRET, algorithm="HS256")
        identity = await provider.authenticate(token)
        assert identity.user_id == chat.bob.id

    async def test_expired_token_is_refused(self, provider, auth_settings, chat):
        token = issue_token(auth_settings, chat.alice.id, ttl=timedelta(seconds=-5))

        with pytest.raises(AuthenticationError, match="expired"):
            await provider.authenticate(token)

    async def test_bad_signature_is_refused(self, provider, chat):
        token = jwt.encode({"_id": str(chat.alice.id)}, "some-other-secret-value-1234567890", algorithm="HS256")

        with pytest.raises(AuthenticationError, match="Invalid token"):
            await provider.authenticate(token)

    async def test_unknown_user_is_refused(self, provider, auth_settings, chat):
        token = issue_token(auth_settings, uuid4())

        with pytest.raises(AuthenticationError, match="User not found"):
            await provider.authenticate(token)

    @pytest.mark.parametrize("claims", [{}, {"_id": "not-a-uuid"}])
    def test_decode_rejects_unusable_user_claim(self, provider, claims):
        token = jwt.encode(claims, SECRET, algorithm="HS256")

        with pytest.raises(AuthenticationError, match="does not identify"):
            provider.decode(token)

    def test_decode_requires_token(self, provider):
        with pytest.raises(AuthenticationError):
            provider.decode("")

    def test_issue_token_carries_optional_claims(self, auth_settings):
        user_id = uuid4()
        token = issue_token(auth_settings, user_id, username="alice", session_id="AB-12CD-3456E")

        claims = jwt.decode(token, SECRET, algorithms=["HS256"])
        assert claims["_id"] == str(user_id)
        assert claims["username"] == "alice"
        assert claims["sessionId"] == "AB-12CD-3456E"
        assert claims["exp"] > claims["iat"]


class TestMockIdentityProvider:
    async def test_registered_token_resolves(self):
        provider = MockIdentityProvider()
        alice = provider.register("alice-token", username="alice")

        assert await provider.authenticate("alice-token") == alice
        assert provider.calls == ["alice-token"]

    async def test_revoked_token_is_refused(self):
        provider = MockIdentityProvider()
        provider.register("t", username="alice")
        provider.revoke("t")

        with pytest.raises(AuthenticationError):
            await provider.authenticate("t")

    def test_satisfies_protocol(self):
        identity = Identity(user_id=uuid4(), username="bob")
        provider = MockIdentityProvider.with_identities(bob=identity)
        assert isinstance(provider, IdentityProvider)
