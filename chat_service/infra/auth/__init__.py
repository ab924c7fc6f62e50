"""Authentication infrastructure: identities and the providers that issue them."""

from chat_service.infra.auth.jwt_provider import JWTIdentityProvider, issue_token
from chat_service.infra.auth.models import Identity
from chat_service.infra.auth.protocols import IdentityProvider
from chat_service.infra.auth.testing import MockIdentityProvider

__all__ = [
    "Identity",
    "IdentityProvider",
    "JWTIdentityProvider",
    "MockIdentityProvider",
    "issue_token",
]
