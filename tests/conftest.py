"""Pytest configuration and shared fixtures.

Organization:
    - Environment: settings that keep the suite off external infrastructure
    - Database Fixtures: in-memory SQLite engine, session factory, seed data
    - Realtime Fixtures: registry, manager, tracker and a wired realtime graph

Socket doubles live in tests/utils.py.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

import pytest

# Ensure tests run without external infrastructure
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret-for-the-chat-service-suite")
os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("LOG_JSON_LOGS", "false")
os.environ.setdefault("LOG_FILE_ENABLED", "false")
os.environ.setdefault("DB_STARTUP_RETRY_ATTEMPTS", "1")

from chat_service.core.database import Base  # noqa: E402
from chat_service.core.settings import WebSocketSettings, clear_all_caches  # noqa: E402
from chat_service.features.chat.models import (  # noqa: E402
    Conversation,
    ConversationParticipant,
    User,
    conversation_pair_key,
)
from chat_service.features.presence.tracker import PresenceTracker  # noqa: E402
from chat_service.features.realtime.container import (  # noqa: E402
    RealtimeServices,
    build_realtime_services,
)
from chat_service.infra.auth import Identity, MockIdentityProvider  # noqa: E402
from chat_service.infra.database import build_engine, build_session_factory  # noqa: E402
from chat_service.infra.realtime import ConnectionManager, ConnectionRegistry  # noqa: E402

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    """Reload settings from the environment for every test."""
    clear_all_caches()
    yield
    clear_all_caches()


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine]:
    """Fresh in-memory SQLite database with every chat table created."""
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(db_engine)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    async with session_factory() as session:
        yield session


@dataclass
class ChatFixture:
    """Two participants sharing a conversation, plus an outsider."""

    alice: User
    bob: User
    carol: User
    conversation: Conversation

    def identity(self, user: User) -> Identity:
        return Identity(user_id=user.id, username=user.username)


@pytest.fixture
async def chat(session_factory: async_sessionmaker[AsyncSession]) -> ChatFixture:
    """Seed alice and bob in one conversation; carol is in none."""
    async with session_factory() as session:
        alice = User(username="alice", session_id="AA-0000-0001A")
        bob = User(username="bob", session_id="BB-0000-0002B")
        carol = User(username="carol", session_id="CC-0000-0003C")
        session.add_all([alice, bob, carol])
        await session.flush()
        conversation = Conversation(pair_key=conversation_pair_key(alice.id, bob.id))
        session.add(conversation)
        await session.flush()
        session.add_all(
            [
                ConversationParticipant(conversation_id=conversation.id, user_id=alice.id),
                ConversationParticipant(conversation_id=conversation.id, user_id=bob.id),
            ]
        )
        await session.commit()
    return ChatFixture(alice=alice, bob=bob, carol=carol, conversation=conversation)


# ============================================================================
# Realtime Fixtures
# ============================================================================


@pytest.fixture
def ws_settings() -> WebSocketSettings:
    return WebSocketSettings(
        max_connections=50,
        max_connections_per_user=3,
        auth_timeout=0.1,
        presence_idle_timeout=30.0,
        presence_sweep_interval=60.0,
    )


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture
def manager() -> ConnectionManager:
    return ConnectionManager(max_connections=50)


@pytest.fixture
def tracker(
    registry: ConnectionRegistry,
    session_factory: async_sessionmaker[AsyncSession],
) -> PresenceTracker:
    return PresenceTracker(registry, session_factory, idle_timeout=30.0, sweep_interval=60.0)


@pytest.fixture
def identity_provider() -> MockIdentityProvider:
    return MockIdentityProvider()


@pytest.fixture
def services(
    session_factory: async_sessionmaker[AsyncSession],
    identity_provider: MockIdentityProvider,
    ws_settings: WebSocketSettings,
) -> RealtimeServices:
    """Wired realtime graph over the in-memory store, sweep not started."""
    return build_realtime_services(
        session_factory,
        identity_provider=identity_provider,
        settings=ws_settings,
    )
