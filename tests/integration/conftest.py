"""Fixtures that run the full application against a file-backed SQLite store.

The application owns its own event loop inside TestClient, so the store is
seeded up front through a separate engine and the app picks the same file
up through DATABASE_URL.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING

import pytest
from fastapi.testclient import TestClient

from chat_service.core.database import Base
from chat_service.core.settings import clear_all_caches, get_auth_settings
from chat_service.features.chat.models import (
    Conversation,
    ConversationParticipant,
    User,
    conversation_pair_key,
)
from chat_service.infra.auth import issue_token
from chat_service.infra.database import build_engine, build_session_factory

if TYPE_CHECKING:
    from collections.abc import Iterator
    from uuid import UUID


@dataclass
class SeededUser:
    id: UUID
    username: str
    token: str

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


@dataclass
class LiveChat:
    client: TestClient
    alice: SeededUser
    bob: SeededUser
    carol: SeededUser
    conversation_id: UUID


async def _seed(url: str) -> tuple[list[User], Conversation]:
    engine = build_engine(url)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with build_session_factory(engine)() as session:
            users = [
                User(username="alice", session_id="AA-0000-0001A"),
                User(username="bob", session_id="BB-0000-0002B"),
                User(username="carol", session_id="CC-0000-0003C"),
            ]
            session.add_all(users)
            await session.flush()
            conversation = Conversation(pair_key=conversation_pair_key(users[0].id, users[1].id))
            session.add(conversation)
            await session.flush()
            session.add_all(
                ConversationParticipant(conversation_id=conversation.id, user_id=user.id)
                for user in users[:2]
            )
            await session.commit()
        return users, conversation
    finally:
        await engine.dispose()


@pytest.fixture
def live(tmp_path, monkeypatch: pytest.MonkeyPatch) -> Iterator[LiveChat]:
    """Running application with alice and bob sharing one conversation."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'chat.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.setenv("WS_AUTH_TIMEOUT", "1")
    clear_all_caches()

    users, conversation = asyncio.run(_seed(url))
    auth = get_auth_settings()
    alice, bob, carol = (
        SeededUser(id=user.id, username=user.username, token=issue_token(auth, user.id))
        for user in users
    )

    from chat_service.app.main import create_app

    with TestClient(create_app()) as client:
        yield LiveChat(
            client=client,
            alice=alice,
            bob=bob,
            carol=carol,
            conversation_id=conversation.id,
        )
