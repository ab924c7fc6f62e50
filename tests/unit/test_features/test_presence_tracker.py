"""Unit tests for presence tracking."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from chat_service.core.exceptions import InvalidInputError
from chat_service.features.chat.models import User
from chat_service.features.chat.repository import UserRepository
from chat_service.features.presence.schemas import PresenceStatus
from chat_service.features.presence.tracker import PresenceTracker
from chat_service.infra.auth import Identity

pytestmark = pytest.mark.unit

NOW = datetime(2026, 1, 5, 12, 0, tzinfo=UTC)


class FakeMonotonic:
    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def tracker(registry, session_factory, monotonic) -> PresenceTracker:
    return PresenceTracker(
        registry,
        session_factory,
        idle_timeout=30.0,
        sweep_interval=60.0,
        clock=lambda: NOW,
        monotonic=monotonic,
    )


@pytest.fixture
def published(tracker) -> list:
    states: list = []
    tracker.subscribe(states.append)
    return states


async def _stored(session_factory, user_id) -> User:
    async with session_factory() as session:
        return await session.get(User, user_id)


class TestConnectionTransitions:
    async def test_first_connection_publishes_online(self, tracker, published, chat):
        count = await tracker.connection_opened(chat.identity(chat.alice), "c-1")

        assert count == 1
        assert [(s.user_id, s.status, s.last_active) for s in published] == [
            (chat.alice.id, PresenceStatus.ONLINE, None)
        ]
        assert tracker.is_online(chat.alice.id)

    async def test_additional_connections_do_not_republish(self, tracker, published, chat):
        identity = chat.identity(chat.alice)
        await tracker.connection_opened(identity, "c-1")
        count = await tracker.connection_opened(identity, "c-2")

        assert count == 2
        assert len(published) == 1

    async def test_closing_one_of_many_keeps_user_online(self, tracker, published, chat):
        identity = chat.identity(chat.alice)
        await tracker.connection_opened(identity, "c-1")
        await tracker.connection_opened(identity, "c-2")

        assert await tracker.connection_closed(chat.alice.id, "c-1") == 1

        assert tracker.is_online(chat.alice.id)
        assert [s.status for s in published] == [PresenceStatus.ONLINE]

    async def test_last_close_publishes_offline_with_last_active(
        self, tracker, published, chat, session_factory
    ):
        await tracker.connection_opened(chat.identity(chat.alice), "c-1")
        assert await tracker.connection_closed(chat.alice.id, "c-1") == 0

        assert [s.status for s in published] == [PresenceStatus.ONLINE, PresenceStatus.OFFLINE]
        assert published[-1].last_active == NOW

        stored = await _stored(session_factory, chat.alice.id)
        assert stored.online_status == "offline"
        assert stored.last_active is not None

    async def test_online_is_written_durably(self, tracker, chat, session_factory):
        await tracker.connection_opened(chat.identity(chat.bob), "c-1")

        stored = await _stored(session_factory, chat.bob.id)
        assert stored.online_status == "online"
        assert stored.last_active is None

    async def test_duplicate_close_is_a_no_op(self, tracker, published, chat):
        await tracker.connection_opened(chat.identity(chat.alice), "c-1")
        await tracker.connection_closed(chat.alice.id, "c-1")
        await tracker.connection_closed(chat.alice.id, "c-1")

        assert [s.status for s in published].count(PresenceStatus.OFFLINE) == 1

    async def test_close_without_open_does_nothing(self, tracker, published):
        assert await tracker.connection_closed(uuid4(), "never-opened") == 0
        assert published == []

    async def test_reconnect_after_offline_publishes_online_again(self, tracker, published, chat):
        identity = chat.identity(chat.alice)
        await tracker.connection_opened(identity, "c-1")
        await tracker.connection_closed(chat.alice.id, "c-1")
        await tracker.connection_opened(identity, "c-2")

        assert [s.status for s in published] == [
            PresenceStatus.ONLINE,
            PresenceStatus.OFFLINE,
            PresenceStatus.ONLINE,
        ]
        assert published[-1].last_active is None


class TestExplicitStatus:
    async def test_set_away_while_connected(self, tracker, published, chat):
        await tracker.connection_opened(chat.identity(chat.alice), "c-1")

        state = await tracker.set_status(chat.alice.id, "away")

        assert state.status == PresenceStatus.AWAY
        assert state.last_active == NOW
        assert published[-1].status == PresenceStatus.AWAY

    async def test_offline_cannot_be_set(self, tracker, chat):
        await tracker.connection_opened(chat.identity(chat.alice), "c-1")

        with pytest.raises(InvalidInputError):
            await tracker.set_status(chat.alice.id, PresenceStatus.OFFLINE)

    async def test_unknown_status_is_rejected(self, tracker, chat):
        await tracker.connection_opened(chat.identity(chat.alice), "c-1")

        with pytest.raises(InvalidInputError, match="Unknown status"):
            await tracker.set_status(chat.alice.id, "busy")

    async def test_requires_open_connection(self, tracker, chat):
        with pytest.raises(InvalidInputError, match="while connected"):
            await tracker.set_status(chat.alice.id, "away")


class TestIdleSweep:
    async def test_idle_user_is_demoted_to_away(self, tracker, published, chat, monotonic):
        await tracker.connection_opened(chat.identity(chat.alice), "c-1")
        monotonic.value += 45

        demoted = await tracker.sweep_once()

        assert demoted == [chat.alice.id]
        assert published[-1].status == PresenceStatus.AWAY
        assert published[-1].last_active == NOW - timedelta(seconds=45)

    async def test_recent_activity_keeps_user_online(self, tracker, chat, monotonic):
        await tracker.connection_opened(chat.identity(chat.alice), "c-1")
        monotonic.value += 20
        await tracker.touch(chat.alice.id)
        monotonic.value += 20

        assert await tracker.sweep_once() == []

    async def test_activity_after_idle_restores_online(self, tracker, published, chat, monotonic):
        await tracker.connection_opened(chat.identity(chat.alice), "c-1")
        monotonic.value += 31
        await tracker.sweep_once()

        await tracker.touch(chat.alice.id)

        assert [s.status for s in published] == [
            PresenceStatus.ONLINE,
            PresenceStatus.AWAY,
            PresenceStatus.ONLINE,
        ]

    async def test_explicit_away_is_not_undone_by_activity(self, tracker, published, chat):
        await tracker.connection_opened(chat.identity(chat.alice), "c-1")
        await tracker.set_status(chat.alice.id, "away")

        await tracker.touch(chat.alice.id)

        assert published[-1].status == PresenceStatus.AWAY

    async def test_sweep_skips_away_and_disconnected_users(self, tracker, chat, monotonic):
        await tracker.connection_opened(chat.identity(chat.alice), "a-1")
        await tracker.connection_opened(chat.identity(chat.bob), "b-1")
        await tracker.set_status(chat.alice.id, "away")
        await tracker.connection_closed(chat.bob.id, "b-1")
        monotonic.value += 120

        assert await tracker.sweep_once() == []


class TestStatusQueries:
    async def test_connected_user_answered_from_memory(self, tracker, chat):
        await tracker.connection_opened(chat.identity(chat.alice), "c-1")

        state = await tracker.get_status(chat.alice.id)

        assert state.status == PresenceStatus.ONLINE
        assert state.last_active is None

    async def test_disconnected_user_answered_from_store(self, tracker, chat, session_factory):
        seen = datetime(2026, 1, 4, 8, 30, tzinfo=UTC)
        async with session_factory() as session:
            await session.execute(
                update(User)
                .where(User.id == chat.bob.id)
                .values(online_status="offline", last_active=seen)
            )
            await session.commit()

        state = await tracker.get_status(chat.bob.id)

        assert state.status == PresenceStatus.OFFLINE
        assert state.last_active == seen

    async def test_unknown_user_is_offline(self, tracker):
        state = await tracker.get_status(uuid4())

        assert state.status == PresenceStatus.OFFLINE
        assert state.last_active is None

    async def test_store_failure_reports_offline(self, registry, session_factory):
        users = UserRepository()
        users.get = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("down")))
        tracker = PresenceTracker(registry, session_factory, users=users)

        state = await tracker.get_status(uuid4())

        assert state.status == PresenceStatus.OFFLINE


class TestPublishing:
    async def test_write_failure_still_notifies(self, registry, session_factory):
        users = UserRepository()
        users.update_presence = AsyncMock(
            side_effect=OperationalError("UPDATE", {}, Exception("down"))
        )
        tracker = PresenceTracker(registry, session_factory, users=users)
        published: list = []
        tracker.subscribe(published.append)

        await tracker.connection_opened(Identity(user_id=uuid4(), username="x"), "c-1")

        assert [s.status for s in published] == [PresenceStatus.ONLINE]

    async def test_failing_listener_does_not_block_others(self, tracker, chat):
        received: list = []

        def broken(state):
            raise RuntimeError("listener bug")

        async def healthy(state):
            received.append(state.status)

        tracker.subscribe(broken)
        tracker.subscribe(healthy)

        await tracker.connection_opened(chat.identity(chat.alice), "c-1")

        assert received == [PresenceStatus.ONLINE]

    async def test_unsubscribe_stops_notifications(self, tracker, chat):
        received: list = []
        unsubscribe = tracker.subscribe(received.append)
        unsubscribe()
        unsubscribe()

        await tracker.connection_opened(chat.identity(chat.alice), "c-1")

        assert received == []

    async def test_reconnect_during_pending_offline_write_stays_ordered(
        self, registry, session_factory, chat
    ):
        entered, release = asyncio.Event(), asyncio.Event()

        class SlowOfflineWrites(UserRepository):
            async def update_presence(self, session, user_id, status, last_active):
                if status == PresenceStatus.OFFLINE:
                    entered.set()
                    await release.wait()
                return await super().update_presence(session, user_id, status, last_active)

        tracker = PresenceTracker(
            registry, session_factory, users=SlowOfflineWrites(), clock=lambda: NOW
        )
        published: list = []
        tracker.subscribe(published.append)
        identity = chat.identity(chat.alice)
        await tracker.connection_opened(identity, "c-1")

        closing = asyncio.create_task(tracker.connection_closed(chat.alice.id, "c-1"))
        await entered.wait()
        opening = asyncio.create_task(tracker.connection_opened(identity, "c-2"))
        await asyncio.sleep(0)
        assert [s.status for s in published] == [PresenceStatus.ONLINE]

        release.set()
        await asyncio.gather(closing, opening)

        assert [s.status for s in published] == [
            PresenceStatus.ONLINE,
            PresenceStatus.OFFLINE,
            PresenceStatus.ONLINE,
        ]
        stored = await _stored(session_factory, chat.alice.id)
        assert stored.online_status == "online"
        assert stored.last_active is None
        assert (await tracker.get_status(chat.alice.id)).status == PresenceStatus.ONLINE


class TestMemoryBounds:
    async def test_offline_user_is_forgotten(self, tracker, chat):
        await tracker.connection_opened(chat.identity(chat.alice), "c-1")
        await tracker.connection_closed(chat.alice.id, "c-1")

        assert chat.alice.id not in tracker._states
        assert chat.alice.id not in tracker._locks
        assert tracker._pending == {}

        state = await tracker.get_status(chat.alice.id)
        assert state.status == PresenceStatus.OFFLINE
        assert state.last_active == NOW

    async def test_connected_user_is_kept(self, tracker, chat):
        identity = chat.identity(chat.alice)
        await tracker.connection_opened(identity, "c-1")
        await tracker.connection_opened(identity, "c-2")
        await tracker.connection_closed(chat.alice.id, "c-1")

        assert chat.alice.id in tracker._states
        assert chat.alice.id in tracker._locks

    async def test_repeated_sessions_leave_nothing_behind(self, tracker, chat):
        for index in range(5):
            for user in (chat.alice, chat.bob):
                await tracker.connection_opened(chat.identity(user), f"{user.username}-{index}")
            await tracker.disconnect_all()

        assert tracker._states == {}
        assert tracker._locks == {}
        assert tracker._pending == {}

    async def test_failed_offline_write_is_remembered(self, registry, session_factory, chat):
        users = UserRepository()
        tracker = PresenceTracker(registry, session_factory, users=users, clock=lambda: NOW)
        await tracker.connection_opened(chat.identity(chat.alice), "c-1")
        users.update_presence = AsyncMock(
            side_effect=OperationalError("UPDATE", {}, Exception("down"))
        )

        await tracker.connection_closed(chat.alice.id, "c-1")

        assert chat.alice.id not in tracker._locks
        state = await tracker.get_status(chat.alice.id)
        assert state.status == PresenceStatus.OFFLINE
        assert state.last_active == NOW


class TestLifecycle:
    async def test_start_resets_stale_durable_state(self, tracker, chat, session_factory):
        async with session_factory() as session:
            await session.execute(
                update(User).where(User.id == chat.alice.id).values(online_status="online")
            )
            await session.commit()

        await tracker.start()
        try:
            stored = await _stored(session_factory, chat.alice.id)
            assert stored.online_status == "offline"
            assert stored.last_active is not None
        finally:
            await tracker.stop()

    async def test_stop_is_idempotent(self, tracker):
        await tracker.stop()
        await tracker.start()
        await tracker.stop()
        await tracker.stop()

    async def test_disconnect_all_takes_everyone_offline(self, tracker, published, chat, registry):
        await tracker.connection_opened(chat.identity(chat.alice), "a-1")
        await tracker.connection_opened(chat.identity(chat.alice), "a-2")
        await tracker.connection_opened(chat.identity(chat.bob), "b-1")

        assert await tracker.disconnect_all() == 2

        assert registry.user_count == 0
        offline = [s.user_id for s in published if s.status == PresenceStatus.OFFLINE]
        assert sorted(offline) == sorted([chat.alice.id, chat.bob.id])
