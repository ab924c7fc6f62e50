"""Unit tests for the per-user connection registry."""

from __future__ import annotations

from uuid import uuid4

import pytest

from chat_service.infra.realtime import ConnectionRegistry

pytestmark = pytest.mark.unit


class TestConnectionRegistry:
    """Counting semantics of ConnectionRegistry."""

    def test_register_counts_connections_per_user(self):
        registry = ConnectionRegistry()
        user_id = uuid4()

        assert registry.register(user_id, "c-1") == 1
        assert registry.register(user_id, "c-2") == 2
        assert registry.count_for(user_id) == 2
        assert registry.is_online(user_id)

    def test_register_same_connection_twice_does_not_double_count(self):
        registry = ConnectionRegistry()
        user_id = uuid4()

        registry.register(user_id, "c-1")
        assert registry.register(user_id, "c-1") == 1

    def test_deregister_returns_remaining_count(self):
        registry = ConnectionRegistry()
        user_id = uuid4()
        registry.register(user_id, "c-1")
        registry.register(user_id, "c-2")

        assert registry.deregister(user_id, "c-1") == 1
        assert registry.is_online(user_id)
        assert registry.deregister(user_id, "c-2") == 0
        assert not registry.is_online(user_id)

    def test_deregister_never_goes_below_zero(self):
        """Deregistering more than was registered floors at zero."""
        registry = ConnectionRegistry()
        user_id = uuid4()
        registry.register(user_id, "c-1")

        assert registry.deregister(user_id, "c-1") == 0
        assert registry.deregister(user_id, "c-1") == 0
        assert registry.deregister(uuid4(), "unknown") == 0
        assert registry.count_for(user_id) == 0

    def test_deregister_unknown_connection_keeps_count(self):
        registry = ConnectionRegistry()
        user_id = uuid4()
        registry.register(user_id, "c-1")

        assert registry.deregister(user_id, "c-9") == 1

    def test_users_are_counted_independently(self):
        registry = ConnectionRegistry()
        alice, bob = uuid4(), uuid4()
        registry.register(alice, "a-1")
        registry.register(alice, "a-2")
        registry.register(bob, "b-1")

        assert registry.user_count == 2
        assert registry.connection_count == 3
        assert set(registry.online_users()) == {alice, bob}
        assert registry.count_for(alice) == 2

    def test_has_connection(self):
        registry = ConnectionRegistry()
        user_id = uuid4()
        registry.register(user_id, "c-1")

        assert registry.has_connection(user_id, "c-1")
        assert not registry.has_connection(user_id, "c-2")
        assert not registry.has_connection(uuid4(), "c-1")

    def test_drop_user_returns_removed_ids(self):
        registry = ConnectionRegistry()
        user_id = uuid4()
        registry.register(user_id, "c-1")
        registry.register(user_id, "c-2")

        assert registry.drop_user(user_id) == frozenset({"c-1", "c-2"})
        assert not registry.is_online(user_id)
        assert registry.drop_user(user_id) == frozenset()

    def test_online_users_can_be_mutated_while_iterating(self):
        registry = ConnectionRegistry()
        for index in range(3):
            registry.register(uuid4(), f"c-{index}")

        for user_id in registry.online_users():
            registry.drop_user(user_id)

        assert registry.user_count == 0

    @pytest.mark.parametrize("opens,closes,expected", [(1, 1, 0), (3, 1, 2), (2, 5, 0)])
    def test_count_equals_opens_minus_closes(self, opens, closes, expected):
        registry = ConnectionRegistry()
        user_id = uuid4()
        for index in range(opens):
            registry.register(user_id, f"c-{index}")
        for index in range(closes):
            registry.deregister(user_id, f"c-{index}")

        assert registry.count_for(user_id) == expected
        assert registry.is_online(user_id) is (expected > 0)
