"""Process-wide map from user identity to open connection ids."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator
    from uuid import UUID


class ConnectionRegistry:
    """Counts open connections per user.

    A user may hold several connections at once (tabs, devices). The
    registry only counts; presence decisions are made by whoever reads the
    returned counts.

    Mutations are plain dict/set operations with no awaits, so on a single
    event loop each call is atomic. Hosting this in a thread pool would
    need a lock around every mutation.

    Example:
        registry = ConnectionRegistry()
        registry.register(user_id, "c-1")    # -> 1
        registry.register(user_id, "c-2")    # -> 2
        registry.deregister(user_id, "c-1")  # -> 1
    """

    __slots__ = ("_connections",)

    def __init__(self) -> None:
        self._connections: dict[UUID, set[str]] = {}

    def register(self, user_id: UUID, connection_id: str) -> int:
        """Record an open connection. Returns the user's new connection count.

        Registering the same connection id twice does not double count.
        """
        connections = self._connections.setdefault(user_id, set())
        connections.add(connection_id)
        return len(connections)

    def deregister(self, user_id: UUID, connection_id: str) -> int:
        """Forget a connection. Returns the new count, never below zero.

        Unknown users or connection ids leave the count unchanged.
        """
        connections = self._connections.get(user_id)
        if connections is None:
            return 0
        connections.discard(connection_id)
        if not connections:
            del self._connections[user_id]
            return 0
        return len(connections)

    def is_online(self, user_id: UUID) -> bool:
        return self.count_for(user_id) > 0

    def count_for(self, user_id: UUID) -> int:
        return len(self._connections.get(user_id, ()))

    def has_connection(self, user_id: UUID, connection_id: str) -> bool:
        return connection_id in self._connections.get(user_id, ())

    def online_users(self) -> Iterator[UUID]:
        return iter(list(self._connections))

    def drop_user(self, user_id: UUID) -> frozenset[str]:
        """Forget every connection of a user, returning the ids removed."""
        return frozenset(self._connections.pop(user_id, ()))

    @property
    def user_count(self) -> int:
        """Number of users with at least one open connection."""
        return len(self._connections)

    @property
    def connection_count(self) -> int:
        return sum(len(connections) for connections in self._connections.values())
