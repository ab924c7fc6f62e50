"""Presence tracking on top of the connection registry.

Connection-count transitions drive the online/offline status; an explicit
status update or the idle sweep drives away. Every transition is written
to the durable store and then handed to subscribed listeners, one user at
a time and in the order the transitions happened.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from chat_service.core.database import ensure_utc, utcnow
from chat_service.core.exceptions import InvalidInputError
from chat_service.core.services.base import BaseService
from chat_service.features.chat.repository import UserRepository, get_user_repository
from chat_service.features.presence.schemas import PresenceState, PresenceStatus
from chat_service.infra.metrics.prometheus import (
    realtime_presence_transitions_total,
    realtime_presence_write_failures_total,
    realtime_users_online,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from chat_service.infra.auth.models import Identity
    from chat_service.infra.realtime.registry import ConnectionRegistry

    type PresenceListener = Callable[[PresenceState], Awaitable[None] | None]


@dataclass(slots=True)
class _UserPresence:
    status: PresenceStatus
    last_active: datetime | None = None
    # Monotonic time of the user's latest inbound frame
    last_seen: float = 0.0
    # True when the sweep, not the user, set the away status
    idle: bool = False


class PresenceTracker(BaseService):
    """Derives presence from connection counts and publishes transitions.

    Transitions:
        - first connection (0 -> 1): online
        - last connection closed (1 -> 0): offline, last_active = now
        - ``set_status``: away or online while connected
        - idle sweep: online -> away after ``idle_timeout`` without frames;
          the next frame (``touch``) brings the user back online

    Durable writes that fail are logged and skipped. Listener errors are
    logged and never reach the caller.

    Example:
        tracker = PresenceTracker(registry, session_factory)
        unsubscribe = tracker.subscribe(on_change)
        await tracker.start()
        await tracker.connection_opened(identity, connection_id)
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        idle_timeout: float = 30.0,
        sweep_interval: float = 5.0,
        users: UserRepository | None = None,
        clock: Callable[[], datetime] = utcnow,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__()
        self._registry = registry
        self._session_factory = session_factory
        self._idle_timeout = idle_timeout
        self._sweep_interval = sweep_interval
        self._users = users or get_user_repository()
        self._clock = clock
        self._monotonic = monotonic

        self._states: dict[UUID, _UserPresence] = {}
        self._locks: dict[UUID, asyncio.Lock] = {}
        # Publishes started and not yet finished, per user
        self._pending: dict[UUID, int] = {}
        self._listeners: list[PresenceListener] = []
        self._sweep_task: asyncio.Task[None] | None = None

    # ──────────────────────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Reset stale durable state and start the idle sweep."""
        if self._sweep_task is not None:
            return
        await self.reconcile_durable_state()
        self._sweep_task = asyncio.create_task(self._sweep_loop(), name="presence-sweep")
        self.logger.info(
            "Presence tracker started",
            extra={
                "idle_timeout": self._idle_timeout,
                "sweep_interval": self._sweep_interval,
            },
        )

    async def stop(self) -> None:
        """Cancel the idle sweep."""
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        self.logger.info("Presence tracker stopped")

    async def reconcile_durable_state(self) -> int:
        """Mark every stored online/away user offline.

        Connections never survive a process restart, so whatever the store
        says is live is left over from the previous run.
        """
        try:
            async with self._session_factory() as session:
                count = await self._users.reset_presence(session, self._clock())
                await session.commit()
        except SQLAlchemyError:
            self.logger.warning(
                "Failed to reconcile durable presence state",
                exc_info=True,
                extra={"operation": "presence.reconcile"},
            )
            return 0

        if count:
            self.logger.info(
                "Reset stale presence records",
                extra={"count": count, "operation": "presence.reconcile"},
            )
        return count

    async def disconnect_all(self) -> int:
        """Take every connected user offline. Used at shutdown."""
        users = list(self._registry.online_users())
        for user_id in users:
            self._registry.drop_user(user_id)
            state = self._transition(user_id, PresenceStatus.OFFLINE, self._clock())
            await self._publish(state)
        return len(users)

    # ──────────────────────────────────────────────────────────────
    # Subscriptions
    # ──────────────────────────────────────────────────────────────

    def subscribe(self, listener: PresenceListener) -> Callable[[], None]:
        """Register a presence listener. Returns a callable that removes it.

        Listeners may be plain functions or coroutine functions and are
        called in subscription order after the durable write.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return unsubscribe

    # ──────────────────────────────────────────────────────────────
    # Connection transitions
    # ──────────────────────────────────────────────────────────────

    async def connection_opened(self, identity: Identity, connection_id: str) -> int:
        """Register a connection. Publishes online on the user's first one.

        Returns:
            The user's open connection count.
        """
        user_id = identity.user_id
        was_online = self._registry.is_online(user_id)
        count = self._registry.register(user_id, connection_id)

        if not was_online:
            state = self._transition(user_id, PresenceStatus.ONLINE, None)
            self.logger.info(
                "User online",
                extra={"user_id": str(user_id), "operation": "presence.online"},
            )
            await self._publish(state)
        else:
            self._entry(user_id).last_seen = self._monotonic()
        return count

    async def connection_closed(self, user_id: UUID, connection_id: str) -> int:
        """Deregister a connection. Publishes offline when it was the last one.

        Closing an unknown connection is a no-op, so a second close for the
        same connection never produces a second offline broadcast.
        """
        if not self._registry.has_connection(user_id, connection_id):
            return self._registry.count_for(user_id)

        count = self._registry.deregister(user_id, connection_id)
        if count == 0:
            state = self._transition(user_id, PresenceStatus.OFFLINE, self._clock())
            self.logger.info(
                "User offline",
                extra={"user_id": str(user_id), "operation": "presence.offline"},
            )
            await self._publish(state)
        return count

    # ──────────────────────────────────────────────────────────────
    # Explicit updates and activity
    # ──────────────────────────────────────────────────────────────

    async def set_status(self, user_id: UUID, status: PresenceStatus | str) -> PresenceState:
        """Apply a client-reported status.

        Raises:
            InvalidInputError: If the status is not online/away or the user
                has no open connection.
        """
        try:
            status = PresenceStatus(status)
        except ValueError:
            raise InvalidInputError(f"Unknown status: {status}") from None

        if status is PresenceStatus.OFFLINE:
            raise InvalidInputError("Status 'offline' is derived from connections and cannot be set")
        if not self._registry.is_online(user_id):
            raise InvalidInputError(
                "Status can only be updated while connected",
                extra={"user_id": str(user_id)},
            )

        state = self._transition(user_id, status, self._clock())
        self._lazy.debug(lambda: f"presence.set_status({user_id}) -> {status.value}")
        await self._publish(state)
        return state

    async def touch(self, user_id: UUID) -> None:
        """Record inbound activity. Brings an idle-demoted user back online."""
        entry = self._states.get(user_id)
        if entry is None or not self._registry.is_online(user_id):
            return

        entry.last_seen = self._monotonic()
        if entry.idle and entry.status is PresenceStatus.AWAY:
            state = self._transition(user_id, PresenceStatus.ONLINE, self._clock())
            await self._publish(state)

    async def sweep_once(self, now: float | None = None) -> list[UUID]:
        """Demote connected users idle for ``idle_timeout`` to away.

        Returns:
            The users that were demoted.
        """
        now = self._monotonic() if now is None else now
        wall_now = self._clock()
        demoted: list[UUID] = []

        for user_id, entry in list(self._states.items()):
            if entry.status is not PresenceStatus.ONLINE:
                continue
            if not self._registry.is_online(user_id):
                continue
            idle_for = now - entry.last_seen
            if idle_for < self._idle_timeout:
                continue

            state = self._transition(
                user_id,
                PresenceStatus.AWAY,
                wall_now - timedelta(seconds=idle_for),
                idle=True,
            )
            demoted.append(user_id)
            await self._publish(state)

        if demoted:
            self.logger.info(
                "Idle users marked away",
                extra={"count": len(demoted), "operation": "presence.sweep"},
            )
        return demoted

    # ──────────────────────────────────────────────────────────────
    # Queries
    # ──────────────────────────────────────────────────────────────

    async def get_status(self, user_id: UUID) -> PresenceState:
        """Current presence of a user. Never raises.

        Connected users are answered from memory. A disconnected user is
        forgotten once the offline write lands, so the in-memory state only
        wins when that write failed; then comes the durable record, then
        offline with no last-active time.
        """
        entry = self._states.get(user_id)
        if entry is not None:
            return self._snapshot(user_id, entry)
        if self._registry.is_online(user_id):
            return PresenceState(user_id=user_id, status=PresenceStatus.ONLINE)

        try:
            async with self._session_factory() as session:
                user = await self._users.get(session, user_id)
        except SQLAlchemyError:
            self.logger.warning(
                "Presence lookup failed, reporting offline",
                exc_info=True,
                extra={"user_id": str(user_id), "operation": "presence.get_status"},
            )
            return PresenceState(user_id=user_id, status=PresenceStatus.OFFLINE)

        if user is None:
            return PresenceState(user_id=user_id, status=PresenceStatus.OFFLINE)

        try:
            status = PresenceStatus(user.online_status)
        except ValueError:
            status = PresenceStatus.OFFLINE
        return PresenceState(
            user_id=user_id,
            status=status,
            last_active=ensure_utc(user.last_active),
        )

    def is_online(self, user_id: UUID) -> bool:
        return self._registry.is_online(user_id)

    @property
    def online_count(self) -> int:
        return self._registry.user_count

    # ──────────────────────────────────────────────────────────────
    # Internals
    # ──────────────────────────────────────────────────────────────

    def _entry(self, user_id: UUID) -> _UserPresence:
        entry = self._states.get(user_id)
        if entry is None:
            entry = _UserPresence(status=PresenceStatus.ONLINE, last_seen=self._monotonic())
            self._states[user_id] = entry
        return entry

    def _transition(
        self,
        user_id: UUID,
        status: PresenceStatus,
        last_active: datetime | None,
        *,
        idle: bool = False,
    ) -> PresenceState:
        entry = self._entry(user_id)
        entry.status = status
        entry.last_active = last_active
        entry.idle = idle
        if not idle:
            entry.last_seen = self._monotonic()
        return self._snapshot(user_id, entry)

    @staticmethod
    def _snapshot(user_id: UUID, entry: _UserPresence) -> PresenceState:
        return PresenceState(user_id=user_id, status=entry.status, last_active=entry.last_active)

    async def _publish(self, state: PresenceState) -> None:
        # The lock keeps one user's writes and notifications in transition
        # order even when a reconnect lands while an offline write is pending
        user_id = state.user_id
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._pending[user_id] = self._pending.get(user_id, 0) + 1
        stored = False
        try:
            async with lock:
                stored = await self._persist(state)
                realtime_presence_transitions_total.labels(status=state.status).inc()
                realtime_users_online.set(self._registry.user_count)
                await self._notify(state)
        finally:
            self._release(user_id, stored)

    def _release(self, user_id: UUID, stored: bool) -> None:
        """Forget an offline user once nothing is pending for them.

        The in-memory entry is kept when the offline write did not land, so
        status queries keep answering from memory rather than a stale record.
        """
        remaining = self._pending[user_id] - 1
        if remaining:
            self._pending[user_id] = remaining
            return
        del self._pending[user_id]
        if self._registry.is_online(user_id):
            return

        self._locks.pop(user_id, None)
        entry = self._states.get(user_id)
        if stored and entry is not None and entry.status is PresenceStatus.OFFLINE:
            del self._states[user_id]

    async def _persist(self, state: PresenceState) -> bool:
        """Write the durable presence copy. Returns True if a row was updated."""
        try:
            async with self._session_factory() as session:
                found = await self._users.update_presence(
                    session, state.user_id, state.status, state.last_active
                )
                await session.commit()
        except SQLAlchemyError:
            realtime_presence_write_failures_total.inc()
            self.logger.warning(
                "Failed to persist presence",
                exc_info=True,
                extra={
                    "user_id": str(state.user_id),
                    "status": state.status,
                    "operation": "presence.persist",
                },
            )
            return False

        if not found:
            self._lazy.debug(lambda: f"presence.persist({state.user_id}) -> no such user")
        return found

    async def _notify(self, state: PresenceState) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(state)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                self.logger.exception(
                    "Presence listener failed",
                    extra={"user_id": str(state.user_id), "operation": "presence.notify"},
                )

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                await self.sweep_once()
            except Exception:
                self.logger.exception("Presence sweep failed")


__all__ = ["PresenceTracker"]
