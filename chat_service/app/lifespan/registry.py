"""Ordered startup/shutdown hooks for the application lifespan.

Hooks register under a name with a startup order and the names they
depend on. Startup runs dependencies first; shutdown runs the started
hooks in reverse.
"""

from __future__ import annotations

import logging
from collections.abc import Callable  # noqa: TC003
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable

    type Hook = Callable[..., Awaitable[None]]

logger = logging.getLogger(__name__)


class LifecycleHook:
    """One startup or shutdown function plus its ordering metadata."""

    def __init__(self, name: str, func: Hook, order: int, requires: list[str]) -> None:
        self.name = name
        self.func = func
        self.startup_order = order
        self.requires = requires
        # What starts first shuts down last
        self.shutdown_order = 1000 - order
        self.started = False

    async def execute(self, **kwargs: Any) -> None:
        await self.func(**kwargs)
        self.started = True


class LifecycleRegistry:
    """Collects lifecycle hooks and runs them in dependency order.

    A function whose name starts with ``shutdown`` (or ends with
    ``_shutdown``) is registered as the shutdown half of the named hook;
    anything else is the startup half.

    Example:
        registry = LifecycleRegistry()

        @registry.register(name="database", startup_order=10, requires=["core"])
        async def startup_database(db_settings: PostgresSettings, **kwargs: object) -> None:
            await init_database(db_settings)

        @registry.register(name="database")
        async def shutdown_database(**kwargs: object) -> None:
            await close_database()

        await registry.startup(**settings)
        ...
        await registry.shutdown(**settings)
    """

    def __init__(self) -> None:
        self._startup_hooks: dict[str, LifecycleHook] = {}
        self._shutdown_hooks: dict[str, LifecycleHook] = {}

    def register(
        self,
        name: str,
        startup_order: int = 50,
        requires: list[str] | None = None,
    ) -> Callable[[Hook], Hook]:
        """Decorator registering a startup or shutdown hook under ``name``.

        Raises:
            ValueError: If the same half of ``name`` is registered twice.
        """
        requires_list = requires or []

        def decorator(func: Hook) -> Hook:
            func_name = func.__name__.lower()
            is_shutdown = func_name.startswith("shutdown") or func_name.endswith("_shutdown")
            hooks = self._shutdown_hooks if is_shutdown else self._startup_hooks
            kind = "Shutdown" if is_shutdown else "Startup"

            if name in hooks:
                raise ValueError(f"{kind} hook '{name}' already registered")
            hooks[name] = LifecycleHook(name, func, startup_order, requires_list)
            return func

        return decorator

    def _resolve_startup_order(self) -> list[str]:
        """Topologically sort startup hooks, breaking ties by startup order.

        Raises:
            ValueError: On a missing dependency or a dependency cycle.
        """
        ordered: list[str] = []
        visiting: set[str] = set()

        def visit(name: str) -> None:
            if name in ordered:
                return
            if name in visiting:
                raise ValueError(f"Circular dependency detected at '{name}'")
            visiting.add(name)
            for dep in self._startup_hooks[name].requires:
                if dep not in self._startup_hooks:
                    raise ValueError(f"Hook '{name}' requires '{dep}' but it's not registered")
                visit(dep)
            visiting.discard(name)
            ordered.append(name)

        for name in sorted(self._startup_hooks, key=lambda n: self._startup_hooks[n].startup_order):
            visit(name)
        return ordered

    def _resolve_shutdown_order(self) -> list[str]:
        started = [
            name
            for name, hook in self._startup_hooks.items()
            if hook.started and name in self._shutdown_hooks
        ]
        return sorted(started, key=lambda n: self._shutdown_hooks[n].shutdown_order)

    async def startup(self, **kwargs: Any) -> None:
        """Run every startup hook. A failing hook aborts startup."""
        for name in self._resolve_startup_order():
            hook = self._startup_hooks[name]
            try:
                logger.debug("Starting %s...", name)
                await hook.execute(**kwargs)
            except Exception as e:
                logger.error("Failed to start %s: %s", name, e, exc_info=True)
                raise

    async def shutdown(self, **kwargs: Any) -> None:
        """Run shutdown hooks of started components, last started first.

        A failing hook is logged and the remaining hooks still run.
        """
        for name in self._resolve_shutdown_order():
            hook = self._shutdown_hooks[name]
            try:
                logger.debug("Shutting down %s...", name)
                await hook.execute(**kwargs)
            except Exception as e:
                logger.warning("Error shutting down %s: %s", name, e, exc_info=True)
        for hook in self._startup_hooks.values():
            hook.started = False

    def clear(self) -> None:
        """Drop every registered hook."""
        self._startup_hooks.clear()
        self._shutdown_hooks.clear()


lifespan_registry = LifecycleRegistry()

__all__ = ["LifecycleHook", "LifecycleRegistry", "lifespan_registry"]
