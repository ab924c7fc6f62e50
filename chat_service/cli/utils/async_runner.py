"""Run async operations from synchronous click commands."""

import asyncio
from collections.abc import Awaitable, Callable, Coroutine
from functools import wraps
from typing import Any


def run_async[T](coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


def coro[T](f: Callable[..., Awaitable[T]]) -> Callable[..., T]:
    """Decorator that makes an async function callable by click.

    Usage:
        @click.command()
        @coro
        async def init_db() -> None:
            await init_database()
    """

    @wraps(f)
    def wrapper(*args: Any, **kwargs: Any) -> T:
        async def runner() -> T:
            return await f(*args, **kwargs)

        return asyncio.run(runner())

    return wrapper
