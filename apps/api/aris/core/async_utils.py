from __future__ import annotations

import asyncio
from functools import partial
from typing import Any, Callable, Coroutine, TypeVar

import anyio
import anyio.to_thread

T = TypeVar("T")


def run_async(coro: Coroutine[object, object, T], *, timeout: float | None = None) -> T:
    """
    Run an async coroutine from sync code (CLI commands, sync endpoints).

    Uses the AnyIO portal when called from a worker thread, otherwise starts a
    fresh event loop. Raises if called from async code in the same thread.
    """

    async def _runner() -> T:
        if timeout is not None:
            with anyio.fail_after(timeout):
                return await coro
        return await coro

    try:
        return anyio.from_thread.run(_runner)
    except RuntimeError:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return anyio.run(_runner)
        raise RuntimeError("run_async called from async context; use await instead")


async def run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run blocking I/O (imaplib, smtplib) in a worker thread."""
    return await anyio.to_thread.run_sync(partial(func, *args, **kwargs))
