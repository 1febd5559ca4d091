"""Tracking for fire-and-forget coroutines."""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any

_logger = logging.getLogger(__name__)


class BackgroundTasks:
    """Keeps strong references to spawned tasks and logs their failures.

    Without a running event loop :meth:`spawn` is a logged no-op: the
    coroutine function is never called, so no un-awaited coroutine leaks.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, label: str, fn: Callable[..., Awaitable[Any]], *args: Any) -> asyncio.Task[Any] | None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            _logger.debug("No running event loop; skipped %s", label)
            return None
        task: asyncio.Task[Any] = loop.create_task(fn(*args))
        self._tasks.add(task)
        task.add_done_callback(functools.partial(self._done, label))
        return task

    def _done(self, label: str, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.error("%s failed", label, exc_info=exc)

    async def wait(self) -> None:
        """Wait until every task spawned so far (and any they spawn) finishes."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
