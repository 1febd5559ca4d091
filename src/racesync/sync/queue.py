"""Periodic drain of the pending-push sync queue."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from racesync.config import RaceSyncConfig
from racesync.models.entry import Entry
from racesync.state.store import Store

_logger = logging.getLogger(__name__)


class QueueProcessor:
    """Retries queued entries with exponential backoff.

    An item is attempted when ``now - last_attempt`` exceeds
    ``retry_backoff_base * 2**retry_count`` seconds, and dropped once
    ``retry_count`` reaches ``max_retries``. Only this class writes
    ``retry_count``, ``last_attempt`` and ``error``.
    """

    def __init__(
        self,
        store: Store,
        config: RaceSyncConfig,
        send: Callable[[Entry], Awaitable[bool]],
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._config = config
        self._send = send
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._processing = False

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def queue_length(self) -> int:
        return len(self._store.state.sync_queue)

    def start(self) -> None:
        self.stop()
        self._task = asyncio.get_running_loop().create_task(self._run(), name="racesync-queue")

    def stop(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._config.queue_process_interval)
            await self.process_queue()

    async def process_queue(self) -> int:
        """Attempt every due item once. Returns the number sent successfully.

        A drain already in progress makes this call a no-op.
        """
        if self._processing:
            return 0
        self._processing = True
        sent = 0
        try:
            state = self._store.state
            if not state.sync_active or not state.sync_queue:
                return 0

            now_ms = self._clock() * 1000
            backoff_base_ms = self._config.retry_backoff_base * 1000
            for item in state.sync_queue:
                entry_id = item.entry.id
                if item.retry_count >= self._config.max_retries:
                    _logger.warning("Max retries exceeded for entry %s; dropping from queue", entry_id)
                    self._store.remove_from_sync_queue(entry_id)
                    continue
                if now_ms - item.last_attempt < backoff_base_ms * 2**item.retry_count:
                    continue
                if await self._send(item.entry):
                    sent += 1
                    continue
                self._store.record_sync_attempt(
                    entry_id,
                    retry_count=item.retry_count + 1,
                    last_attempt=now_ms,
                    error="Failed to sync",
                )
        except Exception:
            _logger.exception("Sync queue drain failed")
        finally:
            self._processing = False
        return sent
