"""Adaptive poll scheduling."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum

from racesync.config import PollingProfile, RaceSyncConfig
from racesync.sync.network import NetworkMonitor

_logger = logging.getLogger(__name__)


class BatteryLevel(StrEnum):
    NORMAL = "normal"
    LOW = "low"
    CRITICAL = "critical"


class PollingController:
    """Runs a poll callback on an adaptive interval.

    The interval starts at the active profile's ``base``. Once
    ``idle_threshold`` consecutive polls brought no changes it walks
    ``idle_intervals`` one rung per further idle poll, starting at the first
    rung. More than two consecutive failures switch to
    ``poll_interval_error``. Any change, or :meth:`reset_to_fast_polling`,
    drops back to ``base``.

    The active profile, highest priority first:

    * offline network: ``poll_interval_offline``
    * hidden app (:meth:`set_tab_hidden`): ``poll_interval_hidden``
    * critical battery: ``critical_battery_polling``
    * metered link: ``metered_polling``
    * low battery: ``low_battery_polling``
    * otherwise: ``polling``

    Battery level and visibility are fed by the host, the same way
    connection metadata is fed to :class:`NetworkMonitor`.
    """

    def __init__(
        self,
        config: RaceSyncConfig,
        network: NetworkMonitor,
        poll: Callable[[], Awaitable[None]],
    ) -> None:
        self._config = config
        self._network = network
        self._poll = poll
        self._task: asyncio.Task[None] | None = None
        self._wakeup = asyncio.Event()
        self._poll_now = False
        self.consecutive_errors = 0
        self.consecutive_no_changes = 0
        self.idle_level = 0
        self.battery_level = BatteryLevel.NORMAL
        self.tab_hidden = False
        self._unsubscribers: list[Callable[[], None]] = []

    @property
    def is_polling(self) -> bool:
        return self._task is not None and not self._task.done()

    def _profile(self) -> PollingProfile:
        if self.battery_level == BatteryLevel.CRITICAL:
            return self._config.critical_battery_polling
        if self._network.is_metered:
            return self._config.metered_polling
        if self.battery_level == BatteryLevel.LOW:
            return self._config.low_battery_polling
        return self._config.polling

    @property
    def current_interval(self) -> float:
        if not self._network.is_online:
            return self._config.poll_interval_offline
        if self.consecutive_errors > 2:
            return self._config.poll_interval_error
        if self.tab_hidden:
            return self._config.poll_interval_hidden
        profile = self._profile()
        if self.consecutive_no_changes < profile.idle_threshold or not profile.idle_intervals:
            return profile.base
        return profile.idle_intervals[self._idle_level(profile)]

    def start(self) -> None:
        """(Re)start the loop; the first poll runs immediately."""
        self.stop()
        self._wakeup = asyncio.Event()
        self._poll_now = False
        if not self._unsubscribers:
            self._unsubscribers = [
                self._network.on_quality_change(lambda _quality: self._reschedule()),
                self._network.on_metered_change(lambda _metered: self._reschedule()),
            ]
        self._task = asyncio.get_running_loop().create_task(self._run(), name="racesync-poll")

    def stop(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()

    async def _run(self) -> None:
        while True:
            try:
                await self._poll()
            except Exception:
                _logger.exception("Poll failed")
            await self._sleep()

    async def _sleep(self) -> None:
        # The interval is re-read whenever the backoff state changes, so a
        # reset shortens a long idle wait instead of waiting it out.
        loop = asyncio.get_running_loop()
        started = loop.time()
        while True:
            if self._poll_now:
                self._poll_now = False
                return
            remaining = started + self.current_interval - loop.time()
            if remaining <= 0:
                return
            self._wakeup.clear()
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._wakeup.wait(), timeout=remaining)

    def _reschedule(self) -> None:
        if self.is_polling:
            self._wakeup.set()

    def _idle_level(self, profile: PollingProfile) -> int:
        if not profile.idle_intervals:
            return 0
        past_threshold = self.consecutive_no_changes - profile.idle_threshold
        return min(max(0, past_threshold), len(profile.idle_intervals) - 1)

    def record_result(self, success: bool, has_changes: bool = False) -> None:
        """Feed a poll outcome into the backoff state."""
        if not success:
            self.consecutive_errors += 1
            self._reschedule()
            return
        self.consecutive_errors = 0
        if has_changes:
            self.consecutive_no_changes = 0
            self.idle_level = 0
            self._reschedule()
            return
        self.consecutive_no_changes += 1
        self.idle_level = self._idle_level(self._profile())
        self._reschedule()

    def reset_to_fast_polling(self) -> None:
        self.consecutive_no_changes = 0
        self.idle_level = 0
        self._reschedule()

    def set_battery_level(self, level: BatteryLevel | str) -> None:
        """Switch ladders for the host's battery state."""
        value = BatteryLevel(level)
        if value == self.battery_level:
            return
        _logger.debug("Battery level is now %s", value)
        self.battery_level = value
        self.idle_level = self._idle_level(self._profile())
        self._reschedule()

    def set_tab_hidden(self, hidden: bool) -> None:
        """Slow down while hidden; becoming visible again polls right away."""
        if hidden == self.tab_hidden:
            return
        self.tab_hidden = hidden
        if not hidden and self.is_polling:
            self._poll_now = True
        self._reschedule()

    def cleanup(self) -> None:
        self.stop()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self.consecutive_errors = 0
        self.consecutive_no_changes = 0
        self.idle_level = 0
        self.tab_hidden = False
        self._poll_now = False
