from __future__ import annotations

import asyncio

import pytest

from racesync.config import PollingProfile
from racesync.sync.network import NetworkMonitor
from racesync.sync.polling import BatteryLevel, PollingController

from conftest import fast_config

LADDER = PollingProfile(base=15.0, idle_intervals=(15.0, 20.0, 30.0, 45.0, 60.0), idle_threshold=6)
METERED = PollingProfile(base=30.0, idle_intervals=(30.0, 60.0), idle_threshold=3)


async def _noop_poll() -> None:
    return None


def _controller(network: NetworkMonitor | None = None) -> PollingController:
    config = fast_config(polling=LADDER, metered_polling=METERED, poll_interval_error=30.0, poll_interval_offline=60.0)
    return PollingController(config, network or NetworkMonitor(), _noop_poll)


def test_idle_polls_climb_the_ladder_after_threshold() -> None:
    controller = _controller()
    intervals = []
    for _ in range(10):
        controller.record_result(True, has_changes=False)
        intervals.append(controller.current_interval)

    assert intervals[:6] == [15.0] * 6
    assert intervals[6:] == [20.0, 30.0, 45.0, 60.0]


def test_first_idle_rung_follows_the_threshold() -> None:
    profile = PollingProfile(base=10.0, idle_intervals=(15.0, 20.0), idle_threshold=2)
    controller = PollingController(fast_config(polling=profile), NetworkMonitor(), _noop_poll)

    intervals = []
    for _ in range(4):
        controller.record_result(True)
        intervals.append(controller.current_interval)

    assert intervals == [10.0, 15.0, 20.0, 20.0]
    assert controller.idle_level == 1


def test_changes_and_reset_return_to_base() -> None:
    controller = _controller()
    for _ in range(8):
        controller.record_result(True)
    assert controller.current_interval > LADDER.base

    controller.record_result(True, has_changes=True)
    assert controller.current_interval == LADDER.base

    for _ in range(8):
        controller.record_result(True)
    controller.reset_to_fast_polling()
    assert controller.current_interval == LADDER.base


def test_repeated_errors_use_error_interval() -> None:
    controller = _controller()
    controller.record_result(False)
    controller.record_result(False)
    assert controller.current_interval == LADDER.base

    controller.record_result(False)
    assert controller.current_interval == 30.0

    controller.record_result(True)
    assert controller.consecutive_errors == 0


def test_offline_and_metered_intervals() -> None:
    network = NetworkMonitor()
    controller = _controller(network)

    network.update_connection_info(connection_type="cellular")
    assert controller.current_interval == METERED.base

    network.set_online(False)
    assert controller.current_interval == 60.0


LOW = PollingProfile(base=30.0, idle_intervals=(30.0, 45.0, 60.0), idle_threshold=3)
CRITICAL = PollingProfile(base=40.0, idle_intervals=(40.0, 90.0), idle_threshold=3)


def _battery_controller(network: NetworkMonitor) -> PollingController:
    config = fast_config(
        polling=LADDER,
        metered_polling=METERED,
        low_battery_polling=LOW,
        critical_battery_polling=CRITICAL,
        poll_interval_error=25.0,
        poll_interval_offline=60.0,
        poll_interval_hidden=50.0,
    )
    return PollingController(config, network, _noop_poll)


def test_low_battery_uses_its_own_ladder() -> None:
    controller = _battery_controller(NetworkMonitor())
    controller.set_battery_level("low")
    assert controller.battery_level == BatteryLevel.LOW
    assert controller.current_interval == 30.0

    intervals = []
    for _ in range(5):
        controller.record_result(True)
        intervals.append(controller.current_interval)
    assert intervals == [30.0, 30.0, 30.0, 45.0, 60.0]

    controller.set_battery_level(BatteryLevel.NORMAL)
    assert controller.current_interval == LADDER.base


def test_metered_beats_low_battery_but_not_critical() -> None:
    network = NetworkMonitor()
    controller = _battery_controller(network)
    network.update_connection_info(connection_type="cellular")

    controller.set_battery_level(BatteryLevel.LOW)
    assert controller.current_interval == METERED.base

    controller.set_battery_level(BatteryLevel.CRITICAL)
    assert controller.current_interval == CRITICAL.base

    network.set_online(False)
    assert controller.current_interval == 60.0


def test_unknown_battery_level_is_rejected() -> None:
    controller = _battery_controller(NetworkMonitor())
    with pytest.raises(ValueError):
        controller.set_battery_level("empty")
    assert controller.battery_level == BatteryLevel.NORMAL


def test_hidden_tab_uses_hidden_interval() -> None:
    controller = _battery_controller(NetworkMonitor())
    controller.set_battery_level(BatteryLevel.CRITICAL)
    controller.set_tab_hidden(True)
    assert controller.current_interval == 50.0

    for _ in range(3):
        controller.record_result(False)
    assert controller.current_interval == 25.0

    controller.record_result(True)
    controller.set_tab_hidden(False)
    assert controller.current_interval == CRITICAL.base


def test_cleanup_forgets_hidden_tab() -> None:
    controller = _battery_controller(NetworkMonitor())
    controller.set_tab_hidden(True)
    controller.cleanup()
    assert not controller.tab_hidden
    assert controller.current_interval == LADDER.base


@pytest.mark.asyncio
async def test_loop_polls_immediately_and_repeatedly() -> None:
    calls = 0
    polled = asyncio.Event()

    async def poll() -> None:
        nonlocal calls
        calls += 1
        if calls >= 3:
            polled.set()

    profile = PollingProfile(base=0.01, idle_intervals=(0.01,), idle_threshold=6)
    controller = PollingController(fast_config(polling=profile), NetworkMonitor(), poll)
    controller.start()
    try:
        await asyncio.wait_for(polled.wait(), timeout=2.0)
        assert controller.is_polling
    finally:
        controller.cleanup()

    assert not controller.is_polling


@pytest.mark.asyncio
async def test_failing_poll_does_not_stop_the_loop() -> None:
    calls = 0
    done = asyncio.Event()

    async def poll() -> None:
        nonlocal calls
        calls += 1
        if calls >= 2:
            done.set()
        raise RuntimeError("unexpected")

    profile = PollingProfile(base=0.01, idle_intervals=(0.01,), idle_threshold=6)
    controller = PollingController(fast_config(polling=profile, poll_interval_error=0.01), NetworkMonitor(), poll)
    controller.start()
    try:
        await asyncio.wait_for(done.wait(), timeout=2.0)
    finally:
        controller.cleanup()


@pytest.mark.asyncio
async def test_reset_shortens_a_long_idle_wait() -> None:
    calls = 0
    second = asyncio.Event()

    async def poll() -> None:
        nonlocal calls
        calls += 1
        if calls == 2:
            second.set()

    profile = PollingProfile(base=0.05, idle_intervals=(30.0,), idle_threshold=1)
    controller = PollingController(fast_config(polling=profile), NetworkMonitor(), poll)
    controller.record_result(True)
    assert controller.current_interval == 30.0

    controller.start()
    try:
        await asyncio.sleep(0.02)
        controller.reset_to_fast_polling()
        await asyncio.wait_for(second.wait(), timeout=2.0)
    finally:
        controller.cleanup()


@pytest.mark.asyncio
async def test_becoming_visible_polls_right_away() -> None:
    calls = 0
    second = asyncio.Event()

    async def poll() -> None:
        nonlocal calls
        calls += 1
        if calls == 2:
            second.set()

    profile = PollingProfile(base=30.0, idle_intervals=(30.0,), idle_threshold=6)
    config = fast_config(polling=profile, poll_interval_hidden=30.0)
    controller = PollingController(config, NetworkMonitor(), poll)
    controller.set_tab_hidden(True)

    controller.start()
    try:
        await asyncio.sleep(0.02)
        assert calls == 1
        controller.set_tab_hidden(False)
        await asyncio.wait_for(second.wait(), timeout=2.0)
    finally:
        controller.cleanup()


@pytest.mark.asyncio
async def test_battery_change_reschedules_a_pending_wait() -> None:
    calls = 0
    second = asyncio.Event()

    async def poll() -> None:
        nonlocal calls
        calls += 1
        if calls == 2:
            second.set()

    config = fast_config(
        polling=PollingProfile(base=30.0, idle_intervals=(30.0,), idle_threshold=6),
        low_battery_polling=PollingProfile(base=0.01, idle_intervals=(0.01,), idle_threshold=3),
    )
    controller = PollingController(config, NetworkMonitor(), poll)
    controller.start()
    try:
        await asyncio.sleep(0.02)
        assert calls == 1
        controller.set_battery_level(BatteryLevel.LOW)
        await asyncio.wait_for(second.wait(), timeout=2.0)
    finally:
        controller.cleanup()
