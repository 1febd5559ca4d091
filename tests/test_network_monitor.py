from __future__ import annotations

import pytest

from racesync.sync.network import ConnectionQuality, NetworkMonitor


def test_online_transitions_fire_listeners_and_handlers() -> None:
    monitor = NetworkMonitor()
    qualities: list[ConnectionQuality] = []
    handled: list[str] = []
    monitor.on_quality_change(qualities.append)
    monitor.register_online_handlers(lambda: handled.append("online"), lambda: handled.append("offline"))

    monitor.set_online(False)
    monitor.set_online(False)
    monitor.set_online(True)

    assert qualities == [ConnectionQuality.OFFLINE, ConnectionQuality.GOOD]
    assert handled == ["offline", "online"]
    assert monitor.is_online


@pytest.mark.parametrize(
    ("kwargs", "metered"),
    [
        ({}, False),
        ({"save_data": True}, True),
        ({"connection_type": "cellular"}, True),
        ({"connection_type": "wifi", "effective_type": "4g"}, False),
        ({"effective_type": "slow-2g"}, True),
        ({"effective_type": "2g"}, True),
        ({"effective_type": "3g"}, False),
    ],
)
def test_metered_detection(kwargs: dict[str, object], metered: bool) -> None:
    monitor = NetworkMonitor()

    monitor.update_connection_info(**kwargs)  # type: ignore[arg-type]

    assert monitor.is_metered is metered


def test_failing_listener_and_handler_are_isolated() -> None:
    monitor = NetworkMonitor()
    seen: list[bool] = []

    def broken(_value: object) -> None:
        raise RuntimeError("listener bug")

    def broken_handler() -> None:
        raise RuntimeError("handler bug")

    monitor.on_metered_change(broken)
    monitor.on_metered_change(seen.append)
    monitor.register_online_handlers(broken_handler, broken_handler)

    monitor.update_connection_info(save_data=True)
    monitor.set_online(False)

    assert seen == [True]
    assert monitor.quality == ConnectionQuality.OFFLINE


def test_unsubscribe_and_cleanup() -> None:
    monitor = NetworkMonitor()
    seen: list[ConnectionQuality] = []
    handled: list[str] = []
    unsubscribe = monitor.on_quality_change(seen.append)
    monitor.register_online_handlers(lambda: handled.append("on"), lambda: handled.append("off"))

    unsubscribe()
    monitor.clear_online_handlers()
    monitor.set_online(False)

    assert seen == []
    assert handled == []
