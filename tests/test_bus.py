from __future__ import annotations

import pytest

from racesync.state.bus import NotificationBus


def test_listeners_receive_state_and_keys_in_subscription_order() -> None:
    bus: NotificationBus[int] = NotificationBus()
    received: list[tuple[str, int, frozenset[str]]] = []

    bus.subscribe(lambda state, keys: received.append(("first", state, keys)))
    bus.subscribe(lambda state, keys: received.append(("second", state, keys)))
    bus.notify(1, {"entries"})

    assert received == [
        ("first", 1, frozenset({"entries"})),
        ("second", 1, frozenset({"entries"})),
    ]


def test_failing_listener_does_not_block_others() -> None:
    errors: list[BaseException] = []
    bus: NotificationBus[int] = NotificationBus(on_listener_error=errors.append)
    received: list[int] = []

    def broken(_state: int, _keys: frozenset[str]) -> None:
        raise RuntimeError("boom")

    bus.subscribe(broken)
    bus.subscribe(lambda state, _keys: received.append(state))
    for n in range(200):
        bus.notify(n, {"entries"})

    assert received == list(range(200))
    assert bus.failure_count == 200
    assert len(errors) == 200
    assert bus.max_pending == 1


def test_reentrant_burst_is_bounded_and_keeps_newest() -> None:
    bus: NotificationBus[int] = NotificationBus(limit=100)
    received: list[int] = []

    def fan_out(state: int, _keys: frozenset[str]) -> None:
        received.append(state)
        if state == 0:
            for n in range(1, 201):
                bus.notify(n, {"entries"})

    def broken(_state: int, _keys: frozenset[str]) -> None:
        raise ValueError("listener bug")

    bus.subscribe(fan_out)
    bus.subscribe(broken)
    bus.notify(0, {"entries"})

    assert bus.max_pending <= 100
    assert bus.dropped_count == 100
    assert received == [0, *range(101, 201)]
    assert bus.pending_count == 0


def test_unsubscribe_stops_delivery() -> None:
    bus: NotificationBus[str] = NotificationBus()
    received: list[str] = []

    unsubscribe = bus.subscribe(lambda state, _keys: received.append(state))
    bus.notify("a", ())
    unsubscribe()
    unsubscribe()
    bus.notify("b", ())

    assert received == ["a"]
    assert bus.listener_count == 0


def test_limit_must_be_positive() -> None:
    with pytest.raises(ValueError):
        NotificationBus(limit=0)
