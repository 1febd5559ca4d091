from __future__ import annotations

from racesync.state.signals import Signal, batch, effect


def test_effect_runs_immediately_and_on_write() -> None:
    count = Signal(1)
    seen: list[int] = []

    effect(lambda: seen.append(count.value))
    count.value = 2

    assert seen == [1, 2]


def test_identical_value_does_not_rerun_effect() -> None:
    payload = {"a": 1}
    cell = Signal(payload)
    runs: list[object] = []

    effect(lambda: runs.append(cell.value))
    cell.value = payload

    assert len(runs) == 1


def test_batch_runs_each_effect_once() -> None:
    first = Signal(0)
    second = Signal(0)
    sums: list[int] = []

    effect(lambda: sums.append(first.value + second.value))
    with batch():
        first.value = 1
        second.value = 2
        with batch():
            first.value = 3

    assert sums == [0, 5]


def test_disposed_effect_stops_running() -> None:
    cell = Signal("a")
    seen: list[str] = []

    dispose = effect(lambda: seen.append(cell.value))
    dispose()
    cell.value = "b"

    assert seen == ["a"]


def test_dependencies_follow_the_branch_taken() -> None:
    use_left = Signal(True)
    left = Signal("L")
    right = Signal("R")
    seen: list[str] = []

    effect(lambda: seen.append(left.value if use_left.value else right.value))
    use_left.value = False
    left.value = "L2"  # no longer read
    right.value = "R2"

    assert seen == ["L", "R", "R2"]


def test_peek_does_not_track() -> None:
    cell = Signal(1)
    seen: list[int] = []

    effect(lambda: seen.append(cell.peek()))
    cell.value = 2

    assert seen == [1]


def test_effects_run_in_registration_order() -> None:
    cell = Signal(0)
    order: list[str] = []

    effect(lambda: order.append(f"a{cell.value}"))
    effect(lambda: order.append(f"b{cell.value}"))
    order.clear()
    cell.value = 1

    assert order == ["a1", "b1"]
