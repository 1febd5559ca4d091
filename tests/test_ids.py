from __future__ import annotations

import pytest

from racesync import ids


def test_entry_id_round_trips_through_parse() -> None:
    entry_id = ids.generate_entry_id("dev-with-dashes", now_ms=1700000000123)

    parsed = ids.parse_entry_id(entry_id)

    assert parsed is not None
    device, timestamp, random_part = parsed
    assert (device, timestamp) == ("dev-with-dashes", 1700000000123)
    assert len(random_part) == 8


def test_entry_ids_are_unique_within_a_millisecond() -> None:
    generated = {ids.generate_entry_id("dev_a", now_ms=1) for _ in range(200)}

    assert len(generated) == 200


@pytest.mark.parametrize("value", ["", "abc", "a-b", "a-notanumber-c"])
def test_parse_rejects_foreign_ids(value: str) -> None:
    assert ids.parse_entry_id(value) is None


def test_device_and_race_ids() -> None:
    device_id = ids.generate_device_id()
    race_id = ids.generate_race_id()

    assert device_id.startswith("dev_") and len(device_id) == 16
    assert len(race_id) == 8
    assert not set(race_id) & set("IO01")
    assert ids.is_valid_race_id(race_id)
    assert " " in ids.generate_device_name()


@pytest.mark.parametrize(
    ("race_id", "valid"),
    [("RACE_1-a", True), ("x" * 50, True), ("x" * 51, False), ("has space", False), ("", False), (None, False)],
)
def test_race_id_validation(race_id: str | None, valid: bool) -> None:
    assert ids.is_valid_race_id(race_id) is valid
