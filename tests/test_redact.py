from __future__ import annotations

from racesync._constants import PHOTO_MARKER
from racesync._redact import redact_for_log


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "raceId": "RACE1",
        "Authorization": "Bearer abc",
        "token": "abc",
        "nested": {"pin": "1234", "deviceName": "Judge"},
    }

    redacted = redact_for_log(payload)
    assert redacted["raceId"] == "RACE1"
    assert redacted["Authorization"] == "<redacted>"
    assert redacted["token"] == "<redacted>"
    assert redacted["nested"]["pin"] == "<redacted>"
    assert redacted["nested"]["deviceName"] == "Judge"


def test_redact_for_log_summarizes_photos() -> None:
    redacted = redact_for_log({"entry": {"id": "e1", "photo": "A" * 5000}})

    assert redacted["entry"]["photo"] == "<photo:5000chars>"


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]


def test_redact_for_log_walks_lists() -> None:
    redacted = redact_for_log([{"password": "pw"}, 3, None, b"\x00\x01"])

    assert redacted == [{"password": "<redacted>"}, 3, None, "<bytes:2b>"]


def test_redact_for_log_keeps_photo_marker() -> None:
    redacted = redact_for_log({"photo": PHOTO_MARKER, "audio": None})

    assert redacted == {"photo": PHOTO_MARKER, "audio": None}


def test_redact_for_log_caps_long_lists() -> None:
    redacted = redact_for_log({"entries": list(range(8))}, max_items=3)

    assert redacted["entries"] == [0, 1, 2, "<+5 more>"]
