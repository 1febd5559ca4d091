"""Identifier helpers for entries, devices, and races."""

from __future__ import annotations

import re
import secrets
import time
import uuid

from racesync._constants import MAX_RACE_ID_LENGTH

#: Excludes look-alike characters (I, O, 0, 1).
_RACE_ID_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
_RACE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

_NAME_ADJECTIVES = ("Swift", "Alpine", "Frosty", "Rapid", "Steady", "Bright", "Silent", "Bold")
_NAME_NOUNS = ("Falcon", "Lynx", "Marmot", "Ibex", "Eagle", "Fox", "Chamois", "Hare")


def _now_ms() -> int:
    return int(time.time() * 1000)


def generate_entry_id(device_id: str, *, now_ms: int | None = None) -> str:
    """Return ``{device_id}-{epoch_ms}-{random8}``.

    The device prefix plus a random suffix keeps ids unique across devices
    that record in the same millisecond.
    """
    if now_ms is None:
        now_ms = _now_ms()
    return f"{device_id}-{now_ms}-{uuid.uuid4().hex[:8]}"


def parse_entry_id(entry_id: str) -> tuple[str, int, str] | None:
    """Split an entry id into ``(device_id, timestamp_ms, random)``.

    The device id may itself contain dashes; the last two segments are
    always the timestamp and the random suffix.
    """
    parts = entry_id.split("-")
    if len(parts) < 3:
        return None
    random_part = parts[-1]
    try:
        timestamp = int(parts[-2])
    except ValueError:
        return None
    return "-".join(parts[:-2]), timestamp, random_part


def generate_device_id() -> str:
    return f"dev_{uuid.uuid4().hex[:12]}"


def generate_device_name() -> str:
    return f"{secrets.choice(_NAME_ADJECTIVES)} {secrets.choice(_NAME_NOUNS)}"


def generate_race_id(length: int = 8) -> str:
    return "".join(secrets.choice(_RACE_ID_ALPHABET) for _ in range(length))


def is_valid_race_id(race_id: str | None) -> bool:
    if not race_id or len(race_id) > MAX_RACE_ID_LENGTH:
        return False
    return _RACE_ID_PATTERN.match(race_id) is not None
