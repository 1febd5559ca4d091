"""Timing entry models."""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import Any, Literal

from pydantic import Field, ValidationError, field_validator

from racesync._constants import MAX_BIB_LENGTH, MAX_DEVICE_NAME_LENGTH
from racesync.models._base import IsoTimestamp, RaceModel

_logger = logging.getLogger(__name__)

Run = Literal[1, 2]


class TimingPoint(StrEnum):
    START = "S"
    FINISH = "F"


class EntryStatus(StrEnum):
    OK = "ok"
    DNS = "dns"
    DNF = "dnf"
    DSQ = "dsq"
    FLT = "flt"
    """Finished with a fault penalty."""


class GpsCoords(RaceModel):
    latitude: float
    longitude: float
    accuracy: float


class Entry(RaceModel):
    """A timestamped start/finish crossing for a bib.

    ``id`` is globally unique (``{device_id}-{epoch_ms}-{random}``) and never
    changes. ``(bib, point, run)`` is intentionally *not* unique: re-recording
    a crossing is legitimate.
    """

    id: str = Field(..., min_length=1)
    bib: str = Field(default="", max_length=MAX_BIB_LENGTH)
    point: TimingPoint
    run: Run = 1
    timestamp: IsoTimestamp
    status: EntryStatus = EntryStatus.OK
    device_id: str = ""
    device_name: str = Field(default="", max_length=MAX_DEVICE_NAME_LENGTH)
    synced_at: int | None = Field(default=None, ge=0)
    photo: str | None = None
    gps_coords: GpsCoords | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_legacy_id(cls, value: Any) -> Any:
        # Very old records used positive integer ids.
        if isinstance(value, int) and not isinstance(value, bool) and value > 0:
            return str(value)
        return value

    @field_validator("run", mode="before")
    @classmethod
    def _default_run(cls, value: Any) -> Any:
        return 1 if value is None else value

    @field_validator("bib", "device_id", "device_name", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value: Any) -> Any:
        return EntryStatus.OK if value is None else value


def validate_entry(raw: Any) -> Entry | None:
    """Return a validated :class:`Entry`, or ``None`` when *raw* is malformed."""
    if isinstance(raw, Entry):
        return raw
    if not isinstance(raw, dict):
        return None
    try:
        return Entry.model_validate(raw)
    except ValidationError as exc:
        _logger.debug("Rejected entry payload: %s", exc.errors(include_url=False))
        return None
