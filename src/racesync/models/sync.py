"""Sync bookkeeping and remote service response models."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import Field, ValidationError, field_validator

from racesync.models._base import RaceModel
from racesync.models.entry import Entry


class SyncStatus(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    SYNCING = "syncing"
    ERROR = "error"
    OFFLINE = "offline"


class SyncQueueItem(RaceModel):
    """An entry waiting for confirmed remote acceptance.

    ``retry_count``, ``last_attempt`` and ``error`` are only ever written by
    the sync queue processor.
    """

    entry: Entry
    retry_count: int = Field(default=0, ge=0)
    last_attempt: float = Field(default=0.0, ge=0)
    error: str | None = None


class DeviceInfo(RaceModel):
    id: str = Field(..., min_length=1)
    name: str = ""
    last_seen: float = Field(..., ge=0)


class GateAssignment(RaceModel):
    device_id: str
    device_name: str = ""
    gate_start: int
    gate_end: int
    last_seen: float = 0.0
    is_ready: bool = False


def _string_ids(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str) and item]


class PollResponse(RaceModel):
    """Successful ``GET`` poll body.

    ``entries`` is kept raw: each record is validated separately so one bad
    record never discards the whole batch.
    """

    entries: list[Any] = Field(default_factory=list)
    last_updated: float | None = None
    deleted_ids: list[str] = Field(default_factory=list)
    device_count: int | None = None
    highest_bib: int | None = None

    @field_validator("entries", mode="before")
    @classmethod
    def _entries_list(cls, value: Any) -> Any:
        return value if isinstance(value, list) else []

    @field_validator("deleted_ids", mode="before")
    @classmethod
    def _deleted_ids(cls, value: Any) -> list[str]:
        return _string_ids(value)


class RaceDeletedNotice(RaceModel):
    """Body returned in place of a poll when an admin deleted the race."""

    deleted: bool = True
    deleted_at: float | str | None = None
    message: str | None = None


class CrossDeviceDuplicate(RaceModel):
    bib: str = ""
    point: str = ""
    device_name: str = ""


class SendResponse(RaceModel):
    """``POST`` send body."""

    success: bool = False
    deleted: bool = False
    photo_skipped: bool = False
    cross_device_duplicate: CrossDeviceDuplicate | None = None
    device_count: int | None = None
    highest_bib: int | None = None


class FaultPollResponse(RaceModel):
    faults: list[Any] = Field(default_factory=list)
    deleted_ids: list[str] = Field(default_factory=list)
    gate_assignments: list[GateAssignment] = Field(default_factory=list)

    @field_validator("faults", mode="before")
    @classmethod
    def _faults_list(cls, value: Any) -> Any:
        return value if isinstance(value, list) else []

    @field_validator("deleted_ids", mode="before")
    @classmethod
    def _deleted_ids(cls, value: Any) -> list[str]:
        return _string_ids(value)

    @field_validator("gate_assignments", mode="before")
    @classmethod
    def _assignments_list(cls, value: Any) -> list[GateAssignment]:
        if not isinstance(value, list):
            return []
        assignments = []
        for raw in value:
            try:
                assignments.append(GateAssignment.model_validate(raw))
            except ValidationError:
                continue
        return assignments


class RaceExistsResponse(RaceModel):
    exists: bool = False
    entry_count: int = 0
