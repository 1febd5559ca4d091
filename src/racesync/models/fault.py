"""Fault report models with full edit history."""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import Any

from pydantic import Field, ValidationError, field_validator, model_validator

from racesync._constants import MAX_BIB_LENGTH, MAX_DEVICE_NAME_LENGTH
from racesync.models._base import IsoTimestamp, RaceModel
from racesync.models.entry import Run

_logger = logging.getLogger(__name__)


class FaultType(StrEnum):
    MISSED_GATE = "MG"
    STRADDLE = "STR"
    BINDING_RELEASE = "BR"


class ChangeType(StrEnum):
    CREATE = "create"
    EDIT = "edit"
    RESTORE = "restore"


class NotesSource(StrEnum):
    VOICE = "voice"
    MANUAL = "manual"


#: Fields a judge may change through a versioned edit.
EDITABLE_FAULT_FIELDS: frozenset[str] = frozenset(
    {"bib", "run", "gate_number", "fault_type", "notes", "notes_source", "notes_timestamp"}
)


class FaultSnapshot(RaceModel):
    """Full copy of a fault's data fields at one version."""

    id: str = Field(..., min_length=1)
    bib: str = Field(..., max_length=MAX_BIB_LENGTH)
    run: Run
    gate_number: int = Field(..., ge=0)
    fault_type: FaultType
    timestamp: IsoTimestamp
    device_id: str
    device_name: str = Field(..., max_length=MAX_DEVICE_NAME_LENGTH)
    gate_range: tuple[int, int]
    synced_at: int | None = Field(default=None, ge=0)
    notes: str | None = None
    notes_source: NotesSource | None = None
    notes_timestamp: IsoTimestamp | None = None


class FaultVersion(RaceModel):
    version: int = Field(..., ge=1)
    timestamp: IsoTimestamp
    edited_by: str = Field(..., max_length=MAX_DEVICE_NAME_LENGTH)
    edited_by_device_id: str = Field(..., max_length=MAX_DEVICE_NAME_LENGTH)
    change_type: ChangeType
    data: FaultSnapshot
    change_description: str | None = None


class FaultEntry(FaultSnapshot):
    """A rule-violation report against a bib at a gate.

    ``current_version`` equals the highest version whose data is live, and
    ``version_history`` is append-only: a restore appends a new version
    carrying the old data instead of rewinding.
    """

    current_version: int = Field(default=1, ge=1)
    version_history: tuple[FaultVersion, ...] = ()
    marked_for_deletion: bool = False
    marked_for_deletion_by: str | None = None
    marked_for_deletion_at: IsoTimestamp | None = None
    marked_for_deletion_by_device_id: str | None = None
    deletion_approved_by: str | None = None
    deletion_approved_at: IsoTimestamp | None = None

    @field_validator("version_history", mode="before")
    @classmethod
    def _none_history(cls, value: Any) -> Any:
        return () if value is None else value

    @model_validator(mode="after")
    def _check_history(self) -> FaultEntry:
        if self.version_history:
            first = self.version_history[0]
            if first.version == 1 and first.change_type != ChangeType.CREATE:
                raise ValueError("version 1 must be a create")
        return self

    def snapshot(self) -> FaultSnapshot:
        """Return the data fields of this fault as a version snapshot."""
        return FaultSnapshot.model_validate(self.model_dump(include=set(FaultSnapshot.model_fields)))

    def find_version(self, version: int) -> FaultVersion | None:
        for record in self.version_history:
            if record.version == version:
                return record
        return None


def validate_fault(raw: Any) -> FaultEntry | None:
    """Return a validated :class:`FaultEntry`, or ``None`` when *raw* is malformed."""
    if isinstance(raw, FaultEntry):
        return raw
    if not isinstance(raw, dict):
        return None
    try:
        return FaultEntry.model_validate(raw)
    except ValidationError as exc:
        _logger.debug("Rejected fault payload: %s", exc.errors(include_url=False))
        return None
