"""Typed records for entries, faults, settings, and sync payloads."""

from racesync.models._base import RaceModel, parse_iso_timestamp, utc_now_iso
from racesync.models.entry import Entry, EntryStatus, GpsCoords, Run, TimingPoint, validate_entry
from racesync.models.fault import (
    ChangeType,
    FaultEntry,
    FaultSnapshot,
    FaultType,
    FaultVersion,
    NotesSource,
    validate_fault,
)
from racesync.models.settings import DEFAULT_SETTINGS, DeviceIdentity, Language, Settings
from racesync.models.sync import (
    CrossDeviceDuplicate,
    DeviceInfo,
    FaultPollResponse,
    GateAssignment,
    PollResponse,
    RaceDeletedNotice,
    RaceExistsResponse,
    SendResponse,
    SyncQueueItem,
    SyncStatus,
)

__all__ = [
    "ChangeType",
    "CrossDeviceDuplicate",
    "DEFAULT_SETTINGS",
    "DeviceIdentity",
    "DeviceInfo",
    "Entry",
    "EntryStatus",
    "FaultEntry",
    "FaultPollResponse",
    "FaultSnapshot",
    "FaultType",
    "FaultVersion",
    "GateAssignment",
    "GpsCoords",
    "Language",
    "NotesSource",
    "PollResponse",
    "RaceDeletedNotice",
    "RaceExistsResponse",
    "RaceModel",
    "Run",
    "SendResponse",
    "Settings",
    "SyncQueueItem",
    "SyncStatus",
    "TimingPoint",
    "parse_iso_timestamp",
    "utc_now_iso",
    "validate_entry",
    "validate_fault",
]
