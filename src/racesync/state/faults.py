"""Pure operations on the faults slice.

A fault is either *live* or *pending deletion* (``marked_for_deletion``).
Edits and restores are only accepted while live and always append to
``version_history``; nothing here ever truncates or renumbers it.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from pydantic import ValidationError

from racesync.models._base import parse_iso_timestamp, utc_now_iso
from racesync.models.fault import (
    EDITABLE_FAULT_FIELDS,
    ChangeType,
    FaultEntry,
    FaultSnapshot,
    FaultVersion,
    validate_fault,
)

_logger = logging.getLogger(__name__)

_FIELD_ALIASES = {field.alias: name for name, field in FaultEntry.model_fields.items() if field.alias}


@dataclasses.dataclass(frozen=True)
class FaultMergeResult:
    faults: list[FaultEntry]
    added_count: int
    updated_count: int = 0

    @property
    def changed_count(self) -> int:
        return self.added_count + self.updated_count


def _index_of(faults: Sequence[FaultEntry], fault_id: str) -> int:
    for index, fault in enumerate(faults):
        if fault.id == fault_id:
            return index
    return -1


def _replace(faults: Sequence[FaultEntry], index: int, fault: FaultEntry) -> list[FaultEntry]:
    result = list(faults)
    result[index] = fault
    return result


def _is_deleted(fault: FaultEntry, deleted: frozenset[str]) -> bool:
    return fault.id in deleted or f"{fault.id}:{fault.device_id}" in deleted


def _sort(faults: Iterable[FaultEntry]) -> list[FaultEntry]:
    return sorted(faults, key=lambda f: parse_iso_timestamp(f.timestamp).timestamp())


def _with(fault: FaultEntry, **changes: Any) -> FaultEntry:
    """Copy *fault* with *changes* applied and re-validated."""
    return FaultEntry.model_validate({**fault.model_dump(), **changes})


def _version(
    number: int,
    change_type: ChangeType,
    data: FaultSnapshot,
    device_name: str,
    device_id: str,
    description: str | None,
    now: str,
) -> FaultVersion:
    return FaultVersion(
        version=number,
        timestamp=now,
        edited_by=device_name,
        edited_by_device_id=device_id,
        change_type=change_type,
        data=data,
        change_description=description,
    )


def create_fault(fault: FaultSnapshot | Mapping[str, Any], *, now: str | None = None) -> FaultEntry:
    """Build a live fault at version 1 with its ``create`` record."""
    snapshot = fault if isinstance(fault, FaultSnapshot) else FaultSnapshot.model_validate(fault)
    initial = _version(
        1,
        ChangeType.CREATE,
        snapshot,
        snapshot.device_name,
        snapshot.device_id,
        None,
        now or utc_now_iso(),
    )
    return FaultEntry.model_validate(
        {
            **snapshot.model_dump(),
            "current_version": 1,
            "version_history": (initial,),
            "marked_for_deletion": False,
        }
    )


def add_fault(faults: Sequence[FaultEntry], fault: FaultEntry) -> list[FaultEntry]:
    return [*faults, fault]


def update_fault_with_history(
    faults: Sequence[FaultEntry],
    fault_id: str,
    updates: Mapping[str, Any],
    device_name: str,
    device_id: str,
    description: str | None = None,
    *,
    now: str | None = None,
) -> list[FaultEntry] | None:
    """Apply an edit and append an ``edit`` version.

    Only :data:`EDITABLE_FAULT_FIELDS` may change (snake_case or camelCase
    keys). Returns ``None`` when the fault is missing, pending deletion, or
    the edit is invalid.
    """
    index = _index_of(faults, fault_id)
    if index < 0:
        return None
    old = faults[index]
    if old.marked_for_deletion:
        return None

    changes = {_FIELD_ALIASES.get(k, k): v for k, v in updates.items()}
    rejected = set(changes) - EDITABLE_FAULT_FIELDS
    if rejected:
        _logger.warning("Ignoring non-editable fault fields: %s", sorted(rejected))
        changes = {k: v for k, v in changes.items() if k in EDITABLE_FAULT_FIELDS}

    number = old.current_version + 1
    try:
        edited = _with(old, **changes, synced_at=None)
        record = _version(
            number, ChangeType.EDIT, edited.snapshot(), device_name, device_id, description, now or utc_now_iso()
        )
        updated = _with(edited, current_version=number, version_history=(*old.version_history, record))
    except ValidationError as exc:
        _logger.warning("Rejected edit for fault %s: %s", fault_id, exc.errors(include_url=False))
        return None
    return _replace(faults, index, updated)


def restore_fault_version(
    faults: Sequence[FaultEntry],
    fault_id: str,
    version: int,
    device_name: str,
    device_id: str,
    *,
    now: str | None = None,
) -> list[FaultEntry] | None:
    """Make version *version*'s data live again by appending a ``restore`` version.

    No-op (``None``) when the fault is missing or pending deletion, the
    version does not exist, or it is already the current version.
    """
    index = _index_of(faults, fault_id)
    if index < 0:
        return None
    old = faults[index]
    if old.marked_for_deletion or version == old.current_version:
        return None
    target = old.find_version(version)
    if target is None:
        return None

    number = old.current_version + 1
    data = target.data
    record = _version(
        number,
        ChangeType.RESTORE,
        data,
        device_name,
        device_id,
        f"Restored to version {version}",
        now or utc_now_iso(),
    )
    live = {field: getattr(data, field) for field in EDITABLE_FAULT_FIELDS}
    restored = _with(
        old,
        **live,
        synced_at=None,
        current_version=number,
        version_history=(*old.version_history, record),
    )
    return _replace(faults, index, restored)


def mark_for_deletion(
    faults: Sequence[FaultEntry],
    fault_id: str,
    device_name: str,
    device_id: str,
    *,
    now: str | None = None,
) -> list[FaultEntry] | None:
    index = _index_of(faults, fault_id)
    if index < 0:
        return None
    old = faults[index]
    if old.marked_for_deletion:
        return None
    marked = _with(
        old,
        marked_for_deletion=True,
        marked_for_deletion_at=now or utc_now_iso(),
        marked_for_deletion_by=device_name,
        marked_for_deletion_by_device_id=device_id,
        synced_at=None,
    )
    return _replace(faults, index, marked)


def approve_deletion(
    faults: Sequence[FaultEntry],
    fault_id: str,
    device_name: str,
    *,
    now: str | None = None,
) -> tuple[list[FaultEntry], FaultEntry] | None:
    """Remove a pending-deletion fault, returning it stamped with the approver."""
    index = _index_of(faults, fault_id)
    if index < 0 or not faults[index].marked_for_deletion:
        return None
    approved = _with(
        faults[index],
        deletion_approved_at=now or utc_now_iso(),
        deletion_approved_by=device_name,
    )
    return [f for f in faults if f.id != fault_id], approved


def reject_deletion(
    faults: Sequence[FaultEntry],
    fault_id: str,
    device_name: str,
    device_id: str,
    *,
    now: str | None = None,
) -> list[FaultEntry] | None:
    """Return a pending-deletion fault to live, recording an ``edit`` version."""
    index = _index_of(faults, fault_id)
    if index < 0:
        return None
    old = faults[index]
    if not old.marked_for_deletion:
        return None
    number = old.current_version + 1
    record = _version(
        number,
        ChangeType.EDIT,
        old.snapshot(),
        device_name,
        device_id,
        "Deletion rejected",
        now or utc_now_iso(),
    )
    live = _with(
        old,
        marked_for_deletion=False,
        marked_for_deletion_at=None,
        marked_for_deletion_by=None,
        marked_for_deletion_by_device_id=None,
        synced_at=None,
        current_version=number,
        version_history=(*old.version_history, record),
    )
    return _replace(faults, index, live)


def delete_fault(faults: Sequence[FaultEntry], fault_id: str) -> list[FaultEntry] | None:
    remaining = [f for f in faults if f.id != fault_id]
    if len(remaining) == len(faults):
        return None
    return remaining


def mark_synced(faults: Sequence[FaultEntry], fault_id: str, synced_at: int) -> list[FaultEntry] | None:
    index = _index_of(faults, fault_id)
    if index < 0:
        return None
    return _replace(faults, index, _with(faults[index], synced_at=synced_at))


def merge_faults_from_cloud(
    local: Sequence[FaultEntry],
    incoming: Iterable[Any],
    deleted_ids: Iterable[str],
    own_device_id: str,
) -> FaultMergeResult:
    """Merge remote faults.

    Unknown ids are added. A known id is replaced when the remote copy has a
    higher ``current_version`` or a different deletion flag. Faults are
    never matched by content: two judges reporting the same gate both keep
    their record.
    """
    deleted = frozenset(deleted_ids)
    positions = {f.id: i for i, f in enumerate(local)}
    result = list(local)
    added: list[FaultEntry] = []
    updated = 0

    for raw in incoming:
        fault = validate_fault(raw)
        if fault is None:
            _logger.warning("Skipping invalid remote fault")
            continue
        if fault.device_id == own_device_id or _is_deleted(fault, deleted):
            continue
        position = positions.get(fault.id)
        if position is None:
            positions[fault.id] = -1
            added.append(fault)
            continue
        if position < 0:
            continue
        existing = result[position]
        if (
            fault.current_version > existing.current_version
            or fault.marked_for_deletion != existing.marked_for_deletion
        ):
            result[position] = fault
            updated += 1

    if not added and not updated:
        return FaultMergeResult(faults=list(local), added_count=0)
    return FaultMergeResult(faults=_sort([*result, *added]), added_count=len(added), updated_count=updated)


def remove_deleted_cloud_faults(
    faults: Sequence[FaultEntry], deleted_ids: Iterable[str]
) -> tuple[list[FaultEntry], int]:
    deleted = frozenset(deleted_ids)
    kept = [f for f in faults if not _is_deleted(f, deleted)]
    return kept, len(faults) - len(kept)


def get_pending_deletions(faults: Iterable[FaultEntry]) -> list[FaultEntry]:
    return [f for f in faults if f.marked_for_deletion]


def get_faults_for_bib(faults: Iterable[FaultEntry], bib: str, run: int) -> list[FaultEntry]:
    return [f for f in faults if f.bib == bib and f.run == run]
