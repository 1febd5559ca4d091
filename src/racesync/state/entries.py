"""Pure operations on the entries slice.

Every function takes the current list and returns a new one; nothing here
mutates its arguments. The :class:`~racesync.state.store.Store` is the only
caller.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from collections.abc import Iterable, Mapping, Sequence
from enum import StrEnum
from typing import Any

from pydantic import ValidationError

from racesync._constants import MAX_UNDO_STACK
from racesync.models._base import parse_iso_timestamp
from racesync.models.entry import Entry, TimingPoint, validate_entry

_logger = logging.getLogger(__name__)


class ActionType(StrEnum):
    ADD_ENTRY = "ADD_ENTRY"
    DELETE_ENTRY = "DELETE_ENTRY"
    DELETE_MULTIPLE = "DELETE_MULTIPLE"
    CLEAR_ALL = "CLEAR_ALL"
    UPDATE_ENTRY = "UPDATE_ENTRY"


@dataclasses.dataclass(frozen=True)
class UndoAction:
    """One reversible change.

    ``entries`` holds the affected records as they were *before* the change
    (for ``UPDATE_ENTRY`` the old record) and ``new_entry`` the record after
    an update.
    """

    type: ActionType
    entries: tuple[Entry, ...]
    new_entry: Entry | None = None
    timestamp: float = dataclasses.field(default_factory=time.time)


@dataclasses.dataclass(frozen=True)
class History:
    undo: tuple[UndoAction, ...] = ()
    redo: tuple[UndoAction, ...] = ()

    def push(self, action: UndoAction) -> History:
        """Record *action*; the redo stack is discarded and the undo stack bounded."""
        stack = (*self.undo, action)
        if len(stack) > MAX_UNDO_STACK:
            stack = stack[-MAX_UNDO_STACK:]
        return History(undo=stack, redo=())

    @property
    def can_undo(self) -> bool:
        return bool(self.undo)

    @property
    def can_redo(self) -> bool:
        return bool(self.redo)


@dataclasses.dataclass(frozen=True)
class MergeResult:
    entries: list[Entry]
    added_count: int


@dataclasses.dataclass(frozen=True)
class RemoveResult:
    entries: list[Entry]
    removed_count: int


def _sort_key(entry: Entry) -> float:
    return parse_iso_timestamp(entry.timestamp).timestamp()


def sort_by_timestamp(entries: Iterable[Entry]) -> list[Entry]:
    """Stable ascending sort by parsed timestamp."""
    return sorted(entries, key=_sort_key)


def _is_deleted(entry: Entry, deleted: frozenset[str]) -> bool:
    # The service lists deletions either as ``id`` or ``id:deviceId``.
    return entry.id in deleted or f"{entry.id}:{entry.device_id}" in deleted


def add_entry(entries: Sequence[Entry], entry: Entry, history: History) -> tuple[list[Entry], History]:
    action = UndoAction(ActionType.ADD_ENTRY, (entry,))
    return [*entries, entry], history.push(action)


def delete_entry(
    entries: Sequence[Entry], entry_id: str, history: History
) -> tuple[list[Entry], History, Entry] | None:
    for entry in entries:
        if entry.id == entry_id:
            remaining = [e for e in entries if e.id != entry_id]
            return remaining, history.push(UndoAction(ActionType.DELETE_ENTRY, (entry,))), entry
    return None


def delete_multiple(
    entries: Sequence[Entry], entry_ids: Iterable[str], history: History
) -> tuple[list[Entry], History, list[Entry]] | None:
    wanted = set(entry_ids)
    removed = [e for e in entries if e.id in wanted]
    if not removed:
        return None
    remaining = [e for e in entries if e.id not in wanted]
    return remaining, history.push(UndoAction(ActionType.DELETE_MULTIPLE, tuple(removed))), removed


def clear_all(entries: Sequence[Entry], history: History) -> tuple[list[Entry], History] | None:
    if not entries:
        return None
    return [], history.push(UndoAction(ActionType.CLEAR_ALL, tuple(entries)))


def update_entry(
    entries: Sequence[Entry], entry_id: str, updates: Mapping[str, Any], history: History
) -> tuple[list[Entry], History, Entry] | None:
    """Apply *updates* (snake_case or camelCase keys) to one entry.

    ``id`` cannot be changed. Returns ``None`` when the entry is missing or
    the update would produce an invalid record.
    """
    for index, old in enumerate(entries):
        if old.id != entry_id:
            continue
        changes = {k: v for k, v in updates.items() if k != "id"}
        try:
            new = Entry.model_validate({**old.model_dump(), **_to_field_names(changes)})
        except ValidationError as exc:
            _logger.warning("Rejected update for entry %s: %s", entry_id, exc.errors(include_url=False))
            return None
        result = list(entries)
        result[index] = new
        action = UndoAction(ActionType.UPDATE_ENTRY, (old,), new_entry=new)
        return result, history.push(action), new
    return None


def _to_field_names(changes: Mapping[str, Any]) -> dict[str, Any]:
    aliases = {field.alias: name for name, field in Entry.model_fields.items() if field.alias}
    return {aliases.get(key, key): value for key, value in changes.items()}


def undo(entries: Sequence[Entry], history: History) -> tuple[list[Entry], History, UndoAction | None]:
    if not history.undo:
        return list(entries), history, None
    action = history.undo[-1]
    new_history = History(undo=history.undo[:-1], redo=(*history.redo, action))

    if action.type == ActionType.ADD_ENTRY:
        added = action.entries[0]
        result = [e for e in entries if e.id != added.id]
    elif action.type == ActionType.UPDATE_ENTRY:
        old = action.entries[0]
        result = [old if e.id == old.id else e for e in entries]
    else:
        result = sort_by_timestamp([*entries, *action.entries])
    return result, new_history, action


def redo(entries: Sequence[Entry], history: History) -> tuple[list[Entry], History, UndoAction | None]:
    if not history.redo:
        return list(entries), history, None
    action = history.redo[-1]
    new_history = History(undo=(*history.undo, action), redo=history.redo[:-1])

    if action.type == ActionType.ADD_ENTRY:
        result = sort_by_timestamp([*entries, action.entries[0]])
    elif action.type == ActionType.UPDATE_ENTRY:
        new = action.new_entry or action.entries[0]
        result = [new if e.id == new.id else e for e in entries]
    else:
        gone = {e.id for e in action.entries}
        result = [e for e in entries if e.id not in gone]
    return result, new_history, action


def merge_cloud_entries(
    local: Sequence[Entry],
    incoming: Iterable[Any],
    deleted_ids: Iterable[str],
    own_device_id: str,
) -> MergeResult:
    """Merge remote (or peer-tab) entries into the local ledger.

    An incoming record is skipped when it is invalid, was recorded by this
    device, is listed in *deleted_ids* (this call only), or its id already
    exists. The result is always sorted by timestamp.
    """
    deleted = frozenset(deleted_ids)
    known = {e.id for e in local}
    added: list[Entry] = []

    for raw in incoming:
        entry = validate_entry(raw)
        if entry is None:
            _logger.warning("Skipping invalid remote entry")
            continue
        if entry.device_id == own_device_id:
            continue
        if _is_deleted(entry, deleted):
            continue
        if entry.id in known:
            continue
        known.add(entry.id)
        added.append(entry)

    return MergeResult(entries=sort_by_timestamp([*local, *added]), added_count=len(added))


def remove_deleted_cloud_entries(entries: Sequence[Entry], deleted_ids: Iterable[str]) -> RemoveResult:
    deleted = frozenset(deleted_ids)
    kept = [e for e in entries if not _is_deleted(e, deleted)]
    return RemoveResult(entries=kept, removed_count=len(entries) - len(kept))


def get_active_bibs(entries: Iterable[Entry], run: int = 1) -> list[str]:
    """Bibs with a start but no finish in *run*, in numeric order."""
    started: set[str] = set()
    finished: set[str] = set()
    for entry in entries:
        if entry.run != run or not entry.bib:
            continue
        if entry.point == TimingPoint.START:
            started.add(entry.bib)
        elif entry.point == TimingPoint.FINISH:
            finished.add(entry.bib)

    def _numeric(bib: str) -> tuple[int, str]:
        try:
            return int(bib), bib
        except ValueError:
            return 1 << 31, bib

    return sorted(started - finished, key=_numeric)
