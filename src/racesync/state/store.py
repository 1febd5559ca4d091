"""Store: the composition root for all client-side state.

The store is the only component allowed to change slice state. Every
mutation goes through one of its methods, which runs the slice's pure
function, writes the resulting values into signals, and publishes a single
``(state, changed_keys)`` notification. Persisted slices are watched by
effects that mark them dirty for the debounced flush.

Sync, broadcast and persistence collaborators read :attr:`Store.state`
snapshots and call back into the store to apply remote changes.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from datetime import UTC, datetime
from typing import Any, Protocol

from pydantic import ValidationError

from racesync import ids
from racesync._constants import (
    DEVICE_STALE_SECONDS,
    PHOTO_MARKER,
    SCHEMA_VERSION,
    has_full_photo_data,
)
from racesync._tasks import BackgroundTasks
from racesync.config import RaceSyncConfig
from racesync.events import EventDispatcher, EventType
from racesync.models.entry import Entry, EntryStatus, TimingPoint, validate_entry
from racesync.models.fault import FaultEntry, FaultSnapshot, FaultType, validate_fault
from racesync.models.settings import DEFAULT_SETTINGS, DeviceIdentity, Language, Settings
from racesync.models.sync import DeviceInfo, SyncQueueItem, SyncStatus
from racesync.state import entries as entries_ops
from racesync.state import faults as faults_ops
from racesync.state import queue as queue_ops
from racesync.state.bus import NotificationBus
from racesync.state.persistence import PersistedSliceStore, SliceSpec
from racesync.state.signals import Signal, batch, effect
from racesync.state.storage import MemoryStorage, StorageBackend

_logger = logging.getLogger(__name__)


class CloudHooks(Protocol):
    """Remote side effects the store fires after local mutations.

    Implemented by :class:`racesync.sync.service.SyncService`. Each call is
    fire-and-forget: a failure is logged and never rolls back the local
    change.
    """

    async def sync_entry(self, entry: Entry) -> bool:
        ...

    async def delete_entry(self, entry: Entry) -> bool:
        ...

    async def sync_fault(self, fault: FaultEntry) -> bool:
        ...

    async def delete_fault(self, fault: FaultEntry, approved_by: str | None = None) -> bool:
        ...


@dataclasses.dataclass(frozen=True)
class StoreState:
    """Immutable snapshot of every slice."""

    entries: tuple[Entry, ...]
    faults: tuple[FaultEntry, ...]
    settings: Settings
    language: Language
    device_id: str
    device_name: str
    race_id: str | None
    sync_queue: tuple[SyncQueueItem, ...]
    sync_status: SyncStatus
    cloud_device_count: int
    cloud_highest_bib: int
    connected_devices: Mapping[str, DeviceInfo]
    can_undo: bool
    can_redo: bool

    @property
    def sync_active(self) -> bool:
        """Sync is switched on and a race is selected."""
        return self.settings.sync and bool(self.race_id)


@dataclasses.dataclass(frozen=True)
class ImportResult:
    success: bool
    entries_imported: int = 0
    error: str | None = None


def _entry_for_storage(entry: Entry) -> dict[str, Any]:
    # Image data lives in the photo cache; only the marker is persisted.
    if has_full_photo_data(entry.photo):
        entry = entry.model_copy(update={"photo": PHOTO_MARKER})
    return entry.to_wire()


def _load_records(document: Any, validate: Callable[[Any], Any | None], label: str) -> list[Any]:
    if not isinstance(document, list):
        raise ValueError(f"{label} must be a list")
    records = []
    for raw in document:
        record = validate(raw)
        if record is None:
            _logger.warning("Dropping invalid stored %s record", label)
            continue
        records.append(record)
    return records


def _load_queue_item(raw: Any) -> SyncQueueItem | None:
    try:
        return SyncQueueItem.model_validate(raw)
    except ValidationError:
        return None


def _load_race_id(document: Any) -> str | None:
    if document is None or document == "":
        return None
    if not ids.is_valid_race_id(document):
        raise ValueError("invalid race id")
    return str(document)


def _new_identity() -> DeviceIdentity:
    return DeviceIdentity(device_id=ids.generate_device_id(), device_name=ids.generate_device_name())


def _slice_specs() -> list[SliceSpec]:
    return [
        SliceSpec(
            name="entries",
            key="entries",
            default=list,
            dump=lambda value: [_entry_for_storage(e) for e in value],
            load=lambda doc: entries_ops.sort_by_timestamp(_load_records(doc, validate_entry, "entry")),
        ),
        SliceSpec(
            name="faults",
            key="faults",
            default=list,
            dump=lambda value: [f.to_wire() for f in value],
            load=lambda doc: _load_records(doc, validate_fault, "fault"),
        ),
        SliceSpec(
            name="settings",
            key="settings",
            default=lambda: DEFAULT_SETTINGS,
            dump=lambda value: value.to_wire(),
            load=Settings.model_validate,
        ),
        SliceSpec(
            name="language",
            key="lang",
            default=lambda: Language.EN,
            dump=str,
            load=Language,
        ),
        SliceSpec(
            name="device",
            key="device",
            default=_new_identity,
            dump=lambda value: value.to_wire(),
            load=DeviceIdentity.model_validate,
        ),
        SliceSpec(
            name="race_id",
            key="raceId",
            default=lambda: None,
            dump=lambda value: value,
            load=_load_race_id,
        ),
        SliceSpec(
            name="sync_queue",
            key="syncQueue",
            default=list,
            dump=lambda value: [item.to_wire() for item in value],
            load=lambda doc: _load_records(doc, _load_queue_item, "sync queue"),
        ),
    ]


class Store:
    """Owns every slice and exposes the mutation API.

    Parameters
    ----------
    storage : StorageBackend, optional
        Where persisted slices live. Defaults to a fresh
        :class:`~racesync.state.storage.MemoryStorage`.
    config : RaceSyncConfig, optional
        Supplies the storage prefix, persistence debounce and notification
        queue limit.
    events : EventDispatcher, optional
        Receives ``storage-error`` events.
    clock : callable, optional
        Returns epoch seconds; used for timestamps and presence expiry.
    """

    def __init__(
        self,
        *,
        storage: StorageBackend | None = None,
        config: RaceSyncConfig | None = None,
        events: EventDispatcher | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or RaceSyncConfig()
        self._storage = storage if storage is not None else MemoryStorage()
        self.events = events or EventDispatcher()
        self._clock = clock
        self._cloud: CloudHooks | None = None
        self._tasks = BackgroundTasks()
        self._snapshot: StoreState | None = None

        self._bus: NotificationBus[StoreState] = NotificationBus(self._config.notification_queue_limit)
        self._persistence = PersistedSliceStore(
            self._storage,
            _slice_specs(),
            self._read_slice,
            prefix=self._config.storage_prefix,
            debounce=self._config.persist_debounce,
            on_error=self._on_storage_error,
        )
        loaded = self._persistence.load_all()

        self._signals: dict[str, Signal[Any]] = {
            name: Signal(value, name=name) for name, value in loaded.items()
        }
        self._signals.update(
            {
                "sync_status": Signal(SyncStatus.DISCONNECTED, name="sync_status"),
                "cloud_device_count": Signal(0, name="cloud_device_count"),
                "cloud_highest_bib": Signal(0, name="cloud_highest_bib"),
                "connected_devices": Signal({}, name="connected_devices"),
                "history": Signal(entries_ops.History(), name="history"),
            }
        )

        self._disposers: list[Callable[[], None]] = [
            self._watch_persisted(name) for name in loaded
        ]
        if "device" in self._persistence.defaulted:
            self._persistence.mark_dirty("device")

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _read_slice(self, name: str) -> Any:
        return self._signals[name].peek()

    def _watch_persisted(self, name: str) -> Callable[[], None]:
        source = self._signals[name]
        primed = False

        def _mark() -> None:
            nonlocal primed
            _ = source.value
            if not primed:
                primed = True
                return
            self._persistence.mark_dirty(name)

        return effect(_mark)

    def _on_storage_error(self, key: str, exc: BaseException) -> None:
        self.events.emit(EventType.STORAGE_ERROR, {"key": key, "error": str(exc)})

    def _get(self, name: str) -> Any:
        return self._signals[name].peek()

    def _commit(self, **changes: Any) -> None:
        """Write several slices at once and publish one notification."""
        changed = frozenset(name for name, value in changes.items() if value is not self._get(name))
        if not changed:
            return
        with batch():
            for name in changed:
                self._signals[name].value = changes[name]
        self._snapshot = None
        self._bus.notify(self.state, changed)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _now_iso(self) -> str:
        moment = datetime.fromtimestamp(self._clock(), UTC)
        return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    def _spawn(self, label: str, fn: Callable[..., Awaitable[Any]], *args: Any) -> None:
        self._tasks.spawn(label, fn, *args)

    async def wait_idle(self) -> None:
        """Wait for every fire-and-forget cloud call started so far."""
        await self._tasks.wait()

    def attach_cloud(self, cloud: CloudHooks | None) -> None:
        self._cloud = cloud

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    @property
    def state(self) -> StoreState:
        if self._snapshot is None:
            device: DeviceIdentity = self._get("device")
            history: entries_ops.History = self._get("history")
            self._snapshot = StoreState(
                entries=tuple(self._get("entries")),
                faults=tuple(self._get("faults")),
                settings=self._get("settings"),
                language=self._get("language"),
                device_id=device.device_id,
                device_name=device.device_name,
                race_id=self._get("race_id"),
                sync_queue=tuple(self._get("sync_queue")),
                sync_status=self._get("sync_status"),
                cloud_device_count=self._get("cloud_device_count"),
                cloud_highest_bib=self._get("cloud_highest_bib"),
                connected_devices=dict(self._get("connected_devices")),
                can_undo=history.can_undo,
                can_redo=history.can_redo,
            )
        return self._snapshot

    def signal(self, name: str) -> Signal[Any]:
        """The underlying signal of a slice, for fine-grained effects."""
        return self._signals[name]

    def subscribe(self, listener: Callable[[StoreState, frozenset[str]], None]) -> Callable[[], None]:
        return self._bus.subscribe(listener)

    @property
    def bus(self) -> NotificationBus[StoreState]:
        return self._bus

    def get_entry(self, entry_id: str) -> Entry | None:
        return next((e for e in self._get("entries") if e.id == entry_id), None)

    def get_fault(self, fault_id: str) -> FaultEntry | None:
        return next((f for f in self._get("faults") if f.id == fault_id), None)

    def get_active_bibs(self, run: int = 1) -> list[str]:
        return entries_ops.get_active_bibs(self._get("entries"), run)

    def get_pending_deletions(self) -> list[FaultEntry]:
        return faults_ops.get_pending_deletions(self._get("faults"))

    def get_faults_for_bib(self, bib: str, run: int) -> list[FaultEntry]:
        return faults_ops.get_faults_for_bib(self._get("faults"), bib, run)

    def get_connected_devices(self) -> list[DeviceInfo]:
        self._prune_devices()
        return list(self._get("connected_devices").values())

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def create_entry(
        self,
        point: TimingPoint | str,
        bib: str = "",
        *,
        run: int = 1,
        status: EntryStatus | str = EntryStatus.OK,
        photo: str | None = None,
    ) -> Entry:
        """Build an entry stamped with this device and the current time, then add it.

        Parameters
        ----------
        photo : str, optional
            Usually :data:`~racesync._constants.PHOTO_MARKER`. The store
            never writes to a :class:`~racesync.photos.PhotoCache`: save the
            image under the returned entry's ``id`` yourself. Inline data
            passed here stays on the in-memory entry, but only the marker is
            persisted, so without a cached copy the image is gone after a
            reload.
        """
        state = self.state
        entry = Entry(
            id=ids.generate_entry_id(state.device_id, now_ms=self._now_ms()),
            bib=bib,
            point=point,
            run=run,
            timestamp=self._now_iso(),
            status=status,
            device_id=state.device_id,
            device_name=state.device_name,
            photo=photo,
        )
        self.add_entry(entry)
        return entry

    def add_entry(self, entry: Entry) -> None:
        new_entries, history = entries_ops.add_entry(self._get("entries"), entry, self._get("history"))
        changes: dict[str, Any] = {"entries": new_entries, "history": history}
        active = self.state.sync_active
        if active:
            changes["sync_queue"] = queue_ops.enqueue(self._get("sync_queue"), entry)
        self._commit(**changes)
        if active and self._cloud is not None:
            self._spawn("Entry sync", self._cloud.sync_entry, entry)

    def delete_entry(self, entry_id: str) -> bool:
        result = entries_ops.delete_entry(self._get("entries"), entry_id, self._get("history"))
        if result is None:
            return False
        new_entries, history, removed = result
        self._commit(
            entries=new_entries,
            history=history,
            sync_queue=self._without_queued([entry_id]),
        )
        self._remote_delete([removed])
        return True

    def delete_multiple(self, entry_ids: Iterable[str]) -> int:
        result = entries_ops.delete_multiple(self._get("entries"), entry_ids, self._get("history"))
        if result is None:
            return 0
        new_entries, history, removed = result
        self._commit(
            entries=new_entries,
            history=history,
            sync_queue=self._without_queued([e.id for e in removed]),
        )
        self._remote_delete(removed)
        return len(removed)

    def clear_all(self) -> int:
        current = self._get("entries")
        result = entries_ops.clear_all(current, self._get("history"))
        if result is None:
            return 0
        new_entries, history = result
        self._commit(entries=new_entries, history=history, sync_queue=[])
        self._remote_delete(list(current))
        return len(current)

    def _without_queued(self, entry_ids: Iterable[str]) -> list[SyncQueueItem]:
        queue = self._get("sync_queue")
        for entry_id in entry_ids:
            queue = queue_ops.dequeue(queue, entry_id)
        return queue if len(queue) != len(self._get("sync_queue")) else self._get("sync_queue")

    def _remote_delete(self, removed: Iterable[Entry]) -> None:
        # Local removal never waits on the remote call.
        if self._cloud is None or not self.state.sync_active:
            return
        for entry in removed:
            self._spawn("Remote entry delete", self._cloud.delete_entry, entry)

    def update_entry(self, entry_id: str, updates: Mapping[str, Any]) -> Entry | None:
        result = entries_ops.update_entry(self._get("entries"), entry_id, updates, self._get("history"))
        if result is None:
            return None
        new_entries, history, updated = result
        self._commit(entries=new_entries, history=history)
        return updated

    def undo(self) -> entries_ops.UndoAction | None:
        new_entries, history, action = entries_ops.undo(self._get("entries"), self._get("history"))
        if action is not None:
            self._commit(entries=new_entries, history=history)
        return action

    def redo(self) -> entries_ops.UndoAction | None:
        new_entries, history, action = entries_ops.redo(self._get("entries"), self._get("history"))
        if action is not None:
            self._commit(entries=new_entries, history=history)
        return action

    def merge_cloud_entries(self, incoming: Iterable[Any], deleted_ids: Iterable[str] = ()) -> int:
        """Merge remote or peer-tab entries; returns how many were added."""
        result = entries_ops.merge_cloud_entries(
            self._get("entries"), incoming, deleted_ids, self.state.device_id
        )
        if result.added_count:
            self._commit(entries=result.entries)
        return result.added_count

    def remove_deleted_cloud_entries(self, deleted_ids: Iterable[str]) -> int:
        result = entries_ops.remove_deleted_cloud_entries(self._get("entries"), deleted_ids)
        if result.removed_count:
            self._commit(entries=result.entries)
        return result.removed_count

    def mark_entry_synced(self, entry_id: str, synced_at: int | None = None) -> bool:
        entries = self._get("entries")
        stamp = synced_at if synced_at is not None else self._now_ms()
        for index, entry in enumerate(entries):
            if entry.id == entry_id:
                updated = list(entries)
                updated[index] = entry.model_copy(update={"synced_at": stamp})
                self._commit(entries=updated)
                return True
        return False

    # ------------------------------------------------------------------
    # Sync queue (written by the sync services only)
    # ------------------------------------------------------------------

    def remove_from_sync_queue(self, entry_id: str) -> None:
        queue = self._get("sync_queue")
        if queue_ops.contains(queue, entry_id):
            self._commit(sync_queue=queue_ops.dequeue(queue, entry_id))

    def record_sync_attempt(self, entry_id: str, *, retry_count: int, last_attempt: float, error: str | None) -> None:
        queue = self._get("sync_queue")
        if queue_ops.contains(queue, entry_id):
            self._commit(
                sync_queue=queue_ops.record_attempt(
                    queue, entry_id, retry_count=retry_count, last_attempt=last_attempt, error=error
                )
            )

    # ------------------------------------------------------------------
    # Faults
    # ------------------------------------------------------------------

    def record_fault(
        self,
        bib: str,
        gate_number: int,
        fault_type: FaultType | str,
        *,
        run: int = 1,
        gate_range: tuple[int, int] | None = None,
        notes: str | None = None,
    ) -> FaultEntry:
        """Build a fault stamped with this device and the current time, then add it."""
        state = self.state
        snapshot = FaultSnapshot(
            id=f"fault-{ids.generate_entry_id(state.device_id, now_ms=self._now_ms())}",
            bib=bib,
            run=run,
            gate_number=gate_number,
            fault_type=fault_type,
            timestamp=self._now_iso(),
            device_id=state.device_id,
            device_name=state.device_name,
            gate_range=gate_range or (gate_number, gate_number),
            notes=notes,
        )
        return self.add_fault(snapshot)

    def add_fault(self, fault: FaultSnapshot | Mapping[str, Any]) -> FaultEntry:
        created = faults_ops.create_fault(fault, now=self._now_iso())
        self._commit(faults=faults_ops.add_fault(self._get("faults"), created))
        self._push_fault(created)
        return created

    def _push_fault(self, fault: FaultEntry | None) -> None:
        if fault is None or self._cloud is None or not self.state.sync_active:
            return
        self._spawn("Fault sync", self._cloud.sync_fault, fault)

    def update_fault_entry_with_history(
        self, fault_id: str, updates: Mapping[str, Any], description: str | None = None
    ) -> bool:
        state = self.state
        result = faults_ops.update_fault_with_history(
            self._get("faults"),
            fault_id,
            updates,
            state.device_name,
            state.device_id,
            description,
            now=self._now_iso(),
        )
        if result is None:
            return False
        self._commit(faults=result)
        self._push_fault(self.get_fault(fault_id))
        return True

    def restore_fault_version(self, fault_id: str, version: int) -> bool:
        state = self.state
        result = faults_ops.restore_fault_version(
            self._get("faults"), fault_id, version, state.device_name, state.device_id, now=self._now_iso()
        )
        if result is None:
            return False
        self._commit(faults=result)
        self._push_fault(self.get_fault(fault_id))
        return True

    def mark_fault_for_deletion(self, fault_id: str) -> bool:
        state = self.state
        result = faults_ops.mark_for_deletion(
            self._get("faults"), fault_id, state.device_name, state.device_id, now=self._now_iso()
        )
        if result is None:
            return False
        self._commit(faults=result)
        self._push_fault(self.get_fault(fault_id))
        return True

    def reject_fault_deletion(self, fault_id: str) -> bool:
        state = self.state
        result = faults_ops.reject_deletion(
            self._get("faults"), fault_id, state.device_name, state.device_id, now=self._now_iso()
        )
        if result is None:
            return False
        self._commit(faults=result)
        self._push_fault(self.get_fault(fault_id))
        return True

    def approve_fault_deletion(self, fault_id: str) -> FaultEntry | None:
        state = self.state
        result = faults_ops.approve_deletion(self._get("faults"), fault_id, state.device_name, now=self._now_iso())
        if result is None:
            return None
        remaining, approved = result
        self._commit(faults=remaining)
        if self._cloud is not None and state.sync_active:
            self._spawn("Remote fault delete", self._cloud.delete_fault, approved, state.device_name)
        return approved

    def remove_fault(self, fault_id: str) -> bool:
        """Drop a fault locally without any remote call (peer-tab deletions)."""
        result = faults_ops.delete_fault(self._get("faults"), fault_id)
        if result is None:
            return False
        self._commit(faults=result)
        return True

    def merge_faults_from_cloud(self, incoming: Iterable[Any], deleted_ids: Iterable[str] = ()) -> int:
        result = faults_ops.merge_faults_from_cloud(
            self._get("faults"), incoming, deleted_ids, self.state.device_id
        )
        if result.changed_count:
            self._commit(faults=result.faults)
        return result.changed_count

    def remove_deleted_cloud_faults(self, deleted_ids: Iterable[str]) -> int:
        remaining, removed = faults_ops.remove_deleted_cloud_faults(self._get("faults"), deleted_ids)
        if removed:
            self._commit(faults=remaining)
        return removed

    def mark_fault_synced(self, fault_id: str) -> bool:
        result = faults_ops.mark_synced(self._get("faults"), fault_id, self._now_ms())
        if result is None:
            return False
        self._commit(faults=result)
        return True

    # ------------------------------------------------------------------
    # Settings, identity, race
    # ------------------------------------------------------------------

    def update_settings(self, **changes: Any) -> Settings:
        current: Settings = self._get("settings")
        updated = Settings.model_validate({**current.model_dump(), **changes})
        if updated != current:
            self._commit(settings=updated)
        return updated

    def set_language(self, language: Language | str) -> None:
        lang = Language(language)
        if lang != self._get("language"):
            self._commit(language=lang)

    def set_device_name(self, name: str) -> None:
        device: DeviceIdentity = self._get("device")
        if name != device.device_name:
            self._commit(device=DeviceIdentity(device_id=device.device_id, device_name=name))

    def set_race_id(self, race_id: str | None) -> None:
        """Select a race. Changing race clears the undo and redo stacks."""
        normalized = race_id or None
        if normalized is not None and not ids.is_valid_race_id(normalized):
            raise ValueError(f"Invalid race id: {race_id!r}")
        if normalized == self._get("race_id"):
            return
        self._commit(race_id=normalized, history=entries_ops.History())

    # ------------------------------------------------------------------
    # Connection bookkeeping
    # ------------------------------------------------------------------

    def set_sync_status(self, status: SyncStatus | str) -> None:
        value = SyncStatus(status)
        if value != self._get("sync_status"):
            self._commit(sync_status=value)

    def set_cloud_device_count(self, count: int) -> None:
        if count != self._get("cloud_device_count"):
            self._commit(cloud_device_count=count)

    def set_cloud_highest_bib(self, bib: int) -> None:
        if bib != self._get("cloud_highest_bib"):
            self._commit(cloud_highest_bib=bib)

    def add_connected_device(self, device: DeviceInfo) -> None:
        devices = dict(self._get("connected_devices"))
        devices[device.id] = device
        self._commit(connected_devices=self._fresh_devices(devices))

    def _fresh_devices(self, devices: Mapping[str, DeviceInfo]) -> dict[str, DeviceInfo]:
        cutoff = self._now_ms() - DEVICE_STALE_SECONDS * 1000
        return {key: info for key, info in devices.items() if info.last_seen >= cutoff}

    def _prune_devices(self) -> None:
        devices = self._get("connected_devices")
        fresh = self._fresh_devices(devices)
        if len(fresh) != len(devices):
            self._commit(connected_devices=fresh)

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    def export_data(self) -> str:
        state = self.state
        document = {
            "version": SCHEMA_VERSION,
            "exportedAt": self._now_iso(),
            "deviceId": state.device_id,
            "deviceName": state.device_name,
            "raceId": state.race_id,
            "settings": state.settings.to_wire(),
            "entries": [_entry_for_storage(e) for e in state.entries],
        }
        return json.dumps(document, indent=2)

    def import_data(self, text: str) -> ImportResult:
        """Merge entries from an export document; existing ids are never overwritten."""
        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            return ImportResult(success=False, error=f"Invalid JSON: {exc.msg}")
        if not isinstance(document, dict) or not isinstance(document.get("entries"), list):
            return ImportResult(success=False, error="Missing entries list")

        current = self._get("entries")
        known = {e.id for e in current}
        imported: list[Entry] = []
        for raw in document["entries"]:
            entry = validate_entry(raw)
            if entry is None or entry.id in known:
                continue
            known.add(entry.id)
            imported.append(entry)

        if imported:
            self._commit(entries=entries_ops.sort_by_timestamp([*current, *imported]))
        return ImportResult(success=True, entries_imported=len(imported))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def flush(self) -> list[str]:
        """Write dirty slices immediately."""
        return self._persistence.flush()

    @property
    def dirty_slices(self) -> frozenset[str]:
        return self._persistence.dirty

    def close(self) -> None:
        for dispose in self._disposers:
            dispose()
        self._disposers.clear()
        self._persistence.close()
        self._bus.clear()
