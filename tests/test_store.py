from __future__ import annotations

import json
from typing import Any

import pytest

from racesync._constants import PHOTO_MARKER
from racesync.models.settings import Language
from racesync.models.sync import DeviceInfo, SyncStatus
from racesync.photos import MemoryPhotoCache
from racesync.state.signals import effect
from racesync.state.storage import MemoryStorage
from racesync.state.store import Store, StoreState

from conftest import OTHER_DEVICE, OWN_DEVICE, FakeClock, entry_payload, fast_config, fault_payload, make_store

PHOTO = "data:image/jpeg;base64," + "B" * 64


def test_create_entry_stamps_device_and_time() -> None:
    clock = FakeClock(1_767_261_600.0)
    store = make_store(clock=clock)

    entry = store.create_entry("S", "001")

    assert entry.id.startswith(f"{OWN_DEVICE}-1767261600000-")
    assert entry.timestamp == "2026-01-01T10:00:00.000Z"
    assert entry.device_name == "Judge Own"
    assert store.state.entries == (entry,)
    assert store.state.can_undo


def test_sync_queue_only_fills_while_sync_is_active() -> None:
    store = make_store()
    store.create_entry("S", "001")
    assert store.state.sync_queue == ()

    store.update_settings(sync=True)
    store.set_race_id("RACE1")
    entry = store.create_entry("S", "002")
    assert [item.entry.id for item in store.state.sync_queue] == [entry.id]

    store.delete_entry(entry.id)
    assert store.state.sync_queue == ()


def test_each_mutation_publishes_one_notification() -> None:
    store = make_store()
    received: list[tuple[StoreState, frozenset[str]]] = []
    store.subscribe(lambda state, keys: received.append((state, keys)))

    entry = store.create_entry("S", "001")
    store.update_entry(entry.id, {"bib": "002"})
    store.set_sync_status(SyncStatus.CONNECTED)
    store.set_sync_status(SyncStatus.CONNECTED)

    assert [keys for _, keys in received] == [
        frozenset({"entries", "history"}),
        frozenset({"entries", "history"}),
        frozenset({"sync_status"}),
    ]
    assert received[1][0].entries[0].bib == "002"


def test_failing_subscriber_does_not_break_mutations() -> None:
    store = make_store()
    seen: list[int] = []

    def broken(_state: StoreState, _keys: frozenset[str]) -> None:
        raise RuntimeError("ui bug")

    store.subscribe(broken)
    store.subscribe(lambda state, _keys: seen.append(len(state.entries)))
    for bib in ("1", "2", "3"):
        store.create_entry("S", bib)

    assert seen == [1, 2, 3]


def test_signal_effects_see_slice_changes() -> None:
    store = make_store()
    lengths: list[int] = []

    effect(lambda: lengths.append(len(store.signal("entries").value)))
    store.create_entry("S", "001")
    store.merge_cloud_entries([entry_payload("B-1-aaa")])

    assert lengths == [0, 1, 2]


def test_two_judges_faults_at_same_gate_both_persist() -> None:
    store = make_store()
    mine = store.record_fault("012", 4, "MG")
    added = store.merge_faults_from_cloud([fault_payload("fault-dev_other-1", gate=4, bib="012")])

    assert added == 1
    assert {f.id for f in store.get_faults_for_bib("012", 1)} == {mine.id, "fault-dev_other-1"}


def test_mark_for_deletion_then_edit_is_refused() -> None:
    store = make_store()
    fault = store.record_fault("012", 4, "MG")

    assert store.mark_fault_for_deletion(fault.id)
    before = store.get_fault(fault.id)
    assert store.update_fault_entry_with_history(fault.id, {"gateNumber": 5}) is False
    assert store.get_fault(fault.id) == before
    assert store.get_pending_deletions() == [before]


def test_restore_through_store() -> None:
    store = make_store()
    fault = store.record_fault("012", 4, "MG")
    store.update_fault_entry_with_history(fault.id, {"gateNumber": 5}, "moved")
    store.update_fault_entry_with_history(fault.id, {"gateNumber": 6})

    assert store.restore_fault_version(fault.id, 1)
    restored = store.get_fault(fault.id)
    assert restored is not None
    assert restored.gate_number == 4
    assert restored.current_version == 4
    assert len(restored.version_history) == 4
    assert restored.version_history[1].change_description == "moved"


def test_reject_and_approve_deletion() -> None:
    store = make_store()
    first = store.record_fault("012", 4, "MG")
    second = store.record_fault("013", 5, "STR")

    store.mark_fault_for_deletion(first.id)
    assert store.reject_fault_deletion(first.id)
    assert store.get_pending_deletions() == []

    store.mark_fault_for_deletion(second.id)
    approved = store.approve_fault_deletion(second.id)
    assert approved is not None and approved.deletion_approved_by == "Judge Own"
    assert [f.id for f in store.state.faults] == [first.id]


def test_race_change_clears_undo_history() -> None:
    store = make_store()
    store.create_entry("S", "001")
    assert store.state.can_undo

    store.set_race_id("RACE-2")
    assert not store.state.can_undo
    assert store.undo() is None

    with pytest.raises(ValueError):
        store.set_race_id("bad id!")


def test_state_survives_a_reload() -> None:
    storage = MemoryStorage()
    store = Store(storage=storage, config=fast_config())
    store.update_settings(sync=True, sync_photos=True)
    store.set_language("de")
    store.set_race_id("RACE1")
    store.set_device_name("Start Hut")
    entry = store.create_entry("S", "001", photo=PHOTO)
    store.record_fault("001", 3, "BR")
    store.flush()

    saved = json.loads(storage.get_item("raceSync:entries") or "[]")
    assert saved[0]["photo"] == PHOTO_MARKER

    reloaded = Store(storage=storage, config=fast_config())
    state = reloaded.state
    assert state.device_id == store.state.device_id
    assert state.device_name == "Start Hut"
    assert state.language == Language.DE
    assert state.race_id == "RACE1"
    assert state.settings.sync_photos
    assert [e.id for e in state.entries] == [entry.id]
    assert len(state.faults) == 1
    assert [item.entry.id for item in state.sync_queue] == [entry.id]


@pytest.mark.asyncio
async def test_photos_reach_the_cache_only_through_the_caller() -> None:
    storage = MemoryStorage()
    store = Store(storage=storage, config=fast_config())
    cache = MemoryPhotoCache()

    inline = store.create_entry("F", "002", photo=PHOTO)
    assert inline.photo == PHOTO
    assert not await cache.has_photo(inline.id)

    marked = store.create_entry("F", "003", photo=PHOTO_MARKER)
    await cache.save_photo(marked.id, PHOTO)
    store.flush()

    reloaded = Store(storage=storage, config=fast_config())
    photos = {e.id: e.photo for e in reloaded.state.entries}
    assert photos == {inline.id: PHOTO_MARKER, marked.id: PHOTO_MARKER}
    assert await cache.get_photo(marked.id) == PHOTO
    assert await cache.get_photo(inline.id) is None


def test_corrupt_slice_falls_back_without_touching_others() -> None:
    storage = MemoryStorage()
    storage.set_item("raceSync:entries", json.dumps([entry_payload("B-1-aaa"), {"id": "broken"}]))
    storage.set_item("raceSync:faults", "{not json")
    storage.set_item("raceSync:settings", json.dumps({"sync": True}))

    store = Store(storage=storage, config=fast_config())

    assert [e.id for e in store.state.entries] == ["B-1-aaa"]
    assert store.state.faults == ()
    assert store.state.settings.sync


def test_presence_prunes_stale_devices() -> None:
    clock = FakeClock()
    store = make_store(clock=clock)
    now_ms = clock.now * 1000
    store.add_connected_device(DeviceInfo(id=OTHER_DEVICE, name="Other", last_seen=now_ms))
    store.add_connected_device(DeviceInfo(id="dev_old", name="Old", last_seen=now_ms - 130_000))

    assert [d.id for d in store.get_connected_devices()] == [OTHER_DEVICE]

    clock.advance(125)
    assert store.get_connected_devices() == []


def test_export_then_import_merges_without_overwriting() -> None:
    source = make_store(device_id="dev_source")
    first = source.create_entry("S", "001")
    source.create_entry("F", "001")
    document = source.export_data()

    exported: dict[str, Any] = json.loads(document)
    assert exported["deviceId"] == "dev_source"
    assert exported["version"] == 2
    assert len(exported["entries"]) == 2

    target = make_store()
    target.merge_cloud_entries([{**exported["entries"][0], "bib": "999"}])
    result = target.import_data(document)

    assert result.success
    assert result.entries_imported == 1
    assert target.get_entry(first.id).bib == "999"  # type: ignore[union-attr]


@pytest.mark.parametrize("document", ["not json", json.dumps({"entries": "nope"}), json.dumps([1, 2])])
def test_import_rejects_bad_documents(document: str) -> None:
    result = make_store().import_data(document)

    assert not result.success
    assert result.error


def test_active_bibs_through_store() -> None:
    store = make_store()
    store.create_entry("S", "5")
    store.create_entry("S", "12")
    store.create_entry("F", "5")

    assert store.get_active_bibs(1) == ["12"]
