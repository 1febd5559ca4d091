from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from racesync.events import EventType
from racesync.exceptions import RaceSyncQuotaExceededError
from racesync.state.persistence import PersistedSliceStore, SliceSpec
from racesync.state.storage import FileStorage, MemoryStorage
from racesync.state.store import Store

from conftest import FakeClock, fast_config, seeded_storage


def _int_list(doc: Any) -> list[int]:
    if not isinstance(doc, list) or not all(isinstance(x, int) for x in doc):
        raise ValueError("expected a list of ints")
    return doc


def _specs() -> list[SliceSpec]:
    return [
        SliceSpec(name="numbers", key="numbers", default=list, dump=list, load=_int_list),
        SliceSpec(name="label", key="label", default=lambda: "none", dump=str, load=str),
    ]


def _persisted(storage: MemoryStorage, values: dict[str, Any], **kwargs: Any) -> PersistedSliceStore:
    return PersistedSliceStore(storage, _specs(), values.__getitem__, prefix="t", **kwargs)


def test_each_slice_loads_independently() -> None:
    storage = MemoryStorage()
    storage.set_item("t:numbers", "not json")
    storage.set_item("t:label", json.dumps("hello"))

    store = _persisted(storage, {})
    loaded = store.load_all()

    assert loaded == {"numbers": [], "label": "hello"}
    assert store.defaulted == {"numbers"}


def test_flush_writes_only_dirty_slices() -> None:
    storage = MemoryStorage()
    values = {"numbers": [1, 2], "label": "x"}
    store = _persisted(storage, values)

    store.mark_dirty("numbers")
    store.mark_dirty("unknown")
    written = store.flush()

    assert written == ["numbers"]
    assert storage.writes == ["t:numbers"]
    assert json.loads(storage.get_item("t:numbers") or "") == [1, 2]
    assert store.flush() == []


def test_failed_write_keeps_slice_dirty_and_reports() -> None:
    storage = MemoryStorage(quota_bytes=4)
    values = {"numbers": list(range(50)), "label": "x"}
    errors: list[tuple[str, BaseException]] = []
    store = _persisted(storage, values, on_error=lambda key, exc: errors.append((key, exc)))

    store.mark_dirty("numbers")
    store.mark_dirty("label")
    written = store.flush()

    assert written == ["label"]
    assert store.dirty == frozenset({"numbers"})
    assert errors[0][0] == "t:numbers"
    assert isinstance(errors[0][1], RaceSyncQuotaExceededError)


@pytest.mark.asyncio
async def test_debounce_coalesces_marks_into_one_write() -> None:
    storage = MemoryStorage()
    values = {"numbers": [1], "label": "x"}
    store = _persisted(storage, values, debounce=0.01)

    store.mark_dirty("numbers")
    store.mark_dirty("numbers")
    store.mark_dirty("numbers")
    assert storage.writes == []

    await asyncio.sleep(0.05)

    assert storage.writes == ["t:numbers"]


@pytest.mark.asyncio
async def test_one_add_entry_writes_only_the_entries_key() -> None:
    storage = seeded_storage()
    store = Store(storage=storage, config=fast_config(), clock=FakeClock())
    store.flush()
    storage.writes.clear()

    store.create_entry("S", "001")
    await asyncio.sleep(0.05)

    assert storage.writes == ["raceSync:entries"]


def test_defaulted_identity_is_written_on_first_flush() -> None:
    storage = MemoryStorage()
    store = Store(storage=storage, config=fast_config())

    assert "device" in store.dirty_slices
    store.flush()

    saved = json.loads(storage.get_item("raceSync:device") or "{}")
    assert saved["deviceId"] == store.state.device_id


def test_storage_failure_emits_event_and_keeps_memory_state() -> None:
    storage = seeded_storage()
    store = Store(storage=storage, config=fast_config(), clock=FakeClock())
    events: list[dict[str, Any]] = []
    store.events.subscribe(lambda _type, payload: events.append(payload), EventType.STORAGE_ERROR)

    def full(key: str, value: str) -> None:
        raise RaceSyncQuotaExceededError("full", key=key)

    storage.set_item = full  # type: ignore[method-assign]
    store.create_entry("S", "001")
    store.flush()

    assert len(store.state.entries) == 1
    assert "entries" in store.dirty_slices
    assert events and events[0]["key"] == "raceSync:entries"


def test_file_storage_round_trip(tmp_path: Any) -> None:
    storage = FileStorage(tmp_path / "state")

    assert storage.get_item("raceSync:entries") is None
    storage.set_item("raceSync:entries", "[]")
    assert storage.get_item("raceSync:entries") == "[]"
    storage.remove_item("raceSync:entries")
    storage.remove_item("raceSync:entries")
    assert storage.get_item("raceSync:entries") is None
