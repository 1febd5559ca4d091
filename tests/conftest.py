from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Mapping
from typing import Any

import pytest

from racesync.config import PollingProfile, RaceSyncConfig
from racesync.state.storage import MemoryStorage
from racesync.state.store import Store

OWN_DEVICE = "dev_own"
OTHER_DEVICE = "dev_other"


class FakeClock:
    """Settable epoch-seconds clock."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


Reply = dict[str, Any] | BaseException | Callable[[Mapping[str, str], Mapping[str, Any] | None], Any]


class FakeTransport:
    """Records requests and answers from per-route reply queues.

    A route is ``(method, path)``. Replies are consumed in order; the last
    one is repeated. A reply may be a dict, an exception to raise, or a
    callable ``(params, json_body)`` returning either (awaited when async).
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, dict[str, str], dict[str, Any] | None]] = []
        self._replies: dict[tuple[str, str], list[Reply]] = {}

    def reply(self, method: str, path: str, *replies: Reply) -> None:
        self._replies[(method, path)] = list(replies)

    def calls_to(self, method: str, path: str | None = None) -> list[tuple[str, str, dict[str, str], dict[str, Any] | None]]:
        return [c for c in self.calls if c[0] == method and (path is None or c[1] == path)]

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json_body: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        params_dict = dict(params or {})
        body = dict(json_body) if json_body is not None else None
        self.calls.append((method, path, params_dict, body))
        queue = self._replies.get((method, path))
        if not queue:
            return {"success": True}
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(reply) and not isinstance(reply, BaseException):
            reply = reply(params_dict, body)
            if asyncio.iscoroutine(reply):
                reply = await reply
        if isinstance(reply, BaseException):
            raise reply
        return reply


def seeded_storage(device_id: str = OWN_DEVICE, device_name: str = "Judge Own") -> MemoryStorage:
    storage = MemoryStorage()
    storage.set_item("raceSync:device", json.dumps({"deviceId": device_id, "deviceName": device_name}))
    storage.writes.clear()
    return storage


def make_store(
    *,
    device_id: str = OWN_DEVICE,
    device_name: str = "Judge Own",
    sync: bool = False,
    race_id: str | None = None,
    clock: FakeClock | None = None,
    config: RaceSyncConfig | None = None,
) -> Store:
    store = Store(
        storage=seeded_storage(device_id, device_name),
        config=config or fast_config(),
        clock=clock or FakeClock(),
    )
    if sync:
        store.update_settings(sync=True)
    if race_id is not None:
        store.set_race_id(race_id)
    return store


def fast_config(**overrides: Any) -> RaceSyncConfig:
    values: dict[str, Any] = {
        "polling": PollingProfile(base=60.0, idle_intervals=(60.0,), idle_threshold=6),
        "queue_process_interval": 60.0,
        "persist_debounce": 0.01,
    }
    values.update(overrides)
    return RaceSyncConfig(**values)


def entry_payload(
    entry_id: str,
    *,
    device_id: str = OTHER_DEVICE,
    bib: str = "007",
    point: str = "F",
    run: int = 1,
    timestamp: str = "2026-01-10T10:00:00.000Z",
    **extra: Any,
) -> dict[str, Any]:
    payload = {
        "id": entry_id,
        "bib": bib,
        "point": point,
        "run": run,
        "timestamp": timestamp,
        "status": "ok",
        "deviceId": device_id,
        "deviceName": "Judge Other",
    }
    payload.update(extra)
    return payload


def fault_payload(
    fault_id: str,
    *,
    device_id: str = OTHER_DEVICE,
    bib: str = "012",
    gate: int = 4,
    version: int = 1,
    timestamp: str = "2026-01-10T10:05:00.000Z",
    **extra: Any,
) -> dict[str, Any]:
    data = {
        "id": fault_id,
        "bib": bib,
        "run": 1,
        "gateNumber": gate,
        "faultType": "MG",
        "timestamp": timestamp,
        "deviceId": device_id,
        "deviceName": "Judge Other",
        "gateRange": [1, 8],
    }
    history = [
        {
            "version": n,
            "timestamp": timestamp,
            "editedBy": "Judge Other",
            "editedByDeviceId": device_id,
            "changeType": "create" if n == 1 else "edit",
            "data": data,
        }
        for n in range(1, version + 1)
    ]
    payload = {**data, "currentVersion": version, "versionHistory": history, "markedForDeletion": False}
    payload.update(extra)
    return payload


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()
