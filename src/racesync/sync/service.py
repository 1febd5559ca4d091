"""Sync facade: wires polling, the push queue, fault sync and broadcast."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

import aiohttp

from racesync._api import entries as entries_api
from racesync._tasks import BackgroundTasks
from racesync._transport import HttpTransport, Transport
from racesync.config import RaceSyncConfig
from racesync.events import EventDispatcher
from racesync.exceptions import RaceSyncError
from racesync.models.entry import Entry
from racesync.models.fault import FaultEntry
from racesync.models.sync import GateAssignment, RaceExistsResponse, SyncStatus
from racesync.photos import MemoryPhotoCache, PhotoCache
from racesync.session import CredentialStore
from racesync.state.store import Store
from racesync.sync.broadcast import BroadcastManager, ChannelFactory
from racesync.sync.entries import EntrySyncService
from racesync.sync.faults import FaultSyncService
from racesync.sync.network import NetworkMonitor
from racesync.sync.polling import BatteryLevel, PollingController
from racesync.sync.queue import QueueProcessor

_logger = logging.getLogger(__name__)


class _DeferredTransport:
    """Forwards to whichever transport the owning service has open."""

    def __init__(self, owner: SyncService) -> None:
        self._owner = owner

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json_body: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        return await self._owner._require_transport().request(method, path, params=params, json_body=json_body)


class SyncService:
    """Keeps a :class:`~racesync.state.store.Store` in sync with the service.

    Usage::

        store = Store(storage=FileStorage(path))
        async with SyncService(store, credentials=creds) as sync:
            await sync.initialize()
            ...

    While initialized, the service is attached to the store as its cloud
    hooks: local mutations queue and push themselves, and polling merges
    remote changes back in.

    Parameters
    ----------
    store : Store
        The state container to keep in sync.
    config : RaceSyncConfig, optional
        Defaults to the store-independent :class:`RaceSyncConfig` defaults.
    session : aiohttp.ClientSession, optional
        Reused when given (and then left open); otherwise one is created on
        enter and closed on exit.
    transport : Transport, optional
        Overrides the HTTP transport entirely, mainly for tests.
    channel_factory : ChannelFactory, optional
        Opens the cross-tab channel. Without one, broadcasting is disabled.
    """

    def __init__(
        self,
        store: Store,
        *,
        config: RaceSyncConfig | None = None,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        credentials: CredentialStore | None = None,
        network: NetworkMonitor | None = None,
        photos: PhotoCache | None = None,
        channel_factory: ChannelFactory | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._config = config or RaceSyncConfig()
        self._external_session = session is not None
        self._http_session = session
        self._transport: Transport | None = transport
        self._credentials = credentials
        self._clock = clock
        self._tasks = BackgroundTasks()
        self.network = network or NetworkMonitor()
        self.events: EventDispatcher = store.events

        deferred = _DeferredTransport(self)
        self.broadcast = BroadcastManager(store, self._config, channel_factory, clock=clock)
        self.faults = FaultSyncService(
            store,
            deferred,
            self._config,
            network=self.network,
            events=self.events,
            on_reset_fast_polling=self.reset_to_fast_polling,
        )
        self.entries = EntrySyncService(
            store,
            deferred,
            self._config,
            network=self.network,
            photos=photos if photos is not None else MemoryPhotoCache(),
            events=self.events,
            credentials=credentials,
            on_poll_result=self._on_poll_result,
            on_reset_fast_polling=self.reset_to_fast_polling,
            on_cleanup=self.cleanup,
            fetch_faults=self.faults.fetch_faults,
            clock=clock,
        )
        self.polling = PollingController(self._config, self.network, self.entries.poll)
        self.queue = QueueProcessor(store, self._config, self.entries.send_entry, clock=clock)
        self._initialized = False

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> SyncService:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = HttpTransport(self._config, self._http_session, self._credentials)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.cleanup()
        self._tasks.cancel_all()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
            self._transport = None

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise RaceSyncError("Sync not started. Use 'async with SyncService(...) as sync:'")
        return self._transport

    # ------------------------------------------------------------------
    # Start / stop
    # ------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Start syncing the current race, or stop if sync is not active.

        Calling it again (e.g. after switching race) restarts from scratch:
        the previous race's polls, queue drain and channel are torn down first.
        """
        state = self._store.state
        if not state.sync_active or state.race_id is None:
            self.cleanup()
            return
        self._require_transport()
        if self._initialized:
            self.cleanup()

        _logger.info("Starting sync for race %s", state.race_id)
        self._store.attach_cloud(self)
        self.broadcast.initialize(state.race_id)
        self.network.register_online_handlers(self._handle_online, self._handle_offline)
        self._store.set_sync_status(SyncStatus.CONNECTING if self.network.is_online else SyncStatus.OFFLINE)
        self._initialized = True

        self.polling.start()
        self.queue.start()
        self._tasks.spawn("Push local entries", self.entries.push_local_entries)
        self._tasks.spawn("Push local faults", self.faults.push_local_faults)

    def cleanup(self) -> None:
        """Stop every sync activity. Safe to call repeatedly."""
        if self._initialized:
            _logger.info("Stopping sync")
        self._initialized = False
        self.polling.cleanup()
        self.queue.stop()
        self.broadcast.cleanup()
        self.network.clear_online_handlers()
        self.entries.reset()
        self.faults.reset()
        self._store.attach_cloud(None)
        self._store.set_sync_status(SyncStatus.DISCONNECTED)

    def _handle_online(self) -> None:
        if self._store.state.sync_status != SyncStatus.OFFLINE:
            return
        _logger.info("Back online; reconnecting")
        self._store.set_sync_status(SyncStatus.CONNECTING)
        self.polling.reset_to_fast_polling()
        self.polling.start()
        self._tasks.spawn("Push local faults", self.faults.push_local_faults)

    def _handle_offline(self) -> None:
        self._store.set_sync_status(SyncStatus.OFFLINE)

    def _on_poll_result(self, success: bool, has_changes: bool) -> None:
        self.polling.record_result(success, has_changes)

    def reset_to_fast_polling(self) -> None:
        self.polling.reset_to_fast_polling()

    def set_battery_level(self, level: BatteryLevel | str) -> None:
        self.polling.set_battery_level(level)

    def set_tab_hidden(self, hidden: bool) -> None:
        self.polling.set_tab_hidden(hidden)

    # ------------------------------------------------------------------
    # Store cloud hooks
    # ------------------------------------------------------------------

    async def sync_entry(self, entry: Entry) -> bool:
        self.broadcast.broadcast_entry(entry)
        return await self.entries.send_entry(entry)

    async def delete_entry(self, entry: Entry) -> bool:
        return await self.entries.delete_entry(entry)

    async def sync_fault(self, fault: FaultEntry) -> bool:
        self.broadcast.broadcast_fault(fault)
        return await self.faults.send_fault(fault)

    async def delete_fault(self, fault: FaultEntry, approved_by: str | None = None) -> bool:
        return await self.delete_fault_from_cloud(fault, approved_by)

    async def delete_fault_from_cloud(self, fault: FaultEntry, approved_by: str | None = None) -> bool:
        self.broadcast.broadcast_fault_deletion(fault.id)
        return await self.faults.delete_fault(fault.id, fault.device_id, approved_by)

    # ------------------------------------------------------------------
    # Queries and manual triggers
    # ------------------------------------------------------------------

    async def force_refresh(self) -> None:
        """Poll now, outside the regular schedule."""
        await self.entries.poll()

    def get_queue_length(self) -> int:
        return self.queue.queue_length

    def get_last_sync_time(self) -> float:
        return self.entries.last_sync_time

    def broadcast_presence(self) -> None:
        self.broadcast.broadcast_presence()

    @property
    def other_gate_assignments(self) -> list[GateAssignment]:
        return self.faults.other_gate_assignments

    def set_gate_assignment(self, gate_range: tuple[int, int] | None, *, is_ready: bool = False) -> None:
        """Report which gates this judge covers on the next fault poll."""
        self.faults.gate_assignment = gate_range
        self.faults.is_ready = is_ready

    async def check_race_exists(self, race_id: str) -> RaceExistsResponse:
        """Ask the service whether ``race_id`` has data.

        Any failure answers "does not exist" rather than raising.
        """
        try:
            return await entries_api.check_race_exists(self._require_transport(), self._config, race_id)
        except Exception as exc:
            _logger.warning("Race existence check for %s failed: %s", race_id, exc)
            return RaceExistsResponse(exists=False, entry_count=0)

    async def wait_idle(self) -> None:
        """Wait for background pushes started by this service and the store."""
        await self._tasks.wait()
        await self._store.wait_idle()
