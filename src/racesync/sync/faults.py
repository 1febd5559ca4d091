"""Fault poll/push and gate assignment coordination."""

from __future__ import annotations

import logging
from collections.abc import Callable

from racesync._api import faults as faults_api
from racesync._transport import Transport
from racesync.config import RaceSyncConfig
from racesync.events import EventDispatcher, EventType, ToastKind
from racesync.exceptions import RaceSyncAuthenticationError
from racesync.models.fault import FaultEntry
from racesync.models.sync import GateAssignment
from racesync.state.store import Store
from racesync.sync.network import NetworkMonitor

_logger = logging.getLogger(__name__)


def _noop() -> None:
    return None


class FaultSyncService:
    """Keeps faults in step with the service.

    Fault polling piggybacks on the entry poll. Its failures never touch the
    connection status; they only emit ``fault-sync-error``.
    """

    def __init__(
        self,
        store: Store,
        transport: Transport,
        config: RaceSyncConfig,
        *,
        network: NetworkMonitor,
        events: EventDispatcher,
        on_reset_fast_polling: Callable[[], None] = _noop,
    ) -> None:
        self._store = store
        self._transport = transport
        self._config = config
        self._network = network
        self._events = events
        self._on_reset_fast_polling = on_reset_fast_polling
        self._other_assignments: list[GateAssignment] = []
        self.gate_assignment: tuple[int, int] | None = None
        self.is_ready: bool = False
        self._generation = 0

    @property
    def other_gate_assignments(self) -> list[GateAssignment]:
        """Gate coverage reported by the other judges, for display."""
        return list(self._other_assignments)

    def reset(self) -> None:
        self._generation += 1
        self._other_assignments = []

    def _is_stale(self, generation: int, race_id: str) -> bool:
        state = self._store.state
        return generation != self._generation or state.race_id != race_id or not state.sync_active

    def _can_sync(self) -> bool:
        state = self._store.state
        return state.sync_active and self._network.is_online

    async def fetch_faults(self) -> None:
        state = self._store.state
        if not self._can_sync() or state.race_id is None:
            return
        generation = self._generation
        race_id = state.race_id
        try:
            response = await faults_api.fetch_faults(
                self._transport,
                self._config,
                race_id=state.race_id,
                device_id=state.device_id,
                device_name=state.device_name,
                gate_range=self.gate_assignment,
                is_ready=self.is_ready if self.gate_assignment is not None else None,
            )
        except RaceSyncAuthenticationError:
            # Credential problems are handled by the entry poll.
            return
        except Exception as exc:
            if self._is_stale(generation, race_id):
                return
            _logger.error("Fault poll failed: %s", exc)
            self._events.emit(EventType.FAULT_SYNC_ERROR, {"error": str(exc)})
            return

        if self._is_stale(generation, race_id):
            _logger.debug("Discarding fault poll response for race %s", race_id)
            return
        if response.deleted_ids:
            self._store.remove_deleted_cloud_faults(response.deleted_ids)
        if response.faults:
            changed = self._store.merge_faults_from_cloud(response.faults, response.deleted_ids)
            if changed > 0:
                noun = "fault" if changed == 1 else "faults"
                self._events.toast(f"Synced {changed} {noun} from cloud", ToastKind.SUCCESS)
        self._other_assignments = [a for a in response.gate_assignments if a.device_id != state.device_id]

    async def send_fault(self, fault: FaultEntry) -> bool:
        state = self._store.state
        if not self._can_sync() or state.race_id is None:
            return False
        try:
            await faults_api.send_fault(
                self._transport,
                self._config,
                race_id=state.race_id,
                fault=fault.to_wire(),
                device_id=state.device_id,
                device_name=state.device_name,
                gate_range=self.gate_assignment,
            )
        except Exception as exc:
            _logger.error("Sending fault %s failed: %s", fault.id, exc)
            return False

        current = self._store.get_fault(fault.id)
        # A newer local change made while the request was in flight stays unsynced.
        if current is not None and current.current_version == fault.current_version and (
            current.marked_for_deletion == fault.marked_for_deletion
        ):
            self._store.mark_fault_synced(fault.id)
        self._on_reset_fast_polling()
        return True

    async def delete_fault(
        self,
        fault_id: str,
        fault_device_id: str | None = None,
        approved_by: str | None = None,
    ) -> bool:
        state = self._store.state
        if not self._can_sync() or state.race_id is None:
            return False
        try:
            await faults_api.delete_fault(
                self._transport,
                self._config,
                race_id=state.race_id,
                fault_id=fault_id,
                device_id=fault_device_id or state.device_id,
                device_name=state.device_name,
                approved_by=approved_by or state.device_name,
            )
        except Exception as exc:
            _logger.error("Deleting fault %s remotely failed: %s", fault_id, exc)
            self._events.toast("Could not delete fault from cloud", ToastKind.ERROR)
            return False
        return True

    async def push_local_faults(self) -> int:
        state = self._store.state
        if not state.sync_active:
            return 0
        pushed = 0
        for fault in state.faults:
            if fault.device_id == state.device_id and fault.synced_at is None:
                if await self.send_fault(fault):
                    pushed += 1
        return pushed
