"""Entry poll/push against the coordination service.

Drives the connection-status state machine::

    disconnected -> connecting -> connected <-> syncing
                        |             |
                        +-> error / offline (cleared by the next good poll)

A poll shows ``syncing`` only when the previous status was ``connected``,
so a failing connection never flashes false progress.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence

from racesync._api import entries as entries_api
from racesync._constants import PHOTO_MARKER, has_full_photo_data, is_photo_marker
from racesync._transport import Transport
from racesync.config import RaceSyncConfig
from racesync.events import EventDispatcher, EventType, ToastKind
from racesync.exceptions import RaceSyncAuthExpiredError, RaceSyncConnectionError
from racesync.models.entry import Entry, validate_entry
from racesync.models.sync import PollResponse, RaceDeletedNotice, SendResponse, SyncStatus
from racesync.photos import PhotoCache
from racesync.session import CredentialStore
from racesync.state.store import Store
from racesync.sync.network import NetworkMonitor

_logger = logging.getLogger(__name__)

_OFFLINE_MARKERS = ("failed to fetch", "networkerror", "network error")


def classify_sync_error(exc: BaseException) -> SyncStatus:
    """Map a poll failure to ``offline`` (never reached the server) or ``error``."""
    if isinstance(exc, (RaceSyncConnectionError, ConnectionError)):
        return SyncStatus.OFFLINE
    message = str(exc).lower()
    if any(marker in message for marker in _OFFLINE_MARKERS):
        return SyncStatus.OFFLINE
    return SyncStatus.ERROR


def _noop_result(_success: bool, _has_changes: bool = False) -> None:
    return None


def _noop() -> None:
    return None


class EntrySyncService:
    """Polls remote entries and pushes local ones.

    Parameters
    ----------
    on_poll_result : callable, optional
        ``(success, has_changes)`` after every poll; feeds the polling backoff.
    on_reset_fast_polling : callable, optional
        Called after a successful send.
    on_cleanup : callable, optional
        Stops all sync activity; invoked on credential expiry and race deletion.
    fetch_faults : callable, optional
        Awaited after every successful entry poll.
    """

    def __init__(
        self,
        store: Store,
        transport: Transport,
        config: RaceSyncConfig,
        *,
        network: NetworkMonitor,
        photos: PhotoCache,
        events: EventDispatcher,
        credentials: CredentialStore | None = None,
        on_poll_result: Callable[[bool, bool], None] = _noop_result,
        on_reset_fast_polling: Callable[[], None] = _noop,
        on_cleanup: Callable[[], None] = _noop,
        fetch_faults: Callable[[], Awaitable[None]] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._transport = transport
        self._config = config
        self._network = network
        self._photos = photos
        self._events = events
        self._credentials = credentials
        self._on_poll_result = on_poll_result
        self._on_reset_fast_polling = on_reset_fast_polling
        self._on_cleanup = on_cleanup
        self._fetch_faults = fetch_faults
        self._clock = clock
        self._last_sync: float = 0
        self._inflight: asyncio.Task[None] | None = None
        self._inflight_race: str | None = None
        self._generation = 0

    @property
    def last_sync_time(self) -> float:
        """Epoch ms of the last confirmed poll, ``0`` before the first one."""
        return self._last_sync

    def reset(self) -> None:
        """Forget sync progress. A poll still in flight is discarded when it returns."""
        self._generation += 1
        self._last_sync = 0
        self._inflight = None
        self._inflight_race = None

    def _is_stale(self, generation: int, race_id: str) -> bool:
        state = self._store.state
        return generation != self._generation or state.race_id != race_id or not state.sync_active

    # ------------------------------------------------------------------
    # Poll
    # ------------------------------------------------------------------

    async def poll(self) -> None:
        """Fetch and merge remote entries.

        Concurrent callers for the same race share one in-flight request.
        The request is shielded so cancelling one waiter (e.g. the poll loop
        being stopped by cleanup) never aborts the shared poll. A response
        that arrives after :meth:`reset` or a race change is dropped.
        """
        race_id = self._store.state.race_id
        inflight = self._inflight
        if inflight is None or inflight.done() or self._inflight_race != race_id:
            inflight = asyncio.ensure_future(self._poll_once())
            self._inflight = inflight
            self._inflight_race = race_id
        await asyncio.shield(inflight)

    async def _poll_once(self) -> None:
        state = self._store.state
        if not state.sync_active or state.race_id is None:
            return
        if not self._network.is_online:
            _logger.debug("Skipping poll while offline")
            return

        generation = self._generation
        race_id = state.race_id
        if state.sync_status == SyncStatus.CONNECTED:
            self._store.set_sync_status(SyncStatus.SYNCING)

        try:
            response = await entries_api.fetch_entries(
                self._transport,
                self._config,
                race_id=race_id,
                device_id=state.device_id,
                device_name=state.device_name,
                since=self._last_sync or None,
            )
        except RaceSyncAuthExpiredError:
            if not self._is_stale(generation, race_id):
                self._handle_auth_expired()
            return
        except Exception as exc:
            if self._is_stale(generation, race_id):
                _logger.debug("Ignoring failure of a discarded poll for race %s: %s", race_id, exc)
                return
            status = classify_sync_error(exc)
            _logger.warning("Entry poll failed (%s): %s", status, exc)
            _logger.debug("Entry poll failure detail", exc_info=True)
            self._store.set_sync_status(status)
            self._on_poll_result(False, False)
            return

        if self._is_stale(generation, race_id):
            _logger.debug("Discarding poll response for race %s", race_id)
            return

        if isinstance(response, RaceDeletedNotice):
            self._handle_race_deleted(race_id, response)
            return

        has_changes = await self._apply(response, generation, race_id)
        if has_changes is None:
            return
        self._last_sync = response.last_updated or self._clock() * 1000

        if self._fetch_faults is not None:
            await self._fetch_faults()
        self._on_poll_result(True, has_changes)

    def _handle_auth_expired(self) -> None:
        _logger.warning("Credential expired; stopping sync until re-authentication")
        if self._credentials is not None:
            self._credentials.clear()
        self._store.set_sync_status(SyncStatus.DISCONNECTED)
        self._events.emit(EventType.AUTH_EXPIRED, {})
        self._on_cleanup()

    def _handle_race_deleted(self, race_id: str, notice: RaceDeletedNotice) -> None:
        _logger.warning("Race %s was deleted remotely", race_id)
        self._events.emit(
            EventType.RACE_DELETED,
            {"raceId": race_id, "deletedAt": notice.deleted_at, "message": notice.message},
        )
        self._on_cleanup()

    async def _apply(self, response: PollResponse, generation: int, race_id: str) -> bool | None:
        """Merge a poll response. Returns ``None`` if the poll went stale meanwhile."""
        store = self._store
        remote: list[Entry] = []
        for raw in response.entries:
            entry = validate_entry(raw)
            if entry is None:
                _logger.warning("Skipping invalid entry from poll")
                continue
            remote.append(entry)

        # Photo caching awaits, so it runs before anything is written.
        processed = await self._process_photos(remote) if remote else []
        if self._is_stale(generation, race_id):
            _logger.debug("Discarding poll response for race %s", race_id)
            return None

        store.set_sync_status(SyncStatus.CONNECTED)
        if response.device_count is not None:
            store.set_cloud_device_count(response.device_count)
        if response.highest_bib is not None:
            store.set_cloud_highest_bib(response.highest_bib)

        has_changes = False
        if response.deleted_ids and store.remove_deleted_cloud_entries(response.deleted_ids) > 0:
            has_changes = True

        if processed:
            added = store.merge_cloud_entries(processed, response.deleted_ids)
            if added > 0:
                has_changes = True
                noun = "entry" if added == 1 else "entries"
                self._events.toast(f"Synced {added} {noun} from cloud", ToastKind.SUCCESS)
        return has_changes

    async def _process_photos(self, entries: Sequence[Entry]) -> list[Entry]:
        """Move inline photo data into the photo cache, or strip it.

        Only entries that could actually be merged are touched.
        """
        state = self._store.state
        known = {e.id for e in state.entries}
        processed: list[Entry] = []
        for entry in entries:
            if (
                not has_full_photo_data(entry.photo)
                or entry.device_id == state.device_id
                or entry.id in known
            ):
                processed.append(entry)
                continue
            if not state.settings.sync_photos:
                processed.append(entry.model_copy(update={"photo": None}))
                continue
            try:
                if not await self._photos.has_photo(entry.id):
                    await self._photos.save_photo(entry.id, entry.photo or "")
            except Exception:
                _logger.warning("Photo cache write failed for entry %s", entry.id, exc_info=True)
                processed.append(entry.model_copy(update={"photo": None}))
                continue
            processed.append(entry.model_copy(update={"photo": PHOTO_MARKER}))
        return processed

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    async def _outgoing_payload(self, entry: Entry, sync_photos: bool) -> dict[str, object]:
        photo = entry.photo
        if not sync_photos:
            photo = None
        elif is_photo_marker(photo):
            try:
                photo = await self._photos.get_photo(entry.id)
            except Exception:
                _logger.warning("Photo cache read failed for entry %s", entry.id, exc_info=True)
                photo = None
        return entry.model_copy(update={"photo": photo}).to_wire()

    async def send_entry(self, entry: Entry) -> bool:
        """Push one entry. Returns ``True`` only on confirmed acceptance."""
        state = self._store.state
        if not state.sync_active or state.race_id is None or not self._network.is_online:
            return False

        try:
            payload = await self._outgoing_payload(entry, state.settings.sync_photos)
            response = await entries_api.send_entry(
                self._transport,
                self._config,
                race_id=state.race_id,
                entry=payload,
                device_id=state.device_id,
                device_name=state.device_name,
            )
        except Exception as exc:
            _logger.error("Sending entry %s failed: %s", entry.id, exc)
            return False

        if response.deleted:
            # Leave it unsynced and queued: the race may come back.
            _logger.warning("Race %s no longer exists; entry %s left unsynced", state.race_id, entry.id)
            return False
        if not response.success:
            _logger.warning("Service did not accept entry %s", entry.id)
            return False

        self._apply_send_response(response)
        self._store.mark_entry_synced(entry.id)
        self._store.remove_from_sync_queue(entry.id)
        self._on_reset_fast_polling()
        return True

    def _apply_send_response(self, response: SendResponse) -> None:
        if response.photo_skipped:
            self._events.toast("Photo too large to sync", ToastKind.WARNING)
        duplicate = response.cross_device_duplicate
        if duplicate is not None:
            self._events.toast(
                f"Bib {duplicate.bib} ({duplicate.point}) was also recorded by {duplicate.device_name}",
                ToastKind.WARNING,
                duration=5.0,
            )
            self._events.emit(EventType.CROSS_DEVICE_DUPLICATE, duplicate.to_wire())
        if response.device_count is not None:
            self._store.set_cloud_device_count(response.device_count)
        if response.highest_bib is not None:
            self._store.set_cloud_highest_bib(response.highest_bib)

    async def delete_entry(self, entry: Entry) -> bool:
        state = self._store.state
        if not state.sync_active or state.race_id is None or not self._network.is_online:
            return False
        try:
            await entries_api.delete_entry(
                self._transport,
                self._config,
                race_id=state.race_id,
                entry_id=entry.id,
                device_id=entry.device_id or state.device_id,
                device_name=state.device_name,
            )
        except Exception as exc:
            _logger.error("Deleting entry %s remotely failed: %s", entry.id, exc)
            self._events.toast("Could not delete entry from cloud", ToastKind.ERROR)
            return False
        return True

    async def push_local_entries(self) -> int:
        """Send this device's unsynced entries one at a time."""
        state = self._store.state
        if not state.sync_active:
            return 0
        pushed = 0
        for entry in state.entries:
            if entry.device_id == state.device_id and entry.synced_at is None:
                if await self.send_entry(entry):
                    pushed += 1
        return pushed
