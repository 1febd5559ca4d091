"""Cross-tab propagation over a named broadcast channel.

The channel itself is supplied by the host through a factory. Without one
(no platform channel API), the manager stays a silent no-op.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from collections.abc import Callable
from typing import Any, Literal, Protocol

from pydantic import BaseModel, ConfigDict, ValidationError

from racesync._constants import has_full_photo_data
from racesync.config import RaceSyncConfig
from racesync.models.entry import Entry, validate_entry
from racesync.models.fault import FaultEntry, validate_fault
from racesync.models.sync import DeviceInfo
from racesync.state.store import Store

_logger = logging.getLogger(__name__)

MessageKind = Literal["entry", "presence", "fault", "fault-deleted"]


class BroadcastMessage(BaseModel):
    """Envelope posted on the channel: ``{"type": ..., "data": ...}``."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    type: MessageKind
    data: Any = None


class BroadcastChannel(Protocol):
    def post_message(self, message: dict[str, Any]) -> None:
        ...

    def close(self) -> None:
        ...


ChannelFactory = Callable[[str, Callable[[Any], None]], BroadcastChannel]
"""``(channel_name, on_message) -> channel``."""


class _HubChannel:
    def __init__(self, hub: InProcessChannelHub, name: str, on_message: Callable[[Any], None]) -> None:
        self._hub = hub
        self.name = name
        self.on_message = on_message
        self.closed = False

    def post_message(self, message: dict[str, Any]) -> None:
        if self.closed:
            raise RuntimeError(f"Channel {self.name!r} is closed")
        self._hub.deliver(self, message)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._hub.detach(self)


class InProcessChannelHub:
    """Synchronous in-process stand-in for a platform broadcast channel.

    Messages posted on one channel reach every *other* open channel with the
    same name, never the sender. Use :meth:`factory` as a
    :data:`ChannelFactory`.
    """

    def __init__(self) -> None:
        self._channels: dict[str, list[_HubChannel]] = defaultdict(list)

    def factory(self, name: str, on_message: Callable[[Any], None]) -> BroadcastChannel:
        channel = _HubChannel(self, name, on_message)
        self._channels[name].append(channel)
        return channel

    def open_channels(self, name: str) -> int:
        return len(self._channels.get(name, ()))

    def deliver(self, sender: _HubChannel, message: dict[str, Any]) -> None:
        for channel in list(self._channels.get(sender.name, ())):
            if channel is sender:
                continue
            try:
                channel.on_message(message)
            except Exception:
                _logger.exception("Broadcast receiver on %s failed", sender.name)

    def detach(self, channel: _HubChannel) -> None:
        members = self._channels.get(channel.name)
        if members and channel in members:
            members.remove(channel)
            if not members:
                del self._channels[channel.name]


class BroadcastManager:
    """Posts local changes to sibling tabs and applies theirs to the store."""

    def __init__(
        self,
        store: Store,
        config: RaceSyncConfig,
        channel_factory: ChannelFactory | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._config = config
        self._channel_factory = channel_factory
        self._clock = clock
        self._channel: BroadcastChannel | None = None

    @property
    def is_open(self) -> bool:
        return self._channel is not None

    def channel_name(self, race_id: str) -> str:
        return f"{self._config.channel_prefix}{race_id}"

    def initialize(self, race_id: str) -> None:
        if self._channel_factory is None:
            _logger.info("No broadcast channel available; cross-tab sync disabled")
            return
        self.cleanup()
        try:
            self._channel = self._channel_factory(self.channel_name(race_id), self._on_message)
        except Exception as exc:
            _logger.warning("Broadcast channel initialization failed: %s", exc)
            self._channel = None

    def _on_message(self, raw: Any) -> None:
        try:
            message = BroadcastMessage.model_validate(raw)
        except ValidationError:
            _logger.warning("Dropping malformed broadcast message")
            return
        try:
            self._apply(message)
        except Exception:
            _logger.exception("Error processing %s broadcast", message.type)

    def _apply(self, message: BroadcastMessage) -> None:
        store = self._store
        if message.type == "entry":
            entry = validate_entry(message.data)
            if entry is None:
                _logger.warning("Dropping invalid broadcast entry")
                return
            store.merge_cloud_entries([entry])
        elif message.type == "presence":
            try:
                device = DeviceInfo.model_validate(message.data)
            except ValidationError:
                _logger.warning("Dropping invalid presence broadcast")
                return
            store.add_connected_device(device)
        elif message.type == "fault":
            fault = validate_fault(message.data)
            if fault is None:
                _logger.warning("Dropping invalid broadcast fault")
                return
            store.merge_faults_from_cloud([fault])
        elif message.type == "fault-deleted":
            if isinstance(message.data, str) and message.data:
                store.remove_fault(message.data)

    def _post(self, kind: MessageKind, data: Any) -> None:
        channel = self._channel
        if channel is None:
            return
        try:
            channel.post_message({"type": kind, "data": data})
        except Exception as exc:
            _logger.error("%s broadcast failed: %s", kind, exc)

    def broadcast_entry(self, entry: Entry) -> None:
        if has_full_photo_data(entry.photo):
            entry = entry.model_copy(update={"photo": None})
        self._post("entry", entry.to_wire())

    def broadcast_presence(self) -> None:
        state = self._store.state
        self._post(
            "presence",
            {"id": state.device_id, "name": state.device_name, "lastSeen": int(self._clock() * 1000)},
        )

    def broadcast_fault(self, fault: FaultEntry) -> None:
        self._post("fault", fault.to_wire())

    def broadcast_fault_deletion(self, fault_id: str) -> None:
        self._post("fault-deleted", fault_id)

    def cleanup(self) -> None:
        channel, self._channel = self._channel, None
        if channel is None:
            return
        try:
            channel.close()
        except Exception:
            _logger.debug("Closing broadcast channel failed", exc_info=True)
