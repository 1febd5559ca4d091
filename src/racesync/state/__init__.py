"""Reactive state container and its persistence."""

from racesync.state.bus import NotificationBus
from racesync.state.persistence import PersistedSliceStore, SliceSpec
from racesync.state.signals import Signal, batch, effect
from racesync.state.storage import FileStorage, MemoryStorage, StorageBackend
from racesync.state.store import CloudHooks, ImportResult, Store, StoreState

__all__ = [
    "CloudHooks",
    "FileStorage",
    "ImportResult",
    "MemoryStorage",
    "NotificationBus",
    "PersistedSliceStore",
    "Signal",
    "SliceSpec",
    "StorageBackend",
    "Store",
    "StoreState",
    "batch",
    "effect",
]
