"""racesync - offline-first race timing state and sync engine."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("racesync")
except PackageNotFoundError:
    __version__ = "0+local"
from racesync.config import PollingProfile, RaceSyncConfig
from racesync.events import EventDispatcher, EventType, ToastKind
from racesync.exceptions import (
    RaceSyncApiError,
    RaceSyncAuthenticationError,
    RaceSyncAuthExpiredError,
    RaceSyncConfigError,
    RaceSyncConnectionError,
    RaceSyncError,
    RaceSyncQuotaExceededError,
    RaceSyncStorageError,
    RaceSyncTimeoutError,
    RaceSyncTransportError,
    RaceSyncValidationError,
)
from racesync.models import (
    DeviceInfo,
    Entry,
    EntryStatus,
    FaultEntry,
    FaultType,
    Language,
    Settings,
    SyncStatus,
    TimingPoint,
)
from racesync.photos import MemoryPhotoCache, PhotoCache
from racesync.session import CredentialStore
from racesync.state import FileStorage, MemoryStorage, Store, StoreState
from racesync.sync import BatteryLevel, InProcessChannelHub, NetworkMonitor, SyncService

__all__ = [
    "__version__",
    "BatteryLevel",
    "CredentialStore",
    "DeviceInfo",
    "Entry",
    "EntryStatus",
    "EventDispatcher",
    "EventType",
    "FaultEntry",
    "FaultType",
    "FileStorage",
    "InProcessChannelHub",
    "Language",
    "MemoryPhotoCache",
    "MemoryStorage",
    "NetworkMonitor",
    "PhotoCache",
    "PollingProfile",
    "RaceSyncApiError",
    "RaceSyncAuthExpiredError",
    "RaceSyncAuthenticationError",
    "RaceSyncConfig",
    "RaceSyncConfigError",
    "RaceSyncConnectionError",
    "RaceSyncError",
    "RaceSyncQuotaExceededError",
    "RaceSyncStorageError",
    "RaceSyncTimeoutError",
    "RaceSyncTransportError",
    "RaceSyncValidationError",
    "Settings",
    "Store",
    "StoreState",
    "SyncService",
    "SyncStatus",
    "TimingPoint",
]
