"""Offline-first synchronization with the remote coordination service."""

from racesync.sync.broadcast import BroadcastManager, BroadcastMessage, InProcessChannelHub
from racesync.sync.entries import EntrySyncService, classify_sync_error
from racesync.sync.faults import FaultSyncService
from racesync.sync.network import ConnectionQuality, NetworkMonitor
from racesync.sync.polling import BatteryLevel, PollingController
from racesync.sync.queue import QueueProcessor
from racesync.sync.service import SyncService

__all__ = [
    "BatteryLevel",
    "BroadcastManager",
    "BroadcastMessage",
    "ConnectionQuality",
    "EntrySyncService",
    "FaultSyncService",
    "InProcessChannelHub",
    "NetworkMonitor",
    "PollingController",
    "QueueProcessor",
    "SyncService",
    "classify_sync_error",
]
