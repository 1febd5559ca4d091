"""Client configuration for racesync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from racesync._constants import BASE_URL, FAULTS_PATH, SYNC_PATH
from racesync.exceptions import RaceSyncConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env_key: str, value: str, kind: type[int] | type[float]) -> Any:
    try:
        return kind(value)
    except ValueError as exc:
        raise RaceSyncConfigError(f"{env_key} must be a number, got {value!r}") from exc


def _env_intervals(value: str | None) -> tuple[float, ...] | None:
    if value is None:
        return None
    parts = [part.strip() for part in value.split(",") if part.strip()]
    if not parts:
        return None
    return tuple(_env_number("RACESYNC_POLL_INTERVALS_IDLE", part, float) for part in parts)


@dataclasses.dataclass(frozen=True)
class PollingProfile:
    """Adaptive polling ladder (all values in seconds).

    ``base`` is used while changes keep arriving; after ``idle_threshold``
    consecutive idle polls the controller steps through ``idle_intervals``.
    """

    base: float = 15.0
    idle_intervals: tuple[float, ...] = (15.0, 20.0, 30.0, 45.0, 60.0)
    idle_threshold: int = 6


@dataclasses.dataclass(frozen=True)
class RaceSyncConfig:
    """Client configuration.

    Parameters
    ----------
    base_url : str
        Root URL of the remote coordination service.
    sync_path : str
        Path of the entry sync endpoint (GET poll, POST send, DELETE).
    faults_path : str
        Path of the fault sync endpoint.
    request_timeout : float
        Per-request timeout in seconds.
    polling : PollingProfile
        Ladder used on ordinary connections.
    metered_polling : PollingProfile
        Ladder used on metered (cellular / data-saver) connections.
    low_battery_polling : PollingProfile
        Ladder used when the host reports a low battery on an unmetered link.
    critical_battery_polling : PollingProfile
        Ladder used when the host reports a critical battery. Takes
        precedence over the metered ladder.
    poll_interval_hidden : float
        Fixed interval while the host reports the app as hidden.
    poll_interval_error : float
        Interval used after more than two consecutive poll failures.
    poll_interval_offline : float
        Interval used while the network monitor reports ``offline``.
    queue_process_interval : float
        Seconds between sync queue drains.
    max_retries : int
        Sync queue items are dropped after this many failed sends.
    retry_backoff_base : float
        Base delay for exponential retry backoff (``base * 2**retry_count``).
    persist_debounce : float
        Quiet period before dirty slices are written to storage.
    notification_queue_limit : int
        Maximum number of queued state notifications.
    storage_prefix : str
        Prefix for every persisted storage key.
    channel_prefix : str
        Prefix for the cross-tab broadcast channel name.
    trace_requests : bool
        Log redacted request and response bodies at DEBUG level.
    """

    base_url: str = BASE_URL
    sync_path: str = SYNC_PATH
    faults_path: str = FAULTS_PATH
    request_timeout: float = 8.0
    polling: PollingProfile = dataclasses.field(default_factory=PollingProfile)
    metered_polling: PollingProfile = dataclasses.field(default_factory=PollingProfile)
    low_battery_polling: PollingProfile = dataclasses.field(
        default_factory=lambda: PollingProfile(
            base=30.0, idle_intervals=(30.0, 45.0, 60.0, 90.0, 120.0), idle_threshold=3
        )
    )
    critical_battery_polling: PollingProfile = dataclasses.field(
        default_factory=lambda: PollingProfile(base=30.0, idle_intervals=(30.0, 60.0), idle_threshold=3)
    )
    poll_interval_hidden: float = 30.0
    poll_interval_error: float = 30.0
    poll_interval_offline: float = 60.0
    queue_process_interval: float = 10.0
    max_retries: int = 5
    retry_backoff_base: float = 2.0
    persist_debounce: float = 0.1
    notification_queue_limit: int = 100
    storage_prefix: str = "raceSync"
    channel_prefix: str = "race-sync-"
    trace_requests: bool = False

    @classmethod
    def from_env(cls, **overrides: Any) -> RaceSyncConfig:
        """Create configuration from environment variables.

        Reads optional ``RACESYNC_*`` variables. Explicit keyword arguments
        override environment values.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "RACESYNC_BASE_URL": "base_url",
            "RACESYNC_SYNC_PATH": "sync_path",
            "RACESYNC_FAULTS_PATH": "faults_path",
            "RACESYNC_STORAGE_PREFIX": "storage_prefix",
            "RACESYNC_CHANNEL_PREFIX": "channel_prefix",
        }
        _ENV_FLOAT_MAP = {
            "RACESYNC_REQUEST_TIMEOUT": "request_timeout",
            "RACESYNC_POLL_INTERVAL_ERROR": "poll_interval_error",
            "RACESYNC_POLL_INTERVAL_OFFLINE": "poll_interval_offline",
            "RACESYNC_POLL_INTERVAL_HIDDEN": "poll_interval_hidden",
            "RACESYNC_QUEUE_PROCESS_INTERVAL": "queue_process_interval",
            "RACESYNC_RETRY_BACKOFF_BASE": "retry_backoff_base",
            "RACESYNC_PERSIST_DEBOUNCE": "persist_debounce",
        }
        _ENV_INT_MAP = {
            "RACESYNC_MAX_RETRIES": "max_retries",
            "RACESYNC_NOTIFICATION_QUEUE_LIMIT": "notification_queue_limit",
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_number(env_key, val, float)
        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_number(env_key, val, int)

        # Polling ladders can be overridden as a comma-separated list of seconds
        if "polling" not in overrides:
            intervals = _env_intervals(env.get("RACESYNC_POLL_INTERVALS_IDLE"))
            raw_base = env.get("RACESYNC_POLL_INTERVAL_NORMAL")
            if intervals is not None or raw_base is not None:
                default = PollingProfile()
                base = _env_number("RACESYNC_POLL_INTERVAL_NORMAL", raw_base, float) if raw_base else default.base
                config_kwargs["polling"] = PollingProfile(
                    base=base,
                    idle_intervals=intervals or default.idle_intervals,
                    idle_threshold=default.idle_threshold,
                )

        if "trace_requests" not in overrides:
            config_kwargs["trace_requests"] = _env_bool(env.get("RACESYNC_TRACE_REQUESTS"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
