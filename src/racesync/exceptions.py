"""Custom exception hierarchy for racesync."""

from __future__ import annotations

from typing import Any


class RaceSyncError(Exception):
    """Base exception for all racesync errors."""


class RaceSyncConfigError(RaceSyncError):
    """Invalid or missing configuration."""


class RaceSyncValidationError(RaceSyncError):
    """A persisted or remote payload failed validation."""


class RaceSyncStorageError(RaceSyncError):
    """A storage backend could not read or write a key."""

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class RaceSyncQuotaExceededError(RaceSyncStorageError):
    """The storage backend refused a write because it is full."""


class RaceSyncTransportError(RaceSyncError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
        payload: dict[str, Any] | None = None,
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        self.payload = payload or {}
        super().__init__(message)


class RaceSyncConnectionError(RaceSyncTransportError):
    """The request never reached the server (DNS, refused, reset, offline)."""


class RaceSyncTimeoutError(RaceSyncTransportError):
    """The request exceeded the configured timeout."""


class RaceSyncApiError(RaceSyncError):
    """The service answered, but with an application-level failure."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "",
        endpoint: str = "",
    ) -> None:
        self.code = code
        self.endpoint = endpoint
        super().__init__(message)


class RaceSyncAuthenticationError(RaceSyncApiError):
    """The bearer credential was rejected."""


class RaceSyncAuthExpiredError(RaceSyncAuthenticationError):
    """The bearer credential was rejected with an explicit ``expired`` flag.

    This is the only failure that forces re-authentication; a plain 401
    without the flag is treated like any other failed poll.
    """
