"""Key/value storage backends for persisted slices."""

from __future__ import annotations

import contextlib
import errno
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Protocol

from racesync.exceptions import RaceSyncQuotaExceededError, RaceSyncStorageError

_logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")
_QUOTA_ERRNOS = frozenset({errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)})


class StorageBackend(Protocol):
    """Structural interface for string key/value storage.

    Implementations raise :class:`RaceSyncStorageError` (or
    :class:`RaceSyncQuotaExceededError` when full) on write failure.
    """

    def get_item(self, key: str) -> str | None:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...

    def remove_item(self, key: str) -> None:
        ...


class MemoryStorage:
    """In-memory backend with an optional byte quota.

    ``writes`` records every ``set_item`` key in order, which makes it
    convenient for asserting persistence behaviour.
    """

    def __init__(self, *, quota_bytes: int | None = None) -> None:
        self._items: dict[str, str] = {}
        self._quota_bytes = quota_bytes
        self.writes: list[str] = []

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self._quota_bytes is not None:
            used = sum(len(v.encode()) for k, v in self._items.items() if k != key)
            if used + len(value.encode()) > self._quota_bytes:
                raise RaceSyncQuotaExceededError(f"Storage quota exceeded writing {key}", key=key)
        self._items[key] = value
        self.writes.append(key)

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)


class FileStorage:
    """One UTF-8 JSON document per key under *directory*.

    Writes go to a temporary file first and are moved into place, so a
    crash mid-write never leaves a truncated document behind.
    """

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self._directory = Path(directory)
        self._directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self._directory / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    def get_item(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise RaceSyncStorageError(f"Cannot read {key}: {exc}", key=key) from exc

    def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self._directory, prefix=".tmp-")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(value)
                os.replace(tmp_name, path)
            except BaseException:
                with contextlib.suppress(FileNotFoundError):
                    os.unlink(tmp_name)
                raise
        except OSError as exc:
            if exc.errno in _QUOTA_ERRNOS:
                raise RaceSyncQuotaExceededError(f"Storage full writing {key}", key=key) from exc
            raise RaceSyncStorageError(f"Cannot write {key}: {exc}", key=key) from exc
        _logger.debug("Wrote %d chars to %s", len(value), path)

    def remove_item(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise RaceSyncStorageError(f"Cannot remove {key}: {exc}", key=key) from exc

