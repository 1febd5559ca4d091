"""Dirty-tracked, debounced persistence of state slices.

Each slice has its own storage key and serializer. Marking a slice dirty
(re)starts a single quiet-period timer; when it fires only the dirty slices
are written. Write failures stay inside :meth:`PersistedSliceStore.flush`:
they are logged, reported, and the slice stays dirty for the next flush.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from collections.abc import Callable, Iterable
from typing import Any

from racesync.state.storage import StorageBackend

_logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class SliceSpec:
    """How one slice is stored.

    ``load`` receives the decoded JSON document and must raise (any
    exception) when it is not usable; the slice then falls back to
    ``default()``.
    """

    name: str
    key: str
    default: Callable[[], Any]
    dump: Callable[[Any], Any]
    load: Callable[[Any], Any]


class PersistedSliceStore:
    def __init__(
        self,
        storage: StorageBackend,
        specs: Iterable[SliceSpec],
        read: Callable[[str], Any],
        *,
        prefix: str,
        debounce: float = 0.1,
        on_error: Callable[[str, BaseException], None] | None = None,
    ) -> None:
        self._storage = storage
        self._specs: dict[str, SliceSpec] = {spec.name: spec for spec in specs}
        self._read = read
        self._prefix = prefix
        self._debounce = debounce
        self._on_error = on_error
        self._dirty: set[str] = set()
        self.defaulted: set[str] = set()
        self._timer: asyncio.TimerHandle | None = None

    def storage_key(self, name: str) -> str:
        return f"{self._prefix}:{self._specs[name].key}"

    @property
    def dirty(self) -> frozenset[str]:
        return frozenset(self._dirty)

    def load_all(self) -> dict[str, Any]:
        """Load every slice independently; a bad slice resets to its default."""
        loaded: dict[str, Any] = {}
        for name, spec in self._specs.items():
            loaded[name] = self._load_one(spec)
        return loaded

    def _load_one(self, spec: SliceSpec) -> Any:
        key = self.storage_key(spec.name)
        try:
            raw = self._storage.get_item(key)
        except Exception:
            _logger.warning("Cannot read %s, using default", key, exc_info=True)
            self.defaulted.add(spec.name)
            return spec.default()
        if raw is None:
            self.defaulted.add(spec.name)
            return spec.default()
        try:
            return spec.load(json.loads(raw))
        except Exception as exc:
            _logger.warning("Discarding invalid stored %s: %s", key, exc)
            self.defaulted.add(spec.name)
            return spec.default()

    def mark_dirty(self, name: str) -> None:
        if name not in self._specs:
            return
        self._dirty.add(name)
        self._schedule()

    def _schedule(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: writes wait for an explicit flush().
            return
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self._debounce, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        self.flush()

    def flush(self) -> list[str]:
        """Write dirty slices now. Returns the names that were written."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        written: list[str] = []
        for name in [n for n in self._specs if n in self._dirty]:
            spec = self._specs[name]
            key = self.storage_key(name)
            try:
                document = json.dumps(spec.dump(self._read(name)), separators=(",", ":"))
                self._storage.set_item(key, document)
            except Exception as exc:
                _logger.error("Persisting %s failed: %s", key, exc, exc_info=True)
                self._report(key, exc)
                continue
            self._dirty.discard(name)
            written.append(name)
        return written

    def _report(self, key: str, exc: BaseException) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(key, exc)
        except Exception:
            _logger.debug("Storage error callback failed", exc_info=True)

    def close(self) -> None:
        """Flush pending writes and stop the timer."""
        self.flush()
