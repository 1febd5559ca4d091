"""Online/offline and metered-connection tracking."""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Any

_logger = logging.getLogger(__name__)


class ConnectionQuality(StrEnum):
    GOOD = "good"
    OFFLINE = "offline"


class NetworkMonitor:
    """Tracks connection quality and whether the link is metered.

    The platform (or the embedding application) feeds it through
    :meth:`set_online` and :meth:`update_connection_info`. Sync services
    consult :attr:`is_online` before every round trip.
    """

    def __init__(self, *, online: bool = True) -> None:
        self._quality = ConnectionQuality.GOOD if online else ConnectionQuality.OFFLINE
        self._metered = False
        self._quality_listeners: list[Callable[[ConnectionQuality], None]] = []
        self._metered_listeners: list[Callable[[bool], None]] = []
        self._on_online: Callable[[], None] | None = None
        self._on_offline: Callable[[], None] | None = None

    @property
    def quality(self) -> ConnectionQuality:
        return self._quality

    @property
    def is_online(self) -> bool:
        return self._quality != ConnectionQuality.OFFLINE

    @property
    def is_metered(self) -> bool:
        return self._metered

    def on_quality_change(self, callback: Callable[[ConnectionQuality], None]) -> Callable[[], None]:
        self._quality_listeners.append(callback)
        return lambda: self._discard(self._quality_listeners, callback)

    def on_metered_change(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        self._metered_listeners.append(callback)
        return lambda: self._discard(self._metered_listeners, callback)

    @staticmethod
    def _discard(listeners: list[Any], callback: Any) -> None:
        try:
            listeners.remove(callback)
        except ValueError:
            pass

    def register_online_handlers(self, on_online: Callable[[], None], on_offline: Callable[[], None]) -> None:
        """Install the handlers run on online/offline transitions."""
        self._on_online = on_online
        self._on_offline = on_offline

    def set_online(self, online: bool) -> None:
        quality = ConnectionQuality.GOOD if online else ConnectionQuality.OFFLINE
        if quality == self._quality:
            return
        self._quality = quality
        _logger.info("Network is now %s", quality)
        self._fire(self._quality_listeners, quality)
        handler = self._on_online if online else self._on_offline
        if handler is not None:
            try:
                handler()
            except Exception:
                _logger.exception("Network %s handler failed", quality)

    def update_connection_info(
        self,
        *,
        save_data: bool = False,
        connection_type: str | None = None,
        effective_type: str | None = None,
    ) -> None:
        """Recompute the metered flag from connection metadata.

        Data-saver mode, cellular links, and 2G-class effective types count
        as metered.
        """
        metered = save_data or connection_type == "cellular" or effective_type in {"slow-2g", "2g"}
        if metered == self._metered:
            return
        self._metered = metered
        self._fire(self._metered_listeners, metered)

    def clear_online_handlers(self) -> None:
        self._on_online = None
        self._on_offline = None

    def _fire(self, listeners: list[Callable[[Any], None]], value: Any) -> None:
        for listener in list(listeners):
            try:
                listener(value)
            except Exception:
                _logger.exception("Network listener failed")

    def cleanup(self) -> None:
        self._on_online = None
        self._on_offline = None
        self._quality_listeners.clear()
        self._metered_listeners.clear()
