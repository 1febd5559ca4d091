"""Events emitted to UI and auth collaborators.

The sync engine never talks to the UI directly. It emits typed events on an
:class:`EventDispatcher`; whoever owns the UI subscribes to the ones it
renders (toasts, the re-authentication prompt, race-deleted dialogs).
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Any

_logger = logging.getLogger(__name__)


class EventType(StrEnum):
    AUTH_EXPIRED = "auth-expired"
    RACE_DELETED = "race-deleted"
    TOAST = "toast"
    CROSS_DEVICE_DUPLICATE = "cross-device-duplicate"
    FAULT_SYNC_ERROR = "fault-sync-error"
    STORAGE_ERROR = "storage-error"


class ToastKind(StrEnum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


EventHandler = Callable[[EventType, dict[str, Any]], None]


class EventDispatcher:
    """Synchronous fan-out of collaborator events.

    Handlers registered for ``None`` receive every event. A failing handler
    is logged and skipped; it never affects the emitter or other handlers.
    """

    def __init__(self) -> None:
        self._handlers: list[tuple[EventType | None, EventHandler]] = []

    def subscribe(self, handler: EventHandler, event_type: EventType | None = None) -> Callable[[], None]:
        """Register *handler* and return a function that removes it."""
        registration = (event_type, handler)
        self._handlers.append(registration)

        def _unsubscribe() -> None:
            try:
                self._handlers.remove(registration)
            except ValueError:
                pass

        return _unsubscribe

    def emit(self, event_type: EventType, payload: dict[str, Any] | None = None) -> None:
        data = payload or {}
        for wanted, handler in list(self._handlers):
            if wanted is not None and wanted != event_type:
                continue
            try:
                handler(event_type, data)
            except Exception:
                _logger.exception("Event handler for %s failed", event_type)

    def toast(self, message: str, kind: ToastKind = ToastKind.INFO, duration: float | None = None) -> None:
        payload: dict[str, Any] = {"message": message, "type": str(kind)}
        if duration is not None:
            payload["duration"] = duration
        self.emit(EventType.TOAST, payload)
