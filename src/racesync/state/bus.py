"""Bounded, reentrancy-safe state notification fan-out."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from typing import Generic, TypeVar

_logger = logging.getLogger(__name__)

S = TypeVar("S")

Listener = Callable[[S, frozenset[str]], None]


class NotificationBus(Generic[S]):
    """Deliver ``(state, changed_keys)`` to subscribers in subscription order.

    Notifications raised while a delivery is in progress are queued and
    drained FIFO by the outer call. The queue holds at most ``limit``
    pending notifications; on overflow the *oldest* pending one is dropped
    so the most recent state always gets delivered.

    Parameters
    ----------
    limit : int
        Maximum number of pending notifications.
    on_listener_error : callable, optional
        Called with the exception whenever a listener raises.
    """

    def __init__(
        self,
        limit: int = 100,
        *,
        on_listener_error: Callable[[BaseException], None] | None = None,
    ) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self._limit = limit
        self._listeners: list[Listener[S]] = []
        self._pending: deque[tuple[S, frozenset[str]]] = deque()
        self._dispatching = False
        self._on_listener_error = on_listener_error
        self.dropped_count = 0
        self.failure_count = 0
        self.max_pending = 0

    def subscribe(self, listener: Listener[S]) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return _unsubscribe

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def notify(self, state: S, changed_keys: frozenset[str] | set[str] | tuple[str, ...]) -> None:
        self._pending.append((state, frozenset(changed_keys)))
        if len(self._pending) > self._limit:
            self._pending.popleft()
            self.dropped_count += 1
        self.max_pending = max(self.max_pending, len(self._pending))

        if self._dispatching:
            return

        self._dispatching = True
        try:
            while self._pending:
                current_state, keys = self._pending.popleft()
                self._deliver(current_state, keys)
        finally:
            self._dispatching = False

    def _deliver(self, state: S, keys: frozenset[str]) -> None:
        for listener in list(self._listeners):
            try:
                listener(state, keys)
            except Exception as exc:
                self.failure_count += 1
                _logger.exception("State listener failed (keys=%s)", sorted(keys))
                self._report(exc)

    def _report(self, exc: BaseException) -> None:
        if self._on_listener_error is None:
            return
        try:
            self._on_listener_error(exc)
        except Exception:
            _logger.debug("Listener error callback failed", exc_info=True)

    def clear(self) -> None:
        self._listeners.clear()
        self._pending.clear()
