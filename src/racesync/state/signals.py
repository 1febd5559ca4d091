"""Fine-grained reactive cells.

A :class:`Signal` holds a value and remembers which effects read it. An
effect is any callable registered with :func:`effect`: it runs once
immediately, and again every time one of the signals it read is written.

Dependents are re-run synchronously after the write, in the order the
effects were first registered. Writes made from inside an effect are
allowed; keeping such chains finite is up to the caller.
"""

from __future__ import annotations

import contextlib
import itertools
import logging
from collections.abc import Callable, Iterator
from contextvars import ContextVar
from typing import Any, Generic, TypeVar

_logger = logging.getLogger(__name__)

T = TypeVar("T")

_sequence = itertools.count()
_active: ContextVar[_Effect | None] = ContextVar("racesync_active_effect", default=None)


class _Effect:
    __slots__ = ("_fn", "_sources", "disposed", "order")

    def __init__(self, fn: Callable[[], Any]) -> None:
        self._fn = fn
        self._sources: set[Signal[Any]] = set()
        self.disposed = False
        self.order = next(_sequence)

    def track(self, source: Signal[Any]) -> None:
        self._sources.add(source)
        source._dependents.add(self)

    def _untrack_all(self) -> None:
        for source in self._sources:
            source._dependents.discard(self)
        self._sources.clear()

    def run(self) -> None:
        if self.disposed:
            return
        # Dependencies are re-collected on every run so branches that stop
        # reading a signal also stop reacting to it.
        self._untrack_all()
        token = _active.set(self)
        try:
            self._fn()
        finally:
            _active.reset(token)

    def dispose(self) -> None:
        self.disposed = True
        self._untrack_all()


class _Batch:
    def __init__(self) -> None:
        self.depth = 0
        self.pending: dict[_Effect, None] = {}


_batch: ContextVar[_Batch | None] = ContextVar("racesync_signal_batch", default=None)


def _run_in_order(effects: Iterator[_Effect] | list[_Effect]) -> None:
    for dependent in sorted(effects, key=lambda e: e.order):
        dependent.run()


class Signal(Generic[T]):
    """A reactive value cell."""

    __slots__ = ("_value", "_dependents", "name")

    def __init__(self, value: T, *, name: str = "") -> None:
        self._value = value
        self._dependents: set[_Effect] = set()
        self.name = name

    @property
    def value(self) -> T:
        current = _active.get()
        if current is not None:
            current.track(self)
        return self._value

    @value.setter
    def value(self, new_value: T) -> None:
        if new_value is self._value:
            return
        self._value = new_value
        if not self._dependents:
            return
        batch = _batch.get()
        if batch is not None:
            for dependent in self._dependents:
                batch.pending[dependent] = None
            return
        _run_in_order(list(self._dependents))

    def peek(self) -> T:
        """Read the value without registering a dependency."""
        return self._value

    def __repr__(self) -> str:
        label = f" {self.name}" if self.name else ""
        return f"<Signal{label} {self._value!r}>"


def effect(fn: Callable[[], Any]) -> Callable[[], None]:
    """Run *fn* now and after every write to a signal it read.

    Returns a disposer that stops further runs.
    """
    runner = _Effect(fn)
    runner.run()
    return runner.dispose


@contextlib.contextmanager
def batch() -> Iterator[None]:
    """Defer effect runs until the outermost ``batch()`` exits.

    An effect depending on several written signals runs once, not once per
    write.
    """
    current = _batch.get()
    if current is not None:
        current.depth += 1
        try:
            yield
        finally:
            current.depth -= 1
        return

    state = _Batch()
    token = _batch.set(state)
    try:
        yield
    finally:
        _batch.reset(token)
    pending = list(state.pending)
    if pending:
        _logger.debug("Flushing %d deferred effects", len(pending))
        _run_in_order(pending)
