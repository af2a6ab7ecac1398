# src/manuscript/scheduling.py
"""
Cancellable deferred work on a single-threaded, cooperative event loop.

Two kinds of deferred work exist in the engine: debounced history pushes and
debounced (or space-triggered) auto-link rescans. Both follow "latest wins":
scheduling again cancels whatever was pending. ``DeferredTask`` implements that
policy on top of any ``Scheduler``:

- ``ManualScheduler``: virtual/monotonic clock driven by ``run_due()`` /
  ``advance(ms)``; used by tests, the CLI and the Flask adapter.
- ``TkScheduler`` (in app.py): backed by ``widget.after`` / ``after_cancel``.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Protocol

log = logging.getLogger(__name__)


class Scheduler(Protocol):
    def call_later(self, delay_ms: int, callback: Callable[[], Any]) -> Any: ...
    def cancel(self, handle: Any) -> None: ...


@dataclass(order=True)
class _Timer:
    deadline: float
    seq: int
    callback: Callable[[], Any] = field(compare=False)
    cancelled: bool = field(default=False, compare=False)


class ManualScheduler:
    """
    Timers fire only when the host pumps the loop with ``run_due()``.

    With ``clock=None`` time is fully virtual and only ``advance(ms)`` moves it;
    pass ``time.monotonic`` to follow wall time (web adapter, CLI).
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None) -> None:
        self._clock = clock
        self._skew_ms = 0.0
        self._heap: List[_Timer] = []
        self._seq = itertools.count()

    def now_ms(self) -> float:
        base = self._clock() * 1000.0 if self._clock else 0.0
        return base + self._skew_ms

    def call_later(self, delay_ms: int, callback: Callable[[], Any]) -> _Timer:
        timer = _Timer(self.now_ms() + max(0, int(delay_ms)), next(self._seq), callback)
        heapq.heappush(self._heap, timer)
        return timer

    def cancel(self, handle: Any) -> None:
        if isinstance(handle, _Timer):
            handle.cancelled = True

    @property
    def pending(self) -> int:
        return sum(1 for t in self._heap if not t.cancelled)

    def run_due(self) -> int:
        """Run every timer whose deadline has passed; returns how many ran."""
        ran = 0
        now = self.now_ms()
        while self._heap and self._heap[0].deadline <= now:
            timer = heapq.heappop(self._heap)
            if timer.cancelled:
                continue
            ran += 1
            try:
                timer.callback()
            except Exception:
                log.exception("deferred callback failed")
        return ran

    def advance(self, ms: float) -> int:
        self._skew_ms += ms
        return self.run_due()

    def clear(self) -> None:
        for timer in self._heap:
            timer.cancelled = True
        self._heap.clear()


def monotonic_scheduler() -> ManualScheduler:
    return ManualScheduler(clock=time.monotonic)


class DeferredTask:
    """
    One kind of deferred work with "reschedule cancels prior" semantics.

    ``schedule(*args)`` arms (or re-arms) the timer; only the arguments of the
    last call before it fires are used. ``flush()`` runs a pending call now.
    """

    def __init__(self, scheduler: Scheduler, delay_ms: int, callback: Callable[..., Any], *, name: str = "task") -> None:
        self._scheduler = scheduler
        self.delay_ms = int(delay_ms)
        self._callback = callback
        self._name = name
        self._handle: Any = None
        self._args: tuple = ()
        self._kwargs: dict = {}

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, *args: Any, delay_ms: Optional[int] = None, **kwargs: Any) -> None:
        self.cancel()
        self._args, self._kwargs = args, kwargs
        delay = self.delay_ms if delay_ms is None else int(delay_ms)
        self._handle = self._scheduler.call_later(delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._scheduler.cancel(self._handle)
            self._handle = None

    def flush(self) -> bool:
        if self._handle is None:
            return False
        self._scheduler.cancel(self._handle)
        self._fire()
        return True

    def _fire(self) -> None:
        self._handle = None
        args, kwargs = self._args, self._kwargs
        self._args, self._kwargs = (), {}
        try:
            self._callback(*args, **kwargs)
        except Exception:
            log.exception("deferred %s failed", self._name)
