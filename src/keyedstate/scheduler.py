"""Delayed-call schedulers used for idle release.

A scheduler only has to support call_later(delay, fn) returning a handle
with cancel(). ThreadingScheduler runs on wall-clock daemon timers;
ManualScheduler runs on a virtual clock advanced by the caller.
"""

from __future__ import annotations

import heapq
import itertools
import threading
from typing import Callable, Protocol

__all__ = ["Handle", "Scheduler", "ThreadingScheduler", "ManualScheduler"]


class Handle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, fn: Callable[[], None]) -> Handle: ...


class ThreadingScheduler:
    """Runs callbacks on daemon threading.Timer threads."""

    def call_later(self, delay: float, fn: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(delay, fn)
        timer.daemon = True
        timer.start()
        return timer

    def __repr__(self) -> str:
        return "ThreadingScheduler()"


class _ManualHandle:
    __slots__ = ("due", "fn", "cancelled")

    def __init__(self, due: float, fn: Callable[[], None]) -> None:
        self.due = due
        self.fn = fn
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Virtual-clock scheduler. Nothing runs until advance() is called.

    Usage:
        sched = ManualScheduler()
        sched.call_later(0.25, lambda: print("fired"))
        sched.advance(0.1)   # nothing
        sched.advance(0.15)  # fired
    """

    def __init__(self) -> None:
        self._now = 0.0
        self._queue: list[tuple[float, int, _ManualHandle]] = []
        self._seq = itertools.count()

    @property
    def now(self) -> float:
        return self._now

    @property
    def pending(self) -> int:
        """Number of scheduled, not yet cancelled callbacks."""
        return sum(1 for _, _, handle in self._queue if not handle.cancelled)

    def call_later(self, delay: float, fn: Callable[[], None]) -> _ManualHandle:
        handle = _ManualHandle(self._now + delay, fn)
        heapq.heappush(self._queue, (handle.due, next(self._seq), handle))
        return handle

    def advance(self, seconds: float) -> int:
        """Move the clock forward, running everything that comes due.

        Callbacks run in due-time order; ties run in scheduling order.
        Callbacks scheduled while advancing run too if they fall due before
        the new time. Returns the number of callbacks run.
        """
        target = self._now + seconds
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = due
            handle.fn()
            ran += 1
        self._now = target
        return ran

    def __repr__(self) -> str:
        return f"ManualScheduler(now={self._now}, pending={self.pending})"
