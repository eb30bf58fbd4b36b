"""Value cells — one named value, its subscribers, and idle release.

A write only reaches subscribers when the content fingerprint changes, so
assigning an equal-but-new dict is silent. When the last subscriber or
update handler leaves, a short grace timer is armed; if nobody comes back
before it fires, the value is dropped (unless the cell was ever written
with cache=True).

Each cell holds a re-entrant lock around compare-and-store and the
release check, since release timers may fire on another thread. Fan-out
runs outside the lock on a snapshot of the callbacks.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, TypeVar

from keyedstate.binding import Binding
from keyedstate.hashing import UNSET, fingerprint
from keyedstate.scheduler import Scheduler, ThreadingScheduler

__all__ = ["RELEASE_DELAY", "Subscription", "ValueCell"]

T = TypeVar("T")

Callback = Callable[[T], None]

# Seconds between the cell going idle and its value being dropped.
RELEASE_DELAY = 0.25

logger = logging.getLogger("keyedstate.cell")

_PRIMITIVES = (type(None), bool, int, float, str)


class Subscription:
    """Token returned by ValueCell.subscribe(). dispose() unsubscribes."""

    __slots__ = ("_cell", "_callback", "_disposed")

    def __init__(self, cell: ValueCell, callback: Callback) -> None:
        self._cell = cell
        self._callback = callback
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        self._cell.unsubscribe(self)

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "active"
        return f"Subscription({self._callback!r}, {state})"


class ValueCell(Generic[T]):
    """A single stored value with deduplicated fan-out to subscribers."""

    __slots__ = (
        "name",
        "on_release",
        "_value",
        "_fingerprint",
        "_subscribers",
        "_handlers",
        "_cache",
        "_scheduler",
        "_release_delay",
        "_release_timer",
        "_generation",
        "_lock",
    )

    def __init__(
        self,
        value: T = UNSET,
        *,
        cache: bool = False,
        on_release: Callable[[], None] | None = None,
        scheduler: Scheduler | None = None,
        release_delay: float = RELEASE_DELAY,
        name: str | None = None,
    ) -> None:
        self.name = name
        self.on_release = on_release
        self._value = value
        self._fingerprint: str | None = None
        self._subscribers: dict[Subscription, Callback] = {}
        self._handlers: dict[Callback, None] = {}
        self._cache = cache
        self._scheduler = scheduler if scheduler is not None else ThreadingScheduler()
        self._release_delay = release_delay
        self._release_timer = None
        self._generation = 0
        self._lock = threading.RLock()

    # --- State ---

    @property
    def active(self) -> bool:
        return bool(self._subscribers) or bool(self._handlers)

    def is_active(self) -> bool:
        return self.active

    @property
    def cached(self) -> bool:
        return self._cache

    @property
    def release_pending(self) -> bool:
        return self._release_timer is not None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    # --- Read / write ---

    def get(self, default: T | None = None) -> T | None:
        """Current value, or default if the cell is unset."""
        value = self._value
        return default if value is UNSET else value

    def set(self, value: T, *, cache: bool = False, force: bool = False) -> bool:
        """Store value and notify subscribers if its content changed.

        cache=True pins the cell so idle release keeps the value; the flag
        is never cleared. force=True skips the fingerprint comparison and
        always notifies.

        The compare-and-store step runs under the cell lock. Callbacks are
        snapshotted there and called after the lock is released, so a
        callback that blocks on another thread cannot hold up unsubscribe.

        Returns True if subscribers were notified.
        """
        with self._lock:
            self._cache = self._cache or cache

            if not force and value is self._value and isinstance(value, _PRIMITIVES):
                return False

            if force:
                new_fingerprint = None
            else:
                new_fingerprint = fingerprint(value)
                if self._fingerprint is None:
                    self._fingerprint = fingerprint(self._value)
                if new_fingerprint == self._fingerprint:
                    return False

            self._value = value
            self._fingerprint = new_fingerprint
            callbacks = list(self._subscribers.values())
            callbacks.extend(self._handlers)

        self._notify(callbacks, value)
        return True

    def _notify(self, callbacks: list[Callback], value: T) -> None:
        for callback in callbacks:
            try:
                callback(value)
            except Exception:
                logger.debug(
                    "Ignoring error from %r while notifying %s",
                    callback, self, exc_info=True,
                )

    # --- Subscribers ---

    def subscribe(self, callback: Callback) -> Subscription:
        """Call callback(value) on every content change until unsubscribed."""
        token = Subscription(self, callback)
        with self._lock:
            self._subscribers[token] = callback
            self._cancel_release()
        return token

    def unsubscribe(self, token: Subscription) -> None:
        """Remove a subscription. Unknown or disposed tokens are ignored."""
        with self._lock:
            if self._subscribers.pop(token, None) is None:
                return
            token._disposed = True
            self._try_release()

    def on_update(self, callback: Callback) -> ValueCell[T]:
        """Register an update handler. Counts toward activity like a subscriber."""
        with self._lock:
            self._handlers[callback] = None
            self._cancel_release()
        return self

    def off_update(self, callback: Callback) -> ValueCell[T]:
        with self._lock:
            if callback in self._handlers:
                del self._handlers[callback]
                self._try_release()
        return self

    def use(self, initial: T = UNSET, on_change: Callback | None = None) -> Binding[T]:
        """Mount a consumer: apply initial (if given), subscribe, track the value."""
        return Binding(self, initial, on_change)

    # --- Idle release ---

    def _cancel_release(self) -> None:
        if self._release_timer is not None:
            self._release_timer.cancel()
            self._release_timer = None
            self._generation += 1
            logger.debug("Release of %s cancelled", self)

    def _try_release(self) -> None:
        self._cancel_release()
        if self.active:
            return
        generation = self._generation
        self._release_timer = self._scheduler.call_later(
            self._release_delay, lambda: self._release(generation)
        )
        logger.debug("Release of %s armed for %ss", self, self._release_delay)

    def _release(self, generation: int) -> None:
        with self._lock:
            # A stale timer from before a cancel must not release.
            if generation != self._generation:
                return
            self._release_timer = None
            self._generation += 1
            if self.active:
                return
            if not self._cache:
                self._value = UNSET
                self._fingerprint = ""
            logger.debug("Released %s (cached=%s)", self, self._cache)
            on_release = self.on_release

        if on_release is not None:
            on_release()

    def __repr__(self) -> str:
        label = f"{self.name!r}, " if self.name is not None else ""
        return f"ValueCell({label}{self._value!r}, subscribers={len(self._subscribers)})"
