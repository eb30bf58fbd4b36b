"""Textual integration for keyedstate. Opt-in — requires textual.

bind() turns a cell subscription into a widget update. Each app gets a gate
that holds updates back while the widget tree is being replaced; bindings
that missed a value during a pause are refreshed from their cell once the
outermost pause ends, so widgets never stay stale.

Updates from other threads go through app.call_from_thread. Cells fan out
after releasing their lock, so a worker blocked in call_from_thread never
holds up an unmount on the UI thread.
"""

from __future__ import annotations

import logging
import threading
import weakref
from contextlib import contextmanager
from typing import Callable

from textual.css.query import NoMatches

from keyedstate.cell import Subscription, ValueCell
from keyedstate.hashing import UNSET

__all__ = ["CellBinding", "bind", "is_safe", "pause"]

logger = logging.getLogger("keyedstate.textual")


class _AppGate:
    """Pause depth and live bindings for one app."""

    __slots__ = ("depth", "bindings")

    def __init__(self) -> None:
        self.depth = 0
        self.bindings: set[CellBinding] = set()


# Gates live beside the app, never on it; they go away with the app.
_gates: weakref.WeakKeyDictionary = weakref.WeakKeyDictionary()


def _gate(app) -> _AppGate:
    gate = _gates.get(app)
    if gate is None:
        gate = _gates[app] = _AppGate()
    return gate


@contextmanager
def pause(app):
    """Hold back bound updates during widget replacement.

    Pauses nest. When the outermost one exits, every binding that skipped a
    value re-reads its cell.
    """
    gate = _gate(app)
    gate.depth += 1
    try:
        yield
    finally:
        gate.depth -= 1
        if gate.depth == 0:
            for binding in list(gate.bindings):
                binding._resume()


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    gate = _gates.get(app)
    return app.is_running and (gate is None or gate.depth == 0)


class CellBinding:
    """A cell subscription delivering values to a Textual widget callback.

    dispose() (or unmount()) detaches from both the cell and the app gate;
    a delivery already queued on the UI thread is dropped once disposed.
    """

    __slots__ = ("_app", "_cell", "_effect_fn", "_subscription", "_stale", "_ui_thread")

    def __init__(self, app, cell: ValueCell, effect_fn: Callable) -> None:
        self._app = app
        self._cell = cell
        self._effect_fn = effect_fn
        self._stale = False
        self._ui_thread = threading.get_ident()
        _gate(app).bindings.add(self)
        self._subscription: Subscription = cell.subscribe(self._on_value)

    @property
    def disposed(self) -> bool:
        return self._subscription.disposed

    @property
    def subscription(self) -> Subscription:
        return self._subscription

    def _on_value(self, value) -> None:
        if not self._app.is_running:
            return
        if _gate(self._app).depth:
            self._stale = True
            return
        self._deliver(value)

    def _deliver(self, value) -> None:
        if threading.get_ident() != self._ui_thread:
            self._app.call_from_thread(self._apply, value)
        else:
            self._apply(value)

    def _apply(self, value) -> None:
        if self.disposed:
            return
        try:
            self._effect_fn(value)
        except NoMatches:
            logger.debug("Widget gone while applying %r from %s", value, self._cell)

    def _resume(self) -> None:
        if not self._stale or self.disposed:
            return
        self._stale = False
        self.refresh()

    def refresh(self) -> None:
        """Push the cell's current value to the widget. Unset cells are skipped."""
        value = self._cell.get(UNSET)
        if value is UNSET or not is_safe(self._app):
            return
        self._deliver(value)

    def dispose(self) -> None:
        self._subscription.dispose()
        gate = _gates.get(self._app)
        if gate is not None:
            gate.bindings.discard(self)

    unmount = dispose

    def __repr__(self) -> str:
        state = "disposed" if self.disposed else "bound"
        return f"CellBinding({self._cell!r}, {state})"


def bind(app, cell: ValueCell, effect_fn, *, fire_immediately: bool = False) -> CellBinding:
    """Deliver cell changes to effect_fn, safely bridged to Textual widgets.

    Skips updates while the app is not running, defers them while paused,
    swallows NoMatches from widget queries, and marshals calls from other
    threads through app.call_from_thread. With fire_immediately, the current
    value is delivered right away unless the cell is unset. Dispose the
    returned binding when the widget unmounts.
    """
    binding = CellBinding(app, cell, effect_fn)
    if fire_immediately:
        binding.refresh()
    return binding
