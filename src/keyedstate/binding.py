"""Bindings — a mounted consumer of a ValueCell.

A UI layer creates one Binding per mounted component: the initial value (if
any) goes through the cell's normal deduplicated write, the binding then
subscribes and keeps the latest delivered value. Disposing the binding on
teardown is what lets the cell go idle and be released.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Generic, TypeVar

from keyedstate.hashing import UNSET

if TYPE_CHECKING:
    from keyedstate.cell import Subscription, ValueCell

T = TypeVar("T")


class Binding(Generic[T]):
    """Subscription plus the last value the consumer has seen.

    Usage:
        with cell.use(initial={"page": 1}, on_change=rerender) as binding:
            render(binding.value)
    """

    __slots__ = ("_cell", "_on_change", "_value", "_subscription")

    def __init__(
        self,
        cell: ValueCell[T],
        initial: T = UNSET,
        on_change: Callable[[T], None] | None = None,
    ) -> None:
        self._cell = cell
        self._on_change = on_change
        if initial is not UNSET:
            cell.set(initial)
        self._value = cell.get()
        self._subscription: Subscription = cell.subscribe(self._receive)

    def _receive(self, value: T) -> None:
        self._value = value
        if self._on_change is not None:
            self._on_change(value)

    @property
    def value(self) -> T | None:
        return self._value

    @property
    def cell(self) -> ValueCell[T]:
        return self._cell

    @property
    def disposed(self) -> bool:
        return self._subscription.disposed

    def set(self, value: T, *, cache: bool = False, force: bool = False) -> bool:
        """Write through to the bound cell."""
        return self._cell.set(value, cache=cache, force=force)

    def dispose(self) -> None:
        """Unsubscribe. Safe to call more than once."""
        self._subscription.dispose()

    def __enter__(self) -> Binding[T]:
        return self

    def __exit__(self, *exc_info) -> None:
        self.dispose()

    def __repr__(self) -> str:
        state = "disposed" if self.disposed else "mounted"
        return f"Binding({self._value!r}, {state})"
