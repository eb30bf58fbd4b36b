"""Registries — string-keyed namespaces of ValueCells.

A Registry creates cells on first touch and never removes them, so cache
flags survive idle release. A Directory resolves registry names and owns
one default registry.

The free functions (get_value, set_value, use_value, cell_for, registry) work
against the module-level directory. use_registry() swaps in another
registry as the default for the current context, which keeps tests and
independent app instances from sharing state.
"""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar

from keyedstate.binding import Binding
from keyedstate.cell import RELEASE_DELAY, ValueCell
from keyedstate.hashing import UNSET
from keyedstate.scheduler import Scheduler, ThreadingScheduler

__all__ = [
    "Registry",
    "Directory",
    "directory",
    "registry",
    "use_registry",
    "cell_for",
    "get_value",
    "set_value",
    "use_value",
]

T = TypeVar("T")


def _check_key(key: object, what: str) -> None:
    if not isinstance(key, str):
        raise TypeError(f"{what} must be a str, got {type(key).__name__}")


class Registry:
    """Lazily populated mapping from key to ValueCell."""

    def __init__(
        self,
        name: str | None = None,
        *,
        scheduler: Scheduler | None = None,
        release_delay: float = RELEASE_DELAY,
    ) -> None:
        self.name = name
        self._scheduler = scheduler if scheduler is not None else ThreadingScheduler()
        self._release_delay = release_delay
        self._cells: dict[str, ValueCell] = {}

    @property
    def scheduler(self) -> Scheduler:
        """Scheduler shared by every cell in this registry."""
        return self._scheduler

    def cell_for(self, key: str) -> ValueCell:
        """Return the cell for key, creating it on first access."""
        _check_key(key, "key")
        cell = self._cells.get(key)
        if cell is None:
            cell = self._cells[key] = ValueCell(
                scheduler=self._scheduler,
                release_delay=self._release_delay,
                name=key,
            )
        return cell

    def get(self, key: str, default: T | None = None) -> T | None:
        """Value at key. Does not create a cell."""
        cell = self._cells.get(key)
        return cell.get(default) if cell is not None else default

    def set(self, key: str, value: T, *, cache: bool = False, force: bool = False) -> bool:
        return self.cell_for(key).set(value, cache=cache, force=force)

    def use(
        self,
        key: str,
        initial: T = UNSET,
        on_change: Callable[[T], None] | None = None,
    ) -> Binding[T]:
        return self.cell_for(key).use(initial, on_change)

    def keys(self) -> list[str]:
        return list(self._cells)

    def __contains__(self, key: object) -> bool:
        return key in self._cells

    def __len__(self) -> int:
        return len(self._cells)

    def __repr__(self) -> str:
        label = "default" if self.name is None else repr(self.name)
        return f"Registry({label}, cells={len(self._cells)})"


class Directory:
    """Named registries plus a distinguished default registry."""

    def __init__(
        self,
        *,
        scheduler: Scheduler | None = None,
        release_delay: float = RELEASE_DELAY,
    ) -> None:
        self._scheduler = scheduler if scheduler is not None else ThreadingScheduler()
        self._release_delay = release_delay
        self._default: Registry | None = None
        self._named: dict[str, Registry] = {}

    def _new_registry(self, name: str | None) -> Registry:
        return Registry(name, scheduler=self._scheduler, release_delay=self._release_delay)

    @property
    def default(self) -> Registry:
        if self._default is None:
            self._default = self._new_registry(None)
        return self._default

    def named(self, name: str) -> Registry:
        """Return the registry called name, creating it on first request."""
        _check_key(name, "registry name")
        instance = self._named.get(name)
        if instance is None:
            instance = self._named[name] = self._new_registry(name)
        return instance

    def names(self) -> list[str]:
        return list(self._named)

    def __repr__(self) -> str:
        return f"Directory(named={self.names()!r})"


directory = Directory()

# Registry that free functions use instead of directory.default, if set.
_current_registry: contextvars.ContextVar[Registry | None] = contextvars.ContextVar(
    "current_registry", default=None
)


@contextmanager
def use_registry(target: Registry) -> Iterator[Registry]:
    """Make target the default registry for free functions inside the block.

    Usage:
        with use_registry(Registry()) as reg:
            set_value("count", 1)
            assert reg.get("count") == 1
    """
    token = _current_registry.set(target)
    try:
        yield target
    finally:
        _current_registry.reset(token)


def registry(name: str | None = None) -> Registry:
    """Registry called name, or the current default registry if name is None."""
    if name is not None:
        return directory.named(name)
    current = _current_registry.get()
    return current if current is not None else directory.default


def cell_for(key: str) -> ValueCell:
    return registry().cell_for(key)


def get_value(key: str, default: T | None = None) -> T | None:
    return registry().get(key, default)


def set_value(key: str, value: T, *, cache: bool = False, force: bool = False) -> bool:
    return registry().set(key, value, cache=cache, force=force)


def use_value(
    key: str,
    initial: T = UNSET,
    on_change: Callable[[T], None] | None = None,
) -> Binding[T]:
    return registry().use(key, initial, on_change)
