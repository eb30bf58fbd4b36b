"""Content fingerprints — cheap structural equality for stored values.

A value is first rendered to a canonical string (mapping keys sorted,
sets flattened, dates and patterns reduced to text), then the string is
run through a two-lane 32-bit mixing hash and rendered as 14 base-36 digits.

Two values with the same structure always share a fingerprint. The reverse
is only probabilistic, which is fine for deciding whether subscribers need
to hear about a write.

Values of different types with the same content (a dataclass and a dict
with the same fields, a list and a tuple) fingerprint the same. No type
discriminator is folded into the canonical form.
"""

from __future__ import annotations

import dataclasses
import datetime
import enum
import json
import re
import struct
from collections.abc import Mapping, Sequence, Set

__all__ = ["UNSET", "SerializationError", "canonicalize", "fingerprint"]


class _Unset:
    """Marker for a slot that holds no value. ``None`` is a real value."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET = _Unset()

_MASK = 0xFFFFFFFF
_WIDTH = 7
_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


class SerializationError(ValueError):
    """Raised when a value has no canonical form (cycles, callables, ...)."""


def _imul(a: int, b: int) -> int:
    return (a * b) & _MASK


def _cyrb64(text: str, seed: int = 0) -> tuple[int, int]:
    h1 = (0xDEADBEEF ^ seed) & _MASK
    h2 = (0x41C6CE57 ^ seed) & _MASK

    data = text.encode("utf-16-le", "surrogatepass")
    for (ch,) in struct.iter_unpack("<H", data):
        h1 = _imul(h1 ^ ch, 2654435761)
        h2 = _imul(h2 ^ ch, 1597334677)

    h1 = _imul(h1 ^ (h1 >> 16), 2246822507)
    h1 ^= _imul(h2 ^ (h2 >> 13), 3266489909)
    h2 = _imul(h2 ^ (h2 >> 16), 2246822507)
    h2 ^= _imul(h1 ^ (h1 >> 13), 3266489909)

    return h2, h1


def _base36(n: int) -> str:
    if n == 0:
        return "0".zfill(_WIDTH)
    digits = []
    while n:
        n, rem = divmod(n, 36)
        digits.append(_DIGITS[rem])
    return "".join(reversed(digits)).zfill(_WIDTH)


def _object_fields(value: object) -> dict | None:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
    if callable(value) or isinstance(value, type):
        return None
    try:
        return vars(value)
    except TypeError:
        return None


def _canonical(value: object, sort: bool, stack: set[int]) -> str:
    if value is UNSET:
        return ""
    if value is None or isinstance(value, (bool, int, float, str)):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, enum.Enum):
        return _canonical(value.value, sort, stack)
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return _canonical(value.isoformat(), sort, stack)
    if isinstance(value, re.Pattern):
        return _canonical(repr(value), sort, stack)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return _canonical(bytes(value).hex(), sort, stack)

    marker = id(value)
    if marker in stack:
        raise SerializationError(
            f"circular reference through {type(value).__name__} object"
        )
    stack.add(marker)
    try:
        if isinstance(value, Mapping):
            return _canonical_mapping(value, sort, stack)
        if isinstance(value, Set):
            # Sets have no stable iteration order, so always sort.
            parts = sorted(_canonical(item, sort, stack) for item in value)
            return f"[{','.join(parts)}]"
        if isinstance(value, Sequence):
            parts = [_canonical(item, sort, stack) for item in value]
            if sort:
                parts.sort()
            return f"[{','.join(parts)}]"

        fields = _object_fields(value)
        if fields is None:
            raise SerializationError(
                f"cannot fingerprint value of type {type(value).__name__}"
            )
        return _canonical_mapping(fields, sort, stack)
    finally:
        stack.discard(marker)


def _canonical_mapping(value: Mapping, sort: bool, stack: set[int]) -> str:
    rendered = {str(key): item for key, item in value.items()}
    pairs = [
        f"{json.dumps(key, ensure_ascii=False)}:{_canonical(rendered[key], sort, stack)}"
        for key in sorted(rendered)
    ]
    return "{" + ",".join(pairs) + "}"


def canonicalize(value: object, *, sort: bool = False) -> str:
    """Render value to the canonical string its fingerprint is taken over.

    With sort=True, sequence elements are ordered by their canonical form,
    making ``[1, 2]`` and ``[2, 1]`` equivalent at every nesting level.
    """
    try:
        return _canonical(value, sort, set())
    except RecursionError as exc:
        raise SerializationError("value nested too deeply to fingerprint") from exc


def fingerprint(value: object, *, sort: bool = False) -> str:
    """Deterministic 14-character content hash of value.

    Usage:
        fingerprint({"a": 1, "b": 2}) == fingerprint({"b": 2, "a": 1})  # True
        fingerprint([1, 2]) == fingerprint([2, 1])                      # False
        fingerprint([1, 2], sort=True) == fingerprint([2, 1], sort=True)  # True
    """
    h2, h1 = _cyrb64(canonicalize(value, sort=sort))
    return _base36(h2) + _base36(h1)
