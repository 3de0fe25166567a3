"""Read-only wrappers for data handed to sandboxed functions.

Wrapping is deep and lazy: nested mappings and sequences are wrapped on
access, so large tables are never copied.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Iterator

from gridql.domain.errors import FunctionValueNotAllowed, ReadOnlyViolation
from gridql.domain.value_objects import UNDEFINED, is_array, is_object


def freeze(value: Any) -> Any:
    """Wrap mappings and sequences read-only; scalars pass through."""
    if isinstance(value, (ReadOnlyDict, ReadOnlyList)):
        return value
    if is_object(value):
        return ReadOnlyDict(value)
    if is_array(value):
        return ReadOnlyList(value)
    return value


class ReadOnlyDict(Mapping[str, Any]):
    """Mapping view that rejects every write."""

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any]) -> None:
        object.__setattr__(self, "_data", data)

    def __getitem__(self, key: str) -> Any:
        return freeze(self._data[key])

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __setitem__(self, key: str, value: Any) -> None:
        raise ReadOnlyViolation()

    def __delitem__(self, key: str) -> None:
        raise ReadOnlyViolation("Cannot delete from input data")

    def __setattr__(self, name: str, value: Any) -> None:
        raise ReadOnlyViolation()

    def __repr__(self) -> str:
        return f"ReadOnlyDict({dict(self._data)!r})"


class ReadOnlyList(Sequence[Any]):
    """Sequence view that rejects every write."""

    __slots__ = ("_data",)

    def __init__(self, data: Sequence[Any]) -> None:
        object.__setattr__(self, "_data", data)

    def __getitem__(self, index: Any) -> Any:
        if isinstance(index, slice):
            return ReadOnlyList(self._data[index])
        return freeze(self._data[index])

    def __len__(self) -> int:
        return len(self._data)

    def __setitem__(self, index: Any, value: Any) -> None:
        raise ReadOnlyViolation()

    def __delitem__(self, index: Any) -> None:
        raise ReadOnlyViolation("Cannot delete from input data")

    def __setattr__(self, name: str, value: Any) -> None:
        raise ReadOnlyViolation()

    def __repr__(self) -> str:
        return f"ReadOnlyList({list(self._data)!r})"


def is_read_only(value: Any) -> bool:
    return isinstance(value, (ReadOnlyDict, ReadOnlyList))


def sanitize(value: Any) -> Any:
    """Deep-copy a caller value into plain containers.

    Raises:
        FunctionValueNotAllowed: if a callable appears anywhere in the value.
    """
    if callable(value):
        raise FunctionValueNotAllowed()
    if value is UNDEFINED:
        return None
    if is_object(value):
        return {str(k): sanitize(v) for k, v in value.items()}
    if is_array(value):
        return [sanitize(v) for v in value]
    return value
