"""Unit tests for read-only wrappers and sanitizing."""

from __future__ import annotations

import pytest

from gridql.domain.errors import FunctionValueNotAllowed, ReadOnlyViolation
from gridql.domain.services.readonly import (
    ReadOnlyDict,
    ReadOnlyList,
    freeze,
    is_read_only,
    sanitize,
)
from gridql.domain.value_objects import UNDEFINED


@pytest.mark.unit
class TestFreeze:
    """Tests for deep, lazy read-only wrapping."""

    def test_scalars_pass_through(self) -> None:
        assert freeze(1) == 1
        assert freeze("a") == "a"
        assert freeze(None) is None

    def test_nested_values_are_wrapped_on_access(self) -> None:
        data = {"rows": [{"a": 1}]}
        frozen = freeze(data)

        assert isinstance(frozen, ReadOnlyDict)
        assert isinstance(frozen["rows"], ReadOnlyList)
        assert isinstance(frozen["rows"][0], ReadOnlyDict)
        assert frozen["rows"][0]["a"] == 1

    def test_wrapping_does_not_copy(self) -> None:
        rows = [{"a": 1}]
        frozen = freeze(rows)
        rows.append({"a": 2})

        assert len(frozen) == 2

    def test_freeze_is_idempotent(self) -> None:
        frozen = freeze([1])
        assert freeze(frozen) is frozen

    def test_writes_raise(self) -> None:
        frozen = freeze({"rows": [1, 2]})

        with pytest.raises(ReadOnlyViolation):
            frozen["x"] = 1  # type: ignore[index]
        with pytest.raises(ReadOnlyViolation):
            frozen["rows"][0] = 5
        with pytest.raises(ReadOnlyViolation, match="Cannot delete from input data"):
            del frozen["rows"]  # type: ignore[attr-defined]
        with pytest.raises(ReadOnlyViolation):
            frozen.extra = 1  # type: ignore[attr-defined]

    def test_slices_stay_read_only(self) -> None:
        frozen = freeze([1, 2, 3])

        assert is_read_only(frozen[1:])
        assert list(frozen[1:]) == [2, 3]


@pytest.mark.unit
class TestSanitize:
    """Tests for copying caller values into plain containers."""

    def test_deep_copy(self) -> None:
        original = {"a": [1, {"b": 2}]}
        copy = sanitize(original)

        assert copy == original
        assert copy["a"] is not original["a"]

    def test_callables_rejected(self) -> None:
        with pytest.raises(FunctionValueNotAllowed):
            sanitize({"a": [lambda: 1]})

    def test_undefined_becomes_null(self) -> None:
        assert sanitize([UNDEFINED]) == [None]
