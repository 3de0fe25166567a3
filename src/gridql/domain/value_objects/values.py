"""Cell value model: coercion, comparison and display rules.

A value is one of ``None``, ``bool``, a number (``int``/``float``), ``str``,
an array (any non-string sequence) or an object (any mapping). These rules
are shared by the query executor and the function sandbox.

Ordering used for sorting (ascending):
    null < boolean/number < text < array < object

Numeric-coercible pairs (numbers, booleans, numeric text) compare by value,
text compares ordinally by code point.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any


class _Undefined:
    """Missing-property marker used inside the sandbox."""

    _instance: _Undefined | None = None

    def __new__(cls) -> _Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "undefined"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()


class Ordering(Enum):
    """Result of comparing two values."""

    LESS = -1
    EQUAL = 0
    GREATER = 1


class DeclaredType(Enum):
    """Advisory column types."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    JSON = "json"
    NULL = "null"

    @classmethod
    def parse(cls, value: str | DeclaredType | None) -> DeclaredType:
        if isinstance(value, DeclaredType):
            return value
        if value is None:
            return cls.STRING
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.STRING


_NUMERIC_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_INTEGER_RE = re.compile(r"[+-]?\d+")

_TRUE_LITERALS = frozenset({"true", "1", "yes", "on", "t", "y"})
_FALSE_LITERALS = frozenset({"false", "0", "no", "off", "f", "n"})

# Sort rank per kind
_RANK_NULL = 0
_RANK_NUMBER = 1
_RANK_TEXT = 2
_RANK_ARRAY = 3
_RANK_OBJECT = 4


def is_null(value: Any) -> bool:
    return value is None or value is UNDEFINED


def is_number(value: Any) -> bool:
    """True for real numbers; booleans are not numbers."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_array(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def is_object(value: Any) -> bool:
    return isinstance(value, Mapping)


def is_numeric_text(value: Any) -> bool:
    """True if ``value`` is a string that fully parses as a decimal float."""
    return isinstance(value, str) and _NUMERIC_RE.fullmatch(value.strip()) is not None


def to_number(value: Any) -> int | float | None:
    """Coerce to a number, or ``None`` when the value is not numeric."""
    if isinstance(value, bool):
        return int(value)
    if is_number(value):
        return value
    if is_numeric_text(value):
        text = value.strip()
        if _INTEGER_RE.fullmatch(text):
            return int(text)
        return float(text)
    return None


def parse_boolean(value: Any) -> bool | None:
    """Parse the boolean literal forms, or return ``None``."""
    if isinstance(value, bool):
        return value
    if is_number(value):
        if value == 1:
            return True
        if value == 0:
            return False
        return None
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_LITERALS:
            return True
        if lowered in _FALSE_LITERALS:
            return False
    return None


def coerce_for_comparison(value: Any, declared_type: DeclaredType | str | None) -> Any:
    """Coerce a stored value according to its column's declared type.

    Values that cannot be coerced are returned unchanged; declared types
    never reject a value.
    """
    if is_null(value):
        return None
    kind = DeclaredType.parse(declared_type)
    if kind is DeclaredType.NUMBER:
        number = to_number(value)
        return value if number is None else number
    if kind is DeclaredType.BOOLEAN:
        flag = parse_boolean(value)
        return value if flag is None else flag
    if kind in (DeclaredType.STRING, DeclaredType.DATE, DeclaredType.DATETIME):
        if isinstance(value, str) or is_array(value) or is_object(value):
            return value
        return to_display_text(value)
    return value


def _rank(value: Any) -> int:
    if is_null(value):
        return _RANK_NULL
    if isinstance(value, bool) or is_number(value):
        return _RANK_NUMBER
    if isinstance(value, str):
        return _RANK_NUMBER if is_numeric_text(value) else _RANK_TEXT
    if is_array(value):
        return _RANK_ARRAY
    return _RANK_OBJECT


def _cmp(a: Any, b: Any) -> Ordering:
    if a < b:
        return Ordering.LESS
    if a > b:
        return Ordering.GREATER
    return Ordering.EQUAL


def compare_values(a: Any, b: Any) -> Ordering:
    """Total order over values, used for sorting."""
    rank_a, rank_b = _rank(a), _rank(b)
    if rank_a != rank_b:
        return Ordering.LESS if rank_a < rank_b else Ordering.GREATER
    if rank_a == _RANK_NULL:
        return Ordering.EQUAL
    if rank_a == _RANK_NUMBER:
        left, right = to_number(a), to_number(b)
        if isinstance(left, float) and math.isnan(left):
            return Ordering.EQUAL if isinstance(right, float) and math.isnan(right) else Ordering.LESS
        if isinstance(right, float) and math.isnan(right):
            return Ordering.GREATER
        return _cmp(left, right)
    if rank_a == _RANK_TEXT:
        return _cmp(a, b)
    return _cmp(to_display_text(a), to_display_text(b))


def loose_equals(a: Any, b: Any, case_insensitive: bool = False) -> bool:
    """Equality with numeric coercion between numbers, booleans and numeric text."""
    if is_null(a) or is_null(b):
        return is_null(a) and is_null(b)
    if isinstance(a, str) and isinstance(b, str):
        if case_insensitive:
            return a.casefold() == b.casefold()
        return a == b
    if isinstance(a, bool) and isinstance(b, bool):
        return a == b
    left, right = to_number(a), to_number(b)
    if left is not None and right is not None:
        return left == right
    if is_array(a) or is_object(a) or is_array(b) or is_object(b):
        return to_display_text(a) == to_display_text(b)
    return False


def ordering_holds(a: Any, op: str, b: Any) -> bool:
    """Evaluate ``<``, ``>``, ``<=``, ``>=``.

    Both operands must coerce to the same comparable kind (number or text),
    otherwise the comparison is ``False``.
    """
    left, right = to_number(a), to_number(b)
    if left is None or right is None:
        if isinstance(a, str) and isinstance(b, str):
            left, right = a, b
        else:
            return False
    if op == "<":
        return left < right
    if op == ">":
        return left > right
    if op == "<=":
        return left <= right
    if op == ">=":
        return left >= right
    raise ValueError(f"Unsupported ordering operator: {op}")


def format_number(value: int | float) -> str:
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    return str(value)


def to_plain(value: Any) -> Any:
    """Deep-convert mappings and sequences to ``dict`` and ``list``."""
    if value is UNDEFINED:
        return None
    if is_object(value):
        return {str(k): to_plain(v) for k, v in value.items()}
    if is_array(value):
        return [to_plain(v) for v in value]
    return value


def to_json(value: Any) -> str:
    return json.dumps(to_plain(value), separators=(",", ":"), ensure_ascii=False, default=str)


def to_display_text(value: Any) -> str:
    """Render a value as text for display."""
    if value is UNDEFINED:
        return ""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if is_number(value):
        return format_number(value)
    if isinstance(value, str):
        return value
    if is_array(value) or is_object(value):
        return to_json(value)
    return str(value)
