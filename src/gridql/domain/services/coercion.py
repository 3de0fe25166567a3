"""Value semantics of the function script language.

Truthiness, string and number conversion, equality and ``typeof`` follow
the scripting conventions users write function bodies against, which
differ from the cell comparison rules in ``gridql.domain.value_objects``.
"""

from __future__ import annotations

import math
from typing import Any

from gridql.domain.value_objects import (
    UNDEFINED,
    format_number,
    is_array,
    is_number,
    is_numeric_text,
    is_object,
    to_number,
)


def is_callable_value(value: Any) -> bool:
    return callable(value) and not is_object(value) and not is_array(value)


def truthy(value: Any) -> bool:
    if value is None or value is UNDEFINED:
        return False
    if isinstance(value, bool):
        return value
    if is_number(value):
        return value != 0 and not (isinstance(value, float) and math.isnan(value))
    if isinstance(value, str):
        return value != ""
    return True


def to_script_string(value: Any) -> str:
    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if is_number(value):
        return format_number(value)
    if isinstance(value, str):
        return value
    if is_array(value):
        return ",".join("" if v is None or v is UNDEFINED else to_script_string(v) for v in value)
    if is_object(value):
        return "[object Object]"
    return "function"


def to_script_number(value: Any) -> int | float:
    if value is None:
        return 0
    if value is UNDEFINED:
        return math.nan
    if isinstance(value, str):
        text = value.strip()
        if text == "":
            return 0
        if is_numeric_text(text):
            return normalize_number(to_number(text))
        return math.nan
    number = to_number(value)
    if number is None:
        return math.nan
    return number


def normalize_number(value: Any) -> Any:
    """Collapse integral floats to ``int`` so ``4 / 2`` is ``2``.

    Integers beyond the exact float range become floats (or infinity), so
    script numbers never grow into unbounded Python ints.
    """
    if isinstance(value, int) and not isinstance(value, bool) and abs(value) >= 2**53:
        try:
            return float(value)
        except OverflowError:
            return math.inf if value > 0 else -math.inf
    if isinstance(value, float) and value.is_integer() and abs(value) < 2**53:
        return int(value)
    return value


def type_of(value: Any) -> str:
    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "object"
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if is_callable_value(value):
        return "function"
    return "object"


def strict_equals(a: Any, b: Any) -> bool:
    kind = type_of(a)
    if kind != type_of(b):
        return False
    if kind in ("undefined", "boolean", "string"):
        return a == b
    if kind == "number":
        return a == b
    if a is None or b is None:
        return a is b
    return a is b or _same_wrapped(a, b)


def _same_wrapped(a: Any, b: Any) -> bool:
    inner_a = getattr(a, "_data", None)
    inner_b = getattr(b, "_data", None)
    return inner_a is not None and inner_a is inner_b


def loose_equals(a: Any, b: Any) -> bool:
    null_a = a is None or a is UNDEFINED
    null_b = b is None or b is UNDEFINED
    if null_a or null_b:
        return null_a and null_b
    if type_of(a) == type_of(b):
        return strict_equals(a, b)
    primitive = (str, bool, int, float)
    if isinstance(a, primitive) and isinstance(b, primitive):
        return to_script_number(a) == to_script_number(b)
    if isinstance(a, primitive):
        return loose_equals(a, to_script_string(b))
    if isinstance(b, primitive):
        return loose_equals(to_script_string(a), b)
    return False


def property_key(value: Any) -> str:
    return to_script_string(value)


def array_index(value: Any) -> int | None:
    """Index for ``arr[value]``, or ``None`` when it is not an array index."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float) and value.is_integer() and value >= 0:
        return int(value)
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None
