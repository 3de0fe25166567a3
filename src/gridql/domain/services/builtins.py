"""Builtin library available to function bodies.

These are the only bindings a function body can reach besides its own
parameters. Helpers are exposed both flat (``sum(rows, "amount")``) and
under their namespace (``Math.max``, ``String.trim``, ``JSON.parse``).
"""

from __future__ import annotations

import functools
import json
import math
import random
from typing import Any, Callable

from gridql.domain.services.coercion import (
    is_callable_value,
    normalize_number,
    to_script_number,
    to_script_string,
    truthy,
)
from gridql.domain.services.readonly import ReadOnlyDict
from gridql.domain.value_objects import (
    UNDEFINED,
    Ordering,
    compare_values,
    is_array,
    is_number,
    is_object,
    to_number,
)


def _field(item: Any, name: Any) -> Any:
    if is_object(item):
        return item.get(to_script_string(name), UNDEFINED)
    return UNDEFINED


def _as_number(value: Any) -> int | float:
    """Numeric value or 0, the way ``Number(x) || 0`` treats input."""
    number = to_number(value)
    if number is None or (isinstance(number, float) and math.isnan(number)):
        return 0
    return number


def _numeric(func: Callable[..., Any]) -> Callable[..., Any]:
    @functools.wraps(func)
    def wrapper(*args: Any) -> Any:
        try:
            return normalize_number(func(*[to_script_number(a) for a in args]))
        except (ValueError, OverflowError):
            return math.nan

    return wrapper


# Numeric


@_numeric
def _abs(x: float = math.nan) -> float:
    return abs(x)


@_numeric
def _ceil(x: float = math.nan) -> float:
    return x if math.isnan(x) or math.isinf(x) else math.ceil(x)


@_numeric
def _floor(x: float = math.nan) -> float:
    return x if math.isnan(x) or math.isinf(x) else math.floor(x)


@_numeric
def _round(x: float = math.nan) -> float:
    return x if math.isnan(x) or math.isinf(x) else math.floor(x + 0.5)


@_numeric
def _max(*values: float) -> float:
    if any(math.isnan(v) for v in values):
        return math.nan
    return max(values, default=-math.inf)


@_numeric
def _min(*values: float) -> float:
    if any(math.isnan(v) for v in values):
        return math.nan
    return min(values, default=math.inf)


@_numeric
def _pow(base: float = math.nan, exponent: float = math.nan) -> float:
    return math.pow(base, exponent)


@_numeric
def _sqrt(x: float = math.nan) -> float:
    return math.sqrt(x) if x >= 0 else math.nan


@_numeric
def _sin(x: float = math.nan) -> float:
    return math.sin(x)


@_numeric
def _cos(x: float = math.nan) -> float:
    return math.cos(x)


@_numeric
def _tan(x: float = math.nan) -> float:
    return math.tan(x)


def _random() -> float:
    return random.random()


# Arrays


def _sum(arr: Any = UNDEFINED, field: Any = UNDEFINED) -> Any:
    if not is_array(arr):
        return 0
    if truthy(field):
        return normalize_number(sum(_as_number(_field(item, field)) for item in arr))
    return normalize_number(sum(_as_number(item) for item in arr))


def _avg(arr: Any = UNDEFINED, field: Any = UNDEFINED) -> Any:
    if not is_array(arr) or len(arr) == 0:
        return 0
    total = _sum(arr, field)
    return normalize_number(total / len(arr))


def _count(arr: Any = UNDEFINED) -> int:
    return len(arr) if is_array(arr) else 0


def _filter(arr: Any = UNDEFINED, condition: Any = UNDEFINED) -> Any:
    if not is_array(arr):
        return []
    if not is_callable_value(condition):
        return arr
    return [item for item in arr if truthy(condition(item))]


def _map(arr: Any = UNDEFINED, transform: Any = UNDEFINED) -> Any:
    if not is_array(arr):
        return []
    if not is_callable_value(transform):
        return arr
    return [transform(item) for item in arr]


def _group_by(arr: Any = UNDEFINED, field: Any = UNDEFINED) -> dict[str, list[Any]]:
    groups: dict[str, list[Any]] = {}
    if not is_array(arr):
        return groups
    for item in arr:
        key = to_script_string(_field(item, field))
        groups.setdefault(key, []).append(item)
    return groups


def _identity_key(value: Any) -> Any:
    if value is None or value is UNDEFINED or isinstance(value, (str, bool)):
        return (type(value).__name__, value)
    if is_number(value):
        if isinstance(value, float) and math.isnan(value):
            return ("number", "NaN")
        return ("number", value)
    return ("ref", id(getattr(value, "_data", value)))


def _unique(arr: Any = UNDEFINED, field: Any = UNDEFINED) -> list[Any]:
    if not is_array(arr):
        return []
    seen: set[Any] = set()
    result = []
    by_field = truthy(field)
    for item in arr:
        key = _identity_key(_field(item, field) if by_field else item)
        if key in seen:
            continue
        seen.add(key)
        result.append(item)
    return result


def _sort_by(arr: Any = UNDEFINED, field: Any = UNDEFINED, desc: Any = False) -> list[Any]:
    if not is_array(arr):
        return []
    descending = truthy(desc)

    def compare(a: Any, b: Any) -> int:
        ordering = compare_values(_field(a, field), _field(b, field))
        if ordering is Ordering.EQUAL:
            return 0
        return -ordering.value if descending else ordering.value

    return sorted(arr, key=functools.cmp_to_key(compare))


# Strings


def _to_lower_case(s: Any = UNDEFINED) -> str:
    return to_script_string(s).lower()


def _to_upper_case(s: Any = UNDEFINED) -> str:
    return to_script_string(s).upper()


def _trim(s: Any = UNDEFINED) -> str:
    return to_script_string(s).strip()


def split_string(text: str, separator: Any = UNDEFINED, limit: Any = UNDEFINED) -> list[str]:
    if separator is UNDEFINED:
        parts = [text]
    else:
        sep = to_script_string(separator)
        parts = list(text) if sep == "" else text.split(sep)
    if limit is not UNDEFINED:
        parts = parts[: max(int(_as_number(limit)), 0)]
    return parts


def _split(s: Any = UNDEFINED, separator: Any = UNDEFINED, limit: Any = UNDEFINED) -> list[str]:
    return split_string(to_script_string(s), separator, limit)


def _includes(s: Any = UNDEFINED, search: Any = UNDEFINED) -> bool:
    return to_script_string(search) in to_script_string(s)


def _starts_with(s: Any = UNDEFINED, search: Any = UNDEFINED) -> bool:
    return to_script_string(s).startswith(to_script_string(search))


def _ends_with(s: Any = UNDEFINED, search: Any = UNDEFINED) -> bool:
    return to_script_string(s).endswith(to_script_string(search))


def _replace(s: Any = UNDEFINED, search: Any = UNDEFINED, replacement: Any = UNDEFINED) -> str:
    return to_script_string(s).replace(to_script_string(search), to_script_string(replacement), 1)


# JSON


def to_json_value(value: Any) -> Any:
    """Plain JSON structure; undefined and functions are dropped from objects."""
    if value is None or value is UNDEFINED or is_callable_value(value):
        return None
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        return None
    if is_object(value):
        return {
            str(k): to_json_value(v)
            for k, v in value.items()
            if v is not UNDEFINED and not is_callable_value(v)
        }
    if is_array(value):
        return [to_json_value(v) for v in value]
    return value


def _parse(text: Any = UNDEFINED) -> Any:
    try:
        return json.loads(to_script_string(text))
    except (ValueError, TypeError):
        return None


def _stringify(value: Any = UNDEFINED, replacer: Any = None, indent: Any = UNDEFINED) -> Any:
    if value is UNDEFINED or is_callable_value(value):
        return UNDEFINED
    spaces = int(_as_number(indent)) if indent is not UNDEFINED else None
    if spaces is not None and spaces <= 0:
        spaces = None
    separators = (",", ":") if spaces is None else (",", ": ")
    return json.dumps(
        to_json_value(value), indent=spaces, separators=separators, ensure_ascii=False
    )


# Type predicates


def _is_number(value: Any = UNDEFINED) -> bool:
    return is_number(value) and not (isinstance(value, float) and math.isnan(value))


def _is_string(value: Any = UNDEFINED) -> bool:
    return isinstance(value, str)


def _is_boolean(value: Any = UNDEFINED) -> bool:
    return isinstance(value, bool)


def _is_array(value: Any = UNDEFINED) -> bool:
    return is_array(value)


def _is_object(value: Any = UNDEFINED) -> bool:
    return is_object(value)


def _is_null(value: Any = UNDEFINED) -> bool:
    return value is None


def _is_undefined(value: Any = UNDEFINED) -> bool:
    return value is UNDEFINED


# Object


def _keys(value: Any = UNDEFINED) -> list[str]:
    if is_object(value):
        return [str(k) for k in value]
    if is_array(value) or isinstance(value, str):
        return [str(i) for i in range(len(value))]
    return []


def _values(value: Any = UNDEFINED) -> list[Any]:
    if is_object(value):
        return list(value.values())
    if is_array(value):
        return list(value)
    if isinstance(value, str):
        return list(value)
    return []


def _entries(value: Any = UNDEFINED) -> list[list[Any]]:
    return [[k, v] for k, v in zip(_keys(value), _values(value))]


def format_console_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    if is_object(value) or is_array(value):
        return json.dumps(to_json_value(value), ensure_ascii=False)
    return to_script_string(value)


MATH_FUNCTIONS: dict[str, Any] = {
    "abs": _abs,
    "ceil": _ceil,
    "floor": _floor,
    "round": _round,
    "max": _max,
    "min": _min,
    "pow": _pow,
    "sqrt": _sqrt,
    "sin": _sin,
    "cos": _cos,
    "tan": _tan,
    "random": _random,
    "PI": math.pi,
    "E": math.e,
}

ARRAY_FUNCTIONS: dict[str, Any] = {
    "sum": _sum,
    "avg": _avg,
    "count": _count,
    "filter": _filter,
    "map": _map,
    "groupBy": _group_by,
    "unique": _unique,
    "sortBy": _sort_by,
}

STRING_FUNCTIONS: dict[str, Any] = {
    "toLowerCase": _to_lower_case,
    "toUpperCase": _to_upper_case,
    "trim": _trim,
    "split": _split,
    "includes": _includes,
    "startsWith": _starts_with,
    "endsWith": _ends_with,
    "replace": _replace,
}

JSON_FUNCTIONS: dict[str, Any] = {
    "parse": _parse,
    "stringify": _stringify,
}

TYPE_PREDICATES: dict[str, Any] = {
    "isNumber": _is_number,
    "isString": _is_string,
    "isBoolean": _is_boolean,
    "isArray": _is_array,
    "isObject": _is_object,
    "isNull": _is_null,
    "isUndefined": _is_undefined,
}

OBJECT_FUNCTIONS: dict[str, Any] = {
    "keys": _keys,
    "values": _values,
    "entries": _entries,
}

FLAT_BUILTINS: dict[str, Any] = {
    **MATH_FUNCTIONS,
    **ARRAY_FUNCTIONS,
    **STRING_FUNCTIONS,
    **JSON_FUNCTIONS,
    **TYPE_PREDICATES,
}


def builtin_names() -> list[str]:
    """Names callable directly, e.g. from ``=sum(...)`` expressions."""
    return [name for name, value in FLAT_BUILTINS.items() if callable(value)]


def build_namespace(console: list[str] | None = None) -> dict[str, Any]:
    """Global bindings for one function execution.

    ``console.log`` appends to ``console``; namespaces are read-only.
    """
    lines = console if console is not None else []

    def log(*args: Any) -> Any:
        lines.append(" ".join(format_console_value(a) for a in args))
        return UNDEFINED

    namespace: dict[str, Any] = dict(FLAT_BUILTINS)
    namespace.update(
        {
            "Math": ReadOnlyDict(MATH_FUNCTIONS),
            "String": ReadOnlyDict(STRING_FUNCTIONS),
            "JSON": ReadOnlyDict(JSON_FUNCTIONS),
            "Object": ReadOnlyDict(OBJECT_FUNCTIONS),
            "console": ReadOnlyDict({"log": log, "info": log, "warn": log, "error": log}),
            "undefined": UNDEFINED,
            "NaN": math.nan,
            "Infinity": math.inf,
        }
    )
    return namespace


def is_builtin(name: str) -> bool:
    value = FLAT_BUILTINS.get(name)
    return value is not None and callable(value)


def call_builtin(name: str, args: list[Any]) -> Any:
    """Call a flat builtin by name with already-parsed arguments."""
    func = FLAT_BUILTINS[name]
    return func(*args)
