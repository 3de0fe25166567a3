"""Value objects shared by every engine component."""

from gridql.domain.value_objects.values import (
    UNDEFINED,
    DeclaredType,
    Ordering,
    coerce_for_comparison,
    compare_values,
    format_number,
    is_array,
    is_null,
    is_number,
    is_numeric_text,
    is_object,
    loose_equals,
    ordering_holds,
    parse_boolean,
    to_display_text,
    to_json,
    to_number,
    to_plain,
)

__all__ = [
    "UNDEFINED",
    "DeclaredType",
    "Ordering",
    "coerce_for_comparison",
    "compare_values",
    "format_number",
    "is_array",
    "is_null",
    "is_number",
    "is_numeric_text",
    "is_object",
    "loose_equals",
    "ordering_holds",
    "parse_boolean",
    "to_display_text",
    "to_json",
    "to_number",
    "to_plain",
]
