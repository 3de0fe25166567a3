"""Unit tests for the builtin library."""

from __future__ import annotations

import math

import pytest

from gridql.domain.services import builtins
from gridql.domain.services.builtins import build_namespace, builtin_names, call_builtin, is_builtin
from gridql.domain.services.readonly import freeze
from gridql.domain.value_objects import UNDEFINED

ROWS = [
    {"region": "north", "amount": 10},
    {"region": "south", "amount": "5"},
    {"region": "north", "amount": "n/a"},
]


@pytest.mark.unit
class TestArrayHelpers:
    """Tests for sum, avg, count and friends."""

    def test_sum_by_field(self) -> None:
        assert call_builtin("sum", [ROWS, "amount"]) == 15

    def test_sum_plain_values(self) -> None:
        assert call_builtin("sum", [[1, 2, "3"]]) == 6

    def test_sum_non_array(self) -> None:
        assert call_builtin("sum", ["abc"]) == 0

    def test_avg_divides_by_length(self) -> None:
        assert call_builtin("avg", [ROWS, "amount"]) == 5

    def test_avg_empty(self) -> None:
        assert call_builtin("avg", [[]]) == 0

    def test_count(self) -> None:
        assert call_builtin("count", [ROWS]) == 3
        assert call_builtin("count", [None]) == 0

    def test_group_by(self) -> None:
        groups = call_builtin("groupBy", [ROWS, "region"])

        assert list(groups) == ["north", "south"]
        assert len(groups["north"]) == 2

    def test_unique(self) -> None:
        assert call_builtin("unique", [[1, 1, "1", None, None]]) == [1, "1", None]
        assert [r["region"] for r in call_builtin("unique", [ROWS, "region"])] == ["north", "south"]

    def test_sort_by(self) -> None:
        rows = [{"n": 3}, {"n": None}, {"n": 1}]

        assert call_builtin("sortBy", [rows, "n"]) == [{"n": None}, {"n": 1}, {"n": 3}]
        assert call_builtin("sortBy", [rows, "n", True]) == [{"n": 3}, {"n": 1}, {"n": None}]

    def test_filter_and_map_with_callables(self) -> None:
        assert call_builtin("filter", [[1, 2, 3], lambda x: x > 1]) == [2, 3]
        assert call_builtin("map", [[1, 2], lambda x: x * 3]) == [3, 6]

    def test_helpers_accept_read_only_input(self) -> None:
        assert call_builtin("sum", [freeze(ROWS), "amount"]) == 15


@pytest.mark.unit
class TestMathAndStrings:
    """Tests for numeric and string helpers."""

    def test_numeric(self) -> None:
        assert call_builtin("abs", [-3]) == 3
        assert call_builtin("round", [2.5]) == 3
        assert call_builtin("round", [-2.5]) == -2
        assert call_builtin("max", [1, "7", 3]) == 7
        assert call_builtin("pow", [2, 10]) == 1024
        assert math.isnan(call_builtin("sqrt", [-1]))
        assert math.isnan(call_builtin("abs", ["x"]))

    def test_max_without_args(self) -> None:
        assert call_builtin("max", []) == -math.inf

    def test_strings(self) -> None:
        assert call_builtin("toUpperCase", ["abc"]) == "ABC"
        assert call_builtin("split", ["a-b-c", "-"]) == ["a", "b", "c"]
        assert call_builtin("includes", ["hello", "ell"]) is True
        assert call_builtin("replace", ["a.a", ".", "!"]) == "a!a"


@pytest.mark.unit
class TestJsonAndPredicates:
    """Tests for JSON helpers and type predicates."""

    def test_parse(self) -> None:
        assert call_builtin("parse", ['{"a": [1, 2]}']) == {"a": [1, 2]}

    def test_parse_malformed_returns_null(self) -> None:
        assert call_builtin("parse", ["{nope"]) is None

    def test_stringify(self) -> None:
        assert call_builtin("stringify", [{"a": 1, "b": UNDEFINED}]) == '{"a":1}'
        assert call_builtin("stringify", [[1, math.nan]]) == "[1,null]"

    def test_predicates(self) -> None:
        assert call_builtin("isNumber", [1]) is True
        assert call_builtin("isNumber", [True]) is False
        assert call_builtin("isNumber", [math.nan]) is False
        assert call_builtin("isArray", [freeze([1])]) is True
        assert call_builtin("isObject", [{"a": 1}]) is True
        assert call_builtin("isNull", [None]) is True
        assert call_builtin("isUndefined", []) is True


@pytest.mark.unit
class TestNamespace:
    """Tests for the global bindings."""

    def test_builtin_names(self) -> None:
        names = builtin_names()

        assert "sum" in names
        assert "PI" not in names
        assert is_builtin("groupBy")
        assert not is_builtin("PI")
        assert not is_builtin("eval")

    def test_namespaces(self) -> None:
        namespace = build_namespace()

        assert namespace["Math"]["PI"] == math.pi
        assert namespace["String"]["trim"] is builtins.STRING_FUNCTIONS["trim"]
        assert set(namespace["Object"]) == {"keys", "values", "entries"}
        assert namespace["undefined"] is UNDEFINED

    def test_no_host_escape_hatches(self) -> None:
        namespace = build_namespace()

        for name in ("eval", "open", "__import__", "require", "process", "globalThis"):
            assert name not in namespace

    def test_console_collects_lines(self) -> None:
        lines: list[str] = []
        namespace = build_namespace(lines)

        namespace["console"]["log"]("a", [1, 2])
        namespace["console"]["warn"](None)

        assert lines == ["a [1, 2]", "null"]
