"""Unit tests for the script interpreter."""

from __future__ import annotations

import math
import threading
from typing import Any

import pytest

from gridql.domain.errors import ExecutionTimeout, ReadOnlyViolation, ScriptRuntimeError
from gridql.domain.services.builtins import build_namespace
from gridql.domain.services.interpreter import Interpreter
from gridql.domain.services.readonly import freeze
from gridql.domain.services.script_parser import parse_script
from gridql.domain.value_objects import UNDEFINED


def run(source: str, console: list[str] | None = None, **params: Any) -> Any:
    interpreter = Interpreter(build_namespace(console), budget=5.0, max_steps=100_000)
    return interpreter.run(parse_script(source), params)


@pytest.mark.unit
class TestExpressions:
    """Tests for expression evaluation."""

    def test_arithmetic(self) -> None:
        assert run("return x * 2", x=21) == 42
        assert run("return 7 / 2") == 3.5
        assert run("return 4 / 2") == 2
        assert run("return -7 % 3") == -1
        assert math.isinf(run("return 1 / 0"))
        assert math.isnan(run("return 0 / 0"))

    def test_string_concatenation(self) -> None:
        assert run("return 'a' + 1 + 2") == "a12"
        assert run("return 1 + 2 + 'a'") == "3a"
        assert run("return [1, 2] + ''") == "1,2"

    def test_equality(self) -> None:
        assert run("return '1' == 1") is True
        assert run("return '1' === 1") is False
        assert run("return null == undefined") is True
        assert run("return null === undefined") is False

    def test_logical_operators_return_operands(self) -> None:
        assert run("return 0 || 'fallback'") == "fallback"
        assert run("return 0 ?? 'fallback'") == 0
        assert run("return null ?? 'fallback'") == "fallback"
        assert run("return 'a' && 'b'") == "b"

    def test_ternary_and_typeof(self) -> None:
        assert run("return x > 1 ? 'big' : 'small'", x=5) == "big"
        assert run("return typeof x", x="s") == "string"
        assert run("return typeof missing") == "undefined"
        assert run("return typeof null") == "object"

    def test_object_and_array_literals(self) -> None:
        result = run("const a = 1\nconst rest = { c: 3 }\nreturn { a, b: [1, ...[2, 3]], ...rest }")

        assert result == {"a": 1, "b": [1, 2, 3], "c": 3}

    def test_optional_chaining(self) -> None:
        assert run("return x?.y", x=None) is UNDEFINED
        assert run("return x?.y", x={"y": 5}) == 5

    def test_missing_property_is_undefined(self) -> None:
        assert run("return x.nope", x={}) is UNDEFINED

    def test_reading_property_of_null_fails(self) -> None:
        with pytest.raises(ScriptRuntimeError, match="Cannot read properties of null"):
            run("return x.y", x=None)


@pytest.mark.unit
class TestStatements:
    """Tests for statements and scoping."""

    def test_for_loop(self) -> None:
        assert run("let total = 0\nfor (let i = 1; i <= 4; i++) { total += i }\nreturn total") == 10

    def test_for_of_with_break_and_continue(self) -> None:
        source = """
        let out = []
        for (const n of xs) {
            if (n === 2) continue
            if (n > 3) break
            out.push(n)
        }
        return out
        """
        assert run(source, xs=[1, 2, 3, 4, 5]) == [1, 3]

    def test_while(self) -> None:
        assert run("let n = 0\nwhile (n < 5) n++\nreturn n") == 5

    def test_closures_capture_loop_variable(self) -> None:
        source = """
        const fns = []
        for (let i = 0; i < 3; i++) { fns.push(() => i) }
        return fns.map(f => f())
        """
        assert run(source) == [0, 1, 2]

    def test_no_return_is_undefined(self) -> None:
        assert run("let a = 1") is UNDEFINED

    def test_assign_to_undeclared(self) -> None:
        with pytest.raises(ScriptRuntimeError, match="undeclared variable 'leak'"):
            run("leak = 1")

    def test_assign_to_constant(self) -> None:
        with pytest.raises(ScriptRuntimeError, match="constant variable"):
            run("const a = 1\na = 2")

    def test_reassign_builtin(self) -> None:
        with pytest.raises(ScriptRuntimeError, match="Cannot reassign builtin 'sum'"):
            run("sum = 1")

    def test_undefined_name(self) -> None:
        with pytest.raises(ScriptRuntimeError, match="window is not defined"):
            run("return window")

    def test_calling_non_function(self) -> None:
        with pytest.raises(ScriptRuntimeError, match="x is not a function"):
            run("return x()", x=3)


@pytest.mark.unit
class TestMethods:
    """Tests for value methods."""

    def test_string_methods(self) -> None:
        assert run("return s.trim().toUpperCase()", s="  hi ") == "HI"
        assert run("return s.split(',')", s="a,b") == ["a", "b"]
        assert run("return s.length", s="abc") == 3
        assert run("return s.slice(-2)", s="abcd") == "cd"
        assert run("return s.replace('a', 'o')", s="banana") == "bonana"

    def test_array_methods(self) -> None:
        assert run("return xs.filter(x => x > 1).map(x => x * 10)", xs=[1, 2, 3]) == [20, 30]
        assert run("return xs.reduce((a, b) => a + b, 0)", xs=[1, 2, 3]) == 6
        assert run("return xs.find(x => x.id === 2).name", xs=[{"id": 2, "name": "b"}]) == "b"
        assert run("return xs.join('-')", xs=[1, None, 3]) == "1--3"
        assert run("return xs.some(x => x > 2) && xs.every(x => x > 0)", xs=[1, 3]) is True

    def test_sort_copy(self) -> None:
        assert run("return [...xs].sort((a, b) => b - a)", xs=[1, 3, 2]) == [3, 2, 1]

    def test_to_fixed(self) -> None:
        assert run("return n.toFixed(2)", n=3.14159) == "3.14"

    def test_reduce_empty_without_initial(self) -> None:
        with pytest.raises(ScriptRuntimeError, match="Reduce of empty array"):
            run("return [].reduce((a, b) => a + b)")


@pytest.mark.unit
class TestReadOnlyInputs:
    """Tests for mutation of read-only inputs."""

    @pytest.mark.parametrize(
        "source",
        [
            "t.rows.push({})",
            "t.rows.pop()",
            "t.rows.sort()",
            "t.name = 'x'",
            "t.rows[0].amount = 1",
            "t.rows[0].amount++",
        ],
    )
    def test_mutation_raises(self, source: str) -> None:
        table = freeze({"name": "orders", "rows": [{"amount": 5}]})

        with pytest.raises(ReadOnlyViolation):
            run(source, t=table)

    def test_delete_raises(self) -> None:
        with pytest.raises(ReadOnlyViolation, match="Cannot delete from input data"):
            run("delete t.name", t=freeze({"name": "x"}))

    def test_copies_are_mutable(self) -> None:
        table = freeze({"rows": [1, 2]})

        assert run("const c = [...t.rows]\nc.push(3)\nreturn c", t=table) == [1, 2, 3]

    def test_builtin_namespaces_are_read_only(self) -> None:
        with pytest.raises(ReadOnlyViolation):
            run("Math.PI = 3")


@pytest.mark.unit
class TestLimits:
    """Tests for step, depth and deadline limits."""

    def test_step_limit(self) -> None:
        interpreter = Interpreter(build_namespace(), max_steps=1_000)

        with pytest.raises(ScriptRuntimeError, match="step limit"):
            interpreter.run(parse_script("while (true) {}"), {})

    def test_call_depth(self) -> None:
        interpreter = Interpreter(build_namespace(), max_call_depth=10)
        program = parse_script("const f = n => f(n + 1)\nreturn f(0)")

        with pytest.raises(ScriptRuntimeError, match="Maximum call depth exceeded"):
            interpreter.run(program, {})

    def test_deadline(self) -> None:
        interpreter = Interpreter(build_namespace(), budget=0.05, max_steps=10**9)

        with pytest.raises(ExecutionTimeout):
            interpreter.run(parse_script("while (true) {}"), {})

    def test_cancel_event(self) -> None:
        cancel = threading.Event()
        cancel.set()
        interpreter = Interpreter(build_namespace(), max_steps=10**9, cancel_event=cancel)

        with pytest.raises(ExecutionTimeout):
            interpreter.run(parse_script("while (true) {}"), {})

    def test_console_capture(self) -> None:
        lines: list[str] = []

        run("console.log('total', 3, { a: 1 })", console=lines)

        assert lines == ['total 3 {"a": 1}']


@pytest.mark.unit
class TestNumbersAndArrays:
    """Tests for number range and array growth limits."""

    GROW = "let x = 1; for (let i = 0; i < 400; i++) { x = x * 10 } "

    def test_large_integers_become_floats(self) -> None:
        assert run("let x = 9007199254740992; return x * 4") == 2.0**55
        assert isinstance(run("let x = 9007199254740992; return x * 4"), float)

    def test_growing_past_float_range_is_infinity(self) -> None:
        assert run(self.GROW + "return x + 0.5") == math.inf
        assert run(self.GROW + "return x / 3") == math.inf
        assert math.isnan(run(self.GROW + "return x % 0.5"))

    def test_index_write_past_limit(self) -> None:
        interpreter = Interpreter(build_namespace(), max_array_length=10)

        with pytest.raises(ScriptRuntimeError, match="Array length limit exceeded"):
            interpreter.run(parse_script("let a = []; a[1e18] = 1; return 1"), {})

    def test_length_write_past_limit(self) -> None:
        interpreter = Interpreter(build_namespace(), max_array_length=10)

        with pytest.raises(ScriptRuntimeError, match="Array length limit exceeded"):
            interpreter.run(parse_script("let a = [1, 2]; a.length = 11; return a"), {})

    def test_writes_within_limit(self) -> None:
        interpreter = Interpreter(build_namespace(), max_array_length=10)
        program = parse_script("let a = []; a[9] = 1; a.length = 3; return a.length")

        assert interpreter.run(program, {}) == 3
