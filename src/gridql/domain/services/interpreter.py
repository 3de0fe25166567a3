"""Tree-walking interpreter for parsed function bodies.

Every statement, loop iteration and call costs one step. Before each step
the interpreter checks the cancel event, the wall-clock deadline and the
step budget, so a runaway body stops promptly once its caller gives up.
"""

from __future__ import annotations

import functools
import logging
import math
import threading
import time
from collections.abc import Mapping
from typing import Any, Callable

from gridql.domain.errors import (
    ExecutionTimeout,
    GridQLError,
    ReadOnlyViolation,
    ScriptRuntimeError,
)
from gridql.domain.services.builtins import split_string
from gridql.domain.services.coercion import (
    array_index,
    is_callable_value,
    loose_equals,
    normalize_number,
    property_key,
    strict_equals,
    to_script_number,
    to_script_string,
    truthy,
    type_of,
)
from gridql.domain.services.readonly import is_read_only
from gridql.domain.services.script_parser import (
    ArrayLiteral,
    Arrow,
    Assign,
    Binary,
    Block,
    Break,
    Call,
    Conditional,
    Const,
    Continue,
    ExprStmt,
    For,
    ForOf,
    If,
    Index,
    Logical,
    Member,
    Name,
    Node,
    ObjectLiteral,
    Program,
    Return,
    Spread,
    Unary,
    Update,
    VarDecl,
    While,
)
from gridql.domain.value_objects import UNDEFINED, is_array, is_number, is_object

logger = logging.getLogger(__name__)

# Deadline and cancel checks run once per this many steps
_CHECK_INTERVAL = 64


class _BreakSignal(Exception):
    pass


class _ContinueSignal(Exception):
    pass


class _ReturnSignal(Exception):
    def __init__(self, value: Any) -> None:
        self.value = value


class Scope:
    """A lexical scope."""

    __slots__ = ("values", "constants", "parent", "is_function")

    def __init__(self, parent: Scope | None = None, is_function: bool = False) -> None:
        self.values: dict[str, Any] = {}
        self.constants: set[str] = set()
        self.parent = parent
        self.is_function = is_function

    def find(self, name: str) -> Scope | None:
        scope: Scope | None = self
        while scope is not None:
            if name in scope.values:
                return scope
            scope = scope.parent
        return None

    def function_scope(self) -> Scope:
        scope = self
        while not scope.is_function and scope.parent is not None:
            scope = scope.parent
        return scope

    def copy(self) -> Scope:
        clone = Scope(self.parent, self.is_function)
        clone.values = dict(self.values)
        clone.constants = set(self.constants)
        return clone


class Closure:
    """An arrow function value. Callable from builtins like ``map``."""

    def __init__(self, node: Arrow, scope: Scope, interpreter: Interpreter) -> None:
        self.node = node
        self.scope = scope
        self.interpreter = interpreter

    def __call__(self, *args: Any) -> Any:
        return self.interpreter.call_closure(self, list(args))

    def __repr__(self) -> str:
        return f"<closure ({', '.join(self.node.params)}) line {self.node.line}>"


class BoundMethod:
    """A value method bound to its receiver, e.g. ``rows.map``."""

    def __init__(self, receiver: Any, name: str, impl: Callable[..., Any],
                 interpreter: Interpreter) -> None:
        self.receiver = receiver
        self.name = name
        self.impl = impl
        self.interpreter = interpreter

    def __call__(self, *args: Any) -> Any:
        return self.impl(self.interpreter, self.receiver, list(args))


def _arg(args: list[Any], index: int, default: Any = UNDEFINED) -> Any:
    return args[index] if index < len(args) else default


def _slice_bounds(length: int, start: Any, end: Any) -> tuple[int, int]:
    def resolve(value: Any, default: int) -> int:
        if value is UNDEFINED:
            return default
        number = to_script_number(value)
        if isinstance(number, float) and math.isnan(number):
            return 0
        if math.isinf(number):
            return length if number > 0 else 0
        index = int(number)
        if index < 0:
            return max(length + index, 0)
        return min(index, length)

    return resolve(start, 0), resolve(end, length)


def _require_mutable(receiver: Any) -> None:
    if is_read_only(receiver):
        raise ReadOnlyViolation()


# String methods


def _str_method(func: Callable[..., Any]) -> Callable[..., Any]:
    @functools.wraps(func)
    def wrapper(interp: Interpreter, receiver: str, args: list[Any]) -> Any:
        return func(receiver, args)

    return wrapper


STRING_METHODS: dict[str, Callable[..., Any]] = {
    "toLowerCase": _str_method(lambda s, a: s.lower()),
    "toUpperCase": _str_method(lambda s, a: s.upper()),
    "trim": _str_method(lambda s, a: s.strip()),
    "split": _str_method(lambda s, a: split_string(s, _arg(a, 0), _arg(a, 1))),
    "includes": _str_method(lambda s, a: to_script_string(_arg(a, 0)) in s),
    "startsWith": _str_method(lambda s, a: s.startswith(to_script_string(_arg(a, 0)))),
    "endsWith": _str_method(lambda s, a: s.endswith(to_script_string(_arg(a, 0)))),
    "replace": _str_method(
        lambda s, a: s.replace(to_script_string(_arg(a, 0)), to_script_string(_arg(a, 1)), 1)
    ),
    "slice": _str_method(lambda s, a: s.__getitem__(slice(*_slice_bounds(len(s), _arg(a, 0), _arg(a, 1))))),
    "indexOf": _str_method(lambda s, a: s.find(to_script_string(_arg(a, 0)))),
    "toString": _str_method(lambda s, a: s),
}


# Array methods


def _callback_args(fn: Any, item: Any, index: int, receiver: Any) -> list[Any]:
    if isinstance(fn, Closure):
        return [item, index, receiver]
    return [item]


def _require_callable(fn: Any, method: str) -> None:
    if not is_callable_value(fn):
        raise ScriptRuntimeError(f"{to_script_string(fn)} is not a function (in {method})")


def _array_map(interp: Interpreter, arr: Any, args: list[Any]) -> list[Any]:
    fn = _arg(args, 0)
    _require_callable(fn, "map")
    return [fn(*_callback_args(fn, item, i, arr)) for i, item in enumerate(arr)]


def _array_filter(interp: Interpreter, arr: Any, args: list[Any]) -> list[Any]:
    fn = _arg(args, 0)
    _require_callable(fn, "filter")
    return [item for i, item in enumerate(arr) if truthy(fn(*_callback_args(fn, item, i, arr)))]


def _array_for_each(interp: Interpreter, arr: Any, args: list[Any]) -> Any:
    fn = _arg(args, 0)
    _require_callable(fn, "forEach")
    for i, item in enumerate(arr):
        fn(*_callback_args(fn, item, i, arr))
    return UNDEFINED


def _array_find(interp: Interpreter, arr: Any, args: list[Any]) -> Any:
    fn = _arg(args, 0)
    _require_callable(fn, "find")
    for i, item in enumerate(arr):
        if truthy(fn(*_callback_args(fn, item, i, arr))):
            return item
    return UNDEFINED


def _array_find_index(interp: Interpreter, arr: Any, args: list[Any]) -> int:
    fn = _arg(args, 0)
    _require_callable(fn, "findIndex")
    for i, item in enumerate(arr):
        if truthy(fn(*_callback_args(fn, item, i, arr))):
            return i
    return -1


def _array_some(interp: Interpreter, arr: Any, args: list[Any]) -> bool:
    fn = _arg(args, 0)
    _require_callable(fn, "some")
    return any(truthy(fn(*_callback_args(fn, item, i, arr))) for i, item in enumerate(arr))


def _array_every(interp: Interpreter, arr: Any, args: list[Any]) -> bool:
    fn = _arg(args, 0)
    _require_callable(fn, "every")
    return all(truthy(fn(*_callback_args(fn, item, i, arr))) for i, item in enumerate(arr))


def _array_reduce(interp: Interpreter, arr: Any, args: list[Any]) -> Any:
    fn = _arg(args, 0)
    _require_callable(fn, "reduce")
    items = list(arr)
    if len(args) >= 2:
        accumulator = args[1]
        start = 0
    elif items:
        accumulator = items[0]
        start = 1
    else:
        raise ScriptRuntimeError("Reduce of empty array with no initial value")
    for i in range(start, len(items)):
        accumulator = fn(accumulator, items[i], i, arr)
    return accumulator


def _array_includes(interp: Interpreter, arr: Any, args: list[Any]) -> bool:
    target = _arg(args, 0)
    for item in arr:
        if strict_equals(item, target):
            return True
        if is_number(item) and is_number(target) and math.isnan(item) and math.isnan(target):
            return True
    return False


def _array_index_of(interp: Interpreter, arr: Any, args: list[Any]) -> int:
    target = _arg(args, 0)
    for i, item in enumerate(arr):
        if strict_equals(item, target):
            return i
    return -1


def _array_join(interp: Interpreter, arr: Any, args: list[Any]) -> str:
    separator = _arg(args, 0)
    sep = "," if separator is UNDEFINED else to_script_string(separator)
    return sep.join("" if v is None or v is UNDEFINED else to_script_string(v) for v in arr)


def _array_slice(interp: Interpreter, arr: Any, args: list[Any]) -> list[Any]:
    start, end = _slice_bounds(len(arr), _arg(args, 0), _arg(args, 1))
    return [arr[i] for i in range(start, end)]


def _array_concat(interp: Interpreter, arr: Any, args: list[Any]) -> list[Any]:
    result = list(arr)
    for value in args:
        if is_array(value):
            result.extend(value)
        else:
            result.append(value)
    return result


def _array_push(interp: Interpreter, arr: Any, args: list[Any]) -> int:
    _require_mutable(arr)
    arr.extend(args)
    return len(arr)


def _array_pop(interp: Interpreter, arr: Any, args: list[Any]) -> Any:
    _require_mutable(arr)
    return arr.pop() if arr else UNDEFINED


def _array_shift(interp: Interpreter, arr: Any, args: list[Any]) -> Any:
    _require_mutable(arr)
    return arr.pop(0) if arr else UNDEFINED


def _array_unshift(interp: Interpreter, arr: Any, args: list[Any]) -> int:
    _require_mutable(arr)
    arr[0:0] = args
    return len(arr)


def _array_reverse(interp: Interpreter, arr: Any, args: list[Any]) -> Any:
    _require_mutable(arr)
    arr.reverse()
    return arr


def _array_sort(interp: Interpreter, arr: Any, args: list[Any]) -> Any:
    _require_mutable(arr)
    fn = _arg(args, 0)

    if fn is UNDEFINED:
        def compare(a: Any, b: Any) -> int:
            if a is UNDEFINED or b is UNDEFINED:
                return (a is UNDEFINED) - (b is UNDEFINED)
            left, right = to_script_string(a), to_script_string(b)
            return (left > right) - (left < right)
    else:
        _require_callable(fn, "sort")

        def compare(a: Any, b: Any) -> int:
            result = to_script_number(fn(a, b))
            if isinstance(result, float) and math.isnan(result):
                return 0
            return (result > 0) - (result < 0)

    arr.sort(key=functools.cmp_to_key(compare))
    return arr


ARRAY_METHODS: dict[str, Callable[..., Any]] = {
    "map": _array_map,
    "filter": _array_filter,
    "forEach": _array_for_each,
    "find": _array_find,
    "findIndex": _array_find_index,
    "some": _array_some,
    "every": _array_every,
    "reduce": _array_reduce,
    "includes": _array_includes,
    "indexOf": _array_index_of,
    "join": _array_join,
    "slice": _array_slice,
    "concat": _array_concat,
    "push": _array_push,
    "pop": _array_pop,
    "shift": _array_shift,
    "unshift": _array_unshift,
    "reverse": _array_reverse,
    "sort": _array_sort,
}


# Number methods


def _number_to_fixed(interp: Interpreter, value: Any, args: list[Any]) -> str:
    digits = _arg(args, 0, 0)
    places = int(to_script_number(digits)) if digits is not UNDEFINED else 0
    if not 0 <= places <= 100:
        raise ScriptRuntimeError("toFixed() digits argument must be between 0 and 100")
    number = to_script_number(value)
    if isinstance(number, float) and (math.isnan(number) or math.isinf(number)):
        return to_script_string(number)
    return f"{number:.{places}f}"


NUMBER_METHODS: dict[str, Callable[..., Any]] = {
    "toFixed": _number_to_fixed,
    "toString": lambda interp, value, args: to_script_string(value),
}


class Interpreter:
    """Executes one function body.

    Args:
        globals_: Builtin bindings; they cannot be reassigned.
        budget: Wall-clock budget in seconds, or None for no deadline.
        max_steps: Maximum number of steps before the run is aborted.
        max_call_depth: Maximum nesting of closure calls.
        max_array_length: Largest length an index or ``length`` write may grow
            an array to.
        cancel_event: Set by the caller to stop the run early.
    """

    def __init__(
        self,
        globals_: Mapping[str, Any],
        budget: float | None = None,
        max_steps: int = 5_000_000,
        max_call_depth: int = 64,
        max_array_length: int = 1_000_000,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._globals = Scope(is_function=True)
        self._globals.values.update(globals_)
        self._globals.constants.update(globals_)
        self._budget = budget
        self._deadline = None if budget is None else time.monotonic() + budget
        self._max_steps = max_steps
        self._max_call_depth = max_call_depth
        self._max_array_length = max_array_length
        self._cancel_event = cancel_event
        self._steps = 0
        self._depth = 0
        self._evaluators: dict[type, Callable[[Any, Scope], Any]] = {
            Const: self._eval_const,
            Name: self._eval_name,
            ArrayLiteral: self._eval_array,
            ObjectLiteral: self._eval_object,
            Member: self._eval_member,
            Index: self._eval_index,
            Call: self._eval_call,
            Arrow: self._eval_arrow,
            Conditional: self._eval_conditional,
            Logical: self._eval_logical,
            Binary: self._eval_binary,
            Unary: self._eval_unary,
            Assign: self._eval_assign,
            Update: self._eval_update,
        }
        self._executors: dict[type, Callable[[Any, Scope], None]] = {
            Block: self._exec_block,
            VarDecl: self._exec_var_decl,
            ExprStmt: self._exec_expr,
            If: self._exec_if,
            While: self._exec_while,
            For: self._exec_for,
            ForOf: self._exec_for_of,
            Break: self._exec_break,
            Continue: self._exec_continue,
            Return: self._exec_return,
        }

    @property
    def steps(self) -> int:
        return self._steps

    def run(self, program: Program, params: Mapping[str, Any]) -> Any:
        """Run a program with its parameters bound; returns the return value."""
        scope = Scope(self._globals, is_function=True)
        scope.values.update(params)
        try:
            for statement in program.body:
                self._execute(statement, scope)
        except _ReturnSignal as signal:
            return signal.value
        except RecursionError:
            raise ScriptRuntimeError("Maximum call depth exceeded") from None
        return UNDEFINED

    def _tick(self) -> None:
        self._steps += 1
        if self._steps > self._max_steps:
            raise ScriptRuntimeError(f"Execution step limit exceeded ({self._max_steps})")
        if self._steps % _CHECK_INTERVAL == 0:
            self._check_deadline()

    def _check_deadline(self) -> None:
        cancelled = self._cancel_event is not None and self._cancel_event.is_set()
        expired = self._deadline is not None and time.monotonic() >= self._deadline
        if cancelled or expired:
            raise ExecutionTimeout(self._budget if self._budget is not None else 0)

    # Statements

    def _execute(self, node: Node, scope: Scope) -> None:
        self._tick()
        self._executors[type(node)](node, scope)

    def _exec_block(self, node: Block, scope: Scope) -> None:
        inner = Scope(scope)
        for statement in node.body:
            self._execute(statement, inner)

    def _exec_var_decl(self, node: VarDecl, scope: Scope) -> None:
        target = scope.function_scope() if node.kind == "var" else scope
        for name, init in node.declarations:
            value = UNDEFINED if init is None else self.evaluate(init, scope)
            if node.kind != "var" and name in target.values:
                raise ScriptRuntimeError(f"Identifier '{name}' has already been declared")
            target.values[name] = value
            if node.kind == "const":
                target.constants.add(name)

    def _exec_expr(self, node: ExprStmt, scope: Scope) -> None:
        self.evaluate(node.expr, scope)

    def _exec_if(self, node: If, scope: Scope) -> None:
        if truthy(self.evaluate(node.test, scope)):
            self._execute(node.consequent, scope)
        elif node.alternate is not None:
            self._execute(node.alternate, scope)

    def _run_body(self, body: Node, scope: Scope) -> bool:
        """Run a loop body; returns False when the loop should stop."""
        try:
            self._execute(body, scope)
        except _BreakSignal:
            return False
        except _ContinueSignal:
            pass
        return True

    def _exec_while(self, node: While, scope: Scope) -> None:
        while truthy(self.evaluate(node.test, scope)):
            self._tick()
            if not self._run_body(node.body, scope):
                break

    def _exec_for(self, node: For, scope: Scope) -> None:
        loop_scope = Scope(scope)
        if node.init is not None:
            self._execute(node.init, loop_scope)
        while node.test is None or truthy(self.evaluate(node.test, loop_scope)):
            self._tick()
            if not self._run_body(node.body, loop_scope):
                break
            # Fresh per-iteration bindings so closures capture each value
            loop_scope = loop_scope.copy()
            if node.update is not None:
                self.evaluate(node.update, loop_scope)

    def _exec_for_of(self, node: ForOf, scope: Scope) -> None:
        iterable = self.evaluate(node.iterable, scope)
        if isinstance(iterable, str) or is_array(iterable):
            items = list(iterable)
        else:
            raise ScriptRuntimeError(f"{to_script_string(iterable)} is not iterable")
        for item in items:
            self._tick()
            iteration = Scope(scope)
            iteration.values[node.name] = item
            if node.kind == "const":
                iteration.constants.add(node.name)
            if not self._run_body(node.body, iteration):
                break

    def _exec_break(self, node: Break, scope: Scope) -> None:
        raise _BreakSignal()

    def _exec_continue(self, node: Continue, scope: Scope) -> None:
        raise _ContinueSignal()

    def _exec_return(self, node: Return, scope: Scope) -> None:
        value = UNDEFINED if node.value is None else self.evaluate(node.value, scope)
        raise _ReturnSignal(value)

    # Expressions

    def evaluate(self, node: Node, scope: Scope) -> Any:
        return self._evaluators[type(node)](node, scope)

    def _eval_const(self, node: Const, scope: Scope) -> Any:
        return node.value

    def _eval_name(self, node: Name, scope: Scope) -> Any:
        owner = scope.find(node.id)
        if owner is None:
            raise ScriptRuntimeError(f"{node.id} is not defined")
        return owner.values[node.id]

    def _spread_items(self, value: Any) -> list[Any]:
        if isinstance(value, str) or is_array(value):
            return list(value)
        raise ScriptRuntimeError(f"{to_script_string(value)} is not iterable")

    def _eval_array(self, node: ArrayLiteral, scope: Scope) -> list[Any]:
        result: list[Any] = []
        for element in node.elements:
            if isinstance(element, Spread):
                result.extend(self._spread_items(self.evaluate(element.value, scope)))
            else:
                result.append(self.evaluate(element, scope))
        return result

    def _eval_object(self, node: ObjectLiteral, scope: Scope) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for entry in node.entries:
            if isinstance(entry, Spread):
                value = self.evaluate(entry.value, scope)
                if is_object(value):
                    result.update((str(k), value[k]) for k in value)
                elif is_array(value) or isinstance(value, str):
                    result.update((str(i), v) for i, v in enumerate(value))
                continue
            key, value_node = entry
            name = key if isinstance(key, str) else property_key(self.evaluate(key, scope))
            result[name] = self.evaluate(value_node, scope)
        return result

    def get_property(self, obj: Any, key: Any) -> Any:
        """Read ``obj[key]`` with script semantics."""
        if obj is None or obj is UNDEFINED:
            raise ScriptRuntimeError(
                f"Cannot read properties of {to_script_string(obj)} "
                f"(reading '{to_script_string(key)}')"
            )
        if isinstance(obj, str):
            if key == "length":
                return len(obj)
            index = array_index(key)
            if index is not None:
                return obj[index] if index < len(obj) else UNDEFINED
            method = STRING_METHODS.get(property_key(key))
            return UNDEFINED if method is None else BoundMethod(obj, key, method, self)
        if is_array(obj):
            if key == "length":
                return len(obj)
            index = array_index(key)
            if index is not None:
                return obj[index] if index < len(obj) else UNDEFINED
            method = ARRAY_METHODS.get(property_key(key))
            return UNDEFINED if method is None else BoundMethod(obj, key, method, self)
        if is_object(obj):
            name = property_key(key)
            if name in obj:
                return obj[name]
            return UNDEFINED
        if isinstance(obj, bool) or is_number(obj):
            method = NUMBER_METHODS.get(property_key(key)) if is_number(obj) else None
            return UNDEFINED if method is None else BoundMethod(obj, key, method, self)
        return UNDEFINED

    def _check_growth(self, arr: list[Any], length: int) -> None:
        if length > len(arr) and length > self._max_array_length:
            raise ScriptRuntimeError(
                f"Array length limit exceeded ({self._max_array_length})"
            )

    def set_property(self, obj: Any, key: Any, value: Any) -> None:
        """Write ``obj[key] = value``; inputs are read-only."""
        if is_read_only(obj):
            raise ReadOnlyViolation()
        if isinstance(obj, list):
            if key == "length":
                length = array_index(value)
                if length is None:
                    raise ScriptRuntimeError("Invalid array length")
                self._check_growth(obj, length)
                del obj[length:]
                obj.extend([UNDEFINED] * (length - len(obj)))
                return
            index = array_index(key)
            if index is None:
                raise ScriptRuntimeError(f"Cannot set property '{to_script_string(key)}' of array")
            if index >= len(obj):
                self._check_growth(obj, index + 1)
                obj.extend([UNDEFINED] * (index + 1 - len(obj)))
            obj[index] = value
            return
        if isinstance(obj, dict):
            obj[property_key(key)] = value
            return
        if obj is None or obj is UNDEFINED:
            raise ScriptRuntimeError(
                f"Cannot set properties of {to_script_string(obj)} "
                f"(setting '{to_script_string(key)}')"
            )
        raise ScriptRuntimeError(
            f"Cannot set property '{to_script_string(key)}' on a {type_of(obj)}"
        )

    def _eval_member(self, node: Member, scope: Scope) -> Any:
        obj = self.evaluate(node.obj, scope)
        if node.optional and (obj is None or obj is UNDEFINED):
            return UNDEFINED
        return self.get_property(obj, node.prop)

    def _eval_index(self, node: Index, scope: Scope) -> Any:
        obj = self.evaluate(node.obj, scope)
        if node.optional and (obj is None or obj is UNDEFINED):
            return UNDEFINED
        return self.get_property(obj, self.evaluate(node.index, scope))

    def _eval_args(self, nodes: list[Node], scope: Scope) -> list[Any]:
        args: list[Any] = []
        for node in nodes:
            if isinstance(node, Spread):
                args.extend(self._spread_items(self.evaluate(node.value, scope)))
            else:
                args.append(self.evaluate(node, scope))
        return args

    def _eval_call(self, node: Call, scope: Scope) -> Any:
        callee = self.evaluate(node.callee, scope)
        if node.optional and (callee is None or callee is UNDEFINED):
            return UNDEFINED
        args = self._eval_args(node.args, scope)
        if not is_callable_value(callee):
            raise ScriptRuntimeError(f"{self._describe(node.callee)} is not a function")
        self._tick()
        return self.invoke(callee, args, self._describe(node.callee))

    def invoke(self, callee: Any, args: list[Any], label: str = "function") -> Any:
        """Call a closure, bound method or builtin with script arguments."""
        if isinstance(callee, Closure):
            return self.call_closure(callee, args)
        try:
            return callee(*args)
        except (GridQLError, _ReturnSignal, _BreakSignal, _ContinueSignal):
            raise
        except RecursionError:
            raise ScriptRuntimeError("Maximum call depth exceeded") from None
        except (TypeError, ValueError, KeyError, IndexError, AttributeError,
                ZeroDivisionError, OverflowError) as e:
            logger.debug("Builtin %s raised %s", label, e)
            raise ScriptRuntimeError(f"{label}: {e}") from e

    def call_closure(self, closure: Closure, args: list[Any]) -> Any:
        self._depth += 1
        try:
            if self._depth > self._max_call_depth:
                raise ScriptRuntimeError("Maximum call depth exceeded")
            self._tick()
            node = closure.node
            scope = Scope(closure.scope, is_function=True)
            for i, param in enumerate(node.params):
                scope.values[param] = args[i] if i < len(args) else UNDEFINED
            if node.expression_body:
                return self.evaluate(node.body, scope)
            try:
                assert isinstance(node.body, Block)
                for statement in node.body.body:
                    self._execute(statement, scope)
            except _ReturnSignal as signal:
                return signal.value
            return UNDEFINED
        finally:
            self._depth -= 1

    def _eval_arrow(self, node: Arrow, scope: Scope) -> Closure:
        return Closure(node, scope, self)

    def _eval_conditional(self, node: Conditional, scope: Scope) -> Any:
        if truthy(self.evaluate(node.test, scope)):
            return self.evaluate(node.consequent, scope)
        return self.evaluate(node.alternate, scope)

    def _eval_logical(self, node: Logical, scope: Scope) -> Any:
        left = self.evaluate(node.left, scope)
        if node.op == "&&":
            return self.evaluate(node.right, scope) if truthy(left) else left
        if node.op == "||":
            return left if truthy(left) else self.evaluate(node.right, scope)
        if left is None or left is UNDEFINED:
            return self.evaluate(node.right, scope)
        return left

    def _eval_binary(self, node: Binary, scope: Scope) -> Any:
        left = self.evaluate(node.left, scope)
        right = self.evaluate(node.right, scope)
        return self.binary(node.op, left, right)

    def binary(self, op: str, left: Any, right: Any) -> Any:
        if op == "+":
            if _is_textual(left) or _is_textual(right):
                return to_script_string(left) + to_script_string(right)
            return normalize_number(
                normalize_number(to_script_number(left)) + normalize_number(to_script_number(right))
            )
        if op in ("-", "*", "/", "%"):
            return _arithmetic(op, to_script_number(left), to_script_number(right))
        if op == "===":
            return strict_equals(left, right)
        if op == "!==":
            return not strict_equals(left, right)
        if op == "==":
            return loose_equals(left, right)
        if op == "!=":
            return not loose_equals(left, right)
        if op == "in":
            if is_object(right):
                return property_key(left) in right
            if is_array(right):
                index = array_index(left)
                return index is not None and index < len(right)
            raise ScriptRuntimeError("Cannot use 'in' operator on a non-object")
        return _relational(op, left, right)

    def _eval_unary(self, node: Unary, scope: Scope) -> Any:
        if node.op == "typeof":
            if isinstance(node.operand, Name) and scope.find(node.operand.id) is None:
                return "undefined"
            return type_of(self.evaluate(node.operand, scope))
        if node.op == "delete":
            return self._delete(node.operand, scope)
        value = self.evaluate(node.operand, scope)
        if node.op == "!":
            return not truthy(value)
        number = to_script_number(value)
        return normalize_number(-number) if node.op == "-" else number

    def _delete(self, target: Node, scope: Scope) -> bool:
        if isinstance(target, Member):
            obj, key = self.evaluate(target.obj, scope), target.prop
        elif isinstance(target, Index):
            obj, key = self.evaluate(target.obj, scope), self.evaluate(target.index, scope)
        else:
            return False
        if is_read_only(obj):
            raise ReadOnlyViolation("Cannot delete from input data")
        if isinstance(obj, dict):
            obj.pop(property_key(key), None)
        elif isinstance(obj, list):
            index = array_index(key)
            if index is not None and index < len(obj):
                obj[index] = UNDEFINED
        return True

    def _read_target(self, target: Node, scope: Scope) -> tuple[Any, Any]:
        """Evaluate an assignment target's object and key once."""
        if isinstance(target, Member):
            return self.evaluate(target.obj, scope), target.prop
        assert isinstance(target, Index)
        return self.evaluate(target.obj, scope), self.evaluate(target.index, scope)

    def _assign_name(self, name: str, value: Any, scope: Scope) -> None:
        owner = scope.find(name)
        if owner is None:
            raise ScriptRuntimeError(f"Cannot assign to undeclared variable '{name}'")
        if owner is self._globals:
            raise ScriptRuntimeError(f"Cannot reassign builtin '{name}'")
        if name in owner.constants:
            raise ScriptRuntimeError(f"Assignment to constant variable '{name}'")
        owner.values[name] = value

    def _eval_assign(self, node: Assign, scope: Scope) -> Any:
        target = node.target
        if isinstance(target, Name):
            if node.op == "=":
                value = self.evaluate(node.value, scope)
            else:
                current = self._eval_name(target, scope)
                value = self.binary(node.op[0], current, self.evaluate(node.value, scope))
            self._assign_name(target.id, value, scope)
            return value
        obj, key = self._read_target(target, scope)
        if is_read_only(obj):
            raise ReadOnlyViolation()
        if node.op == "=":
            value = self.evaluate(node.value, scope)
        else:
            current = self.get_property(obj, key)
            value = self.binary(node.op[0], current, self.evaluate(node.value, scope))
        self.set_property(obj, key, value)
        return value

    def _eval_update(self, node: Update, scope: Scope) -> Any:
        delta = 1 if node.op == "++" else -1
        target = node.target
        if isinstance(target, Name):
            old = to_script_number(self._eval_name(target, scope))
            new = normalize_number(old + delta)
            self._assign_name(target.id, new, scope)
        else:
            obj, key = self._read_target(target, scope)
            if is_read_only(obj):
                raise ReadOnlyViolation()
            old = to_script_number(self.get_property(obj, key))
            new = normalize_number(old + delta)
            self.set_property(obj, key, new)
        return new if node.prefix else old

    @staticmethod
    def _describe(node: Node) -> str:
        if isinstance(node, Name):
            return node.id
        if isinstance(node, Member):
            return f"{Interpreter._describe(node.obj)}.{node.prop}"
        if isinstance(node, Index):
            return f"{Interpreter._describe(node.obj)}[...]"
        return "expression"


def _is_textual(value: Any) -> bool:
    return isinstance(value, str) or is_array(value) or is_object(value)


def _arithmetic(op: str, left: int | float, right: int | float) -> int | float:
    left, right = normalize_number(left), normalize_number(right)
    if op == "-":
        return normalize_number(left - right)
    if op == "*":
        try:
            return normalize_number(left * right)
        except OverflowError:
            return math.inf
    if op == "/":
        if right == 0:
            if left == 0 or math.isnan(left):
                return math.nan
            return math.copysign(math.inf, left) * math.copysign(1, right)
        return normalize_number(left / right)
    if right == 0 or math.isinf(left) or math.isnan(left) or math.isnan(right):
        return math.nan
    if math.isinf(right):
        return left
    if isinstance(left, int) and isinstance(right, int):
        result = abs(left) % abs(right)
        return -result if left < 0 else result
    return normalize_number(math.fmod(left, right))


def _relational(op: str, left: Any, right: Any) -> bool:
    if _is_textual(left) and _is_textual(right):
        a: Any = to_script_string(left)
        b: Any = to_script_string(right)
    else:
        a, b = to_script_number(left), to_script_number(right)
        if math.isnan(a) or math.isnan(b):
            return False
    if op == "<":
        return a < b
    if op == ">":
        return a > b
    if op == "<=":
        return a <= b
    return a >= b
