"""Function sandbox: argument binding, compilation and bounded execution.

A function body is parsed once into an AST (cached by name and body hash)
and then run by the interpreter on a worker thread. The caller waits at
most the budget; on timeout the worker's cancel event is set and its
partial result is discarded.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from concurrent.futures import CancelledError, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Any, Callable

from gridql.domain.entities import Catalog, FunctionDefinition, ParamType, Table, View
from gridql.domain.errors import (
    ExecutionTimeout,
    FunctionValueNotAllowed,
    GridQLError,
    ScriptRuntimeError,
)
from gridql.domain.services import builtins
from gridql.domain.services.coercion import is_callable_value
from gridql.domain.services.interpreter import Closure, Interpreter
from gridql.domain.services.readonly import freeze, sanitize
from gridql.domain.services.script_parser import Program, parse_script
from gridql.domain.value_objects import (
    UNDEFINED,
    is_array,
    is_object,
    parse_boolean,
    to_number,
    to_plain,
)

logger = logging.getLogger(__name__)

CacheListener = Callable[[str], None]

# How often a queued call checks whether its future was cancelled
_QUEUE_POLL_SECONDS = 0.05


@dataclass
class SandboxOutcome:
    """Result of one sandboxed call."""

    value: Any = None
    console: list[str] = field(default_factory=list)
    duration: float = 0.0


class CompiledUnitCache:
    """LRU cache of parsed function bodies keyed by (name, body hash)."""

    def __init__(self, capacity: int = 256, listener: CacheListener | None = None) -> None:
        self._capacity = capacity
        self._entries: OrderedDict[tuple[str, str], Program] = OrderedDict()
        self._lock = threading.Lock()
        self._listener = listener
        self.hits = 0
        self.misses = 0

    def get_or_compile(self, definition: FunctionDefinition) -> Program:
        key = definition.cache_key
        with self._lock:
            program = self._entries.get(key)
            if program is not None:
                self._entries.move_to_end(key)
                self.hits += 1
        if program is not None:
            self._notify("hit")
            return program

        program = parse_script(definition.body)
        logger.debug("Compiled function %s (%s)", definition.name, definition.body_hash[:12])
        with self._lock:
            self.misses += 1
            self._entries[key] = program
            self._entries.move_to_end(key)
            while len(self._entries) > self._capacity:
                self._entries.popitem(last=False)
        self._notify("miss")
        return program

    def _notify(self, result: str) -> None:
        if self._listener is not None:
            self._listener(result)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries


def prepare_arguments(
    definition: FunctionDefinition, args: list[Any], catalog: Catalog
) -> dict[str, Any]:
    """Bind call arguments to declared parameters.

    Missing arguments are null and surplus arguments are ignored.

    Raises:
        FunctionValueNotAllowed: if a callable is passed for a data parameter.
    """
    bound: dict[str, Any] = {}
    for index, param in enumerate(definition.params):
        value = args[index] if index < len(args) else None
        bound[param.name] = _bind(param.declared_type, value, catalog)
    return bound


def _bind(kind: ParamType, value: Any, catalog: Catalog) -> Any:
    if kind is ParamType.TABLE:
        if isinstance(value, str):
            table = catalog.get_table(value)
            return None if table is None else freeze(table.snapshot())
        if isinstance(value, Table):
            return freeze(value.snapshot())
        return freeze(_reject_callables(value))

    if kind is ParamType.VIEW:
        if isinstance(value, str):
            view = catalog.get_view(value)
            return None if view is None else freeze(catalog.view_snapshot(view))
        if isinstance(value, View):
            return freeze(catalog.view_snapshot(value))
        return freeze(_reject_callables(value))

    if kind is ParamType.ROWS:
        return _collection(value, "rows")

    if kind is ParamType.COLUMNS:
        return _collection(value, "columns")

    if kind is ParamType.NUMBER:
        sanitize(value)
        return to_number(value)

    if kind is ParamType.BOOLEAN:
        sanitize(value)
        return parse_boolean(value)

    return sanitize(value)


def _collection(value: Any, key: str) -> Any:
    if isinstance(value, Table):
        value = value.snapshot()
    if is_object(value):
        if key in value:
            return freeze(_reject_callables(value[key]))
        return freeze([])
    if is_array(value):
        return freeze(_reject_callables(value))
    return freeze([])


def _reject_callables(value: Any) -> Any:
    """Walk ``value`` without copying and reject callables."""
    if is_callable_value(value):
        raise FunctionValueNotAllowed()
    if is_object(value):
        for item in value.values():
            _reject_callables(item)
    elif is_array(value):
        for item in value:
            _reject_callables(item)
    return value


def _return_value(value: Any) -> Any:
    if isinstance(value, Closure) or is_callable_value(value):
        raise FunctionValueNotAllowed("Function values cannot be returned")
    if value is UNDEFINED:
        return None
    if is_object(value):
        return {str(k): _return_value(v) for k, v in value.items()}
    if is_array(value):
        return [_return_value(v) for v in value]
    return to_plain(value)


class FunctionSandbox:
    """Runs user functions with read-only inputs under a wall-clock budget.

    Args:
        timeout_seconds: Default budget per call.
        max_steps: Interpreter step budget per call.
        max_call_depth: Maximum closure nesting per call.
        max_array_length: Largest length an index or ``length`` write may grow an array to.
        worker_threads: Size of the worker pool.
        compile_cache_size: Capacity of the compiled-unit cache.
        cache_listener: Called with ``"hit"`` or ``"miss"`` on cache lookups.
    """

    def __init__(
        self,
        timeout_seconds: float = 5.0,
        max_steps: int = 5_000_000,
        max_call_depth: int = 64,
        max_array_length: int = 1_000_000,
        worker_threads: int = 4,
        compile_cache_size: int = 256,
        cache_listener: CacheListener | None = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.max_steps = max_steps
        self.max_call_depth = max_call_depth
        self.max_array_length = max_array_length
        self.cache = CompiledUnitCache(compile_cache_size, cache_listener)
        self._pool = ThreadPoolExecutor(
            max_workers=worker_threads, thread_name_prefix="gridql-sandbox"
        )
        self._closed = False

    def compile(self, definition: FunctionDefinition) -> Program:
        """Parse (or fetch from cache) a function body.

        Raises:
            ScriptSyntaxError: if the body does not parse.
        """
        return self.cache.get_or_compile(definition)

    def execute(
        self,
        definition: FunctionDefinition,
        args: list[Any],
        catalog: Catalog,
        budget: float | None = None,
    ) -> SandboxOutcome:
        """Run ``definition`` with ``args`` against ``catalog``.

        Raises:
            ScriptSyntaxError: if the body does not parse.
            ScriptRuntimeError: if the body fails while running.
            ReadOnlyViolation: if the body mutates an input.
            FunctionValueNotAllowed: if a callable crosses the boundary.
            ExecutionTimeout: if the body exceeds its budget.
        """
        if self._closed:
            raise RuntimeError("Sandbox is shut down")

        program = self.compile(definition)
        params = prepare_arguments(definition, args, catalog)
        limit = self.timeout_seconds if budget is None else budget
        cancel = threading.Event()
        started = threading.Event()
        console: list[str] = []

        def run() -> Any:
            started.set()
            interpreter = Interpreter(
                builtins.build_namespace(console),
                budget=limit,
                max_steps=self.max_steps,
                max_call_depth=self.max_call_depth,
                max_array_length=self.max_array_length,
                cancel_event=cancel,
            )
            try:
                return _return_value(interpreter.run(program, params))
            except RecursionError:
                raise ScriptRuntimeError("Maximum call depth exceeded") from None
            except (ArithmeticError, MemoryError) as e:
                raise ScriptRuntimeError(f"{type(e).__name__}: {e}") from None

        future = self._pool.submit(run)
        # The budget covers running, not waiting for a free worker
        while not started.wait(_QUEUE_POLL_SECONDS):
            if future.done():
                break
        start = time.perf_counter()
        try:
            value = future.result(timeout=limit)
        except FutureTimeoutError:
            cancel.set()
            future.cancel()
            logger.warning("Function %s timed out after %.3fs", definition.name, limit)
            raise ExecutionTimeout(limit) from None
        except CancelledError:
            raise RuntimeError("Sandbox is shut down") from None
        duration = time.perf_counter() - start
        return SandboxOutcome(value=value, console=list(console), duration=duration)

    def call_builtin(self, name: str, args: list[Any]) -> Any:
        """Call a flat builtin by name, e.g. for ``=sum(TableA.rows, "amount")``.

        Raises:
            ScriptRuntimeError: if the builtin fails.
        """
        try:
            return _return_value(builtins.call_builtin(name, [freeze(a) for a in args]))
        except GridQLError:
            raise
        except RecursionError:
            raise ScriptRuntimeError(
                f"Failed to execute built-in {name}: input nested too deeply"
            ) from None
        except (TypeError, ValueError, KeyError, IndexError, AttributeError,
                ArithmeticError, MemoryError) as e:
            raise ScriptRuntimeError(f"Failed to execute built-in {name}: {e}") from e

    def is_builtin(self, name: str) -> bool:
        return builtins.is_builtin(name)

    def builtin_names(self) -> list[str]:
        return builtins.builtin_names()

    def shutdown(self, wait: bool = False) -> None:
        """Stop the worker pool. Running bodies are cancelled."""
        self._closed = True
        self._pool.shutdown(wait=wait, cancel_futures=True)

    def __enter__(self) -> FunctionSandbox:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.shutdown()
