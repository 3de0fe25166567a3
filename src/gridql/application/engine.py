"""Grid engine - unified entry point for queries and user functions.

Wires the query parser, executor and function sandbox together with
configuration, logging, metrics and tracing. Lower layers raise
``GridQLError``; this facade returns it on the result object instead.

Usage:
    from gridql.application import GridEngine

    engine = GridEngine()
    result = engine.run_query(
        "SELECT name, FN.double(amount) AS twice FROM orders",
        tables=[orders],
        functions=[double],
    )
    if result.success:
        print(result.columns, result.rows)

    value = engine.run_function(double, [21]).value        # 42
    total = engine.evaluate_expression("=sum(orders.rows, 'amount')", tables=[orders])
"""

from __future__ import annotations

import threading
import time
from collections.abc import Iterable
from typing import Any

from gridql.adapters.inbound.formula_parser import Formula, FormulaParser, NameRef, is_formula
from gridql.adapters.inbound.sql_parser import QueryParser
from gridql.application.executor import QueryExecutor
from gridql.domain.entities import (
    Catalog,
    FunctionDefinition,
    FunctionResult,
    QueryResult,
    View,
)
from gridql.domain.errors import ExecError, ExecutionTimeout, GridQLError, UnknownFunction
from gridql.domain.services import FunctionSandbox, SandboxOutcome
from gridql.domain.services.readonly import freeze
from gridql.domain.value_objects import is_array, is_object
from gridql.infrastructure.config import Config, get_config
from gridql.infrastructure.logging import get_logger
from gridql.infrastructure.metrics import MetricsRegistry, get_metrics
from gridql.infrastructure.tracing import mark_error, trace_function, trace_span
from gridql.ports.inbound import FunctionInput, TableInput, ViewInput

logger = get_logger(__name__)


class GridEngine:
    """Runs queries, user functions and formulas against per-call catalogs.

    Thread Safety:
        One engine can be shared across threads. Its only shared state is
        the sandbox's compiled-unit cache and the metrics.
    """

    def __init__(
        self,
        config: Config | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            config: Configuration. Uses the global config if None.
            metrics: Metrics registry. Uses the global registry if None.
        """
        self._config = config or get_config()
        self._metrics = metrics or get_metrics()
        sandbox_config = self._config.sandbox
        self._sandbox = FunctionSandbox(
            timeout_seconds=sandbox_config.timeout_seconds,
            max_steps=sandbox_config.max_steps,
            max_call_depth=sandbox_config.max_call_depth,
            max_array_length=sandbox_config.max_array_length,
            worker_threads=sandbox_config.worker_threads,
            compile_cache_size=sandbox_config.compile_cache_size,
            cache_listener=self._record_cache_lookup,
        )
        self._parser = QueryParser()
        self._formula_parser = FormulaParser()
        self._executor = QueryExecutor(
            function_invoker=self._invoke_for_row,
            case_insensitive_text=self._config.query.case_insensitive_text,
            max_rows=self._config.query.max_rows,
            on_cell_error=self._record_cell_error,
        )
        # Views being materialized on this thread, to stop self-reference
        self._materializing = threading.local()

    @property
    def config(self) -> Config:
        return self._config

    @property
    def sandbox(self) -> FunctionSandbox:
        return self._sandbox

    def catalog(
        self,
        tables: Iterable[TableInput] = (),
        views: Iterable[ViewInput] = (),
        functions: Iterable[FunctionInput] = (),
    ) -> Catalog:
        """Build a catalog whose views materialize through this engine."""
        return Catalog(
            tables=tables,
            views=views,
            functions=functions,
            view_materializer=self._materialize_view,
        )

    def run_query(
        self,
        query_text: str,
        tables: Iterable[TableInput] = (),
        functions: Iterable[FunctionInput] = (),
        views: Iterable[ViewInput] = (),
    ) -> QueryResult:
        """Parse and execute a query; errors are returned on the result."""
        start = time.perf_counter()
        with trace_span("gridql.run_query", {"query.text": query_text}) as span:
            try:
                catalog = self.catalog(tables, views, functions)
                result = self.execute_query(query_text, catalog)
            except GridQLError as e:
                self._metrics.queries_total.labels(status="error").inc()
                logger.info("query_failed", query=query_text, error=str(e), kind=e.kind)
                mark_error(span, e)
                return QueryResult(error=e)

            duration = time.perf_counter() - start
            self._metrics.queries_total.labels(status="success").inc()
            self._metrics.query_latency_seconds.observe(duration)
            self._metrics.query_rows_returned.observe(len(result.rows))
            span.set_attribute("query.rows", len(result.rows))
            logger.debug(
                "query_executed",
                query=query_text,
                rows=len(result.rows),
                duration_ms=round(duration * 1000, 3),
            )
            return result

    def execute_query(self, query_text: str, catalog: Catalog) -> QueryResult:
        """Parse and execute against an existing catalog.

        Raises:
            ParseError: if the query is malformed.
            UnknownTable: if a referenced table does not exist.
            UnknownFunction: if a referenced function or aggregate does not exist.
        """
        plan = self._parser.parse(query_text)
        return self._executor.execute(plan, catalog)

    def run_function(
        self,
        definition: FunctionInput,
        args: list[Any],
        tables: Iterable[TableInput] = (),
        views: Iterable[ViewInput] = (),
        functions: Iterable[FunctionInput] = (),
    ) -> FunctionResult:
        """Run one user function; errors are returned on the result."""
        with trace_span("gridql.run_function") as span:
            try:
                function = FunctionDefinition.from_dict(definition)
                span.set_attribute("function.name", function.name)
                catalog = self.catalog(tables, views, [function, *functions])
                outcome = self.invoke(function, list(args), catalog)
            except GridQLError as e:
                mark_error(span, e)
                return FunctionResult(error=e)
            return FunctionResult(
                value=outcome.value, console=outcome.console, duration=outcome.duration
            )

    def invoke(
        self, definition: FunctionDefinition, args: list[Any], catalog: Catalog
    ) -> SandboxOutcome:
        """Run a function in the sandbox, recording metrics.

        Raises:
            SandboxError: if the function fails, times out or breaks isolation.
        """
        try:
            outcome = self._sandbox.execute(definition, args, catalog)
        except ExecutionTimeout as e:
            self._metrics.function_calls_total.labels(status="timeout").inc()
            self._metrics.function_timeouts_total.inc()
            logger.warning("function_timeout", function=definition.name, budget=e.budget)
            raise
        except GridQLError as e:
            self._metrics.function_calls_total.labels(status="error").inc()
            logger.info("function_failed", function=definition.name, error=str(e), kind=e.kind)
            raise

        self._metrics.function_calls_total.labels(status="success").inc()
        self._metrics.function_latency_seconds.observe(outcome.duration)
        logger.debug(
            "function_executed",
            function=definition.name,
            duration_ms=round(outcome.duration * 1000, 3),
            console_lines=len(outcome.console),
        )
        return outcome

    def evaluate_expression(
        self,
        expression: str,
        tables: Iterable[TableInput] = (),
        views: Iterable[ViewInput] = (),
        functions: Iterable[FunctionInput] = (),
    ) -> FunctionResult:
        """Evaluate ``=name(arg, ...)``; text without a leading ``=`` is returned as is."""
        if not is_formula(expression):
            return FunctionResult(value=expression)

        with trace_span("gridql.evaluate_expression", {"expression": expression}) as span:
            start = time.perf_counter()
            try:
                catalog = self.catalog(tables, views, functions)
                formula = self._formula_parser.parse(expression)
                span.set_attribute("function.name", formula.name)
                return self._evaluate_formula(formula, catalog, start)
            except GridQLError as e:
                mark_error(span, e)
                logger.info("expression_failed", expression=expression, error=str(e))
                return FunctionResult(error=e)

    def _evaluate_formula(self, formula: Formula, catalog: Catalog, start: float) -> FunctionResult:
        args = [self._resolve_formula_arg(arg, catalog) for arg in formula.args]

        if self._sandbox.is_builtin(formula.name):
            value = self._sandbox.call_builtin(formula.name, args)
            return FunctionResult(value=value, duration=time.perf_counter() - start)

        definition = catalog.get_function(formula.name)
        if definition is None:
            available = self._sandbox.builtin_names() + catalog.function_names()
            raise UnknownFunction(formula.name, available)
        outcome = self.invoke(definition, args, catalog)
        return FunctionResult(
            value=outcome.value, console=outcome.console, duration=outcome.duration
        )

    @staticmethod
    def _resolve_formula_arg(arg: Any, catalog: Catalog) -> Any:
        if not isinstance(arg, NameRef):
            return arg.value
        if len(arg.parts) == 1:
            return arg.text
        table = catalog.get_table(arg.parts[0])
        if table is None:
            return arg.text
        value: Any = freeze(table.snapshot())
        for part in arg.parts[1:]:
            if is_object(value):
                value = value.get(part)
            elif is_array(value) and part.isdigit() and int(part) < len(value):
                value = value[int(part)]
            else:
                return None
        return value

    def _invoke_for_row(
        self, definition: FunctionDefinition, args: list[Any], catalog: Catalog
    ) -> Any:
        return self.invoke(definition, args, catalog).value

    @trace_function("gridql.materialize_view")
    def _materialize_view(
        self, view: View, catalog: Catalog
    ) -> tuple[list[str], list[dict[str, Any]]]:
        active: set[str] = getattr(self._materializing, "views", set())
        key = view.name.lower()
        if key in active:
            raise ExecError(f'View "{view.name}" references itself')
        active.add(key)
        self._materializing.views = active
        try:
            result = self.execute_query(view.query, catalog)
        finally:
            active.discard(key)
        return result.columns, result.rows

    def _record_cell_error(self, function_name: str, error: Exception) -> None:
        self._metrics.projection_errors_total.inc()

    def _record_cache_lookup(self, result: str) -> None:
        self._metrics.compile_cache_total.labels(result=result).inc()
        if result == "miss":
            logger.debug("compile_cache_miss")

    def shutdown(self) -> None:
        """Stop the sandbox worker pool."""
        self._sandbox.shutdown()


_default_engine: GridEngine | None = None
_default_lock = threading.Lock()


def get_engine() -> GridEngine:
    """Get the process-wide engine built from the global config."""
    global _default_engine
    with _default_lock:
        if _default_engine is None:
            _default_engine = GridEngine()
        return _default_engine


def run_query(
    query_text: str,
    tables: Iterable[TableInput] = (),
    functions: Iterable[FunctionInput] = (),
    views: Iterable[ViewInput] = (),
) -> QueryResult:
    """Run a query with the default engine."""
    return get_engine().run_query(query_text, tables, functions, views)


def run_function(
    definition: FunctionInput,
    args: list[Any],
    tables: Iterable[TableInput] = (),
    views: Iterable[ViewInput] = (),
    functions: Iterable[FunctionInput] = (),
) -> FunctionResult:
    """Run a user function with the default engine."""
    return get_engine().run_function(definition, args, tables, views, functions)


def evaluate_expression(
    expression: str,
    tables: Iterable[TableInput] = (),
    views: Iterable[ViewInput] = (),
    functions: Iterable[FunctionInput] = (),
) -> FunctionResult:
    """Evaluate a formula with the default engine."""
    return get_engine().evaluate_expression(expression, tables, views, functions)
