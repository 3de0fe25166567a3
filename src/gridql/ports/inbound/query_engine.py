"""Query engine port.

This inbound port defines the contract that callers (the REST adapter, an
editor UI, tests) use to run queries, call user functions and evaluate
standalone formulas against a caller-supplied catalog.

Each call receives its tables, views and functions explicitly; an engine
holds no tables between calls.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Iterable, Mapping
from typing import Any, Protocol

from gridql.domain.entities import (
    FunctionDefinition,
    FunctionResult,
    QueryResult,
    Table,
    View,
)

TableInput = Table | Mapping[str, Any]
ViewInput = View | Mapping[str, Any]
FunctionInput = FunctionDefinition | Mapping[str, Any]


class QueryEngine(Protocol):
    """Protocol for the engine entry points.

    Failures never raise: they are returned on the result's ``error`` so
    callers can render them inline.

    Thread Safety:
        Implementations must be safe to share across threads.

    Example:
        result = engine.run_query("SELECT * FROM orders", tables=[orders])
        if result.success:
            render(result.columns, result.rows)
    """

    @abstractmethod
    def run_query(
        self,
        query_text: str,
        tables: Iterable[TableInput] = (),
        functions: Iterable[FunctionInput] = (),
        views: Iterable[ViewInput] = (),
    ) -> QueryResult:
        """Parse and execute a query.

        Args:
            query_text: The query in the view dialect.
            tables: Tables visible to the query.
            functions: User functions callable as ``FN.name(...)``.
            views: Views that function parameters may reference.

        Returns:
            QueryResult with columns and rows, or the error.
        """
        ...

    @abstractmethod
    def run_function(
        self,
        definition: FunctionInput,
        args: list[Any],
        tables: Iterable[TableInput] = (),
        views: Iterable[ViewInput] = (),
        functions: Iterable[FunctionInput] = (),
    ) -> FunctionResult:
        """Run one user function with positional arguments.

        Returns:
            FunctionResult with the value and console output, or the error.
        """
        ...

    @abstractmethod
    def evaluate_expression(
        self,
        expression: str,
        tables: Iterable[TableInput] = (),
        views: Iterable[ViewInput] = (),
        functions: Iterable[FunctionInput] = (),
    ) -> FunctionResult:
        """Evaluate ``=name(arg, ...)``; other text is returned unchanged.

        Returns:
            FunctionResult with the value, or the error.
        """
        ...
