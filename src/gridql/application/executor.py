"""Query executor using the Volcano iterator model.

Plans are executed as a fixed pipeline of pull-based operators:

    scan -> join -> filter -> aggregate/project -> sort -> limit

Each operator exposes ``open()``, ``next()`` and ``close()`` and pulls rows
from its child on demand. Sort and aggregate materialize their input.

References:
    - Graefe, "Volcano" (1994)
"""

from __future__ import annotations

import functools
import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

import structlog

from gridql.adapters.inbound.sql_parser import (
    AggregateFunc,
    AggregateProjection,
    ColumnProjection,
    ColumnRef,
    ComparisonOp,
    Condition,
    Connector,
    FunctionProjection,
    JoinClause,
    Literal,
    OrderByItem,
    ProjectedColumn,
    QueryPlan,
    WildcardColumn,
)
from gridql.domain.entities import Catalog, FunctionDefinition, QueryResult, Table
from gridql.domain.errors import GridQLError, UnknownFunction
from gridql.domain.value_objects import (
    DeclaredType,
    Ordering,
    coerce_for_comparison,
    compare_values,
    is_null,
    loose_equals,
    ordering_holds,
    parse_boolean,
    to_display_text,
    to_number,
)

logger = structlog.get_logger(__name__)

FunctionInvoker = Callable[[FunctionDefinition, list[Any], Catalog], Any]
CellErrorHandler = Callable[[str, Exception], None]


@dataclass
class Row:
    """A row flowing through the pipeline.

    ``values`` holds the current columns, ``qualified`` the
    ``table.column`` entries added by joins, and ``source`` the row as it was
    before projection (so ORDER BY can use columns that were not selected).
    """

    values: Mapping[str, Any]
    qualified: dict[str, Any] = field(default_factory=dict)
    source: Mapping[str, Any] | None = None

    def lookup(self, ref: ColumnRef) -> Any:
        if ref.table:
            key = f"{ref.table.lower()}.{ref.name}"
            if key in self.qualified:
                return self.qualified[key]
        if ref.name in self.values:
            return self.values[ref.name]
        if self.source is not None and ref.name in self.source:
            return self.source[ref.name]
        return None

    def plain(self) -> dict[str, Any]:
        return dict(self.values)


class Operator(ABC):
    """Base class for executor operators (Volcano model)."""

    @abstractmethod
    def open(self) -> None:
        """Initialize the operator."""
        pass

    @abstractmethod
    def next(self) -> Row | None:
        """Return the next row or None if exhausted."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Clean up resources."""
        pass

    def __iter__(self) -> Iterator[Row]:
        """Allow iteration over operator results."""
        self.open()
        try:
            while True:
                row = self.next()
                if row is None:
                    break
                yield row
        finally:
            self.close()


class _MaterializedOperator(Operator):
    """Operator that computes all of its rows in ``open()``."""

    def __init__(self) -> None:
        self._rows: list[Row] = []
        self._current_idx = 0

    @abstractmethod
    def _materialize(self) -> list[Row]:
        pass

    def open(self) -> None:
        self._rows = self._materialize()
        self._current_idx = 0

    def next(self) -> Row | None:
        if self._current_idx >= len(self._rows):
            return None
        row = self._rows[self._current_idx]
        self._current_idx += 1
        return row

    def close(self) -> None:
        self._rows = []
        self._current_idx = 0


class SeqScanOperator(Operator):
    """Sequential scan over a table snapshot."""

    def __init__(self, table: Table) -> None:
        self._table = table
        self._current_row = 0

    def open(self) -> None:
        self._current_row = 0

    def next(self) -> Row | None:
        if self._current_row >= len(self._table.rows):
            return None
        row = self._table.rows[self._current_row]
        self._current_row += 1
        return Row(values=row)

    def close(self) -> None:
        self._current_row = 0


class NestedLoopJoinOperator(Operator):
    """Inner join by nested loops on one loose-equality key pair.

    Right-hand fields overwrite same-named left fields in the merged row.
    No index is built.
    """

    def __init__(
        self,
        child: Operator,
        left_table: Table,
        right_table: Table,
        left_key: ColumnRef,
        right_key: ColumnRef,
    ) -> None:
        self._child = child
        self._left_table = left_table
        self._right_table = right_table
        self._left_key = left_key
        self._right_key = right_key
        self._pending: list[Row] = []

    def open(self) -> None:
        self._child.open()
        self._pending = []

    def next(self) -> Row | None:
        while not self._pending:
            left = self._child.next()
            if left is None:
                return None
            self._pending = self._matches(left)
        return self._pending.pop(0)

    def close(self) -> None:
        self._child.close()
        self._pending = []

    def _matches(self, left: Row) -> list[Row]:
        left_value = left.lookup(self._left_key)
        left_prefix = self._left_table.name.lower()
        right_prefix = self._right_table.name.lower()
        matched = []
        for right in self._right_table.rows:
            if not loose_equals(left_value, right.get(self._right_key.name)):
                continue
            qualified = dict(left.qualified)
            for key, value in left.values.items():
                qualified.setdefault(f"{left_prefix}.{key}", value)
            for key, value in right.items():
                qualified[f"{right_prefix}.{key}"] = value
            matched.append(Row(values={**left.values, **right}, qualified=qualified))
        return matched


class FilterOperator(Operator):
    """Applies WHERE conditions left to right without precedence."""

    def __init__(
        self,
        child: Operator,
        conditions: list[Condition],
        column_types: dict[str, DeclaredType],
        case_insensitive: bool = True,
    ) -> None:
        self._child = child
        self._conditions = conditions
        self._column_types = column_types
        self._case_insensitive = case_insensitive
        self._patterns: dict[int, re.Pattern[str] | None] = {}

    def open(self) -> None:
        self._child.open()

    def next(self) -> Row | None:
        while True:
            row = self._child.next()
            if row is None:
                return None
            if self._evaluate_conditions(row):
                return row

    def close(self) -> None:
        self._child.close()

    def _evaluate_conditions(self, row: Row) -> bool:
        result = True
        connector = Connector.AND
        for index, condition in enumerate(self._conditions):
            try:
                matched = self._evaluate(index, condition, row)
            except (re.error, TypeError, ValueError):
                matched = False
            if connector is Connector.AND:
                result = result and matched
            else:
                result = result or matched
            connector = condition.connector
        return result

    def _evaluate(self, index: int, condition: Condition, row: Row) -> bool:
        value = row.lookup(condition.column)
        declared = self._column_types.get(condition.column.name)
        op = condition.op

        if op in (ComparisonOp.EQ, ComparisonOp.NE):
            equal = self._equals(value, condition.value, declared)
            return equal if op is ComparisonOp.EQ else not equal

        if op is ComparisonOp.LIKE:
            if is_null(value):
                return False
            pattern = self._pattern(index, condition)
            return pattern is not None and pattern.search(to_display_text(value)) is not None

        if declared is not None:
            value = coerce_for_comparison(value, declared)
        return ordering_holds(value, op.value, condition.value)

    def _equals(self, value: Any, expected: Any, declared: DeclaredType | None) -> bool:
        if declared is DeclaredType.BOOLEAN:
            stored, wanted = parse_boolean(value), parse_boolean(expected)
            if stored is not None and wanted is not None:
                return stored == wanted
        if declared is not None:
            value = coerce_for_comparison(value, declared)
        return loose_equals(value, expected, case_insensitive=self._case_insensitive)

    def _pattern(self, index: int, condition: Condition) -> re.Pattern[str] | None:
        if index not in self._patterns:
            source = to_display_text(condition.value).replace("%", ".*")
            try:
                self._patterns[index] = re.compile(source, re.IGNORECASE | re.DOTALL)
            except re.error:
                self._patterns[index] = None
        return self._patterns[index]


class _CallEvaluator:
    """Evaluates ``FN.name(...)`` projections through the function invoker."""

    def __init__(
        self,
        catalog: Catalog,
        invoker: FunctionInvoker | None,
        on_cell_error: CellErrorHandler | None,
    ) -> None:
        self._catalog = catalog
        self._invoker = invoker
        self._on_cell_error = on_cell_error

    def evaluate(self, item: FunctionProjection, row: Row) -> Any:
        definition = self._catalog.require_function(item.name)
        if item.args:
            args = [
                a.value if isinstance(a, Literal) else row.lookup(a) for a in item.args
            ]
        else:
            args = [row.plain()]
        if self._invoker is None:
            return None
        try:
            return self._invoker(definition, args, self._catalog)
        except GridQLError as e:
            logger.warning(
                "projection_cell_error",
                function=definition.name,
                column=item.output_name,
                error=str(e),
            )
            if self._on_cell_error is not None:
                self._on_cell_error(definition.name, e)
            return None


class ProjectOperator(Operator):
    """Maps each row to the declared output columns."""

    def __init__(
        self,
        child: Operator,
        items: list[ProjectedColumn],
        wildcard_columns: list[str],
        calls: _CallEvaluator,
    ) -> None:
        self._child = child
        self._items = items
        self._wildcard_columns = wildcard_columns
        self._calls = calls

    def open(self) -> None:
        self._child.open()

    def next(self) -> Row | None:
        row = self._child.next()
        if row is None:
            return None
        values: dict[str, Any] = {}
        for item in self._items:
            if isinstance(item, WildcardColumn):
                for name in self._wildcard_columns:
                    values[name] = row.values.get(name)
            elif isinstance(item, ColumnProjection):
                values[item.output_name] = row.lookup(item.column)
            elif isinstance(item, FunctionProjection):
                values[item.output_name] = self._calls.evaluate(item, row)
        return Row(values=values, qualified=row.qualified, source=row.values)

    def close(self) -> None:
        self._child.close()


class AggregateOperator(_MaterializedOperator):
    """Collapses the whole input into a single row.

    There is no GROUP BY: aggregates run over every input row, and
    non-aggregate items take their value from the first row.
    """

    def __init__(
        self,
        child: Operator,
        items: list[ProjectedColumn],
        wildcard_columns: list[str],
        calls: _CallEvaluator,
    ) -> None:
        super().__init__()
        self._child = child
        self._items = items
        self._wildcard_columns = wildcard_columns
        self._calls = calls

    def _materialize(self) -> list[Row]:
        rows = list(self._child)
        first = rows[0] if rows else None
        values: dict[str, Any] = {}
        for item in self._items:
            if isinstance(item, AggregateProjection):
                func = AggregateFunc.lookup(item.func_name)
                values[item.output_name] = self._aggregate(func, item.argument, rows)
            elif isinstance(item, WildcardColumn):
                for name in self._wildcard_columns:
                    values[name] = None if first is None else first.values.get(name)
            elif isinstance(item, ColumnProjection):
                values[item.output_name] = None if first is None else first.lookup(item.column)
            elif isinstance(item, FunctionProjection):
                values[item.output_name] = (
                    None if first is None else self._calls.evaluate(item, first)
                )
        return [Row(values=values)]

    def close(self) -> None:
        super().close()

    @staticmethod
    def _aggregate(func: AggregateFunc | None, argument: ColumnRef | None, rows: list[Row]) -> Any:
        if func is AggregateFunc.COUNT:
            if argument is None:
                return len(rows)
            return sum(1 for r in rows if not is_null(r.lookup(argument)))

        if argument is None:
            raw: list[Any] = [r.plain() for r in rows]
        else:
            raw = [r.lookup(argument) for r in rows]

        if func is AggregateFunc.SUM:
            return sum((to_number(v) or 0) for v in raw)
        if func is AggregateFunc.AVG:
            present = [v for v in raw if not is_null(v)]
            if not present:
                return 0
            return sum((to_number(v) or 0) for v in present) / len(present)

        numbers = [n for n in (to_number(v) for v in raw) if n is not None]
        if not numbers:
            return None
        return max(numbers) if func is AggregateFunc.MAX else min(numbers)


class SortOperator(_MaterializedOperator):
    """Stable multi-key sort; nulls first ascending, last descending."""

    def __init__(
        self,
        child: Operator,
        order_by: list[OrderByItem],
        column_types: dict[str, DeclaredType],
    ) -> None:
        super().__init__()
        self._child = child
        self._order_by = order_by
        self._column_types = column_types

    def _key_value(self, row: Row, item: OrderByItem) -> Any:
        value = row.lookup(item.column)
        declared = self._column_types.get(item.column.name)
        if declared is not None:
            value = coerce_for_comparison(value, declared)
        return value

    def _compare(self, a: Row, b: Row) -> int:
        for item in self._order_by:
            ordering = compare_values(self._key_value(a, item), self._key_value(b, item))
            if ordering is Ordering.EQUAL:
                continue
            result = ordering.value
            return result if item.ascending else -result
        return 0

    def _materialize(self) -> list[Row]:
        rows = list(self._child)
        return sorted(rows, key=functools.cmp_to_key(self._compare))


class LimitOperator(Operator):
    """Limit operator that restricts row count."""

    def __init__(self, child: Operator, limit: int) -> None:
        self._child = child
        self._limit = limit
        self._returned = 0

    def open(self) -> None:
        self._child.open()
        self._returned = 0

    def next(self) -> Row | None:
        if self._returned >= self._limit:
            return None
        row = self._child.next()
        if row is None:
            return None
        self._returned += 1
        return row

    def close(self) -> None:
        self._child.close()


def _unique(names: list[str]) -> list[str]:
    return list(dict.fromkeys(names))


class QueryExecutor:
    """Executes query plans against a catalog snapshot.

    The executor never mutates the catalog's tables. Function projections
    are delegated to ``function_invoker``; a failing call only nulls its
    own cell.
    """

    def __init__(
        self,
        function_invoker: FunctionInvoker | None = None,
        case_insensitive_text: bool = True,
        max_rows: int | None = None,
        on_cell_error: CellErrorHandler | None = None,
    ) -> None:
        self._function_invoker = function_invoker
        self._case_insensitive_text = case_insensitive_text
        self._max_rows = max_rows
        self._on_cell_error = on_cell_error

    def execute(self, plan: QueryPlan, catalog: Catalog) -> QueryResult:
        """Execute a plan.

        Raises:
            UnknownTable: if the FROM or JOIN table is not in the catalog.
            UnknownFunction: if a FN call or aggregate name is unknown.
        """
        operator, columns = self.build_operator_tree(plan, catalog)
        rows = [row.plain() for row in operator]
        if self._max_rows is not None:
            rows = rows[: self._max_rows]
        return QueryResult(columns=columns, rows=rows)

    def build_operator_tree(self, plan: QueryPlan, catalog: Catalog) -> tuple[Operator, list[str]]:
        """Build the physical operator pipeline and the output column names."""
        table = catalog.require_table(plan.from_table)
        column_types = table.column_types()
        wildcard_columns = table.output_columns()

        operator: Operator = SeqScanOperator(table)

        if plan.join is not None:
            right = catalog.require_table(plan.join.table)
            left_key, right_key = self._orient_join_keys(plan.join, right)
            operator = NestedLoopJoinOperator(operator, table, right, left_key, right_key)
            for name, declared in right.column_types().items():
                column_types.setdefault(name, declared)
            wildcard_columns = _unique(wildcard_columns + right.output_columns())

        self._check_calls(plan, catalog)

        if plan.where:
            operator = FilterOperator(
                operator, plan.where, column_types, self._case_insensitive_text
            )

        calls = _CallEvaluator(catalog, self._function_invoker, self._on_cell_error)
        if plan.has_aggregates:
            operator = AggregateOperator(operator, plan.select_list, wildcard_columns, calls)
        else:
            operator = ProjectOperator(operator, plan.select_list, wildcard_columns, calls)

        if plan.order_by and not plan.has_aggregates:
            operator = SortOperator(operator, plan.order_by, column_types)

        if plan.limit is not None:
            operator = LimitOperator(operator, plan.limit)

        columns: list[str] = []
        for item in plan.select_list:
            if isinstance(item, WildcardColumn):
                columns.extend(wildcard_columns)
            else:
                columns.append(item.output_name)
        return operator, _unique(columns)

    @staticmethod
    def _orient_join_keys(join: JoinClause, right: Table) -> tuple[ColumnRef, ColumnRef]:
        """Swap ON operands when the left one is qualified with the joined table."""
        left_key, right_key = join.left_key, join.right_key
        qualifiers = {join.table.lower(), right.name.lower()}
        if left_key.table and left_key.table.lower() in qualifiers:
            if not (right_key.table and right_key.table.lower() in qualifiers):
                return right_key, left_key
        return left_key, right_key

    @staticmethod
    def _check_calls(plan: QueryPlan, catalog: Catalog) -> None:
        for item in plan.select_list:
            if isinstance(item, FunctionProjection):
                catalog.require_function(item.name)
            elif isinstance(item, AggregateProjection):
                if AggregateFunc.lookup(item.func_name) is None:
                    raise UnknownFunction(item.func_name, [f.value for f in AggregateFunc])
