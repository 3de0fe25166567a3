"""Unit tests for the query parser."""

from __future__ import annotations

import pytest

from gridql.adapters.inbound import (
    AggregateProjection,
    ColumnProjection,
    ColumnRef,
    ComparisonOp,
    Connector,
    FunctionProjection,
    Literal,
    QueryParser,
    WildcardColumn,
)
from gridql.domain.errors import ParseError


class TestQueryParserSelect:
    """Tests for SELECT list and FROM parsing."""

    @pytest.fixture
    def parser(self) -> QueryParser:
        """Create a query parser for testing."""
        return QueryParser()

    def test_simple_select(self, parser: QueryParser) -> None:
        """Parse simple SELECT."""
        plan = parser.parse("SELECT id, name FROM users")

        assert plan.from_table == "users"
        assert [item.output_name for item in plan.select_list] == ["id", "name"]
        assert all(isinstance(item, ColumnProjection) for item in plan.select_list)

    def test_select_star(self, parser: QueryParser) -> None:
        plan = parser.parse("SELECT * FROM users")

        assert len(plan.select_list) == 1
        assert isinstance(plan.select_list[0], WildcardColumn)

    def test_keywords_case_insensitive(self, parser: QueryParser) -> None:
        plan = parser.parse("select id from users where id = 1 order by id desc limit 5")

        assert plan.from_table == "users"
        assert plan.limit == 5
        assert plan.order_by[0].ascending is False

    def test_alias(self, parser: QueryParser) -> None:
        plan = parser.parse("SELECT amount AS total FROM orders")

        item = plan.select_list[0]
        assert isinstance(item, ColumnProjection)
        assert item.column == ColumnRef("amount")
        assert item.output_name == "total"

    def test_qualified_column(self, parser: QueryParser) -> None:
        plan = parser.parse("SELECT orders.amount FROM orders")

        item = plan.select_list[0]
        assert isinstance(item, ColumnProjection)
        assert item.column == ColumnRef("amount", "orders")
        assert item.output_name == "amount"

    @pytest.mark.parametrize("ref", ["`order items`", '"order items"', "'order items'"])
    def test_quoted_table_name(self, parser: QueryParser, ref: str) -> None:
        plan = parser.parse(f"SELECT * FROM {ref}")

        assert plan.from_table == "order items"

    def test_aggregates(self, parser: QueryParser) -> None:
        plan = parser.parse("SELECT COUNT(*), sum(amount) AS total FROM orders")

        count, total = plan.select_list
        assert isinstance(count, AggregateProjection)
        assert count.argument is None
        assert count.output_name == "COUNT(*)"
        assert isinstance(total, AggregateProjection)
        assert total.argument == ColumnRef("amount")
        assert total.output_name == "total"
        assert plan.has_aggregates

    def test_unknown_aggregate_is_kept(self, parser: QueryParser) -> None:
        """Unknown call names are rejected at execution, not parse time."""
        plan = parser.parse("SELECT MEDIAN(amount) FROM orders")

        item = plan.select_list[0]
        assert isinstance(item, AggregateProjection)
        assert item.func_name == "MEDIAN"

    def test_function_call(self, parser: QueryParser) -> None:
        plan = parser.parse("SELECT FN.scale(amount, 2, 'x', true, null) AS scaled FROM orders")

        item = plan.select_list[0]
        assert isinstance(item, FunctionProjection)
        assert item.name == "scale"
        assert item.args == [
            ColumnRef("amount"),
            Literal(2),
            Literal("x"),
            Literal(True),
            Literal(None),
        ]
        assert item.output_name == "scaled"

    def test_function_call_default_name(self, parser: QueryParser) -> None:
        plan = parser.parse("SELECT FN.double(amount) FROM orders")

        assert plan.select_list[0].output_name == "FN.double(amount)"

    def test_function_call_without_args(self, parser: QueryParser) -> None:
        plan = parser.parse("SELECT FN.describe() FROM orders")

        item = plan.select_list[0]
        assert isinstance(item, FunctionProjection)
        assert item.args == []


class TestQueryParserClauses:
    """Tests for JOIN, WHERE, ORDER BY and LIMIT."""

    @pytest.fixture
    def parser(self) -> QueryParser:
        return QueryParser()

    def test_join(self, parser: QueryParser) -> None:
        plan = parser.parse(
            "SELECT * FROM orders JOIN customers ON orders.customer_id = customers.id"
        )

        assert plan.join is not None
        assert plan.join.table == "customers"
        assert plan.join.left_key == ColumnRef("customer_id", "orders")
        assert plan.join.right_key == ColumnRef("id", "customers")

    def test_inner_join(self, parser: QueryParser) -> None:
        plan = parser.parse("SELECT * FROM a INNER JOIN b ON a.id = b.a_id")

        assert plan.join is not None
        assert plan.join.table == "b"

    def test_where_conditions(self, parser: QueryParser) -> None:
        plan = parser.parse(
            "SELECT * FROM orders WHERE status = 'paid' AND amount >= -5 OR note LIKE '%rush%'"
        )

        first, second, third = plan.where
        assert (first.column.name, first.op, first.value) == ("status", ComparisonOp.EQ, "paid")
        assert first.connector is Connector.AND
        assert (second.op, second.value) == (ComparisonOp.GE, -5)
        assert second.connector is Connector.OR
        assert third.op is ComparisonOp.LIKE
        assert third.value == "%rush%"

    @pytest.mark.parametrize("op", ["!=", "<>"])
    def test_not_equal_forms(self, parser: QueryParser, op: str) -> None:
        plan = parser.parse(f"SELECT * FROM t WHERE a {op} 1")

        assert plan.where[0].op is ComparisonOp.NE

    def test_where_literals(self, parser: QueryParser) -> None:
        plan = parser.parse("SELECT * FROM t WHERE a = true AND b = null AND c = paid")

        assert [c.value for c in plan.where] == [True, None, "paid"]

    def test_order_by_multiple(self, parser: QueryParser) -> None:
        plan = parser.parse("SELECT * FROM t ORDER BY a, b DESC, c ASC")

        assert [(o.column.name, o.ascending) for o in plan.order_by] == [
            ("a", True),
            ("b", False),
            ("c", True),
        ]

    def test_limit(self, parser: QueryParser) -> None:
        assert parser.parse("SELECT * FROM t LIMIT 0").limit == 0


class TestQueryParserErrors:
    """Tests for parse errors."""

    @pytest.fixture
    def parser(self) -> QueryParser:
        return QueryParser()

    @pytest.mark.parametrize(
        ("query", "message"),
        [
            ("DELETE FROM t", "Only SELECT queries are supported"),
            ("SELECT id", "FROM clause is required"),
            ("SELECT * FROM a JOIN b", "JOIN clause requires ON"),
            ("SELECT * FROM t LIMIT -1", "LIMIT requires a non-negative integer"),
            ("SELECT * FROM t LIMIT 2.5", "LIMIT requires a non-negative integer"),
            ("SELECT * FROM t GROUP BY a", "GROUP BY is not supported"),
            ("SELECT * FROM t WHERE a = 'open", "Unterminated"),
            ("SELECT * FROM t WHERE a", "requires an operator"),
            ("SELECT * FROM t LEFT JOIN u ON t.a = u.a", "Only INNER JOIN"),
            ("", "Query is empty"),
        ],
    )
    def test_error_messages(self, parser: QueryParser, query: str, message: str) -> None:
        with pytest.raises(ParseError, match=message):
            parser.parse(query)

    def test_trailing_garbage(self, parser: QueryParser) -> None:
        with pytest.raises(ParseError):
            parser.parse("SELECT * FROM t extra")
