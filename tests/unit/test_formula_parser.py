"""Unit tests for the formula expression parser."""

from __future__ import annotations

import pytest

from gridql.adapters.inbound import FormulaParser, Literal, NameRef, is_formula
from gridql.domain.errors import ParseError


@pytest.mark.unit
class TestFormulaParser:
    """Tests for ``=name(arg, ...)`` parsing."""

    @pytest.fixture
    def parser(self) -> FormulaParser:
        return FormulaParser()

    def test_is_formula(self) -> None:
        assert is_formula("=sum()")
        assert not is_formula("plain text")

    def test_name_path_and_string(self, parser: FormulaParser) -> None:
        formula = parser.parse("=sum(orders.rows, 'amount')")

        assert formula.name == "sum"
        assert formula.args == [NameRef(("orders", "rows")), Literal("amount")]
        assert formula.args[0].text == "orders.rows"

    def test_both_quote_styles(self, parser: FormulaParser) -> None:
        formula = parser.parse('=concat("a", \'b\')')

        assert formula.args == [Literal("a"), Literal("b")]

    def test_literals(self, parser: FormulaParser) -> None:
        formula = parser.parse("=f(-5, 2.5, TRUE, false, null, orders)")

        assert formula.args == [
            Literal(-5),
            Literal(2.5),
            Literal(True),
            Literal(False),
            Literal(None),
            NameRef(("orders",)),
        ]

    def test_no_arguments(self, parser: FormulaParser) -> None:
        assert parser.parse("=random()").args == []

    @pytest.mark.parametrize(
        ("text", "message"),
        [
            ("sum(1)", "must start with '='"),
            ("=", "Invalid function expression"),
            ("=sum", "expected '\\(' after function name"),
            ("=sum(1 2)", "unexpected"),
            ("=sum(1", "unexpected end of query"),
            ("=sum(1) extra", "unexpected"),
        ],
    )
    def test_errors(self, parser: FormulaParser, text: str, message: str) -> None:
        with pytest.raises(ParseError, match=message):
            parser.parse(text)
