"""Unit tests for the script lexer and parser."""

from __future__ import annotations

import pytest

from gridql.domain.errors import ScriptSyntaxError
from gridql.domain.services.script_lexer import tokenize
from gridql.domain.services.script_parser import (
    Arrow,
    Assign,
    Binary,
    Call,
    Const,
    ExprStmt,
    ForOf,
    If,
    Logical,
    Member,
    Name,
    ObjectLiteral,
    Return,
    VarDecl,
    parse_script,
)


@pytest.mark.unit
class TestScriptLexer:
    """Tests for tokenizing function bodies."""

    def test_tokens(self) -> None:
        tokens = tokenize("let x = 1.5 + 'a\\n' // comment")

        assert [t.type for t in tokens] == ["LET", "IDENTIFIER", "ASSIGN", "NUMBER", "PLUS", "STRING"]
        assert tokens[3].value == 1.5
        assert tokens[5].value == "a\n"

    def test_longest_operator_wins(self) -> None:
        tokens = tokenize("a === b !== c => d ?? e")

        assert [t.type for t in tokens if t.type != "IDENTIFIER"] == [
            "STRICT_EQ",
            "STRICT_NE",
            "ARROW",
            "NULLISH",
        ]

    def test_newline_flag_and_lines(self) -> None:
        tokens = tokenize("a\n/* block\ncomment */ b")

        assert tokens[1].newline_before
        assert tokens[1].line == 3

    def test_hex_number(self) -> None:
        assert tokenize("0x1F")[0].value == 31

    def test_unterminated_string(self) -> None:
        with pytest.raises(ScriptSyntaxError, match="Unterminated string literal"):
            tokenize("'abc")

    def test_unexpected_character(self) -> None:
        with pytest.raises(ScriptSyntaxError, match="Unexpected character"):
            tokenize("a # b")


@pytest.mark.unit
class TestScriptParser:
    """Tests for parsing function bodies."""

    def test_return_expression(self) -> None:
        program = parse_script("return x * 2")

        statement = program.body[0]
        assert isinstance(statement, Return)
        value = statement.value
        assert isinstance(value, Binary) and value.op == "*"
        assert isinstance(value.left, Name) and value.left.id == "x"
        assert isinstance(value.right, Const) and value.right.value == 2

    def test_optional_semicolons(self) -> None:
        program = parse_script("let a = 1\nlet b = 2\nreturn a + b")

        assert [type(s) for s in program.body] == [VarDecl, VarDecl, Return]

    def test_precedence(self) -> None:
        program = parse_script("a || b && c + d * e")

        expr = program.body[0]
        assert isinstance(expr, ExprStmt)
        assert isinstance(expr.expr, Logical) and expr.expr.op == "||"
        right = expr.expr.right
        assert isinstance(right, Logical) and right.op == "&&"
        assert isinstance(right.right, Binary) and right.right.op == "+"

    def test_arrow_functions(self) -> None:
        program = parse_script("const f = (a, b) => a + b\nconst g = x => { return x }")

        first, second = program.body
        assert isinstance(first, VarDecl) and isinstance(first.declarations[0][1], Arrow)
        arrow = second.declarations[0][1]
        assert isinstance(arrow, Arrow)
        assert arrow.params == ["x"]
        assert not arrow.expression_body

    def test_object_literal_shorthand_and_spread(self) -> None:
        program = parse_script("return { a, b: 2, ...rest }")

        literal = program.body[0].value
        assert isinstance(literal, ObjectLiteral)
        assert len(literal.entries) == 3

    def test_member_calls(self) -> None:
        program = parse_script("rows.map(r => r.amount)")

        call = program.body[0].expr
        assert isinstance(call, Call)
        assert isinstance(call.callee, Member) and call.callee.prop == "map"

    def test_for_of_and_if(self) -> None:
        program = parse_script("for (const r of rows) { if (r.x) break; else continue }")

        loop = program.body[0]
        assert isinstance(loop, ForOf)
        assert loop.kind == "const" and loop.name == "r"

    def test_compound_assignment(self) -> None:
        program = parse_script("total += 1")

        assign = program.body[0].expr
        assert isinstance(assign, Assign) and assign.op == "+="

    def test_if_else(self) -> None:
        program = parse_script("if (a) { return 1 } else return 2")

        assert isinstance(program.body[0], If)
        assert program.body[0].alternate is not None

    @pytest.mark.parametrize(
        ("source", "message"),
        [
            ("function f() {}", "'function' is not supported"),
            ("new Date()", "'new' is not supported"),
            ("return (1 + ", "Unexpected end of input"),
            ("let = 3", "Expected a variable name"),
            ("break", "break"),
            ("a b", "Unexpected token 'b'"),
        ],
    )
    def test_syntax_errors(self, source: str, message: str) -> None:
        with pytest.raises(ScriptSyntaxError, match=message):
            parse_script(source)
