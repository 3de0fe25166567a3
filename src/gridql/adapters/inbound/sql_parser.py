"""Query parser for the view query dialect.

Tokenizes with sqlglot's tokenizer and builds a ``QueryPlan`` with a small
recursive-descent parser. The dialect is narrower than SQL and has its own
rules (left-to-right AND/OR, quoted table names, ``FN.name(...)`` calls),
so sqlglot's full parser is not used.

Grammar (keywords are case-insensitive)::

    SELECT <select-list> FROM <table-ref>
      [[INNER] JOIN <table-ref> ON <col-ref> = <col-ref>]
      [WHERE <condition> (AND|OR <condition>)*]
      [ORDER BY <col-ref> [ASC|DESC] (, ...)*]
      [LIMIT <integer>]

Unknown aggregate or function names and unknown tables are accepted here
and rejected by the executor.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sqlglot.errors import TokenError
from sqlglot.tokens import Token, Tokenizer, TokenType

from gridql.domain.errors import ParseError
from gridql.domain.value_objects import to_display_text, to_number


class ComparisonOp(Enum):
    """Comparison operators for WHERE conditions."""

    EQ = "="
    NE = "!="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    LIKE = "LIKE"


class Connector(Enum):
    """Boolean connector trailing a condition."""

    AND = "AND"
    OR = "OR"


class AggregateFunc(Enum):
    """Aggregate functions."""

    COUNT = "COUNT"
    SUM = "SUM"
    AVG = "AVG"
    MIN = "MIN"
    MAX = "MAX"

    @classmethod
    def lookup(cls, name: str) -> AggregateFunc | None:
        try:
            return cls(name.upper())
        except ValueError:
            return None


@dataclass(frozen=True)
class ColumnRef:
    """Reference to a column, optionally qualified with a table name."""

    name: str
    table: str | None = None

    def __str__(self) -> str:
        if self.table:
            return f"{self.table}.{self.name}"
        return self.name


@dataclass(frozen=True)
class Literal:
    """A literal value."""

    value: Any

    def __str__(self) -> str:
        if isinstance(self.value, str):
            return f"'{self.value}'"
        return to_display_text(self.value)


@dataclass
class ProjectedColumn(ABC):
    """An item in the SELECT list."""

    @property
    @abstractmethod
    def output_name(self) -> str:
        pass


@dataclass
class WildcardColumn(ProjectedColumn):
    """``*``"""

    @property
    def output_name(self) -> str:
        return "*"


@dataclass
class ColumnProjection(ProjectedColumn):
    """A bare column reference, optionally aliased."""

    column: ColumnRef
    alias: str | None = None

    @property
    def output_name(self) -> str:
        return self.alias or self.column.name


@dataclass
class AggregateProjection(ProjectedColumn):
    """``AGG(col|*)``; ``argument`` is None for ``*``."""

    func_name: str
    argument: ColumnRef | None = None
    alias: str | None = None

    @property
    def call_text(self) -> str:
        arg = "*" if self.argument is None else str(self.argument)
        return f"{self.func_name.upper()}({arg})"

    @property
    def output_name(self) -> str:
        return self.alias or self.call_text


@dataclass
class FunctionProjection(ProjectedColumn):
    """``FN.name(args)``"""

    name: str
    args: list[ColumnRef | Literal] = field(default_factory=list)
    alias: str | None = None

    @property
    def call_text(self) -> str:
        return f"FN.{self.name}({', '.join(str(a) for a in self.args)})"

    @property
    def output_name(self) -> str:
        return self.alias or self.call_text


@dataclass
class Condition:
    """``field OP value`` plus the connector to the next condition."""

    column: ColumnRef
    op: ComparisonOp
    value: Any
    connector: Connector = Connector.AND

    def __str__(self) -> str:
        return f"{self.column} {self.op.value} {Literal(self.value)}"


@dataclass
class JoinClause:
    """Inner join on a single equality."""

    table: str
    left_key: ColumnRef
    right_key: ColumnRef

    def __str__(self) -> str:
        return f"JOIN {self.table} ON {self.left_key} = {self.right_key}"


@dataclass
class OrderByItem:
    """An item in an ORDER BY clause."""

    column: ColumnRef
    ascending: bool = True


@dataclass
class QueryPlan:
    """Parsed query, built fresh for each execution."""

    select_list: list[ProjectedColumn]
    from_table: str
    join: JoinClause | None = None
    where: list[Condition] = field(default_factory=list)
    order_by: list[OrderByItem] = field(default_factory=list)
    limit: int | None = None

    @property
    def has_aggregates(self) -> bool:
        return any(isinstance(item, AggregateProjection) for item in self.select_list)

    def __str__(self) -> str:
        lines = [f"Project({', '.join(i.output_name for i in self.select_list)})"]
        if self.limit is not None:
            lines.insert(0, f"Limit({self.limit})")
        if self.order_by:
            keys = ", ".join(
                f"{o.column} {'ASC' if o.ascending else 'DESC'}" for o in self.order_by
            )
            lines.insert(1 if self.limit is not None else 0, f"Sort({keys})")
        if self.where:
            parts = []
            for i, cond in enumerate(self.where):
                parts.append(str(cond))
                if i < len(self.where) - 1:
                    parts.append(cond.connector.value)
            lines.append(f"Filter({' '.join(parts)})")
        if self.join:
            lines.append(f"NestedLoopJoin({self.join})")
        lines.append(f"TableScan({self.from_table})")
        return "\n  -> ".join(lines)


class QueryTokenizer(Tokenizer):
    """sqlglot tokenizer with backtick and double-quote identifiers."""

    QUOTES = ["'"]
    IDENTIFIERS = ['"', "`"]


_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_$]*")

_RESERVED = frozenset(
    {
        "SELECT", "FROM", "WHERE", "JOIN", "INNER", "LEFT", "RIGHT", "FULL",
        "OUTER", "CROSS", "ON", "AND", "OR", "ORDER", "ORDER BY", "GROUP",
        "GROUP BY", "HAVING", "BY", "LIMIT", "ASC", "DESC", "AS", "LIKE",
    }
)

_COMPARISON_OPS = {
    "=": ComparisonOp.EQ,
    "==": ComparisonOp.EQ,
    "!=": ComparisonOp.NE,
    "<>": ComparisonOp.NE,
    "<": ComparisonOp.LT,
    "<=": ComparisonOp.LE,
    ">": ComparisonOp.GT,
    ">=": ComparisonOp.GE,
    "LIKE": ComparisonOp.LIKE,
}

_QUOTED = (TokenType.STRING, TokenType.IDENTIFIER)


class TokenStream:
    """Cursor over sqlglot tokens with keyword helpers."""

    def __init__(self, text: str, tokenizer: Tokenizer | None = None) -> None:
        try:
            self._tokens: list[Token] = (tokenizer or QueryTokenizer()).tokenize(text)
        except TokenError as e:
            raise ParseError(f"Unterminated quoted string or identifier: {e}") from e
        self._pos = 0

    def peek(self, offset: int = 0) -> Token | None:
        index = self._pos + offset
        if index < len(self._tokens):
            return self._tokens[index]
        return None

    def advance(self) -> Token:
        token = self.peek()
        if token is None:
            raise ParseError("Unexpected end of query")
        self._pos += 1
        return token

    @property
    def at_end(self) -> bool:
        return self._pos >= len(self._tokens)

    @staticmethod
    def keyword(token: Token | None) -> str | None:
        """Normalized upper-case text of an unquoted, non-numeric token."""
        if token is None or token.token_type in _QUOTED or token.token_type == TokenType.NUMBER:
            return None
        return " ".join(token.text.upper().split())

    def at_keyword(self, *words: str) -> bool:
        return self.keyword(self.peek()) in words

    def at_phrase(self, first: str, second: str) -> bool:
        """Match a two-word keyword whether tokenized as one token or two."""
        if self.at_keyword(f"{first} {second}"):
            return True
        return self.at_keyword(first) and self.keyword(self.peek(1)) == second

    def consume_phrase(self, first: str, second: str) -> None:
        if self.at_keyword(f"{first} {second}"):
            self.advance()
        else:
            self.advance()
            self.advance()

    def at_symbol(self, symbol: str) -> bool:
        token = self.peek()
        return token is not None and token.token_type not in _QUOTED and token.text == symbol

    @staticmethod
    def is_name(token: Token | None) -> bool:
        if token is None:
            return False
        if token.token_type in (TokenType.VAR, TokenType.IDENTIFIER):
            return True
        if token.token_type in (TokenType.STRING, TokenType.NUMBER):
            return False
        return _NAME_RE.fullmatch(token.text) is not None and token.text.upper() not in _RESERVED

    def describe(self) -> str:
        token = self.peek()
        return "end of query" if token is None else f"'{token.text}'"


class QueryParser:
    """Parses view queries into ``QueryPlan`` objects.

    Example:
        >>> plan = QueryParser().parse("SELECT id FROM orders WHERE status = 'paid'")
        >>> plan.from_table
        'orders'
    """

    def parse(self, text: str) -> QueryPlan:
        """Parse a query string.

        Raises:
            ParseError: naming the clause that is missing or malformed.
        """
        if text is None or not text.strip():
            raise ParseError("Query is empty")

        stream = TokenStream(text)
        if not stream.at_keyword("SELECT"):
            raise ParseError("Only SELECT queries are supported")
        stream.advance()

        select_list = self._parse_select_list(stream)

        if not stream.at_keyword("FROM"):
            if stream.at_end:
                raise ParseError("FROM clause is required")
            raise ParseError(f"Expected FROM clause, found {stream.describe()}")
        stream.advance()
        from_table = self._parse_table_ref(stream, "FROM")

        join = None
        if stream.at_keyword("LEFT", "RIGHT", "FULL", "OUTER", "CROSS"):
            raise ParseError("Only INNER JOIN is supported")
        if stream.at_keyword("INNER", "JOIN", "INNER JOIN"):
            join = self._parse_join(stream)

        where: list[Condition] = []
        if stream.at_keyword("WHERE"):
            stream.advance()
            where = self._parse_where(stream)

        if stream.at_phrase("GROUP", "BY") or stream.at_keyword("HAVING"):
            raise ParseError("GROUP BY is not supported")

        order_by: list[OrderByItem] = []
        if stream.at_phrase("ORDER", "BY"):
            stream.consume_phrase("ORDER", "BY")
            order_by = self._parse_order_by(stream)

        limit = None
        if stream.at_keyword("LIMIT"):
            stream.advance()
            limit = self._parse_limit(stream)

        if not stream.at_end:
            raise ParseError(f"Unexpected token {stream.describe()}")

        return QueryPlan(
            select_list=select_list,
            from_table=from_table,
            join=join,
            where=where,
            order_by=order_by,
            limit=limit,
        )

    # SELECT list

    def _parse_select_list(self, stream: TokenStream) -> list[ProjectedColumn]:
        if stream.at_keyword("FROM") or stream.at_end:
            raise ParseError("SELECT list is empty")
        items = [self._parse_select_item(stream)]
        while stream.at_symbol(","):
            stream.advance()
            items.append(self._parse_select_item(stream))
        return items

    def _parse_select_item(self, stream: TokenStream) -> ProjectedColumn:
        if stream.at_symbol("*"):
            stream.advance()
            return WildcardColumn()

        token = stream.peek()
        if not stream.is_name(token):
            raise ParseError(f"Invalid SELECT item {stream.describe()}")

        item: ProjectedColumn
        if self._is_function_call(stream):
            item = self._parse_function_call(stream)
        elif stream.peek(1) is not None and stream.peek(1).text == "(":
            item = self._parse_aggregate(stream)
        else:
            item = ColumnProjection(column=self._parse_column_ref(stream))

        alias = self._parse_alias(stream)
        if alias is not None:
            item.alias = alias  # type: ignore[attr-defined]
        return item

    @staticmethod
    def _is_function_call(stream: TokenStream) -> bool:
        token, dot, paren = stream.peek(), stream.peek(1), stream.peek(3)
        return (
            token is not None
            and token.token_type != TokenType.IDENTIFIER
            and token.text.upper() == "FN"
            and dot is not None
            and dot.text == "."
            and paren is not None
            and paren.text == "("
        )

    def _parse_function_call(self, stream: TokenStream) -> FunctionProjection:
        stream.advance()  # FN
        stream.advance()  # .
        if not stream.is_name(stream.peek()):
            raise ParseError(f"Expected function name after 'FN.', found {stream.describe()}")
        name = stream.advance().text
        if not stream.at_symbol("("):
            raise ParseError(f"Expected '(' after FN.{name}")
        stream.advance()
        args: list[ColumnRef | Literal] = []
        if not stream.at_symbol(")"):
            args.append(self._parse_argument(stream))
            while stream.at_symbol(","):
                stream.advance()
                args.append(self._parse_argument(stream))
        if not stream.at_symbol(")"):
            raise ParseError(f"Expected ')' to close FN.{name}(, found {stream.describe()}")
        stream.advance()
        return FunctionProjection(name=name, args=args)

    def _parse_argument(self, stream: TokenStream) -> ColumnRef | Literal:
        token = stream.peek()
        if token is None:
            raise ParseError("Unexpected end of query in function arguments")
        if stream.keyword(token) in ("TRUE", "FALSE", "NULL") or token.token_type in (
            TokenType.STRING,
            TokenType.NUMBER,
        ) or stream.at_symbol("-"):
            return Literal(self._parse_literal(stream))
        if stream.is_name(token):
            return self._parse_column_ref(stream)
        raise ParseError(f"Invalid function argument {stream.describe()}")

    def _parse_aggregate(self, stream: TokenStream) -> AggregateProjection:
        name = stream.advance().text
        stream.advance()  # (
        argument = None
        if stream.at_symbol("*"):
            stream.advance()
        elif stream.is_name(stream.peek()):
            argument = self._parse_column_ref(stream)
        else:
            raise ParseError(f"{name.upper()}() expects a column or *, found {stream.describe()}")
        if not stream.at_symbol(")"):
            raise ParseError(f"Expected ')' to close {name.upper()}(, found {stream.describe()}")
        stream.advance()
        return AggregateProjection(func_name=name, argument=argument)

    def _parse_alias(self, stream: TokenStream) -> str | None:
        if not stream.at_keyword("AS"):
            return None
        stream.advance()
        token = stream.peek()
        if token is None or not (stream.is_name(token) or token.token_type == TokenType.STRING):
            raise ParseError(f"Expected alias after AS, found {stream.describe()}")
        return stream.advance().text

    # FROM / JOIN

    def _parse_table_ref(self, stream: TokenStream, clause: str) -> str:
        token = stream.peek()
        if token is None or not (stream.is_name(token) or token.token_type == TokenType.STRING):
            raise ParseError(f"{clause} clause requires a table name")
        return stream.advance().text

    def _parse_join(self, stream: TokenStream) -> JoinClause:
        if stream.at_keyword("INNER JOIN"):
            stream.advance()
        else:
            if stream.at_keyword("INNER"):
                stream.advance()
            if not stream.at_keyword("JOIN"):
                raise ParseError(f"Expected JOIN after INNER, found {stream.describe()}")
            stream.advance()
        table = self._parse_table_ref(stream, "JOIN")
        if not stream.at_keyword("ON"):
            raise ParseError("JOIN clause requires ON <column> = <column>")
        stream.advance()
        if not stream.is_name(stream.peek()):
            raise ParseError("JOIN clause requires ON <column> = <column>")
        left = self._parse_column_ref(stream)
        if not stream.at_symbol("="):
            raise ParseError("JOIN clause requires ON <column> = <column>")
        stream.advance()
        if not stream.is_name(stream.peek()):
            raise ParseError("JOIN clause requires ON <column> = <column>")
        right = self._parse_column_ref(stream)
        return JoinClause(table=table, left_key=left, right_key=right)

    def _parse_column_ref(self, stream: TokenStream) -> ColumnRef:
        first = stream.advance().text
        if stream.at_symbol("."):
            stream.advance()
            if not stream.is_name(stream.peek()):
                raise ParseError(f"Expected column name after '{first}.', found {stream.describe()}")
            return ColumnRef(name=stream.advance().text, table=first)
        return ColumnRef(name=first)

    # WHERE

    def _parse_where(self, stream: TokenStream) -> list[Condition]:
        conditions = []
        while True:
            condition = self._parse_condition(stream)
            conditions.append(condition)
            if stream.at_keyword("AND", "OR"):
                condition.connector = Connector(stream.keyword(stream.advance()))
                continue
            return conditions

    def _parse_condition(self, stream: TokenStream) -> Condition:
        if not stream.is_name(stream.peek()):
            raise ParseError(f"WHERE condition must start with a column, found {stream.describe()}")
        column = self._parse_column_ref(stream)
        token = stream.peek()
        op_text = None if token is None else token.text.upper()
        if token is None or token.token_type in _QUOTED or op_text not in _COMPARISON_OPS:
            raise ParseError(
                f"WHERE condition on '{column}' requires an operator "
                f"(=, !=, <>, <, >, <=, >=, LIKE), found {stream.describe()}"
            )
        stream.advance()
        if stream.at_end or stream.at_keyword("AND", "OR", "LIMIT", "ORDER", "ORDER BY"):
            raise ParseError(f"WHERE condition on '{column}' is missing a value")
        value = self._parse_literal(stream)
        return Condition(column=column, op=_COMPARISON_OPS[op_text], value=value)

    def _parse_literal(self, stream: TokenStream) -> Any:
        negative = False
        if stream.at_symbol("-"):
            stream.advance()
            negative = True
        token = stream.advance()
        if token.token_type == TokenType.NUMBER:
            number = to_number(token.text)
            if number is None:
                raise ParseError(f"Invalid number '{token.text}'")
            return -number if negative else number
        if negative:
            raise ParseError(f"Expected a number after '-', found '{token.text}'")
        if token.token_type in _QUOTED:
            return token.text
        word = stream.keyword(token)
        if word == "TRUE":
            return True
        if word == "FALSE":
            return False
        if word == "NULL":
            return None
        if stream.is_name(token):
            return token.text
        raise ParseError(f"Invalid value '{token.text}'")

    # ORDER BY / LIMIT

    def _parse_order_by(self, stream: TokenStream) -> list[OrderByItem]:
        items = []
        while True:
            if not stream.is_name(stream.peek()):
                raise ParseError("ORDER BY clause requires a column")
            column = self._parse_column_ref(stream)
            ascending = True
            if stream.at_keyword("ASC", "DESC"):
                ascending = stream.keyword(stream.advance()) == "ASC"
            items.append(OrderByItem(column=column, ascending=ascending))
            if not stream.at_symbol(","):
                return items
            stream.advance()

    def _parse_limit(self, stream: TokenStream) -> int:
        token = stream.peek()
        if token is None or token.token_type != TokenType.NUMBER or not token.text.isdigit():
            raise ParseError("LIMIT requires a non-negative integer")
        stream.advance()
        return int(token.text)
