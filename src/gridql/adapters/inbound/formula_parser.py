"""Parser for standalone formula expressions such as ``=sum(TableA.rows, 'amount')``."""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlglot.tokens import Tokenizer, TokenType

from gridql.adapters.inbound.sql_parser import Literal, TokenStream
from gridql.domain.errors import ParseError
from gridql.domain.value_objects import to_number


class FormulaTokenizer(Tokenizer):
    """Formulas accept both quote styles for strings."""

    QUOTES = ["'", '"']
    IDENTIFIERS = ["`"]


@dataclass(frozen=True)
class NameRef:
    """A bare name or dotted path, e.g. ``TableA`` or ``TableA.rows``."""

    parts: tuple[str, ...]

    @property
    def text(self) -> str:
        return ".".join(self.parts)


FormulaArg = Literal | NameRef


@dataclass
class Formula:
    """A parsed ``=name(arg, ...)`` call."""

    name: str
    args: list[FormulaArg] = field(default_factory=list)


def is_formula(text: str) -> bool:
    return text.startswith("=")


class FormulaParser:
    """Parses ``=name(arg, ...)``."""

    def parse(self, text: str) -> Formula:
        if not is_formula(text):
            raise ParseError("Formula must start with '='")
        stream = TokenStream(text[1:], FormulaTokenizer())
        if stream.at_end:
            raise ParseError("Invalid function expression")

        token = stream.advance()
        if not TokenStream.is_name(token) and token.token_type != TokenType.IDENTIFIER:
            raise ParseError(f"Invalid function expression: expected a function name, found '{token.text}'")
        if not stream.at_symbol("("):
            raise ParseError("Invalid function expression: expected '(' after function name")
        stream.advance()

        args: list[FormulaArg] = []
        if stream.at_symbol(")"):
            stream.advance()
        else:
            while True:
                args.append(self._parse_argument(stream))
                if stream.at_symbol(","):
                    stream.advance()
                    continue
                if stream.at_symbol(")"):
                    stream.advance()
                    break
                raise ParseError(f"Invalid function expression: unexpected {stream.describe()}")

        if not stream.at_end:
            raise ParseError(f"Invalid function expression: unexpected {stream.describe()}")
        return Formula(name=token.text, args=args)

    def _parse_argument(self, stream: TokenStream) -> FormulaArg:
        token = stream.peek()
        if token is None:
            raise ParseError("Invalid function expression: missing ')'")

        if token.token_type == TokenType.STRING:
            stream.advance()
            return Literal(token.text)

        negative = False
        if stream.at_symbol("-"):
            stream.advance()
            negative = True
            token = stream.peek()
            if token is None or token.token_type != TokenType.NUMBER:
                raise ParseError("Invalid function expression: expected a number after '-'")

        if token.token_type == TokenType.NUMBER:
            stream.advance()
            number = to_number(token.text)
            if number is None:
                raise ParseError(f"Invalid number '{token.text}'")
            return Literal(-number if negative else number)

        word = TokenStream.keyword(token)
        if word in ("TRUE", "FALSE"):
            stream.advance()
            return Literal(word == "TRUE")
        if word == "NULL":
            stream.advance()
            return Literal(None)

        if not (TokenStream.is_name(token) or token.token_type == TokenType.IDENTIFIER):
            raise ParseError(f"Invalid function expression: unexpected {stream.describe()}")
        parts = [stream.advance().text]
        while stream.at_symbol("."):
            stream.advance()
            part = stream.peek()
            if part is None or part.token_type == TokenType.STRING:
                raise ParseError("Invalid function expression: expected a name after '.'")
            parts.append(stream.advance().text)
        return NameRef(tuple(parts))
