"""Lexer for function bodies."""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass
from typing import Any

import ply.lex as lex

from gridql.domain.errors import ScriptSyntaxError

_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "0": "\0",
}

_ESCAPE_RE = re.compile(r"\\(u\{[0-9a-fA-F]+\}|u[0-9a-fA-F]{4}|x[0-9a-fA-F]{2}|\n|.)", re.DOTALL)


def _unescape(body: str) -> str:
    def replace(match: re.Match[str]) -> str:
        seq = match.group(1)
        if seq in _ESCAPES:
            return _ESCAPES[seq]
        if seq == "\n":
            return ""
        if seq.startswith("u{"):
            return chr(int(seq[2:-1], 16))
        if seq[0] in "ux" and len(seq) > 1:
            return chr(int(seq[1:], 16))
        return seq

    return _ESCAPE_RE.sub(replace, body)


@dataclass(frozen=True)
class ScriptToken:
    """A lexed token. ``newline_before`` drives optional semicolons."""

    type: str
    value: Any
    line: int
    newline_before: bool = False


class ScriptLexer:
    """Lexer for the function script language."""

    reserved = {
        "let": "LET",
        "const": "CONST",
        "var": "VAR",
        "if": "IF",
        "else": "ELSE",
        "while": "WHILE",
        "for": "FOR",
        "of": "OF",
        "in": "IN",
        "break": "BREAK",
        "continue": "CONTINUE",
        "return": "RETURN",
        "true": "TRUE",
        "false": "FALSE",
        "null": "NULL",
        "undefined": "UNDEFINED",
        "typeof": "TYPEOF",
        "delete": "DELETE",
        # Recognized only to report them as unsupported
        "function": "UNSUPPORTED",
        "class": "UNSUPPORTED",
        "new": "UNSUPPORTED",
        "this": "UNSUPPORTED",
        "import": "UNSUPPORTED",
        "export": "UNSUPPORTED",
        "async": "UNSUPPORTED",
        "await": "UNSUPPORTED",
        "yield": "UNSUPPORTED",
        "with": "UNSUPPORTED",
    }

    punctuation = {
        "...": "ELLIPSIS",
        "===": "STRICT_EQ",
        "!==": "STRICT_NE",
        "=>": "ARROW",
        "==": "EQ",
        "!=": "NE",
        "<=": "LE",
        ">=": "GE",
        "&&": "AND",
        "||": "OR",
        "??": "NULLISH",
        "?.": "OPTIONAL_DOT",
        "++": "INCREMENT",
        "--": "DECREMENT",
        "+=": "PLUS_ASSIGN",
        "-=": "MINUS_ASSIGN",
        "*=": "TIMES_ASSIGN",
        "/=": "DIVIDE_ASSIGN",
        "%=": "MOD_ASSIGN",
        "<": "LT",
        ">": "GT",
        "=": "ASSIGN",
        "+": "PLUS",
        "-": "MINUS",
        "*": "TIMES",
        "/": "DIVIDE",
        "%": "MOD",
        "!": "NOT",
        "?": "QUESTION",
        ":": "COLON",
        ";": "SEMICOLON",
        ",": "COMMA",
        ".": "DOT",
        "(": "LPAREN",
        ")": "RPAREN",
        "[": "LBRACKET",
        "]": "RBRACKET",
        "{": "LBRACE",
        "}": "RBRACE",
    }

    tokens = ["IDENTIFIER", "NUMBER", "STRING"] + sorted(
        set(reserved.values()) | set(punctuation.values())
    )

    t_ignore = " \t\r\f\v"

    def t_BLOCK_COMMENT(self, t: lex.LexToken) -> None:
        r"/\*(.|\n)*?\*/"
        newlines = t.value.count("\n")
        if newlines:
            t.lexer.lineno += newlines
            t.lexer.newline_pending = True

    def t_LINE_COMMENT(self, t: lex.LexToken) -> None:
        r"//[^\n]*"
        pass

    def t_NEWLINE(self, t: lex.LexToken) -> None:
        r"\n+"
        t.lexer.lineno += len(t.value)
        t.lexer.newline_pending = True

    def t_NUMBER(self, t: lex.LexToken) -> lex.LexToken:
        r"0[xX][0-9a-fA-F]+|(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?"
        text = t.value
        if text[:2] in ("0x", "0X"):
            t.value = int(text, 16)
        elif re.fullmatch(r"\d+", text):
            t.value = int(text)
        else:
            t.value = float(text)
        return t

    def t_STRING(self, t: lex.LexToken) -> lex.LexToken:
        r"\"([^\"\\\n]|\\(.|\n))*\"|'([^'\\\n]|\\(.|\n))*'|`([^`\\]|\\(.|\n))*`"
        t.lexer.lineno += t.value.count("\n")
        t.value = _unescape(t.value[1:-1])
        return t

    def t_IDENTIFIER(self, t: lex.LexToken) -> lex.LexToken:
        r"[A-Za-z_$][A-Za-z0-9_$]*"
        t.type = self.reserved.get(t.value, "IDENTIFIER")
        return t

    @lex.TOKEN("|".join(re.escape(p) for p in sorted(punctuation, key=len, reverse=True)))
    def t_PUNCT(self, t: lex.LexToken) -> lex.LexToken:
        t.type = self.punctuation[t.value]
        return t

    def t_error(self, t: lex.LexToken) -> None:
        char = t.value[0]
        if char in "\"'`":
            raise ScriptSyntaxError("Unterminated string literal", t.lexer.lineno)
        raise ScriptSyntaxError(f"Unexpected character '{char}'", t.lexer.lineno)

    def build(self, **kwargs: Any) -> None:
        """Build the lexer."""
        self.lexer = lex.lex(module=self, **kwargs)

    def tokenize(self, data: str) -> list[ScriptToken]:
        """Tokenize ``data``. Each call uses its own clone of the built lexer."""
        lexer = self.lexer.clone()
        lexer.lineno = 1
        lexer.newline_pending = False
        lexer.input(data)
        tokens = []
        while True:
            tok = lexer.token()
            if tok is None:
                break
            tokens.append(ScriptToken(tok.type, tok.value, tok.lineno, lexer.newline_pending))
            lexer.newline_pending = False
        return tokens


_lexer: ScriptLexer | None = None
_lexer_lock = threading.Lock()


def get_lexer() -> ScriptLexer:
    """Return the shared, lazily built lexer."""
    global _lexer
    with _lexer_lock:
        if _lexer is None:
            lexer = ScriptLexer()
            lexer.build()
            _lexer = lexer
        return _lexer


def tokenize(source: str) -> list[ScriptToken]:
    return get_lexer().tokenize(source)
