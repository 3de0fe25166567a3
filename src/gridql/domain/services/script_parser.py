"""Parser for function bodies.

Produces a small AST that the interpreter walks. The language is a
restricted JavaScript-like subset; anything outside it is a syntax error.

Grammar (informal):
    program     := statement*
    statement   := block | declaration | if | while | for | break | continue
                 | return | expression [';']
    declaration := (let|const|var) NAME ['=' expr] (',' NAME ['=' expr])*
    expr        := assignment
    assignment  := conditional [('=' | '+=' | '-=' | '*=' | '/=' | '%=') assignment]
    conditional := nullish ['?' assignment ':' assignment]
    nullish     := or ('??' or)*
    or          := and ('||' and)*
    and         := equality ('&&' equality)*
    equality    := relational (('==' | '!=' | '===' | '!==') relational)*
    relational  := additive (('<' | '>' | '<=' | '>=' | 'in') additive)*
    additive    := multiplicative (('+' | '-') multiplicative)*
    multiplicative := unary (('*' | '/' | '%') unary)*
    unary       := ('!' | '-' | '+' | 'typeof' | 'delete' | '++' | '--') unary | postfix
    postfix     := call ['++' | '--']
    call        := primary ('.' NAME | '?.' NAME | '[' expr ']' | '(' args ')')*
    primary     := literal | NAME | array | object | '(' expr ')' | arrow
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from gridql.domain.errors import ScriptSyntaxError
from gridql.domain.services.script_lexer import ScriptToken, tokenize


@dataclass
class Node:
    line: int = field(default=0, kw_only=True)


# Expressions


@dataclass
class Const(Node):
    value: Any


@dataclass
class Name(Node):
    id: str


@dataclass
class Spread(Node):
    value: Node


@dataclass
class ArrayLiteral(Node):
    elements: list[Node]


@dataclass
class ObjectLiteral(Node):
    # (key, value) pairs or Spread entries; computed keys are expressions
    entries: list[tuple[str | Node, Node] | Spread]


@dataclass
class Member(Node):
    obj: Node
    prop: str
    optional: bool = False


@dataclass
class Index(Node):
    obj: Node
    index: Node
    optional: bool = False


@dataclass
class Call(Node):
    callee: Node
    args: list[Node]
    optional: bool = False


@dataclass
class Arrow(Node):
    params: list[str]
    body: Node
    expression_body: bool


@dataclass
class Conditional(Node):
    test: Node
    consequent: Node
    alternate: Node


@dataclass
class Logical(Node):
    op: str
    left: Node
    right: Node


@dataclass
class Binary(Node):
    op: str
    left: Node
    right: Node


@dataclass
class Unary(Node):
    op: str
    operand: Node


@dataclass
class Assign(Node):
    op: str
    target: Node
    value: Node


@dataclass
class Update(Node):
    op: str
    target: Node
    prefix: bool


# Statements


@dataclass
class Block(Node):
    body: list[Node]


@dataclass
class VarDecl(Node):
    kind: str
    declarations: list[tuple[str, Node | None]]


@dataclass
class ExprStmt(Node):
    expr: Node


@dataclass
class If(Node):
    test: Node
    consequent: Node
    alternate: Node | None


@dataclass
class While(Node):
    test: Node
    body: Node


@dataclass
class For(Node):
    init: Node | None
    test: Node | None
    update: Node | None
    body: Node


@dataclass
class ForOf(Node):
    kind: str
    name: str
    iterable: Node
    body: Node


@dataclass
class Break(Node):
    pass


@dataclass
class Continue(Node):
    pass


@dataclass
class Return(Node):
    value: Node | None


@dataclass
class Program(Node):
    body: list[Node]


_ASSIGN_OPS = {
    "ASSIGN": "=",
    "PLUS_ASSIGN": "+=",
    "MINUS_ASSIGN": "-=",
    "TIMES_ASSIGN": "*=",
    "DIVIDE_ASSIGN": "/=",
    "MOD_ASSIGN": "%=",
}

_EQUALITY_OPS = {"EQ": "==", "NE": "!=", "STRICT_EQ": "===", "STRICT_NE": "!=="}
_RELATIONAL_OPS = {"LT": "<", "GT": ">", "LE": "<=", "GE": ">=", "IN": "in"}
_ADDITIVE_OPS = {"PLUS": "+", "MINUS": "-"}
_MULTIPLICATIVE_OPS = {"TIMES": "*", "DIVIDE": "/", "MOD": "%"}
_UNARY_OPS = {"NOT": "!", "MINUS": "-", "PLUS": "+", "TYPEOF": "typeof", "DELETE": "delete"}

# Keywords usable as property names after '.'
_PROPERTY_TOKENS = frozenset(
    {"IDENTIFIER", "LET", "CONST", "VAR", "IF", "ELSE", "WHILE", "FOR", "OF", "IN",
     "BREAK", "CONTINUE", "RETURN", "TRUE", "FALSE", "NULL", "UNDEFINED", "TYPEOF",
     "DELETE", "UNSUPPORTED"}
)


class ScriptParser:
    """Recursive-descent parser over the lexer's token list."""

    def __init__(self, tokens: list[ScriptToken]) -> None:
        self._tokens = tokens
        self._pos = 0
        self._loop_depth = 0
        self._function_depth = 0

    # Token helpers

    def _peek(self, offset: int = 0) -> ScriptToken | None:
        index = self._pos + offset
        return self._tokens[index] if index < len(self._tokens) else None

    def _at(self, *types: str) -> bool:
        token = self._peek()
        return token is not None and token.type in types

    def _line(self) -> int:
        token = self._peek()
        if token is not None:
            return token.line
        return self._tokens[-1].line if self._tokens else 1

    def _advance(self) -> ScriptToken:
        token = self._peek()
        if token is None:
            raise ScriptSyntaxError("Unexpected end of input", self._line())
        self._pos += 1
        return token

    def _accept(self, *types: str) -> ScriptToken | None:
        if self._at(*types):
            return self._advance()
        return None

    def _expect(self, token_type: str, what: str) -> ScriptToken:
        token = self._peek()
        if token is None:
            raise ScriptSyntaxError(f"Expected {what} but reached end of input", self._line())
        if token.type != token_type:
            raise ScriptSyntaxError(f"Expected {what} but found '{token.value}'", token.line)
        self._pos += 1
        return token

    def _unexpected(self) -> ScriptSyntaxError:
        token = self._peek()
        if token is None:
            return ScriptSyntaxError("Unexpected end of input", self._line())
        if token.type == "UNSUPPORTED":
            return ScriptSyntaxError(f"'{token.value}' is not supported", token.line)
        return ScriptSyntaxError(f"Unexpected token '{token.value}'", token.line)

    def _end_statement(self) -> None:
        if self._accept("SEMICOLON"):
            return
        token = self._peek()
        if token is None or token.type == "RBRACE" or token.newline_before:
            return
        raise self._unexpected()

    # Statements

    def parse_program(self) -> Program:
        body = []
        while self._peek() is not None:
            body.append(self._statement())
        return Program(body=body, line=1)

    def _statement(self) -> Node:
        token = self._peek()
        assert token is not None
        kind = token.type
        if kind == "LBRACE":
            return self._block()
        if kind in ("LET", "CONST", "VAR"):
            decl = self._declaration()
            self._end_statement()
            return decl
        if kind == "IF":
            return self._if()
        if kind == "WHILE":
            return self._while()
        if kind == "FOR":
            return self._for()
        if kind in ("BREAK", "CONTINUE"):
            self._advance()
            if self._loop_depth == 0:
                raise ScriptSyntaxError(f"'{token.value}' outside of a loop", token.line)
            self._end_statement()
            return Break(line=token.line) if kind == "BREAK" else Continue(line=token.line)
        if kind == "RETURN":
            self._advance()
            value = None
            following = self._peek()
            if following is not None and following.type not in ("SEMICOLON", "RBRACE") \
                    and not following.newline_before:
                value = self._expression()
            self._end_statement()
            return Return(value=value, line=token.line)
        if kind == "SEMICOLON":
            self._advance()
            return Block(body=[], line=token.line)
        if kind == "UNSUPPORTED":
            raise self._unexpected()
        expr = self._expression()
        self._end_statement()
        return ExprStmt(expr=expr, line=token.line)

    def _block(self) -> Block:
        start = self._expect("LBRACE", "'{'")
        body = []
        while not self._at("RBRACE"):
            if self._peek() is None:
                raise ScriptSyntaxError("Missing '}'", start.line)
            body.append(self._statement())
        self._advance()
        return Block(body=body, line=start.line)

    def _declaration(self) -> VarDecl:
        keyword = self._advance()
        declarations: list[tuple[str, Node | None]] = []
        while True:
            name = self._expect("IDENTIFIER", "a variable name")
            init = None
            if self._accept("ASSIGN"):
                init = self._assignment()
            elif keyword.type == "CONST":
                raise ScriptSyntaxError(
                    f"Missing initializer in const declaration '{name.value}'", name.line
                )
            declarations.append((name.value, init))
            if not self._accept("COMMA"):
                break
        return VarDecl(kind=keyword.value, declarations=declarations, line=keyword.line)

    def _if(self) -> If:
        token = self._advance()
        self._expect("LPAREN", "'(' after if")
        test = self._expression()
        self._expect("RPAREN", "')'")
        consequent = self._statement()
        alternate = None
        if self._accept("ELSE"):
            alternate = self._statement()
        return If(test=test, consequent=consequent, alternate=alternate, line=token.line)

    def _loop_body(self) -> Node:
        self._loop_depth += 1
        try:
            return self._statement()
        finally:
            self._loop_depth -= 1

    def _while(self) -> While:
        token = self._advance()
        self._expect("LPAREN", "'(' after while")
        test = self._expression()
        self._expect("RPAREN", "')'")
        return While(test=test, body=self._loop_body(), line=token.line)

    def _for(self) -> Node:
        token = self._advance()
        self._expect("LPAREN", "'(' after for")

        if self._at("LET", "CONST", "VAR") and self._peek(2) is not None \
                and self._peek(2).type == "OF":
            kind = self._advance().value
            name = self._expect("IDENTIFIER", "a loop variable").value
            self._advance()
            iterable = self._expression()
            self._expect("RPAREN", "')'")
            body = self._loop_body()
            return ForOf(kind=kind, name=name, iterable=iterable, body=body, line=token.line)

        init: Node | None = None
        if self._at("LET", "CONST", "VAR"):
            init = self._declaration()
        elif not self._at("SEMICOLON"):
            init = ExprStmt(expr=self._expression(), line=token.line)
        self._expect("SEMICOLON", "';' in for loop")
        test = None if self._at("SEMICOLON") else self._expression()
        self._expect("SEMICOLON", "';' in for loop")
        update = None if self._at("RPAREN") else self._expression()
        self._expect("RPAREN", "')'")
        body = self._loop_body()
        return For(init=init, test=test, update=update, body=body, line=token.line)

    # Expressions

    def _expression(self) -> Node:
        return self._assignment()

    def _assignment(self) -> Node:
        if self._is_arrow():
            return self._arrow()
        target = self._conditional()
        token = self._peek()
        if token is not None and token.type in _ASSIGN_OPS:
            if not isinstance(target, (Name, Member, Index)):
                raise ScriptSyntaxError("Invalid assignment target", token.line)
            self._advance()
            value = self._assignment()
            return Assign(op=_ASSIGN_OPS[token.type], target=target, value=value, line=token.line)
        return target

    def _is_arrow(self) -> bool:
        token = self._peek()
        if token is None:
            return False
        if token.type == "IDENTIFIER":
            following = self._peek(1)
            return following is not None and following.type == "ARROW"
        if token.type != "LPAREN":
            return False
        depth = 0
        offset = 0
        while True:
            current = self._peek(offset)
            if current is None:
                return False
            if current.type == "LPAREN":
                depth += 1
            elif current.type == "RPAREN":
                depth -= 1
                if depth == 0:
                    following = self._peek(offset + 1)
                    return following is not None and following.type == "ARROW"
            offset += 1

    def _arrow(self) -> Arrow:
        start = self._peek()
        assert start is not None
        params: list[str] = []
        if start.type == "IDENTIFIER":
            params.append(self._advance().value)
        else:
            self._advance()
            while not self._at("RPAREN"):
                params.append(self._expect("IDENTIFIER", "a parameter name").value)
                if not self._accept("COMMA"):
                    break
            self._expect("RPAREN", "')'")
        self._expect("ARROW", "'=>'")

        saved_loop_depth = self._loop_depth
        self._loop_depth = 0
        self._function_depth += 1
        try:
            if self._at("LBRACE"):
                return Arrow(params=params, body=self._block(), expression_body=False,
                             line=start.line)
            return Arrow(params=params, body=self._assignment(), expression_body=True,
                         line=start.line)
        finally:
            self._function_depth -= 1
            self._loop_depth = saved_loop_depth

    def _conditional(self) -> Node:
        test = self._binary_chain(0)
        token = self._accept("QUESTION")
        if token is None:
            return test
        consequent = self._assignment()
        self._expect("COLON", "':' in conditional expression")
        alternate = self._assignment()
        return Conditional(test=test, consequent=consequent, alternate=alternate, line=token.line)

    # Precedence levels, loosest first
    _LEVELS: list[tuple[dict[str, str], bool]] = [
        ({"NULLISH": "??"}, True),
        ({"OR": "||"}, True),
        ({"AND": "&&"}, True),
        (_EQUALITY_OPS, False),
        (_RELATIONAL_OPS, False),
        (_ADDITIVE_OPS, False),
        (_MULTIPLICATIVE_OPS, False),
    ]

    def _binary_chain(self, level: int) -> Node:
        if level >= len(self._LEVELS):
            return self._unary()
        ops, logical = self._LEVELS[level]
        left = self._binary_chain(level + 1)
        while True:
            token = self._peek()
            if token is None or token.type not in ops:
                return left
            self._advance()
            right = self._binary_chain(level + 1)
            if logical:
                left = Logical(op=ops[token.type], left=left, right=right, line=token.line)
            else:
                left = Binary(op=ops[token.type], left=left, right=right, line=token.line)

    def _unary(self) -> Node:
        token = self._peek()
        if token is not None and token.type in _UNARY_OPS:
            self._advance()
            operand = self._unary()
            return Unary(op=_UNARY_OPS[token.type], operand=operand, line=token.line)
        if token is not None and token.type in ("INCREMENT", "DECREMENT"):
            self._advance()
            target = self._unary()
            if not isinstance(target, (Name, Member, Index)):
                raise ScriptSyntaxError("Invalid update target", token.line)
            op = "++" if token.type == "INCREMENT" else "--"
            return Update(op=op, target=target, prefix=True, line=token.line)
        return self._postfix()

    def _postfix(self) -> Node:
        expr = self._call()
        token = self._peek()
        if token is not None and token.type in ("INCREMENT", "DECREMENT") \
                and not token.newline_before:
            if not isinstance(expr, (Name, Member, Index)):
                raise ScriptSyntaxError("Invalid update target", token.line)
            self._advance()
            op = "++" if token.type == "INCREMENT" else "--"
            return Update(op=op, target=expr, prefix=False, line=token.line)
        return expr

    def _call(self) -> Node:
        expr = self._primary()
        while True:
            token = self._peek()
            if token is None:
                return expr
            if token.type == "DOT":
                self._advance()
                expr = Member(obj=expr, prop=self._property_name(), line=token.line)
            elif token.type == "OPTIONAL_DOT":
                self._advance()
                if self._accept("LBRACKET"):
                    index = self._expression()
                    self._expect("RBRACKET", "']'")
                    expr = Index(obj=expr, index=index, optional=True, line=token.line)
                elif self._accept("LPAREN"):
                    expr = Call(callee=expr, args=self._arguments(), optional=True,
                                line=token.line)
                else:
                    expr = Member(obj=expr, prop=self._property_name(), optional=True,
                                  line=token.line)
            elif token.type == "LBRACKET":
                self._advance()
                index = self._expression()
                self._expect("RBRACKET", "']'")
                expr = Index(obj=expr, index=index, line=token.line)
            elif token.type == "LPAREN":
                self._advance()
                expr = Call(callee=expr, args=self._arguments(), line=token.line)
            else:
                return expr

    def _property_name(self) -> str:
        token = self._peek()
        if token is None or token.type not in _PROPERTY_TOKENS:
            raise ScriptSyntaxError("Expected a property name", self._line())
        self._advance()
        return str(token.value)

    def _arguments(self) -> list[Node]:
        args: list[Node] = []
        while not self._at("RPAREN"):
            args.append(self._element())
            if not self._accept("COMMA"):
                break
        self._expect("RPAREN", "')'")
        return args

    def _element(self) -> Node:
        token = self._accept("ELLIPSIS")
        if token is not None:
            return Spread(value=self._assignment(), line=token.line)
        return self._assignment()

    def _primary(self) -> Node:
        token = self._peek()
        if token is None:
            raise self._unexpected()
        kind = token.type
        if kind in ("NUMBER", "STRING"):
            self._advance()
            return Const(value=token.value, line=token.line)
        if kind in ("TRUE", "FALSE"):
            self._advance()
            return Const(value=kind == "TRUE", line=token.line)
        if kind == "NULL":
            self._advance()
            return Const(value=None, line=token.line)
        if kind == "UNDEFINED":
            self._advance()
            return Name(id="undefined", line=token.line)
        if kind == "IDENTIFIER":
            self._advance()
            return Name(id=token.value, line=token.line)
        if kind == "LPAREN":
            self._advance()
            expr = self._expression()
            self._expect("RPAREN", "')'")
            return expr
        if kind == "LBRACKET":
            return self._array()
        if kind == "LBRACE":
            return self._object()
        raise self._unexpected()

    def _array(self) -> ArrayLiteral:
        start = self._advance()
        elements: list[Node] = []
        while not self._at("RBRACKET"):
            elements.append(self._element())
            if not self._accept("COMMA"):
                break
        self._expect("RBRACKET", "']'")
        return ArrayLiteral(elements=elements, line=start.line)

    def _object(self) -> ObjectLiteral:
        start = self._advance()
        entries: list[tuple[str | Node, Node] | Spread] = []
        while not self._at("RBRACE"):
            spread = self._accept("ELLIPSIS")
            if spread is not None:
                entries.append(Spread(value=self._assignment(), line=spread.line))
            else:
                entries.append(self._property())
            if not self._accept("COMMA"):
                break
        self._expect("RBRACE", "'}'")
        return ObjectLiteral(entries=entries, line=start.line)

    def _property(self) -> tuple[str | Node, Node]:
        token = self._peek()
        if token is None:
            raise self._unexpected()
        key: str | Node
        if token.type == "LBRACKET":
            self._advance()
            key = self._expression()
            self._expect("RBRACKET", "']'")
        elif token.type in ("STRING", "NUMBER"):
            self._advance()
            key = token.value if token.type == "STRING" else Const(value=token.value)
        elif token.type in _PROPERTY_TOKENS:
            self._advance()
            key = str(token.value)
            if token.type == "IDENTIFIER" and not self._at("COLON"):
                # Shorthand property
                return key, Name(id=key, line=token.line)
        else:
            raise self._unexpected()
        self._expect("COLON", "':' after property name")
        return key, self._assignment()


def parse_script(source: str) -> Program:
    """Parse a function body into a program.

    Raises:
        ScriptSyntaxError: if the body is not valid.
    """
    return ScriptParser(tokenize(source)).parse_program()
