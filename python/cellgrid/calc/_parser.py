"""Formula parser: regex reference extraction, tokenizer and recursive descent."""

from __future__ import annotations

import enum
import math
import re
from dataclasses import dataclass
from typing import Any, Union

from cellgrid._cell import FORMULA_PREFIX
from cellgrid._exceptions import InvalidAddress, ParseError
from cellgrid._utils import normalize_key

# ---------------------------------------------------------------------------
# Reference extraction
# ---------------------------------------------------------------------------

# Address tokens follow the codec grammar: uppercase letters then digits.
_CELL_REF_RE = re.compile(r"(?<![A-Za-z0-9_])([A-Z]+[0-9]+)(?![A-Za-z0-9_])")

# Strings in formulas (to skip refs inside string literals)
_STRING_RE = re.compile(r'"(?:[^"]|"")*"')


def _strip_strings(formula: str) -> str:
    """Remove string literals so refs inside quotes aren't matched."""
    return _STRING_RE.sub('""', formula)


def strip_prefix(formula: str) -> str:
    """Formula body without the leading ``=``."""
    if formula.startswith(FORMULA_PREFIX):
        return formula[len(FORMULA_PREFIX):]
    return formula


def parse_references(formula: str) -> list[str]:
    """Extract cell references from a formula.

    Returns canonical A1 strings in first-seen order without duplicates.
    Tokens that look like addresses but do not decode (``A0``) are skipped:
    they refer to no cell.
    """
    clean = _strip_strings(strip_prefix(formula))
    refs: list[str] = []
    seen: set[str] = set()
    for m in _CELL_REF_RE.finditer(clean):
        try:
            canonical = normalize_key(m.group(1))
        except InvalidAddress:
            continue
        if canonical not in seen:
            refs.append(canonical)
            seen.add(canonical)
    return refs


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------


class TokenType(enum.Enum):
    NUMBER = "number"
    STRING = "string"
    REF = "ref"
    OP = "op"
    LPAREN = "("
    RPAREN = ")"
    END = "end"


@dataclass(frozen=True)
class Token:
    type: TokenType
    text: str
    value: Any = None
    pos: int = 0


_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
    |(?P<number>(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)
    |(?P<string>"(?:[^"]|"")*")
    |(?P<ref>[A-Z]+[0-9]+(?![A-Za-z0-9_]))
    |(?P<op><>|<=|>=|[-+*/&=<>])
    |(?P<lparen>\()
    |(?P<rparen>\))
    """,
    re.VERBOSE,
)


def tokenize(expr: str) -> list[Token]:
    """Split a formula body (no leading ``=``) into tokens, ending with END."""
    tokens: list[Token] = []
    pos = 0
    length = len(expr)
    while pos < length:
        m = _TOKEN_RE.match(expr, pos)
        if m is None:
            raise ParseError(f"Unexpected character {expr[pos]!r} at position {pos}")
        kind = m.lastgroup
        text = m.group()
        if kind == "number":
            value = float(text)
            if not math.isfinite(value):
                raise ParseError(f"Number out of range {text!r} at position {pos}")
            tokens.append(Token(TokenType.NUMBER, text, value, pos))
        elif kind == "string":
            tokens.append(Token(TokenType.STRING, text, text[1:-1].replace('""', '"'), pos))
        elif kind == "ref":
            tokens.append(Token(TokenType.REF, text, text, pos))
        elif kind == "op":
            tokens.append(Token(TokenType.OP, text, text, pos))
        elif kind == "lparen":
            tokens.append(Token(TokenType.LPAREN, text, None, pos))
        elif kind == "rparen":
            tokens.append(Token(TokenType.RPAREN, text, None, pos))
        pos = m.end()
    tokens.append(Token(TokenType.END, "", None, length))
    return tokens


# ---------------------------------------------------------------------------
# AST
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Text:
    value: str


@dataclass(frozen=True)
class Unary:
    op: str
    operand: Node


@dataclass(frozen=True)
class Binary:
    op: str
    left: Node
    right: Node


Node = Union[Number, Text, Unary, Binary]

COMPARISON_OPS = frozenset({"=", "<>", "<", ">", "<=", ">="})
ADDITIVE_OPS = frozenset({"+", "-", "&"})
MULTIPLICATIVE_OPS = frozenset({"*", "/"})
UNARY_OPS = frozenset({"+", "-"})


# ---------------------------------------------------------------------------
# Recursive descent parser
# ---------------------------------------------------------------------------


class _Parser:
    """Precedence, lowest first::

        comparison      = additive (CMP additive)*
        additive        = multiplicative (("+" | "-" | "&") multiplicative)*
        multiplicative  = unary (("*" | "/") unary)*
        unary           = ("+" | "-") unary | primary
        primary         = NUMBER | STRING | "(" comparison ")"

    Address tokens must already be substituted with literals.
    """

    def __init__(self, tokens: list[Token]) -> None:
        self._tokens = tokens
        self._i = 0

    def _peek(self) -> Token:
        return self._tokens[self._i]

    def _advance(self) -> Token:
        tok = self._tokens[self._i]
        if tok.type is not TokenType.END:
            self._i += 1
        return tok

    def _at_op(self, ops: frozenset[str]) -> bool:
        tok = self._peek()
        return tok.type is TokenType.OP and tok.text in ops

    def parse(self) -> Node:
        if self._peek().type is TokenType.END:
            raise ParseError("Empty formula")
        node = self._comparison()
        tok = self._peek()
        if tok.type is not TokenType.END:
            raise ParseError(f"Unexpected {tok.text!r} at position {tok.pos}")
        return node

    def _comparison(self) -> Node:
        node = self._additive()
        while self._at_op(COMPARISON_OPS):
            op = self._advance().text
            node = Binary(op, node, self._additive())
        return node

    def _additive(self) -> Node:
        node = self._multiplicative()
        while self._at_op(ADDITIVE_OPS):
            op = self._advance().text
            node = Binary(op, node, self._multiplicative())
        return node

    def _multiplicative(self) -> Node:
        node = self._unary()
        while self._at_op(MULTIPLICATIVE_OPS):
            op = self._advance().text
            node = Binary(op, node, self._unary())
        return node

    def _unary(self) -> Node:
        if self._at_op(UNARY_OPS):
            op = self._advance().text
            return Unary(op, self._unary())
        return self._primary()

    def _primary(self) -> Node:
        tok = self._advance()
        if tok.type is TokenType.NUMBER:
            return Number(tok.value)
        if tok.type is TokenType.STRING:
            return Text(tok.value)
        if tok.type is TokenType.LPAREN:
            node = self._comparison()
            close = self._advance()
            if close.type is not TokenType.RPAREN:
                raise ParseError(f"Expected ')' at position {close.pos}")
            return node
        if tok.type is TokenType.REF:
            raise ParseError(f"Unresolved reference {tok.text!r}")
        if tok.type is TokenType.END:
            raise ParseError("Unexpected end of formula")
        raise ParseError(f"Unexpected {tok.text!r} at position {tok.pos}")


def parse(tokens: list[Token]) -> Node:
    """Build an expression tree from substituted tokens."""
    return _Parser(tokens).parse()
