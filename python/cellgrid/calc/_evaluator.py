"""Formula evaluation: substitute referenced cell values, then walk the tree.

The substituted expression is evaluated by the grammar in
:mod:`cellgrid.calc._parser` and nothing else. Formulas come from user
input, so no text ever reaches ``eval`` or any other host interpreter.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import Union

from cellgrid._cell import CellRecord, is_formula, parse_number
from cellgrid._exceptions import ERROR_VALUE, EvalError, FormulaError, InvalidAddress
from cellgrid._utils import normalize_key
from cellgrid.calc._parser import (
    COMPARISON_OPS,
    Binary,
    Node,
    Number,
    Text,
    Token,
    TokenType,
    Unary,
    parse,
    strip_prefix,
    tokenize,
)

logger = logging.getLogger(__name__)

Value = Union[float, str, bool]

# Largest magnitude still displayed as a plain integer.
_INT_DISPLAY_LIMIT = 1e15


# ---------------------------------------------------------------------------
# Substitution
# ---------------------------------------------------------------------------


def resolve_reference(ref: str, cells: Mapping[str, CellRecord]) -> Value:
    """Value an address token stands for.

    Empty, missing and undecodable cells read as ``0``; numeric values as
    numbers; anything else as text.
    """
    try:
        record = cells.get(normalize_key(ref))
    except InvalidAddress:
        return 0.0
    if record is None or record.value == "":
        return 0.0
    number = parse_number(record.value)
    if number is not None:
        return number
    return record.value


def substitute(tokens: list[Token], cells: Mapping[str, CellRecord]) -> list[Token]:
    """Replace every REF token with a NUMBER or STRING literal token."""
    out: list[Token] = []
    for tok in tokens:
        if tok.type is not TokenType.REF:
            out.append(tok)
            continue
        value = resolve_reference(tok.text, cells)
        if isinstance(value, float):
            out.append(Token(TokenType.NUMBER, tok.text, value, tok.pos))
        else:
            out.append(Token(TokenType.STRING, tok.text, value, tok.pos))
    return out


# ---------------------------------------------------------------------------
# Tree walking
# ---------------------------------------------------------------------------


def _is_number(value: Value) -> bool:
    return isinstance(value, float)


def _checked(result: float) -> float:
    if not math.isfinite(result):
        raise EvalError("Numeric overflow")
    return result


def _compare(left: Value, op: str, right: Value) -> bool:
    """Compare two values of the same type. Text compares case-insensitively."""
    if type(left) is not type(right):
        raise EvalError(f"Cannot compare {type(left).__name__} with {type(right).__name__}")
    if isinstance(left, str):
        left, right = left.casefold(), right.casefold()  # type: ignore[union-attr]
    if op == "=":
        return left == right
    if op == "<>":
        return left != right
    if op == "<":
        return left < right  # type: ignore[operator]
    if op == ">":
        return left > right  # type: ignore[operator]
    if op == "<=":
        return left <= right  # type: ignore[operator]
    if op == ">=":
        return left >= right  # type: ignore[operator]
    raise EvalError(f"Unknown comparison {op!r}")


def _binary_op(left: Value, op: str, right: Value) -> Value:
    """Evaluate an arithmetic, concatenation or comparison operation."""
    if op in COMPARISON_OPS:
        return _compare(left, op, right)
    if op == "&":
        return format_value(left) + format_value(right)
    if op == "+" and isinstance(left, str) and isinstance(right, str):
        return left + right
    if not _is_number(left) or not _is_number(right):
        raise EvalError(f"Operator {op!r} needs numbers, got {left!r} and {right!r}")
    if op == "+":
        return _checked(left + right)  # type: ignore[operator]
    if op == "-":
        return _checked(left - right)  # type: ignore[operator]
    if op == "*":
        return _checked(left * right)  # type: ignore[operator]
    if op == "/":
        if right == 0:
            raise EvalError("Division by zero")
        return _checked(left / right)  # type: ignore[operator]
    raise EvalError(f"Unknown operator {op!r}")


def eval_node(node: Node) -> Value:
    if isinstance(node, Number):
        return node.value
    if isinstance(node, Text):
        return node.value
    if isinstance(node, Unary):
        operand = eval_node(node.operand)
        if not _is_number(operand):
            raise EvalError(f"Unary {node.op!r} needs a number, got {operand!r}")
        return _checked(-operand if node.op == "-" else operand)  # type: ignore[operator]
    if isinstance(node, Binary):
        return _binary_op(eval_node(node.left), node.op, eval_node(node.right))
    raise EvalError(f"Unknown node {node!r}")


def format_value(value: Value) -> str:
    """Display text of a computed value: ``6.0 -> '6'``, ``True -> 'TRUE'``."""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float):
        if value.is_integer() and abs(value) < _INT_DISPLAY_LIMIT:
            return str(int(value))
        return f"{value:.15g}"
    return value


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def evaluate(formula: str, cells: Mapping[str, CellRecord]) -> tuple[str, bool]:
    """Evaluate *formula* against a snapshot of *cells*.

    Returns ``(display_text, ok)``. Any parse or evaluation failure gives
    ``("#ERROR!", False)``. Content without the ``=`` prefix is a literal
    and comes back unchanged.
    """
    if not is_formula(formula):
        return formula, True
    try:
        tokens = substitute(tokenize(strip_prefix(formula)), cells)
        result = eval_node(parse(tokens))
        if _is_number(result):
            result = _checked(result)  # type: ignore[arg-type]
    except FormulaError as exc:
        logger.debug("Cannot evaluate formula %r: %s", formula, exc)
        return ERROR_VALUE, False
    except RecursionError:
        logger.debug("Formula %r is nested too deeply", formula)
        return ERROR_VALUE, False
    return format_value(result), True
