"""Cell records and literal typing."""

from __future__ import annotations

import copy
import enum
import math
import re
from dataclasses import dataclass
from typing import Any

FORMULA_PREFIX = "="

# Plain decimal numbers only: no nan/inf, no hex, no thousands separators.
_NUMBER_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")


class CellKind(str, enum.Enum):
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    FORMULA = "formula"


def is_formula(content: str) -> bool:
    return content.startswith(FORMULA_PREFIX)


def parse_number(text: str) -> float | None:
    """Return the numeric value of *text*, or None if it is not a number."""
    stripped = text.strip()
    if not _NUMBER_RE.match(stripped):
        return None
    value = float(stripped)
    if not math.isfinite(value):
        return None
    return value


def literal_kind(value: str) -> CellKind:
    """Kind of a literal value: number if it parses as one, else text."""
    if parse_number(value) is not None:
        return CellKind.NUMBER
    return CellKind.TEXT


def infer_kind(content: str) -> CellKind:
    """Kind of raw user content: formula, number, or text."""
    if is_formula(content):
        return CellKind.FORMULA
    return literal_kind(content)


@dataclass(frozen=True)
class CellRecord:
    """One non-empty cell.

    ``value`` is the display string: the literal itself, or the last result
    of ``formula`` (``#ERROR!`` on failure). ``format`` is carried through
    untouched.
    """

    value: str = ""
    formula: str | None = None
    kind: CellKind = CellKind.TEXT
    format: Any = None

    def __post_init__(self) -> None:
        if (self.formula is not None) != (self.kind is CellKind.FORMULA):
            raise ValueError(
                f"formula must be set iff kind is 'formula' "
                f"(kind={self.kind.value!r}, formula={self.formula!r})"
            )

    @classmethod
    def literal(cls, content: str, format: Any = None) -> CellRecord:
        return cls(value=content, kind=literal_kind(content), format=format)

    @classmethod
    def for_formula(cls, formula: str, value: str = "", format: Any = None) -> CellRecord:
        return cls(value=value, formula=formula, kind=CellKind.FORMULA, format=format)

    @property
    def is_formula(self) -> bool:
        return self.formula is not None

    @property
    def source(self) -> str:
        """Text a user would edit: the formula if any, else the value."""
        return self.formula if self.formula is not None else self.value

    # ------------------------------------------------------------------
    # Snapshot conversion
    # ------------------------------------------------------------------

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> CellRecord:
        """Build a record from a snapshot entry; only ``value`` is expected."""
        value = data.get("value")
        value = "" if value is None else str(value)
        formula = data.get("formula")
        fmt = copy.deepcopy(data.get("format"))
        if formula is not None:
            return cls.for_formula(str(formula), value, fmt)
        kind_raw = data.get("kind")
        try:
            kind = CellKind(kind_raw) if kind_raw is not None else literal_kind(value)
        except ValueError:
            kind = literal_kind(value)
        if kind is CellKind.FORMULA:
            # Declared a formula but carries no formula text: keep the value.
            kind = literal_kind(value)
        return cls(value=value, kind=kind, format=fmt)

    def to_snapshot(self) -> dict[str, Any]:
        data: dict[str, Any] = {"value": self.value, "kind": self.kind.value}
        if self.formula is not None:
            data["formula"] = self.formula
        if self.format is not None:
            data["format"] = copy.deepcopy(self.format)
        return data
