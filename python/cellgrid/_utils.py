"""Coordinate helpers: A1 text <-> zero-based (row, col)."""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass

from cellgrid._exceptions import InvalidAddress

_A1_RE = re.compile(r"^([A-Z]+)([0-9]+)$")
_LETTERS_RE = re.compile(r"^[A-Z]+$")


def column_letter(col: int) -> str:
    """Zero-based column index -> letters. ``0 -> 'A'``, ``26 -> 'AA'``."""
    if col < 0:
        raise InvalidAddress(f"Column index must be >= 0, got {col}")
    letters = ""
    n = col + 1
    while n > 0:
        n, rem = divmod(n - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


def column_index(letters: str) -> int:
    """Column letters -> zero-based index. ``'A' -> 0``, ``'AA' -> 26``."""
    if not _LETTERS_RE.match(letters):
        raise InvalidAddress(f"Invalid column letters: {letters!r}")
    n = 0
    for ch in letters:
        n = n * 26 + (ord(ch) - ord("A") + 1)
    return n - 1


def rowcol_to_a1(row: int, col: int) -> str:
    """``(2, 1) -> 'B3'``."""
    if row < 0:
        raise InvalidAddress(f"Row index must be >= 0, got {row}")
    return f"{column_letter(col)}{row + 1}"


def a1_to_rowcol(text: str) -> tuple[int, int]:
    """``'B3' -> (2, 1)``. Lowercase and anchored (``$A$1``) forms are rejected."""
    m = _A1_RE.match(text) if isinstance(text, str) else None
    if not m:
        raise InvalidAddress(f"Invalid A1 reference: {text!r}")
    row = int(m.group(2)) - 1
    if row < 0:
        raise InvalidAddress(f"Invalid A1 reference: {text!r} (rows start at 1)")
    return row, column_index(m.group(1))


@dataclass(frozen=True, order=True)
class CellAddress:
    """A zero-based grid coordinate. ``label`` is the canonical A1 text."""

    row: int
    col: int

    def __post_init__(self) -> None:
        if self.row < 0 or self.col < 0:
            raise InvalidAddress(f"Negative coordinate: ({self.row}, {self.col})")

    @classmethod
    def parse(cls, text: str) -> CellAddress:
        row, col = a1_to_rowcol(text)
        return cls(row, col)

    @property
    def label(self) -> str:
        return rowcol_to_a1(self.row, self.col)

    def offset(self, drow: int, dcol: int) -> CellAddress:
        return CellAddress(self.row + drow, self.col + dcol)

    def __str__(self) -> str:
        return self.label


def to_address(address: CellAddress | str) -> CellAddress:
    if isinstance(address, CellAddress):
        return address
    return CellAddress.parse(address)


def normalize_key(address: CellAddress | str) -> str:
    """Canonical store key for *address* (``'A01' -> 'A1'``)."""
    return to_address(address).label


@dataclass(frozen=True)
class CellRange:
    """Rectangle spanned by two corner addresses, in either order."""

    start: CellAddress
    end: CellAddress

    @property
    def bounds(self) -> tuple[int, int, int, int]:
        """``(min_row, min_col, max_row, max_col)``."""
        return (
            min(self.start.row, self.end.row),
            min(self.start.col, self.end.col),
            max(self.start.row, self.end.row),
            max(self.start.col, self.end.col),
        )

    def contains(self, address: CellAddress) -> bool:
        r_min, c_min, r_max, c_max = self.bounds
        return r_min <= address.row <= r_max and c_min <= address.col <= c_max

    def cells(self) -> Iterator[CellAddress]:
        r_min, c_min, r_max, c_max = self.bounds
        for r in range(r_min, r_max + 1):
            for c in range(c_min, c_max + 1):
                yield CellAddress(r, c)

    def __str__(self) -> str:
        return f"{self.start.label}:{self.end.label}"
