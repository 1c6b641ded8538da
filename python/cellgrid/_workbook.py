"""Workbook: the cell store, keyed by canonical A1 text."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from typing import Any

from cellgrid._cell import CellRecord
from cellgrid._exceptions import InvalidAddress
from cellgrid._utils import CellAddress, normalize_key

logger = logging.getLogger(__name__)


class Workbook(Mapping[str, CellRecord]):
    """Mapping of address -> CellRecord. Missing keys are empty cells.

    Usage::

        wb = Workbook.from_snapshot({"A1": {"value": "10"}})
        wb["A1"].value        # '10'
        wb.get("B7")          # None (empty cell)
        wb.to_snapshot()

    The store is read-only through the Mapping API. Writes go through
    :class:`cellgrid.calc.RecalcEngine`, which swaps in a fully recalculated
    copy of the cell dict in one step.
    """

    __slots__ = ("_cells",)

    def __init__(self, cells: Mapping[str, CellRecord] | None = None) -> None:
        self._cells: dict[str, CellRecord] = {}
        if cells:
            for key, record in cells.items():
                self._cells[normalize_key(key)] = record

    @classmethod
    def from_snapshot(cls, snapshot: Mapping[str, Mapping[str, Any]]) -> Workbook:
        """Load the import/export snapshot shape.

        Keys that are not valid addresses are skipped.
        """
        wb = cls()
        for key, entry in snapshot.items():
            try:
                canonical = normalize_key(key)
            except InvalidAddress:
                logger.warning("Skipping snapshot entry with invalid address %r", key)
                continue
            wb._cells[canonical] = CellRecord.from_snapshot(dict(entry))
        return wb

    def to_snapshot(self) -> dict[str, dict[str, Any]]:
        return {key: record.to_snapshot() for key, record in self._cells.items()}

    # ------------------------------------------------------------------
    # Mapping API
    # ------------------------------------------------------------------

    def __getitem__(self, key: CellAddress | str) -> CellRecord:
        try:
            canonical = normalize_key(key)
        except InvalidAddress:
            raise KeyError(key) from None
        return self._cells[canonical]

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, (str, CellAddress)):
            return False
        try:
            return normalize_key(key) in self._cells
        except InvalidAddress:
            return False

    def __iter__(self) -> Iterator[str]:
        return iter(self._cells)

    def __len__(self) -> int:
        return len(self._cells)

    # ------------------------------------------------------------------
    # Commit support
    # ------------------------------------------------------------------

    def copy_cells(self) -> dict[str, CellRecord]:
        """Shallow copy of the cell dict for a pending commit."""
        return dict(self._cells)

    def _replace(self, cells: dict[str, CellRecord]) -> None:
        self._cells = cells

    def formula_cells(self) -> dict[str, str]:
        return {k: r.formula for k, r in self._cells.items() if r.formula is not None}

    def __repr__(self) -> str:
        return f"<Workbook cells={len(self._cells)} formulas={len(self.formula_cells())}>"
