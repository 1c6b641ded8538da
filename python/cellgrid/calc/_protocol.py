"""CalcEngine protocol and result dataclasses."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from cellgrid._exceptions import ERROR_VALUE

if TYPE_CHECKING:
    from cellgrid._cell import CellRecord
    from cellgrid._utils import CellAddress
    from cellgrid._workbook import Workbook


@dataclass(frozen=True)
class CellDelta:
    """A single formula cell's value change from recalculation."""

    cell_ref: str  # canonical "A1"
    old_value: str | None
    new_value: str
    formula: str | None = None  # the formula that produced new_value


@dataclass(frozen=True)
class RecalcResult:
    """Result of committing one or more cell writes."""

    changed: tuple[str, ...]  # cells written or removed by the commit
    deltas: tuple[CellDelta, ...]  # formula cells whose value changed
    evaluated: tuple[str, ...] = ()  # formula cells re-evaluated, in order
    total_formula_cells: int = 0
    max_chain_depth: int = 0  # longest dependency chain from the changed cells

    @property
    def propagated_cells(self) -> int:
        return len(self.deltas)

    @property
    def error_cells(self) -> tuple[str, ...]:
        """Formula cells whose value changed to the error sentinel."""
        return tuple(d.cell_ref for d in self.deltas if d.new_value == ERROR_VALUE)


@runtime_checkable
class CalcEngine(Protocol):
    """Protocol for recalculation engines driving a Workbook."""

    def load(self, workbook: Workbook) -> None:
        """Scan a workbook and build its dependency graph."""
        ...

    def calculate(self) -> dict[str, str]:
        """Evaluate all formulas in topological order.

        Returns a dict of cell_ref -> display value for all formula cells.
        """
        ...

    def commit(self, address: CellAddress | str, record: CellRecord | None) -> RecalcResult:
        """Write (or, with None, delete) one cell and recompute its dependents."""
        ...
