"""cellgrid - cell addressing, formulas and recalculation for grid editors.

Usage::

    from cellgrid import SelectionController

    ctl = SelectionController()
    ctl.select("B2")
    ctl.begin_edit()
    ctl.update_buffer("5")
    ctl.confirm_edit()

    ctl.select("D2")
    ctl.begin_edit()
    ctl.update_buffer("=B2*2")
    ctl.confirm_edit()
    ctl.cell_at("D2").value   # '10'
"""

from cellgrid._cell import CellKind, CellRecord, infer_kind, is_formula
from cellgrid._config import DEFAULT_CONFIG, GridConfig
from cellgrid._controller import (
    CommitResult,
    CommitStatus,
    Direction,
    EditState,
    SelectionController,
)
from cellgrid._exceptions import (
    ERROR_VALUE,
    CellGridError,
    CircularReference,
    EvalError,
    FormulaError,
    InvalidAddress,
    ParseError,
    RecalcCycleError,
)
from cellgrid._utils import (
    CellAddress,
    CellRange,
    a1_to_rowcol,
    column_index,
    column_letter,
    rowcol_to_a1,
)
from cellgrid._workbook import Workbook

__version__ = "0.1.0"

__all__ = [
    "CellAddress",
    "CellGridError",
    "CellKind",
    "CellRange",
    "CellRecord",
    "CircularReference",
    "CommitResult",
    "CommitStatus",
    "DEFAULT_CONFIG",
    "Direction",
    "ERROR_VALUE",
    "EditState",
    "EvalError",
    "FormulaError",
    "GridConfig",
    "InvalidAddress",
    "ParseError",
    "RecalcCycleError",
    "SelectionController",
    "Workbook",
    "a1_to_rowcol",
    "column_index",
    "column_letter",
    "infer_kind",
    "is_formula",
    "rowcol_to_a1",
]
