"""Selection and editing state machine driven by the presentation layer."""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass

from cellgrid._cell import CellRecord, is_formula
from cellgrid._config import DEFAULT_CONFIG, GridConfig
from cellgrid._exceptions import CircularReference, InvalidAddress, RecalcCycleError
from cellgrid._utils import CellAddress, CellRange, column_letter, to_address
from cellgrid._workbook import Workbook
from cellgrid.calc._engine import RecalcEngine
from cellgrid.calc._protocol import RecalcResult

logger = logging.getLogger(__name__)


class EditState(enum.Enum):
    IDLE = "idle"  # no active cell
    SELECTED = "selected"
    EDITING = "editing"


class Direction(enum.Enum):
    UP = (-1, 0)
    DOWN = (1, 0)
    LEFT = (0, -1)
    RIGHT = (0, 1)


class CommitStatus(enum.Enum):
    COMMITTED = "committed"
    REJECTED_CYCLE = "rejected_cycle"
    IGNORED = "ignored"  # not editing


@dataclass(frozen=True)
class CommitResult:
    status: CommitStatus
    address: str | None = None
    value: str | None = None  # display value after the commit
    message: str = ""
    recalc: RecalcResult | None = None

    @property
    def ok(self) -> bool:
        return self.status is CommitStatus.COMMITTED


_IGNORED = CommitResult(CommitStatus.IGNORED)


class SelectionController:
    """Active cell, range selection and edit buffer over one workbook.

    The controller is the only writer of its workbook. User-input problems
    (bad addresses, circular formulas, calls in the wrong state) never raise:
    they come back as ``False`` / :class:`CommitResult` and leave the
    workbook untouched.

    Usage::

        ctl = SelectionController(notify=print)
        ctl.select("B2")
        ctl.begin_edit()
        ctl.update_buffer("=A1+1")
        ctl.confirm_edit()
    """

    def __init__(
        self,
        workbook: Workbook | None = None,
        config: GridConfig | None = None,
        notify: Callable[[str], None] | None = None,
    ) -> None:
        self._engine = RecalcEngine(workbook)
        self._config = config or DEFAULT_CONFIG
        self._notify = notify
        self._active: CellAddress | None = None
        self._range: CellRange | None = None
        self._editing = False
        self._buffer = ""

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def workbook(self) -> Workbook:
        return self._engine.workbook

    @property
    def engine(self) -> RecalcEngine:
        return self._engine

    @property
    def config(self) -> GridConfig:
        return self._config

    @property
    def state(self) -> EditState:
        if self._active is None:
            return EditState.IDLE
        return EditState.EDITING if self._editing else EditState.SELECTED

    @property
    def active_cell(self) -> CellAddress | None:
        return self._active

    @property
    def selected_range(self) -> CellRange | None:
        return self._range

    @property
    def editing(self) -> bool:
        return self._editing

    @property
    def edit_buffer(self) -> str:
        return self._buffer

    def load(self, workbook: Workbook) -> None:
        """Swap in another workbook and reset the selection."""
        self._engine.load(workbook)
        self._active = None
        self._range = None
        self._editing = False
        self._buffer = ""

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    def cell_at(self, address: CellAddress | str) -> CellRecord | None:
        addr = self._coerce(address)
        if addr is None:
            return None
        return self.workbook.get(addr.label)

    def is_active(self, address: CellAddress | str) -> bool:
        addr = self._coerce(address)
        return addr is not None and addr == self._active

    def is_in_range(self, address: CellAddress | str) -> bool:
        addr = self._coerce(address)
        return addr is not None and self._range is not None and self._range.contains(addr)

    @staticmethod
    def column_label(index: int) -> str:
        return column_letter(index)

    def column_labels(self) -> list[str]:
        """Header row for the configured width: ``['A', 'B', ...]``."""
        return [column_letter(i) for i in range(self._config.cols)]

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select(self, address: CellAddress | str, extend: bool = False) -> bool:
        """Make *address* active, or with *extend* span a range from the active cell.

        A live edit is committed first.
        """
        if self._editing:
            self.confirm_edit()
            if self._editing:
                # The commit failed and the edit is still open.
                return False
        addr = self._coerce(address)
        if addr is None or not self._config.contains(addr):
            logger.debug("Ignoring selection of %r outside the grid", address)
            return False
        if extend and self._active is not None:
            self._range = CellRange(self._active, addr)
        else:
            self._active = addr
            self._range = None
        return True

    def move_active(self, direction: Direction, open_for_edit: bool = False) -> bool:
        """Step the active cell one cell in *direction*; no-op at the grid edge."""
        if self._editing or self._active is None:
            return False
        drow, dcol = direction.value
        row, col = self._active.row + drow, self._active.col + dcol
        if not (0 <= row < self._config.rows and 0 <= col < self._config.cols):
            return False
        self.select(CellAddress(row, col))
        if open_for_edit:
            self.begin_edit()
        return True

    def move_next(self, reverse: bool = False) -> bool:
        """Tab order: right (left with *reverse*), wrapping to the next/previous row."""
        if self._editing or self._active is None:
            return False
        row, col = self._active.row, self._active.col
        last_col = self._config.cols - 1
        if not reverse:
            if col < last_col:
                target = CellAddress(row, col + 1)
            elif row < self._config.rows - 1:
                target = CellAddress(row + 1, 0)
            else:
                return False
        else:
            if col > 0:
                target = CellAddress(row, col - 1)
            elif row > 0:
                target = CellAddress(row - 1, last_col)
            else:
                return False
        return self.select(target)

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def begin_edit(self) -> bool:
        if self.state is not EditState.SELECTED:
            return False
        record = self.workbook.get(self._active.label)  # type: ignore[union-attr]
        self._buffer = record.source if record is not None else ""
        self._editing = True
        return True

    def update_buffer(self, text: str) -> bool:
        if not self._editing:
            return False
        self._buffer = text
        return True

    def cancel_edit(self) -> bool:
        if not self._editing:
            return False
        self._end_edit()
        return True

    def confirm_edit(self) -> CommitResult:
        """Commit the buffer to the active cell and recalculate.

        A formula that would close a reference cycle is rejected: nothing is
        written and the notify callback receives a message. The controller
        leaves edit mode unless recalculation itself failed, in which case
        the buffer stays open. An empty buffer removes the cell.
        """
        if not self._editing:
            return _IGNORED
        key = self._active.label  # type: ignore[union-attr]
        record = self._record_from_buffer(key, self._buffer)

        try:
            recalc = self._engine.commit(key, record)
        except CircularReference as exc:
            self._end_edit()
            logger.warning("Rejected edit of %s: %s", key, exc)
            return self._rejected(key)
        except RecalcCycleError:
            # Buffer kept so the user can amend or cancel.
            logger.exception("Recalculation failed for %s", key)
            return self._rejected(key)
        self._end_edit()

        cell = self.workbook.get(key)
        return CommitResult(
            CommitStatus.COMMITTED,
            key,
            value=cell.value if cell is not None else None,
            recalc=recalc,
        )

    def confirm_and_move(self, direction: Direction = Direction.DOWN) -> CommitResult:
        """Enter key: commit, then step without reopening the editor.

        Stays put when the commit was rejected.
        """
        result = self.confirm_edit()
        if result.status is not CommitStatus.REJECTED_CYCLE:
            self.move_active(direction, open_for_edit=False)
        return result

    def clear_selection(self) -> int:
        """Delete the records in the range (or the active cell). Returns how many."""
        if self._editing or self._active is None:
            return 0
        area = self._range or CellRange(self._active, self._active)
        doomed = {key: None for key in self.workbook if area.contains(CellAddress.parse(key))}
        if not doomed:
            return 0
        try:
            self._engine.commit_many(doomed)
        except RecalcCycleError:
            logger.exception("Recalculation failed clearing %s", area)
            return 0
        return len(doomed)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _rejected(self, key: str) -> CommitResult:
        message = f"Circular reference detected in {key}"
        if self._notify is not None:
            self._notify(message)
        return CommitResult(CommitStatus.REJECTED_CYCLE, key, message=message)

    def _end_edit(self) -> None:
        self._editing = False
        self._buffer = ""

    def _record_from_buffer(self, key: str, text: str) -> CellRecord | None:
        if text == "":
            return None
        existing = self.workbook.get(key)
        fmt = existing.format if existing is not None else None
        if is_formula(text):
            return CellRecord.for_formula(text, format=fmt)
        return CellRecord.literal(text, format=fmt)

    @staticmethod
    def _coerce(address: CellAddress | str) -> CellAddress | None:
        try:
            return to_address(address)
        except InvalidAddress:
            logger.debug("Ignoring invalid address %r", address)
            return None
