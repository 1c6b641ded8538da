"""RecalcEngine: commits cell writes and recomputes dependents in order."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping

from cellgrid._cell import CellRecord
from cellgrid._exceptions import ERROR_VALUE, CircularReference
from cellgrid._utils import CellAddress, normalize_key
from cellgrid._workbook import Workbook
from cellgrid.calc._cycles import find_cycle
from cellgrid.calc._evaluator import evaluate
from cellgrid.calc._graph import DependencyGraph
from cellgrid.calc._protocol import CellDelta, RecalcResult

logger = logging.getLogger(__name__)


class RecalcEngine:
    """Keeps a Workbook consistent across edits.

    Usage::

        engine = RecalcEngine(Workbook())
        engine.commit("B2", CellRecord.literal("5"))
        engine.commit("D2", CellRecord.for_formula("=B2*2"))
        engine.workbook["D2"].value   # '10'

    Every commit works on a copy of the cell dict: the written cell and its
    transitive dependents are re-evaluated into the copy in dependency order,
    then the copy replaces the store in one assignment.
    """

    def __init__(self, workbook: Workbook | None = None) -> None:
        self._workbook = Workbook()
        self._graph = DependencyGraph()
        self.load(workbook if workbook is not None else Workbook())

    @property
    def workbook(self) -> Workbook:
        return self._workbook

    @property
    def graph(self) -> DependencyGraph:
        return self._graph

    def load(self, workbook: Workbook) -> None:
        """Adopt *workbook*, build its dependency graph and recompute every formula.

        Stored formula values are not trusted, so commits can later rely on
        every cell outside the changed region being current.
        """
        self._workbook = workbook
        self._graph = DependencyGraph.from_cells(workbook)
        self.calculate()

    def calculate(self) -> dict[str, str]:
        """Re-evaluate every formula cell in topological order.

        Returns dict of cell_ref -> display value for formula cells. Cells on
        a reference loop, or reading from one, get ``#ERROR!``.
        """
        order, stuck = self._graph.partition_order(set(self._graph.formulas))
        cells = self._workbook.copy_cells()
        results: dict[str, str] = {}
        for cell_ref in order:
            results[cell_ref] = self._evaluate_into(cells, cell_ref)
        for cell_ref in stuck:
            results[cell_ref] = self._mark_looped(cells, cell_ref)
        self._workbook._replace(cells)  # noqa: SLF001
        return results

    def commit(self, address: CellAddress | str, record: CellRecord | None) -> RecalcResult:
        """Write *record* at *address* (None deletes it) and recalculate.

        Raises CircularReference, leaving the workbook untouched, when the
        record's formula would close a reference cycle.
        """
        return self.commit_many({normalize_key(address): record})

    def commit_many(self, records: Mapping[CellAddress | str, CellRecord | None]) -> RecalcResult:
        """Apply several writes/deletions as one commit with a single recalculation."""
        writes = {normalize_key(addr): rec for addr, rec in records.items()}
        current = self._workbook

        changed = [k for k, rec in writes.items() if current.get(k) != rec]
        if not changed:
            return RecalcResult(
                changed=(), deltas=(), total_formula_cells=len(self._graph.formulas),
            )

        cells = current.copy_cells()
        for key in changed:
            record = writes[key]
            if record is None:
                cells.pop(key, None)
            else:
                cells[key] = record

        # Checked against the draft so cycles spanning several writes are caught.
        for key in changed:
            record = writes[key]
            if record is not None and record.formula is not None:
                cycle = find_cycle(record.formula, cells, key)
                if cycle is not None:
                    raise CircularReference(key, cycle)

        for key in changed:
            record = writes[key]
            if record is not None and record.formula is not None:
                self._graph.add_formula(key, record.formula)
            else:
                self._graph.remove_formula(key)

        result = self._propagate(cells, changed)
        current._replace(cells)  # noqa: SLF001
        logger.debug(
            "Committed %s: %d formula cells evaluated, %d changed",
            ", ".join(changed), len(result.evaluated), result.propagated_cells,
        )
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _propagate(self, cells: dict[str, CellRecord], changed: list[str]) -> RecalcResult:
        graph = self._graph
        to_evaluate = graph.transitive_dependents(changed)
        to_evaluate.update(k for k in changed if k in graph.formulas)
        order, stuck = graph.partition_order(to_evaluate)

        old_values = {ref: self._old_value(ref) for ref in to_evaluate}
        new_values: dict[str, str] = {}
        for cell_ref in order:
            new_values[cell_ref] = self._evaluate_into(cells, cell_ref)
        for cell_ref in stuck:
            new_values[cell_ref] = self._mark_looped(cells, cell_ref)

        deltas = tuple(
            CellDelta(
                cell_ref=cell_ref,
                old_value=old_values[cell_ref],
                new_value=new_value,
                formula=graph.formulas.get(cell_ref),
            )
            for cell_ref, new_value in new_values.items()
            if old_values[cell_ref] != new_value
        )

        return RecalcResult(
            changed=tuple(changed),
            deltas=deltas,
            evaluated=tuple(new_values),
            total_formula_cells=len(graph.formulas),
            max_chain_depth=graph.max_depth(set(changed), within=set(order)),
        )

    def _old_value(self, cell_ref: str) -> str | None:
        record = self._workbook.get(cell_ref)
        return record.value if record is not None else None

    @staticmethod
    def _evaluate_into(cells: dict[str, CellRecord], cell_ref: str) -> str:
        """Evaluate one formula cell against *cells* and store the result there."""
        record = cells[cell_ref]
        value, ok = evaluate(record.formula or "", cells)
        if not ok:
            logger.debug("Formula in %s evaluated to an error: %r", cell_ref, record.formula)
        if value != record.value:
            cells[cell_ref] = dataclasses.replace(record, value=value)
        return value

    @staticmethod
    def _mark_looped(cells: dict[str, CellRecord], cell_ref: str) -> str:
        """Store ``#ERROR!`` for a formula cell that cannot be ordered."""
        record = cells[cell_ref]
        logger.warning("Formula in %s is on or reads from a reference loop", cell_ref)
        if record.value != ERROR_VALUE:
            cells[cell_ref] = dataclasses.replace(record, value=ERROR_VALUE)
        return ERROR_VALUE
