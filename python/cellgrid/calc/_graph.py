"""Dependency graph for formula cells with topological ordering."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Mapping

from cellgrid._cell import CellRecord
from cellgrid._exceptions import RecalcCycleError
from cellgrid.calc._parser import parse_references


class DependencyGraph:
    """Tracks formula cell dependencies for evaluation ordering.

    All cell references use canonical A1 text.
    """

    __slots__ = ("dependencies", "dependents", "formulas")

    def __init__(self) -> None:
        # cell -> set of cells it reads from
        self.dependencies: dict[str, set[str]] = {}
        # cell -> set of cells that read from it (reverse edges)
        self.dependents: dict[str, set[str]] = {}
        # cell -> formula string
        self.formulas: dict[str, str] = {}

    def add_formula(self, cell_ref: str, formula: str) -> None:
        """Register a formula cell, replacing any edges it had before."""
        self.remove_formula(cell_ref)
        self.formulas[cell_ref] = formula
        refs = parse_references(formula)

        self.dependencies[cell_ref] = set(refs)

        for ref in refs:
            if ref not in self.dependents:
                self.dependents[ref] = set()
            self.dependents[ref].add(cell_ref)

    def remove_formula(self, cell_ref: str) -> None:
        """Drop a cell's formula and outgoing edges. Cells reading it keep theirs."""
        self.formulas.pop(cell_ref, None)
        for ref in self.dependencies.pop(cell_ref, set()):
            readers = self.dependents.get(ref)
            if readers is None:
                continue
            readers.discard(cell_ref)
            if not readers:
                del self.dependents[ref]

    def partition_order(self, cells: set[str]) -> tuple[list[str], list[str]]:
        """Split *cells* into ``(ordered, stuck)``.

        ``ordered`` lists cells so each follows the cells it reads; ``stuck``
        holds the cells on a loop or downstream of one, sorted. Only edges
        between members of *cells* are considered.
        """
        in_degree: dict[str, int] = {
            cell: len(self.dependencies.get(cell, set()) & cells) for cell in cells
        }

        # Sorted seeding keeps the order stable across runs
        queue: deque[str] = deque(sorted(c for c, d in in_degree.items() if d == 0))

        order: list[str] = []
        while queue:
            cell = queue.popleft()
            order.append(cell)
            for dep in sorted(self.dependents.get(cell, set())):
                if dep in cells:
                    in_degree[dep] -= 1
                    if in_degree[dep] == 0:
                        queue.append(dep)

        return order, sorted(cells - set(order))

    def evaluation_order(self, cells: set[str]) -> list[str]:
        """Order *cells* so every cell follows the cells it reads.

        Raises RecalcCycleError if some of them are on a loop.
        """
        order, stuck = self.partition_order(cells)
        if stuck:
            raise RecalcCycleError(f"Circular reference detected involving: {stuck}")
        return order

    def topological_order(self) -> list[str]:
        """Return all formula cells in evaluation order (Kahn's algorithm).

        Raises RecalcCycleError if a circular reference is detected.
        """
        return self.evaluation_order(set(self.formulas))

    def transitive_dependents(self, changed_cells: Iterable[str]) -> set[str]:
        """Formula cells reachable from *changed_cells* over reverse edges.

        The changed cells themselves are not included.
        """
        changed = set(changed_cells)
        affected: set[str] = set()
        queue: deque[str] = deque(changed)
        visited: set[str] = set(changed)

        while queue:
            cell = queue.popleft()
            for dep in self.dependents.get(cell, set()):
                if dep not in visited:
                    visited.add(dep)
                    queue.append(dep)
                    if dep in self.formulas:
                        affected.add(dep)

        return affected

    def affected_cells(self, changed_cells: Iterable[str]) -> list[str]:
        """Find all formula cells affected by changes, in evaluation order.

        BFS over reverse edges collects the transitive dependents, then Kahn's
        algorithm orders that subgraph only. Changed formula cells take part
        in the ordering (so a loop back into them is caught) but are not
        returned.
        """
        changed = set(changed_cells)
        affected = self.transitive_dependents(changed)
        order = self.evaluation_order(affected | {c for c in changed if c in self.formulas})
        return [c for c in order if c in affected]

    def max_depth(self, roots: set[str], within: set[str] | None = None) -> int:
        """Longest dependency chain from root cells through formula cells.

        With *within*, only formula cells in that set are walked.
        """
        if not roots:
            return 0

        depth: dict[str, int] = {r: 0 for r in roots}
        queue: deque[str] = deque(roots)
        max_d = 0
        limit = len(self.formulas)

        while queue:
            cell = queue.popleft()
            current_depth = depth[cell]
            for dep in self.dependents.get(cell, set()):
                if dep in self.formulas and (within is None or dep in within):
                    new_depth = current_depth + 1
                    if new_depth > limit:
                        raise RecalcCycleError(f"Circular reference detected involving: {dep}")
                    if dep not in depth or new_depth > depth[dep]:
                        depth[dep] = new_depth
                        max_d = max(max_d, new_depth)
                        queue.append(dep)

        return max_d

    @classmethod
    def from_cells(cls, cells: Mapping[str, CellRecord]) -> DependencyGraph:
        """Build a dependency graph from every formula cell in a store."""
        graph = cls()
        for cell_ref, record in cells.items():
            if record.formula is not None:
                graph.add_formula(cell_ref, record.formula)
        return graph
