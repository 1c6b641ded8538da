"""Circular reference detection for a formula about to be committed."""

from __future__ import annotations

from collections.abc import Iterator, Mapping

from cellgrid._cell import CellRecord
from cellgrid._utils import CellAddress, normalize_key
from cellgrid.calc._parser import parse_references


def find_cycle(
    formula: str,
    cells: Mapping[str, CellRecord],
    origin: CellAddress | str,
) -> list[str] | None:
    """Return the reference path that leads back into itself, or None.

    Depth-first walk from the references of *formula* through each
    referenced cell's own formula. Only addresses on the current path count
    as a cycle; an address is dropped from the path on backtrack, and fully
    explored addresses are not walked again.
    """
    origin_key = normalize_key(origin)
    path: list[str] = [origin_key]
    on_path: set[str] = {origin_key}
    cleared: set[str] = set()
    stack: list[Iterator[str]] = [iter(parse_references(formula))]

    while stack:
        for ref in stack[-1]:
            if ref in on_path:
                return path + [ref]
            if ref in cleared:
                continue
            record = cells.get(ref)
            if record is None or record.formula is None:
                cleared.add(ref)
                continue
            path.append(ref)
            on_path.add(ref)
            stack.append(iter(parse_references(record.formula)))
            break
        else:
            stack.pop()
            done = path.pop()
            on_path.discard(done)
            cleared.add(done)
    return None


def has_cycle(formula: str, cells: Mapping[str, CellRecord], origin: CellAddress | str) -> bool:
    """True if committing *formula* at *origin* would create a circular reference."""
    return find_cycle(formula, cells, origin) is not None
