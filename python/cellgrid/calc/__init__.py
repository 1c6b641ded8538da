"""cellgrid.calc - Formula evaluation and recalculation for cellgrid workbooks."""

from cellgrid.calc._cycles import find_cycle, has_cycle
from cellgrid.calc._engine import RecalcEngine
from cellgrid.calc._evaluator import evaluate, format_value
from cellgrid.calc._graph import DependencyGraph
from cellgrid.calc._parser import parse, parse_references, tokenize
from cellgrid.calc._protocol import CalcEngine, CellDelta, RecalcResult

__all__ = [
    "CalcEngine",
    "CellDelta",
    "DependencyGraph",
    "RecalcEngine",
    "RecalcResult",
    "evaluate",
    "find_cycle",
    "format_value",
    "has_cycle",
    "parse",
    "parse_references",
    "tokenize",
]
