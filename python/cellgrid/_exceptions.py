"""Exception hierarchy for cellgrid."""

from __future__ import annotations

ERROR_VALUE = "#ERROR!"


class CellGridError(Exception):
    """Base class for all cellgrid errors."""


class InvalidAddress(CellGridError, ValueError):
    """Address text is not ``<UPPERCASE LETTERS><DIGITS>`` or is out of range."""


class FormulaError(CellGridError):
    """A formula could not be parsed or evaluated.

    ``code`` is the display string written to the cell in place of a value.
    """

    code: str = ERROR_VALUE


class ParseError(FormulaError):
    """Unknown token or malformed expression."""


class EvalError(FormulaError):
    """Division by zero, type mismatch or non-finite result."""


class CircularReference(CellGridError, ValueError):
    """Committing a formula would close a reference cycle."""

    def __init__(self, origin: str, path: list[str]) -> None:
        self.origin = origin
        self.path = path
        chain = " -> ".join(path)
        super().__init__(f"Circular reference detected at {origin}: {chain}")


class RecalcCycleError(CellGridError, RuntimeError):
    """The dependency graph contains a cycle during recalculation.

    Commits are cycle-checked beforehand, so this signals a corrupted store
    rather than bad user input.
    """
