"""Grid configuration."""

from __future__ import annotations

from dataclasses import dataclass

from cellgrid._utils import CellAddress


@dataclass(frozen=True)
class GridConfig:
    """Size of the editable grid. Navigation never leaves these bounds."""

    rows: int = 50
    cols: int = 26  # A-Z

    def __post_init__(self) -> None:
        if self.rows < 1 or self.cols < 1:
            raise ValueError(f"Grid must be at least 1x1, got {self.rows}x{self.cols}")

    def contains(self, address: CellAddress) -> bool:
        return address.row < self.rows and address.col < self.cols


DEFAULT_CONFIG = GridConfig()
