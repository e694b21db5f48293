"""
LayoutEngine - Grid calculation for frame layouts.

Handles:
1. Grid shape from the number of active items (at most 3 columns)
2. Canvas size from fixed item, padding and caption dimensions
3. Per-item cell coordinates, row-major
4. Title band and caption anchors

The layout depends only on the item count, so the same count always gives
the same pixels.
"""

import math
from dataclasses import dataclass
from typing import Tuple

PADDING = 60
TITLE_HEIGHT = 120
GAP = 40
CAPTION_HEIGHT = 60
ITEM_WIDTH = 400
ITEM_HEIGHT = 400
MAX_COLUMNS = 3
CAPTION_OFFSET = 15  # Caption top, below the item image


@dataclass(frozen=True)
class CellSpec:
    """Position of a single item in the grid."""
    index: int
    x: int              # Left position
    y: int              # Top position
    width: int
    height: int
    row: int            # 0-indexed
    col: int            # 0-indexed
    caption_anchor: Tuple[float, float]  # Top-center of the caption text

    @property
    def box(self) -> Tuple[int, int, int, int]:
        return (self.x, self.y, self.x + self.width, self.y + self.height)

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)


@dataclass(frozen=True)
class GridLayout:
    """Complete layout for one frame."""
    canvas_width: int
    canvas_height: int
    columns: int
    rows: int
    title_center: Tuple[float, float]
    cells: Tuple[CellSpec, ...]

    @property
    def size(self) -> Tuple[int, int]:
        return (self.canvas_width, self.canvas_height)


class LayoutEngine:
    """
    Calculates the frame grid.

    columns = min(max_columns, n), rows = ceil(n / columns); every cell has
    the same size and is followed by a caption band.
    """

    def __init__(
        self,
        padding: int = PADDING,
        title_height: int = TITLE_HEIGHT,
        gap: int = GAP,
        caption_height: int = CAPTION_HEIGHT,
        item_width: int = ITEM_WIDTH,
        item_height: int = ITEM_HEIGHT,
        max_columns: int = MAX_COLUMNS,
        caption_offset: int = CAPTION_OFFSET,
    ):
        self.padding = padding
        self.title_height = title_height
        self.gap = gap
        self.caption_height = caption_height
        self.item_width = item_width
        self.item_height = item_height
        self.max_columns = max_columns
        self.caption_offset = caption_offset

    def grid_shape(self, item_count: int) -> Tuple[int, int]:
        """
        Returns:
            Tuple of (columns, rows)
        """
        if item_count < 1:
            raise ValueError(f"Layout needs at least one item, got {item_count}")
        columns = min(self.max_columns, item_count)
        rows = math.ceil(item_count / columns)
        return columns, rows

    def canvas_size(self, columns: int, rows: int) -> Tuple[int, int]:
        width = 2 * self.padding + columns * self.item_width + (columns - 1) * self.gap
        height = (
            2 * self.padding
            + self.title_height
            + rows * (self.item_height + self.caption_height)
            + (rows - 1) * self.gap
        )
        return width, height

    def cell(self, index: int, columns: int) -> CellSpec:
        row, col = divmod(index, columns)
        x = self.padding + col * (self.item_width + self.gap)
        y = self.padding + self.title_height + row * (self.item_height + self.caption_height + self.gap)
        return CellSpec(
            index=index,
            x=x,
            y=y,
            width=self.item_width,
            height=self.item_height,
            row=row,
            col=col,
            caption_anchor=(x + self.item_width / 2, y + self.item_height + self.caption_offset),
        )

    def calculate_layout(self, item_count: int) -> GridLayout:
        """
        Calculate the layout for item_count active items.

        Raises:
            ValueError: if item_count is less than 1
        """
        columns, rows = self.grid_shape(item_count)
        width, height = self.canvas_size(columns, rows)

        return GridLayout(
            canvas_width=width,
            canvas_height=height,
            columns=columns,
            rows=rows,
            title_center=(width / 2, self.padding + self.title_height / 2),
            cells=tuple(self.cell(i, columns) for i in range(item_count)),
        )
