"""
Pyramid Grid Addressing

Pure arithmetic shared by every stage of pyramid generation: the geographic
extent of a tile, the tiles a rectangle overlaps at one level, level-to-level
narrowing of tile ranges and the per-level buffer a drawing radius induces.

Every worker recomputes tile extents independently, so all extents go through
``tile_extent`` and its interpolation formula.
"""

import math
from dataclasses import dataclass
from typing import Iterator, NamedTuple, Optional, Tuple


@dataclass(frozen=True)
class GeoRectangle:
    """Axis-aligned bounding rectangle in input coordinates."""
    x1: float
    y1: float
    x2: float
    y2: float

    def __post_init__(self):
        if self.x1 > self.x2 or self.y1 > self.y2:
            raise ValueError(
                f"Invalid rectangle ({self.x1}, {self.y1}, {self.x2}, {self.y2}): "
                "expected x1 <= x2 and y1 <= y2"
            )

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    def buffer(self, dx: float, dy: float) -> "GeoRectangle":
        """Expand the rectangle symmetrically by ``dx`` and ``dy``."""
        return GeoRectangle(self.x1 - dx, self.y1 - dy, self.x2 + dx, self.y2 + dy)

    def union(self, other: "GeoRectangle") -> "GeoRectangle":
        return GeoRectangle(
            min(self.x1, other.x1),
            min(self.y1, other.y1),
            max(self.x2, other.x2),
            max(self.y2, other.y2)
        )

    def intersects(self, other: "GeoRectangle") -> bool:
        return (
            self.x1 <= other.x2 and other.x1 <= self.x2 and
            self.y1 <= other.y2 and other.y1 <= self.y2
        )

    def to_tuple(self) -> Tuple[float, float, float, float]:
        return (self.x1, self.y1, self.x2, self.y2)


class TileIndex(NamedTuple):
    """
    Address of one tile in the pyramid.

    A NamedTuple so that equality, ordering and hashing follow the
    ``(level, x, y)`` triple. Tuple hashing of ints is stable across Python
    processes, which Spark's hash partitioner relies on.
    """
    level: int
    x: int
    y: int

    @property
    def tile_id(self) -> str:
        return f"{self.level}/{self.x}/{self.y}"


class CellRange(NamedTuple):
    """Half-open range of tile coordinates ``[x, x+width) x [y, y+height)``."""
    x: int
    y: int
    width: int
    height: int

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def shift(self, dx: int, dy: int) -> "CellRange":
        return CellRange(self.x + dx, self.y + dy, self.width, self.height)

    def cells(self) -> Iterator[Tuple[int, int]]:
        for x in range(self.x, self.x + self.width):
            for y in range(self.y, self.y + self.height):
                yield x, y


@dataclass(frozen=True)
class PyramidSpec:
    """The addressable tile space: ``input_mbr`` split over ``[min_level, max_level]``."""
    input_mbr: GeoRectangle
    min_level: int
    max_level: int

    def __post_init__(self):
        if self.min_level < 0 or self.min_level > self.max_level:
            raise ValueError(
                f"Invalid level range {self.min_level}..{self.max_level}"
            )

    def levels(self) -> range:
        return range(self.min_level, self.max_level + 1)

    def contains(self, tile: TileIndex) -> bool:
        grid_size = 1 << tile.level
        return (
            self.min_level <= tile.level <= self.max_level and
            0 <= tile.x < grid_size and 0 <= tile.y < grid_size
        )


def tile_extent(input_mbr: GeoRectangle, tile: TileIndex) -> GeoRectangle:
    """
    Compute the geographic extent of a tile by linear interpolation.

    Args:
        input_mbr: Extent of the whole pyramid (the single level-0 tile)
        tile: Tile to locate

    Returns:
        The tile's rectangle; identical bits for identical inputs
    """
    grid_size = 1 << tile.level
    x, y = tile.x, tile.y
    return GeoRectangle(
        (input_mbr.x1 * (grid_size - x) + input_mbr.x2 * x) / grid_size,
        (input_mbr.y1 * (grid_size - y) + input_mbr.y2 * y) / grid_size,
        (input_mbr.x1 * (grid_size - (x + 1)) + input_mbr.x2 * (x + 1)) / grid_size,
        (input_mbr.y1 * (grid_size - (y + 1)) + input_mbr.y2 * (y + 1)) / grid_size
    )


def _cell_span(low: float, high: float, grid_low: float, grid_high: float,
               grid_size: int) -> Tuple[int, int]:
    """Return ``[first, last)`` cells of one axis covered by ``[low, high]``."""
    extent = grid_high - grid_low
    if extent <= 0:
        # Degenerate grid axis: every cell sits on the same coordinate
        return 0, grid_size
    first = math.floor((low - grid_low) * grid_size / extent)
    last = math.ceil((high - grid_low) * grid_size / extent)
    first = min(max(first, 0), grid_size - 1)
    last = min(max(last, first + 1), grid_size)
    return first, last


def overlapping_cells(
    grid_mbr: GeoRectangle,
    grid_size: int,
    rect: GeoRectangle
) -> CellRange:
    """
    Find the cells of a ``grid_size x grid_size`` grid that ``rect`` overlaps.

    Cells are half-open: a rectangle whose lower edge lies exactly on a cell
    boundary starts in the upper cell, and one whose upper edge lies on a
    boundary stops in the lower cell. A zero-size rectangle still maps to the
    one cell containing it, and the grid's far edge belongs to the last cell.
    A rectangle lying outside the grid with its upper edge on the grid's lower
    edge overlaps nothing.

    Args:
        grid_mbr: Geographic extent of the grid
        grid_size: Number of cells along each axis
        rect: Query rectangle

    Returns:
        CellRange of overlapped cells, empty when ``rect`` misses the grid
    """
    if not grid_mbr.intersects(rect):
        return CellRange(0, 0, 0, 0)
    if ((rect.x2 == grid_mbr.x1 and rect.x1 < rect.x2) or
            (rect.y2 == grid_mbr.y1 and rect.y1 < rect.y2)):
        return CellRange(0, 0, 0, 0)
    col1, col2 = _cell_span(rect.x1, rect.x2, grid_mbr.x1, grid_mbr.x2, grid_size)
    row1, row2 = _cell_span(rect.y1, rect.y2, grid_mbr.y1, grid_mbr.y2, grid_size)
    return CellRange(col1, row1, col2 - col1, row2 - row1)


def narrow(cells: CellRange, shift: int = 1) -> CellRange:
    """
    Map a cell range to the range covering it ``shift`` levels up.

    Args:
        cells: Non-empty cell range at level L
        shift: Number of levels to move up (1 halves the resolution once)

    Returns:
        The smallest range at level ``L - shift`` containing every cell of ``cells``
    """
    x1 = cells.x >> shift
    y1 = cells.y >> shift
    x2 = (cells.x + cells.width - 1) >> shift
    y2 = (cells.y + cells.height - 1) >> shift
    return CellRange(x1, y1, x2 - x1 + 1, y2 - y1 + 1)


def buffer_size(
    input_mbr: GeoRectangle,
    radius: int,
    tile_width: int,
    tile_height: int,
    level: int
) -> Tuple[float, float]:
    """Geographic margin of a ``radius``-pixel drawing at ``level``."""
    grid_size = 1 << level
    return (
        radius * input_mbr.width / (tile_width * grid_size),
        radius * input_mbr.height / (tile_height * grid_size)
    )


def buffered_cells(
    shape_mbr: Optional[GeoRectangle],
    grid_mbr: GeoRectangle,
    grid_size: int,
    buffer: Tuple[float, float]
) -> Optional[CellRange]:
    """Overlap of a shape's buffered MBR with a grid, or None when nothing is touched."""
    if shape_mbr is None:
        return None
    cells = overlapping_cells(grid_mbr, grid_size, shape_mbr.buffer(*buffer))
    if cells.is_empty:
        return None
    return cells
