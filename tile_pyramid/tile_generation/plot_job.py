"""Immutable settings shared by the transform and aggregation functions of one run."""

from dataclasses import dataclass
from typing import Optional, Tuple

from ..utils.config import PyramidConfig
from .grid import GeoRectangle, PyramidSpec, TileIndex, buffer_size, tile_extent
from .rasterizer import GeometryRasterizer, Rasterizer


@dataclass(frozen=True)
class PlotJob:
    """
    Everything a partitioner needs, passed by value to every worker.

    Attributes:
        input_mbr: Extent of the level-0 tile
        min_level: Shallowest level to generate (inclusive)
        max_level: Deepest level to generate (inclusive)
        rasterizer: Drawing strategy
        tile_width: Tile width in pixels
        tile_height: Tile height in pixels
        write_output: Emit final tiles; False runs the job for timing only
        max_levels_per_bucket: Levels materialized by one pyramid aggregation task
    """
    input_mbr: GeoRectangle
    min_level: int
    max_level: int
    rasterizer: Rasterizer
    tile_width: int = 256
    tile_height: int = 256
    write_output: bool = True
    max_levels_per_bucket: int = 3

    def __post_init__(self):
        if self.tile_width <= 0 or self.tile_height <= 0:
            raise ValueError(
                f"Tile size must be positive, got {self.tile_width}x{self.tile_height}"
            )
        if self.max_levels_per_bucket <= 0:
            raise ValueError(
                f"max_levels_per_bucket must be positive, got {self.max_levels_per_bucket}"
            )

    @property
    def pyramid(self) -> PyramidSpec:
        return PyramidSpec(self.input_mbr, self.min_level, self.max_level)

    def extent_of(self, tile: TileIndex) -> GeoRectangle:
        return tile_extent(self.input_mbr, tile)

    def buffer_at(self, level: int) -> Tuple[float, float]:
        """Geographic reach of the rasterizer beyond a shape's MBR at ``level``."""
        return buffer_size(
            self.input_mbr,
            self.rasterizer.margin,
            self.tile_width,
            self.tile_height,
            level
        )

    @classmethod
    def from_config(
        cls,
        pyramid: PyramidConfig,
        input_mbr: GeoRectangle,
        rasterizer: Optional[Rasterizer] = None
    ) -> "PlotJob":
        """Build the job of a whole run from the pyramid configuration section."""
        min_level, max_level = pyramid.level_range
        if rasterizer is None:
            rasterizer = GeometryRasterizer(pyramid.radius, pyramid.simplify_tolerance)
        return cls(
            input_mbr=input_mbr,
            min_level=min_level,
            max_level=max_level,
            rasterizer=rasterizer,
            tile_width=pyramid.tile_width,
            tile_height=pyramid.tile_height,
            write_output=pyramid.write_output,
            max_levels_per_bucket=pyramid.max_levels_per_bucket
        )
