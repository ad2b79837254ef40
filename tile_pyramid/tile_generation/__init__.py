"""
Tile Generation Module

Pyramid grid arithmetic, rasterizers, the flat and pyramid partitioning
strategies, strategy selection and tile output.

This module demonstrates expertise in:
- Exact, reproducible tile addressing across levels
- Conservative shape-to-tile assignment with drawing buffers
- Memory bounded aggregation through level bucketing
- Order independent merging of partial rasters
"""

from .grid import (
    CellRange,
    GeoRectangle,
    PyramidSpec,
    TileIndex,
    buffer_size,
    narrow,
    overlapping_cells,
    tile_extent
)
from .rasterizer import GeometryRasterizer, RasterLayer, Rasterizer
from .plot_job import PlotJob
from .flat_partition import FlatPartitioner
from .pyramid_partition import PyramidPartitioner
from .strategy import PartitionPlan, adjust_aspect_ratio, plan_run, select_strategies
from .tile_sink import TileSink

__all__ = [
    "CellRange",
    "FlatPartitioner",
    "GeoRectangle",
    "GeometryRasterizer",
    "PartitionPlan",
    "PlotJob",
    "PyramidPartitioner",
    "PyramidSpec",
    "RasterLayer",
    "Rasterizer",
    "TileIndex",
    "TileSink",
    "adjust_aspect_ratio",
    "buffer_size",
    "narrow",
    "overlapping_cells",
    "plan_run",
    "select_strategies",
    "tile_extent"
]
