"""
Pyramid Partitioning

Two-stage strategy for deep pyramids. The transform stage only routes each
shape to coarse buckets: tiles at every ``max_levels_per_bucket``-th level,
each standing for the sub-pyramid of finer levels below it. The aggregation
stage rasterizes one bucket's sub-pyramid, so a task never holds more than
one bucket's tiles in memory however deep the whole pyramid is.

Every tile belongs to exactly one bucket, so aggregation output needs no
further merging.
"""

from typing import Dict, Iterable, Iterator, List, Tuple

import structlog
from shapely.geometry.base import BaseGeometry

from .grid import TileIndex, buffered_cells, narrow
from .plot_job import PlotJob
from .rasterizer import RasterLayer, shape_mbr

logger = structlog.get_logger(partitioner="pyramid")


class PyramidPartitioner:
    """Transform and aggregation functions of the pyramid strategy."""

    technique = "pyramid"

    def __init__(self, job: PlotJob):
        self.job = job
        self.rasterizer = job.rasterizer
        self.levels_per_bucket = job.max_levels_per_bucket
        # Align buckets so the shallowest one starts exactly at min_level
        self.max_level_to_replicate = job.max_level - (
            (job.max_level - job.min_level) % self.levels_per_bucket
        )
        self.bottom_grid_size = 1 << self.max_level_to_replicate
        # The shallowest level has the widest margin, which covers every deeper level
        self.buffer = job.buffer_at(job.min_level)

    def bucket_levels(self) -> List[int]:
        """Levels that carry bucket keys, deepest first."""
        return list(range(
            self.max_level_to_replicate,
            self.job.min_level - 1,
            -self.levels_per_bucket
        ))

    def bucket_span(self, bucket_level: int) -> Tuple[int, int]:
        """Closed range of levels ``[level1, level2]`` rendered by one bucket."""
        level1 = max(bucket_level, self.job.min_level)
        level2 = min(bucket_level + self.levels_per_bucket - 1, self.job.max_level)
        return level1, level2

    def map_partition(
        self,
        shapes: Iterable[BaseGeometry]
    ) -> Iterator[Tuple[TileIndex, BaseGeometry]]:
        """
        Assign shapes to the buckets their buffered footprint touches.

        Args:
            shapes: Shapes of one input partition

        Yields:
            (bucket tile, shape) pairs; shapes are passed through untouched
        """
        job = self.job
        for shape in shapes:
            cells = buffered_cells(
                shape_mbr(shape), job.input_mbr, self.bottom_grid_size, self.buffer
            )
            if cells is None:
                continue
            for level in range(self.max_level_to_replicate, job.min_level - 1,
                               -self.levels_per_bucket):
                for x, y in cells.cells():
                    yield TileIndex(level, x, y), shape
                cells = narrow(cells, self.levels_per_bucket)

    def reduce_bucket(
        self,
        bucket: TileIndex,
        shapes: Iterable[BaseGeometry]
    ) -> Iterator[Tuple[TileIndex, RasterLayer]]:
        """
        Rasterize the sub-pyramid of one bucket.

        Args:
            bucket: Bucket tile (the coarsest level of its stride)
            shapes: Every shape assigned to this bucket, in any order

        Yields:
            (tile, layer) for every tile of the bucket that any shape touches
        """
        job = self.job
        level1, level2 = self.bucket_span(bucket.level)
        depth = level2 - bucket.level

        # Sub-grid at level2 resolution covering exactly the bucket tile
        sub_grid_mbr = job.extent_of(bucket)
        sub_grid_size = 1 << depth
        tile_offset_x = bucket.x << depth
        tile_offset_y = bucket.y << depth
        level1_buffer = job.buffer_at(level1)

        if self.rasterizer.is_smooth():
            shapes = self.rasterizer.smooth(shapes)

        layers: Dict[TileIndex, RasterLayer] = {}
        count = 0
        for shape in shapes:
            count += 1
            cells = buffered_cells(
                shape_mbr(shape), sub_grid_mbr, sub_grid_size, level1_buffer
            )
            if cells is None:
                continue
            # Move from the bucket's local sub-grid into pyramid coordinates
            cells = cells.shift(tile_offset_x, tile_offset_y)
            for level in range(level2, level1 - 1, -1):
                for x, y in cells.cells():
                    tile = TileIndex(level, x, y)
                    layer = layers.get(tile)
                    if layer is None:
                        layer = self.rasterizer.create_raster(
                            job.tile_width, job.tile_height, job.extent_of(tile)
                        )
                        layers[tile] = layer
                    self.rasterizer.rasterize(layer, shape)
                cells = narrow(cells)

        logger.info(
            "Bucket rasterized",
            bucket=bucket.tile_id,
            levels=f"{level1}..{level2}",
            records=count,
            tiles=len(layers)
        )
        if job.write_output:
            yield from layers.items()
