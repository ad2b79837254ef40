"""
Flat Partitioning

Single-stage strategy for shallow pyramids. Each transform task rasterizes its
shapes straight into per-tile layers for every level, and the aggregation
stage merges the partial layers that different tasks produced for one tile.

Memory per transform task grows with the number of tiles its shapes touch
across all levels, which is only affordable for the first few levels.
"""

from typing import Dict, Iterable, Iterator, Tuple

import structlog
from shapely.geometry.base import BaseGeometry

from .grid import TileIndex, buffered_cells, narrow
from .plot_job import PlotJob
from .rasterizer import RasterLayer, shape_mbr

logger = structlog.get_logger(partitioner="flat")


class FlatPartitioner:
    """Transform and aggregation functions of the flat strategy."""

    technique = "flat"

    def __init__(self, job: PlotJob):
        self.job = job
        self.rasterizer = job.rasterizer
        self.bottom_grid_size = 1 << job.max_level
        # The shallowest level has the widest margin, which covers every deeper level
        self.buffer = job.buffer_at(job.min_level)

    def map_partition(
        self,
        shapes: Iterable[BaseGeometry]
    ) -> Iterator[Tuple[TileIndex, RasterLayer]]:
        """
        Rasterize one partition of shapes into every tile they touch.

        Args:
            shapes: Shapes of one input partition

        Yields:
            (tile, partial layer) for each tile touched by this partition
        """
        job = self.job
        if self.rasterizer.is_smooth():
            shapes = self.rasterizer.smooth(shapes)

        layers: Dict[TileIndex, RasterLayer] = {}
        skipped = 0
        for shape in shapes:
            cells = buffered_cells(
                shape_mbr(shape), job.input_mbr, self.bottom_grid_size, self.buffer
            )
            if cells is None:
                skipped += 1
                continue
            # Walk levels bottom-up, shrinking the overlap instead of recomputing it
            for level in range(job.max_level, job.min_level - 1, -1):
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

        logger.debug(
            "Partition rasterized",
            tiles=len(layers),
            skipped_shapes=skipped
        )
        yield from layers.items()

    def reduce_tile(
        self,
        tile: TileIndex,
        layers: Iterable[RasterLayer]
    ) -> Iterator[Tuple[TileIndex, RasterLayer]]:
        """
        Merge the partial layers of one tile.

        Args:
            tile: Tile being aggregated
            layers: Partial layers from any number of transform tasks, any order

        Yields:
            (tile, final layer) unless output is suppressed
        """
        job = self.job
        final_layer = self.rasterizer.create_raster(
            job.tile_width, job.tile_height, job.extent_of(tile)
        )
        for layer in layers:
            self.rasterizer.merge(final_layer, layer)

        if job.write_output:
            yield tile, final_layer
