"""
In-process Pyramid Executor

Runs the same transform and aggregation functions as the Spark driver on a
thread pool: all transforms finish, their outputs are grouped by key, then
the aggregations run. Useful for small inputs, development and tests.
"""

from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Sequence

from shapely.geometry.base import BaseGeometry

from ..data_ingestion.shape_loader import ShapeLoader, discover_mbr
from ..monitoring.metrics import MetricsCollector
from ..tile_generation.grid import GeoRectangle, TileIndex
from ..tile_generation.rasterizer import RasterLayer, Rasterizer
from ..tile_generation.tile_sink import TileSink
from ..utils.config import Config
from .base_processor import BasePyramidProcessor, Partitioner


def split_partitions(shapes: Sequence[Any], num_partitions: int) -> List[List[Any]]:
    """Split ``shapes`` into at most ``num_partitions`` contiguous, non-empty chunks."""
    if not shapes:
        return []
    num_partitions = max(1, min(num_partitions, len(shapes)))
    size, extra = divmod(len(shapes), num_partitions)
    partitions, start = [], 0
    for i in range(num_partitions):
        end = start + size + (1 if i < extra else 0)
        partitions.append(list(shapes[start:end]))
        start = end
    return partitions


class LocalPyramidExecutor(BasePyramidProcessor):
    """Pyramid processor backed by ``concurrent.futures`` threads."""

    def __init__(
        self,
        config: Config,
        metrics_collector: Optional[MetricsCollector] = None,
        rasterizer: Optional[Rasterizer] = None,
        num_partitions: Optional[int] = None
    ):
        super().__init__(config, metrics_collector, rasterizer)
        self.num_workers = config.pyramid.num_workers
        self.num_partitions = num_partitions or self.num_workers

    def load(self, input_path: str) -> List[BaseGeometry]:
        shapes = ShapeLoader(self.config).load_local(input_path)
        self.metrics.set_gauge('pyramid_input_shapes', len(shapes))
        return shapes

    def discover_mbr(self, shapes: List[BaseGeometry]) -> Optional[GeoRectangle]:
        return discover_mbr(shapes)

    def render(
        self,
        shapes: Sequence[BaseGeometry],
        partitioner: Partitioner
    ) -> Dict[TileIndex, RasterLayer]:
        """
        Run the transform, shuffle and aggregation stages of one pass.

        Returns:
            Final layer of every tile produced by the pass
        """
        partitions = split_partitions(shapes, self.num_partitions)
        if partitioner.technique == "flat":
            aggregate = partitioner.reduce_tile
        else:
            aggregate = partitioner.reduce_bucket

        with ThreadPoolExecutor(max_workers=self.num_workers) as ex:
            transformed = list(ex.map(
                lambda partition: list(partitioner.map_partition(partition)),
                partitions
            ))

            # Shuffle barrier: every transform has finished before grouping
            groups: Dict[TileIndex, List[Any]] = defaultdict(list)
            for output in transformed:
                for key, value in output:
                    groups[key].append(value)

            aggregated = list(ex.map(
                lambda item: list(aggregate(item[0], item[1])),
                sorted(groups.items())
            ))

        tiles: Dict[TileIndex, RasterLayer] = {}
        for output in aggregated:
            tiles.update(output)

        self.logger.info(
            "Local pass rendered",
            technique=partitioner.technique,
            partitions=len(partitions),
            keys=len(groups),
            tiles=len(tiles)
        )
        return tiles

    def run_pass(self, shapes: Sequence[BaseGeometry], partitioner: Partitioner,
                 sink: TileSink) -> int:
        tiles = self.render(shapes, partitioner)
        if not partitioner.job.write_output:
            return 0
        return sum(sink.write_partition(sorted(tiles.items())))
