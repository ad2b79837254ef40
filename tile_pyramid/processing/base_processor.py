"""
Base Pyramid Processor

Drives one pyramid generation run independently of the execution engine:
input MBR resolution, strategy selection, one pass per plan, output
finalization, metrics and run statistics. Engines subclass it and provide
input loading, MBR discovery and the execution of a single pass.

This module demonstrates:
- Abstract base class patterns
- Engine independent orchestration
- Logging and monitoring integration
"""

import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union

import structlog

from ..monitoring.metrics import MetricsCollector
from ..tile_generation.flat_partition import FlatPartitioner
from ..tile_generation.grid import GeoRectangle
from ..tile_generation.pyramid_partition import PyramidPartitioner
from ..tile_generation.rasterizer import Rasterizer
from ..tile_generation.strategy import job_for_plan, make_partitioner, plan_run
from ..tile_generation.tile_sink import TileSink
from ..utils.config import Config

Partitioner = Union[FlatPartitioner, PyramidPartitioner]


class BasePyramidProcessor(ABC):
    """
    Template for pyramid generation runs.

    Subclasses implement ``load``, ``discover_mbr`` and ``run_pass``; the
    shapes object they pass around is opaque here (an RDD for Spark, a list
    for the in-process executor).
    """

    def __init__(
        self,
        config: Config,
        metrics_collector: Optional[MetricsCollector] = None,
        rasterizer: Optional[Rasterizer] = None
    ):
        """
        Initialize the processor.

        Args:
            config: Configuration object
            metrics_collector: Optional metrics collector for monitoring
            rasterizer: Drawing strategy; built from ``config.pyramid`` when None
        """
        self.config = config.validate()
        self.metrics = metrics_collector or MetricsCollector(config.prometheus_gateway)
        self.rasterizer = rasterizer
        self.logger = structlog.get_logger(
            processor_type=self.__class__.__name__,
            config_env=config.environment
        )
        self.processing_stats = {
            'jobs_completed': 0,
            'jobs_failed': 0,
            'total_tiles_written': 0,
            'total_processing_time': 0.0,
            'errors': []
        }

    @abstractmethod
    def load(self, input_path: str) -> Any:
        """Read the shapes of ``input_path``."""
        pass

    @abstractmethod
    def discover_mbr(self, shapes: Any) -> Optional[GeoRectangle]:
        pass

    @abstractmethod
    def run_pass(self, shapes: Any, partitioner: Partitioner, sink: TileSink) -> int:
        """
        Execute one pass and write its tiles.

        Returns:
            Number of tiles written
        """
        pass

    def create_sink(self, output_path: str) -> TileSink:
        pyramid = self.config.pyramid
        return TileSink(
            output_path,
            pyramid.tile_width,
            pyramid.tile_height,
            aws_region=self.config.aws.region
        )

    def generate(self, shapes: Any, output_path: str) -> Dict[str, Any]:
        """
        Generate the whole pyramid for already loaded shapes.

        Args:
            shapes: Output of ``load``
            output_path: Local directory or ``s3://`` prefix

        Returns:
            Dictionary containing run results and statistics
        """
        start_time = time.time()
        pyramid = self.config.pyramid
        technique = "auto"

        try:
            data_mbr = None if pyramid.rect is not None else self.discover_mbr(shapes)
            job, plans = plan_run(pyramid, data_mbr, self.rasterizer)
            sink = self.create_sink(output_path)

            passes: List[Dict[str, Any]] = []
            for plan in plans:
                technique = plan.technique
                pass_start = time.time()
                partitioner = make_partitioner(plan.technique, job_for_plan(job, plan))
                tiles_written = self.run_pass(shapes, partitioner, sink.subdir(plan.output_subdir))
                pass_time = time.time() - pass_start

                self.metrics.record_histogram(
                    'pyramid_job_duration_seconds', pass_time, {'technique': plan.technique}
                )
                self.metrics.increment_counter(
                    'pyramid_tiles_written_total', tiles_written, {'technique': plan.technique}
                )
                self.metrics.increment_counter(
                    'pyramid_jobs_total', labels={'technique': plan.technique, 'status': 'success'}
                )
                self.logger.info(
                    "Pass completed",
                    technique=plan.technique,
                    levels=plan.levels,
                    tiles_written=tiles_written,
                    processing_time=pass_time
                )
                passes.append({
                    'technique': plan.technique,
                    'levels': plan.levels,
                    'output_subdir': plan.output_subdir,
                    'tiles_written': tiles_written,
                    'processing_time': pass_time
                })

            total_tiles = sum(p['tiles_written'] for p in passes)
            if job.write_output:
                sink.finalize_run(plans, {
                    'levels': f"{job.min_level}..{job.max_level}",
                    'input_mbr': list(job.input_mbr.to_tuple()),
                    'tile_width': job.tile_width,
                    'tile_height': job.tile_height,
                    'flat_partitioning_level_threshold': pyramid.flat_partitioning_level_threshold,
                    'passes': passes
                })

        except Exception as e:
            processing_time = time.time() - start_time
            error_msg = f"Pyramid generation failed: {e}"
            self.processing_stats['jobs_failed'] += 1
            self.processing_stats['errors'].append(error_msg)
            self.metrics.increment_counter(
                'pyramid_jobs_total', labels={'technique': technique, 'status': 'failed'}
            )
            self.logger.error(error_msg, processing_time=processing_time, exc_info=True)
            raise

        processing_time = time.time() - start_time
        self.processing_stats['jobs_completed'] += 1
        self.processing_stats['total_tiles_written'] += total_tiles
        self.processing_stats['total_processing_time'] += processing_time
        self.metrics.push_to_prometheus_gateway()

        self.logger.info(
            "Pyramid generation completed",
            processing_time=processing_time,
            tiles_written=total_tiles,
            output_path=output_path
        )
        return {
            'success': True,
            'processing_time': processing_time,
            'tiles_written': total_tiles,
            'input_mbr': job.input_mbr.to_tuple(),
            'passes': passes,
            'output_path': output_path
        }

    def process(self, input_path: str, output_path: str) -> Dict[str, Any]:
        """Load ``input_path`` and generate its pyramid into ``output_path``."""
        self.logger.info(
            "Starting pyramid generation",
            input_path=input_path,
            output_path=output_path,
            levels=self.config.pyramid.levels
        )
        return self.generate(self.load(input_path), output_path)

    def get_processing_stats(self) -> Dict[str, Any]:
        """Get processing statistics."""
        return self.processing_stats.copy()

    def shutdown(self) -> None:
        pass
