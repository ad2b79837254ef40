"""
Unit Tests for Strategy Selection

Covers the flat/pyramid level split, technique overrides, aspect-ratio
adjustment and run planning.
"""

import unittest

from tile_pyramid.tile_generation.flat_partition import FlatPartitioner
from tile_pyramid.tile_generation.grid import GeoRectangle
from tile_pyramid.tile_generation.plot_job import PlotJob
from tile_pyramid.tile_generation.pyramid_partition import PyramidPartitioner
from tile_pyramid.tile_generation.rasterizer import GeometryRasterizer
from tile_pyramid.tile_generation.strategy import (
    PartitionPlan,
    adjust_aspect_ratio,
    job_for_plan,
    make_partitioner,
    plan_run,
    prepare_input_mbr,
    select_strategies
)
from tile_pyramid.utils.config import ConfigurationError, PyramidConfig


class TestSelectStrategies(unittest.TestCase):

    def test_straddling_range_is_split(self):
        plans = select_strategies(0, 7, 4)
        self.assertEqual(plans, [
            PartitionPlan("flat", 0, 4, "flat"),
            PartitionPlan("pyramid", 5, 7, "pyramid"),
        ])

    def test_shallow_range_is_flat_only(self):
        self.assertEqual(select_strategies(0, 3, 4), [PartitionPlan("flat", 0, 3, "flat")])
        self.assertEqual(select_strategies(2, 4, 4), [PartitionPlan("flat", 2, 4, "flat")])

    def test_deep_range_is_pyramid_only(self):
        self.assertEqual(
            select_strategies(6, 9, 4),
            [PartitionPlan("pyramid", 6, 9, "pyramid")]
        )

    def test_override_covers_whole_range(self):
        self.assertEqual(
            select_strategies(0, 12, 4, "pyramid"),
            [PartitionPlan("pyramid", 0, 12, "pyramid")]
        )
        self.assertEqual(
            select_strategies(0, 12, 4, "FLAT"),
            [PartitionPlan("flat", 0, 12, "flat")]
        )

    def test_unknown_technique_rejected(self):
        with self.assertRaises(ConfigurationError):
            select_strategies(0, 5, 4, "hilbert")

    def test_invalid_level_range_rejected(self):
        with self.assertRaises(ConfigurationError):
            select_strategies(5, 2, 4)
        with self.assertRaises(ConfigurationError):
            select_strategies(-1, 2, 4)

    def test_plan_levels_text(self):
        self.assertEqual(PartitionPlan("flat", 0, 4, "flat").levels, "0..4")


class TestAspectRatio(unittest.TestCase):

    def test_wide_rectangle_grows_vertically(self):
        self.assertEqual(
            adjust_aspect_ratio(GeoRectangle(0, 0, 10, 4)),
            GeoRectangle(0, -3, 10, 7)
        )

    def test_tall_rectangle_grows_horizontally(self):
        self.assertEqual(
            adjust_aspect_ratio(GeoRectangle(0, 0, 4, 10)),
            GeoRectangle(-3, 0, 7, 10)
        )

    def test_square_unchanged(self):
        square = GeoRectangle(1, 1, 3, 3)
        self.assertEqual(adjust_aspect_ratio(square), square)

    def test_never_crops(self):
        for rect in (GeoRectangle(-7, 2, 13, 3), GeoRectangle(0.5, -40, 1, 60)):
            adjusted = adjust_aspect_ratio(rect)
            self.assertEqual(adjusted.width, adjusted.height)
            self.assertEqual(adjusted.union(rect), adjusted)

    def test_prepare_rejects_zero_area(self):
        with self.assertRaises(ConfigurationError):
            prepare_input_mbr(GeoRectangle(1, 1, 1, 1), keep_ratio=True)
        with self.assertRaises(ConfigurationError):
            prepare_input_mbr(GeoRectangle(0, 5, 10, 5), keep_ratio=False)
        self.assertEqual(
            prepare_input_mbr(GeoRectangle(0, 5, 10, 5), keep_ratio=True),
            GeoRectangle(0, 0, 10, 10)
        )


class TestPlanRun(unittest.TestCase):

    def test_discovered_mbr_is_squared(self):
        job, plans = plan_run(PyramidConfig(levels="8"), GeoRectangle(0, 0, 10, 4))
        self.assertEqual(job.input_mbr, GeoRectangle(0, -3, 10, 7))
        self.assertEqual((job.min_level, job.max_level), (0, 7))
        self.assertEqual([plan.technique for plan in plans], ["flat", "pyramid"])

    def test_explicit_rect_wins(self):
        config = PyramidConfig(levels="0..2", rect=(0, 0, 50, 50), keep_ratio=False)
        job, plans = plan_run(config, GeoRectangle(0, 0, 1, 1))
        self.assertEqual(job.input_mbr, GeoRectangle(0, 0, 50, 50))
        self.assertEqual(plans, [PartitionPlan("flat", 0, 2, "flat")])

    def test_job_carries_configuration(self):
        config = PyramidConfig(
            levels="3", tile_width=128, tile_height=64, radius=2,
            write_output=False, max_levels_per_bucket=2
        )
        job, _ = plan_run(config, GeoRectangle(0, 0, 1, 1))
        self.assertEqual((job.tile_width, job.tile_height), (128, 64))
        self.assertEqual(job.rasterizer.radius, 2)
        self.assertFalse(job.write_output)
        self.assertEqual(job.max_levels_per_bucket, 2)

    def test_empty_input_rejected(self):
        with self.assertRaises(ConfigurationError):
            plan_run(PyramidConfig(), None)

    def test_partitioners_per_plan(self):
        job = PlotJob(GeoRectangle(0, 0, 1, 1), 0, 9, GeometryRasterizer())
        flat_plan, pyramid_plan = select_strategies(0, 9, 4)
        flat = make_partitioner(flat_plan.technique, job_for_plan(job, flat_plan))
        pyramid = make_partitioner(pyramid_plan.technique, job_for_plan(job, pyramid_plan))
        self.assertIsInstance(flat, FlatPartitioner)
        self.assertIsInstance(pyramid, PyramidPartitioner)
        self.assertEqual((flat.job.min_level, flat.job.max_level), (0, 4))
        self.assertEqual((pyramid.job.min_level, pyramid.job.max_level), (5, 9))
        with self.assertRaises(ConfigurationError):
            make_partitioner("quadtree", job)


if __name__ == "__main__":
    unittest.main()
