"""
Unit Tests for Shape Loading

Covers WKT/WKB decoding, MBR discovery and local input reading.
"""

import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock

import pandas as pd
from shapely.geometry import LineString, Point, Polygon

from tile_pyramid.data_ingestion.shape_loader import (
    ShapeLoader,
    decode_geometry,
    discover_mbr,
    parse_wkt,
    parse_wkt_partition
)
from tile_pyramid.tile_generation.grid import GeoRectangle
from tile_pyramid.utils.config import Config, ConfigurationError, PyramidConfig


class TestDecoding(unittest.TestCase):

    def test_parse_wkt(self):
        self.assertEqual(parse_wkt("POINT (1 2)\n"), Point(1, 2))
        self.assertIsNone(parse_wkt("   "))
        self.assertIsNone(parse_wkt("# header"))
        self.assertIsNone(parse_wkt("POINT (1"))
        self.assertIsNone(parse_wkt("not a geometry"))

    def test_decode_geometry(self):
        square = Polygon([(0, 0), (1, 0), (1, 1), (0, 1)])
        self.assertEqual(decode_geometry(square.wkb), square)
        self.assertEqual(decode_geometry(square.wkt), square)
        self.assertIs(decode_geometry(square), square)
        self.assertIsNone(decode_geometry(None))
        self.assertIsNone(decode_geometry(b"\x00\x01garbage"))

    def test_partition_counts_bad_lines_only(self):
        skipped = MagicMock()
        lines = ["POINT (0 0)", "", "# comment", "POINT (oops)", "LINESTRING (0 0, 1 1)"]
        shapes = list(parse_wkt_partition(lines, skipped))
        self.assertEqual(shapes, [Point(0, 0), LineString([(0, 0), (1, 1)])])
        skipped.add.assert_called_once_with(1)


class TestDiscoverMbr(unittest.TestCase):

    def test_union_of_shapes(self):
        shapes = [Point(-3, 4), LineString([(0, 0), (10, 2)]), None, Point()]
        self.assertEqual(discover_mbr(shapes), GeoRectangle(-3, 0, 10, 4))

    def test_no_shapes(self):
        self.assertIsNone(discover_mbr([]))
        self.assertIsNone(discover_mbr([None, Polygon()]))


class TestShapeLoader(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.temp_path = Path(self.temp_dir)

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_load_wkt_file(self):
        input_file = self.temp_path / "shapes.wkt"
        input_file.write_text(
            "POINT (1 1)\n"
            "\n"
            "POLYGON ((0 0, 4 0, 4 4, 0 4, 0 0))\n"
            "this line is broken\n"
        )
        shapes = ShapeLoader(Config()).load_local(input_file)
        self.assertEqual(len(shapes), 2)
        self.assertEqual(shapes[0], Point(1, 1))

    def test_load_wkt_directory(self):
        (self.temp_path / "part-00000").write_text("POINT (1 1)\n")
        nested = self.temp_path / "more"
        nested.mkdir()
        (nested / "part-00001").write_text("POINT (2 2)\nPOINT (3 3)\n")
        shapes = ShapeLoader(Config()).load_local(self.temp_path)
        self.assertEqual(len(shapes), 3)

    def test_load_parquet(self):
        frame = pd.DataFrame({
            "id": [1, 2, 3],
            "geom": [Point(0, 0).wkb, Point(5, 5).wkb, b"bad"],
        })
        parquet_file = self.temp_path / "shapes.parquet"
        frame.to_parquet(parquet_file)

        config = Config(pyramid=PyramidConfig(input_format="parquet", geometry_column="geom"))
        shapes = ShapeLoader(config).load_local(parquet_file)
        self.assertEqual(shapes, [Point(0, 0), Point(5, 5)])

    def test_missing_input(self):
        with self.assertRaises(FileNotFoundError):
            ShapeLoader(Config()).load_local(self.temp_path / "absent.wkt")

    def test_load_rdd_requires_spark(self):
        with self.assertRaises(ConfigurationError):
            ShapeLoader(Config()).load_rdd("input.wkt")

    def test_load_rdd_text(self):
        spark = MagicMock()
        loader = ShapeLoader(Config(), spark_session=spark)
        shapes = loader.load_rdd("s3://bucket/shapes/")
        spark.sparkContext.textFile.assert_called_once_with("s3://bucket/shapes/")
        self.assertIs(shapes, spark.sparkContext.textFile.return_value.mapPartitions.return_value)
        self.assertIs(loader.skipped, spark.sparkContext.accumulator.return_value)

    def test_load_rdd_parquet_missing_column(self):
        spark = MagicMock()
        spark.read.parquet.return_value.columns = ["id", "wkb"]
        config = Config(pyramid=PyramidConfig(input_format="parquet"))
        with self.assertRaises(ConfigurationError):
            ShapeLoader(config, spark_session=spark).load_rdd("shapes.parquet")


if __name__ == "__main__":
    unittest.main()
