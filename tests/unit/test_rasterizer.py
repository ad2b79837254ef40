"""
Unit Tests for Rasterizers

Covers pixel placement of the geometry rasterizer, the merge contract and
image rendering of raster layers.
"""

import unittest

import numpy as np
from shapely.geometry import LineString, MultiPoint, Point, Polygon

from tile_pyramid.tile_generation.grid import GeoRectangle
from tile_pyramid.tile_generation.rasterizer import GeometryRasterizer, RasterLayer, shape_mbr


class TestGeometryRasterizer(unittest.TestCase):
    """Drawing into a 256x256 tile whose pixels are one unit wide."""

    def setUp(self):
        self.extent = GeoRectangle(0, 0, 256, 256)
        self.rasterizer = GeometryRasterizer(radius=0)

    def new_layer(self, rasterizer=None) -> RasterLayer:
        return (rasterizer or self.rasterizer).create_raster(256, 256, self.extent)

    def test_point_hits_one_pixel(self):
        layer = self.new_layer()
        self.rasterizer.rasterize(layer, Point(10.5, 10.5))
        self.assertEqual(int(layer.counts.sum()), 1)
        # Row 0 is the top of the tile
        self.assertEqual(layer.counts[245, 10], 1)

    def test_point_radius_paints_square(self):
        rasterizer = GeometryRasterizer(radius=1)
        layer = self.new_layer(rasterizer)
        rasterizer.rasterize(layer, Point(100.5, 100.5))
        self.assertEqual(int(layer.counts.sum()), 9)
        self.assertTrue(np.all(layer.counts[154:157, 99:102] == 1))

    def test_point_on_far_corner_stays_in_tile(self):
        layer = self.new_layer()
        self.rasterizer.rasterize(layer, Point(256, 256))
        self.assertEqual(layer.counts[0, 255], 1)

    def test_multi_geometry_draws_every_part(self):
        layer = self.new_layer()
        self.rasterizer.rasterize(layer, MultiPoint([(10.5, 10.5), (20.5, 20.5)]))
        self.assertEqual(int(layer.counts.sum()), 2)

    def test_polygon_is_filled(self):
        layer = self.new_layer()
        self.rasterizer.rasterize(layer, Polygon([(0, 0), (128, 0), (128, 128), (0, 128)]))
        self.assertEqual(layer.counts[200, 50], 1)
        self.assertEqual(layer.counts[50, 200], 0)

    def test_polygon_hole_is_not_filled(self):
        layer = self.new_layer()
        shell = [(0, 0), (200, 0), (200, 200), (0, 200)]
        hole = [(50, 50), (150, 50), (150, 150), (50, 150)]
        self.rasterizer.rasterize(layer, Polygon(shell, [hole]))
        self.assertEqual(layer.counts[156, 100], 0)
        self.assertEqual(layer.counts[230, 20], 1)

    def test_line_is_stroked(self):
        layer = self.new_layer()
        self.rasterizer.rasterize(layer, LineString([(0, 100.5), (256, 100.5)]))
        self.assertGreater(int(layer.counts.sum()), 200)
        self.assertGreaterEqual(int(layer.counts[:, 128].sum()), 1)

    def test_empty_geometry_is_ignored(self):
        layer = self.new_layer()
        self.rasterizer.rasterize(layer, Point())
        self.rasterizer.rasterize(layer, None)
        self.assertTrue(layer.is_empty())

    def test_margin_covers_pixel_snapping(self):
        self.assertEqual(GeometryRasterizer(radius=0).margin, 1)
        self.assertEqual(GeometryRasterizer(radius=2).margin, 3)

    def test_negative_radius_rejected(self):
        with self.assertRaises(ValueError):
            GeometryRasterizer(radius=-1)

    def test_smoothing_simplifies_shapes(self):
        rasterizer = GeometryRasterizer(radius=0, simplify_tolerance=1.0)
        self.assertTrue(rasterizer.is_smooth())
        self.assertFalse(GeometryRasterizer().is_smooth())

        wiggly = LineString([(x, 0.01 * (x % 2)) for x in range(50)])
        smoothed = list(rasterizer.smooth([wiggly, None]))
        self.assertEqual(len(smoothed[0].coords), 2)
        self.assertIsNone(smoothed[1])


class TestMerge(unittest.TestCase):
    """Merging partial layers is commutative and associative."""

    def setUp(self):
        self.rasterizer = GeometryRasterizer(radius=1)
        self.extent = GeoRectangle(0, 0, 64, 64)
        shapes = [
            [Point(10, 10), Point(11, 11)],
            [LineString([(0, 0), (64, 64)])],
            [Polygon([(20, 20), (40, 20), (30, 40)]), Point(10, 10)],
        ]
        self.partials = []
        for group in shapes:
            layer = self.rasterizer.create_raster(64, 64, self.extent)
            for shape in group:
                self.rasterizer.rasterize(layer, shape)
            self.partials.append(layer)

    def merged(self, order):
        final = self.rasterizer.create_raster(64, 64, self.extent)
        for index in order:
            self.rasterizer.merge(final, self.partials[index])
        return final

    def test_order_independent(self):
        reference = self.merged([0, 1, 2])
        for order in ([2, 1, 0], [1, 0, 2], [2, 0, 1]):
            self.assertEqual(self.merged(order), reference)

    def test_grouping_independent(self):
        left = self.rasterizer.create_raster(64, 64, self.extent)
        self.rasterizer.merge(left, self.partials[0])
        self.rasterizer.merge(left, self.partials[1])
        grouped = self.rasterizer.create_raster(64, 64, self.extent)
        self.rasterizer.merge(grouped, left)
        self.rasterizer.merge(grouped, self.partials[2])
        self.assertEqual(grouped, self.merged([0, 1, 2]))

    def test_overlapping_contributions_accumulate(self):
        final = self.merged([0, 2])
        self.assertEqual(int(final.counts.max()), 3)

    def test_size_mismatch_rejected(self):
        other = self.rasterizer.create_raster(32, 32, self.extent)
        with self.assertRaises(ValueError):
            self.rasterizer.merge(self.partials[0], other)


class TestRasterLayer(unittest.TestCase):

    def test_to_image(self):
        layer = RasterLayer(4, 2, GeoRectangle(0, 0, 4, 2))
        layer.counts[0, 1] = 1
        layer.counts[1, 3] = 5
        image = layer.to_image(color=(255, 0, 0), saturation=2)
        self.assertEqual(image.mode, "RGBA")
        self.assertEqual(image.size, (4, 2))
        self.assertEqual(image.getpixel((1, 0)), (255, 0, 0, 127))
        self.assertEqual(image.getpixel((3, 1)), (255, 0, 0, 255))
        self.assertEqual(image.getpixel((0, 0))[3], 0)

    def test_shape_mbr(self):
        self.assertIsNone(shape_mbr(None))
        self.assertIsNone(shape_mbr(Polygon()))
        self.assertEqual(shape_mbr(Point(1, 2)), GeoRectangle(1, 2, 1, 2))
        self.assertEqual(
            shape_mbr(LineString([(0, 5), (3, -1)])),
            GeoRectangle(0, -1, 3, 5)
        )


if __name__ == "__main__":
    unittest.main()
