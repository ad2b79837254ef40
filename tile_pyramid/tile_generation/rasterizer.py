"""
Rasterizers

Pluggable drawing strategies used by the partitioners. The partitioners only
see the ``Rasterizer`` capability set (create, rasterize, merge, smooth and
margin); how a shape turns into pixels is up to the concrete class.

``GeometryRasterizer`` draws shapely geometries with Pillow into a per-tile
mask and accumulates hit counts in a numpy array. Counts are integers, so
merging partial layers is exact and independent of arrival order.
"""

import math
from abc import ABC, abstractmethod
from typing import Iterable, Iterator, Optional, Tuple

import numpy as np
from PIL import Image, ImageDraw
from shapely.geometry.base import BaseGeometry

from .grid import GeoRectangle


def shape_mbr(shape: Optional[BaseGeometry]) -> Optional[GeoRectangle]:
    """Return the MBR of a shape, or None for missing and empty geometries."""
    if shape is None or shape.is_empty:
        return None
    return GeoRectangle(*shape.bounds)


class RasterLayer:
    """Hit-count accumulator for one tile."""

    def __init__(self, width: int, height: int, extent: GeoRectangle):
        self.width = width
        self.height = height
        self.extent = extent
        self.counts = np.zeros((height, width), dtype=np.int64)

    def is_empty(self) -> bool:
        return not self.counts.any()

    def to_image(self, color: Tuple[int, int, int] = (0, 0, 0),
                 saturation: int = 1) -> Image.Image:
        """
        Render the layer as an RGBA image.

        Args:
            color: RGB color of drawn pixels
            saturation: Hit count mapped to full opacity

        Returns:
            Pillow image with alpha proportional to hit counts
        """
        alpha = np.clip(self.counts * 255 // max(saturation, 1), 0, 255).astype(np.uint8)
        rgba = np.zeros((self.height, self.width, 4), dtype=np.uint8)
        rgba[..., 0], rgba[..., 1], rgba[..., 2] = color
        rgba[..., 3] = alpha
        return Image.fromarray(rgba)

    def __eq__(self, other) -> bool:
        if not isinstance(other, RasterLayer):
            return NotImplemented
        return (
            self.extent == other.extent and
            self.counts.shape == other.counts.shape and
            bool(np.array_equal(self.counts, other.counts))
        )

    def __repr__(self) -> str:
        return (
            f"RasterLayer({self.width}x{self.height}, extent={self.extent.to_tuple()}, "
            f"hits={int(self.counts.sum())})"
        )


class Rasterizer(ABC):
    """Capability set the partitioners need from a drawing strategy."""

    #: Drawing radius in pixels
    radius: int = 0

    @property
    def margin(self) -> int:
        """Pixels a drawing may reach beyond the MBR of its shape."""
        return self.radius

    def create_raster(self, width: int, height: int, extent: GeoRectangle) -> RasterLayer:
        return RasterLayer(width, height, extent)

    @abstractmethod
    def rasterize(self, layer: RasterLayer, shape: BaseGeometry) -> None:
        """Draw ``shape`` into ``layer`` in place."""
        pass

    def merge(self, dst: RasterLayer, src: RasterLayer) -> None:
        """Add ``src`` into ``dst``; both must cover the same tile."""
        if dst.counts.shape != src.counts.shape:
            raise ValueError(
                f"Cannot merge layers of size {src.width}x{src.height} "
                f"into {dst.width}x{dst.height}"
            )
        dst.counts += src.counts

    def is_smooth(self) -> bool:
        return False

    def smooth(self, shapes: Iterable[BaseGeometry]) -> Iterable[BaseGeometry]:
        return shapes


class GeometryRasterizer(Rasterizer):
    """
    Draws points, lines and polygons with Pillow.

    A point paints the ``(2*radius+1)``-pixel square around the pixel that
    contains it. Lines are stroked ``2*radius+1`` pixels wide and polygons are
    filled and outlined. When ``simplify_tolerance`` is set the rasterizer
    declares itself smoothing capable and simplifies geometries before they
    are assigned to tiles.
    """

    def __init__(self, radius: int = 1, simplify_tolerance: Optional[float] = None):
        if radius < 0:
            raise ValueError(f"Rasterizer radius must be non-negative, got {radius}")
        self.radius = radius
        self.simplify_tolerance = simplify_tolerance

    @property
    def margin(self) -> int:
        # Pillow snaps stroke coordinates to whole pixels
        return self.radius + 1

    def is_smooth(self) -> bool:
        return self.simplify_tolerance is not None

    def smooth(self, shapes: Iterable[BaseGeometry]) -> Iterator[BaseGeometry]:
        for shape in shapes:
            if shape is None or shape.is_empty:
                yield shape
            else:
                yield shape.simplify(self.simplify_tolerance, preserve_topology=True)

    def rasterize(self, layer: RasterLayer, shape: BaseGeometry) -> None:
        if shape is None or shape.is_empty:
            return
        mask = Image.new("L", (layer.width, layer.height), 0)
        draw = ImageDraw.Draw(mask)
        self._draw(draw, layer, shape)
        layer.counts += np.asarray(mask).astype(np.int64)

    @staticmethod
    def _scales(layer: RasterLayer) -> Tuple[float, float]:
        extent = layer.extent
        return (
            layer.width / extent.width if extent.width > 0 else 0.0,
            layer.height / extent.height if extent.height > 0 else 0.0
        )

    def _to_pixels(self, layer: RasterLayer, coords) -> list:
        extent = layer.extent
        scale_x, scale_y = self._scales(layer)
        # Image rows grow downwards, geographic y grows upwards
        return [
            ((x - extent.x1) * scale_x, (extent.y2 - y) * scale_y)
            for x, y, *_ in coords
        ]

    def _pixel_of(self, layer: RasterLayer, x: float, y: float) -> Tuple[int, int]:
        extent = layer.extent
        scale_x, scale_y = self._scales(layer)
        col = math.floor((x - extent.x1) * scale_x)
        row = layer.height - 1 - math.floor((y - extent.y1) * scale_y)
        # The far edges of a tile belong to its last pixel column and first row
        if col == layer.width:
            col -= 1
        if row == -1:
            row = 0
        return col, row

    def _draw(self, draw: ImageDraw.ImageDraw, layer: RasterLayer, shape: BaseGeometry) -> None:
        geom_type = shape.geom_type
        r = self.radius

        if geom_type == "Point":
            col, row = self._pixel_of(layer, shape.x, shape.y)
            draw.rectangle([col - r, row - r, col + r, row + r], fill=1)
        elif geom_type in ("LineString", "LinearRing"):
            pixels = self._to_pixels(layer, shape.coords)
            draw.line(pixels, fill=1, width=2 * r + 1)
        elif geom_type == "Polygon":
            exterior = self._to_pixels(layer, shape.exterior.coords)
            draw.polygon(exterior, fill=1, outline=1)
            for interior in shape.interiors:
                draw.polygon(self._to_pixels(layer, interior.coords), fill=0, outline=1)
            if r > 0:
                draw.line(exterior, fill=1, width=2 * r + 1)
        elif hasattr(shape, "geoms"):
            for part in shape.geoms:
                if not part.is_empty:
                    self._draw(draw, layer, part)
        else:
            raise ValueError(f"Unsupported geometry type: {geom_type}")
