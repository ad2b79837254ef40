"""
Tile Output

Writes rendered tiles as PNG files named ``tile_{level}_{x}-{y}.png`` to a
local directory or an ``s3://bucket/prefix`` location, and finalizes each run
with a transparent ``default.png`` for tiles that were never produced, an
``index.html`` viewer and a ``metadata.json`` summary.

This module demonstrates:
- Executor side writes from Spark partitions
- Local filesystem and S3 (boto3) storage behind one interface
- Templated viewer generation
"""

import io
import json
import os
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import boto3
import structlog
from PIL import Image

from .grid import TileIndex
from .rasterizer import RasterLayer

logger = structlog.get_logger(component="tile_sink")

TEMPLATE_PATH = Path(__file__).parent / "templates" / "zoom_view.html"
TILE_URL_EXPRESSION = "'tile_' + zoom + '_' + coord.x + '-' + coord.y + '.png'"

CONTENT_TYPES = {
    ".png": "image/png",
    ".html": "text/html",
    ".json": "application/json",
}


def tile_file_name(tile: TileIndex) -> str:
    return f"tile_{tile.level}_{tile.x}-{tile.y}.png"


def routed_tile_url(routes: List[Tuple[str, int, int]]) -> str:
    """
    JavaScript expression picking the sub-directory that holds a zoom level.

    Args:
        routes: (subdir, min_level, max_level) per pass, shallow levels first

    Returns:
        Expression over ``zoom`` and ``coord`` for the viewer template
    """
    subdir = f"'{routes[-1][0]}'"
    for name, _, max_level in reversed(routes[:-1]):
        subdir = f"(zoom <= {max_level} ? '{name}' : {subdir})"
    return f"{subdir} + '/' + {TILE_URL_EXPRESSION}"


def render_viewer(
    tile_width: int,
    tile_height: int,
    min_level: int,
    max_level: int,
    tile_url: str = TILE_URL_EXPRESSION
) -> str:
    """Fill the viewer template placeholders."""
    html = TEMPLATE_PATH.read_text(encoding="utf-8")
    replacements = {
        "#{TILE_WIDTH}": str(tile_width),
        "#{TILE_HEIGHT}": str(tile_height),
        "#{MAX_ZOOM}": str(max_level),
        "#{MIN_ZOOM}": str(min_level),
        "#{TILE_URL}": tile_url,
    }
    for placeholder, value in replacements.items():
        html = html.replace(placeholder, value)
    return html


class TileSink:
    """
    Destination for the tiles of one output directory.

    Instances are shipped to Spark executors, so the boto3 client is created
    lazily and never pickled.
    """

    def __init__(
        self,
        output_path: str,
        tile_width: int = 256,
        tile_height: int = 256,
        color: Tuple[int, int, int] = (0, 0, 0),
        saturation: int = 1,
        aws_region: Optional[str] = None
    ):
        self.output_path = output_path.rstrip("/")
        self.tile_width = tile_width
        self.tile_height = tile_height
        self.color = color
        self.saturation = saturation
        self.aws_region = aws_region
        self._s3 = None

    def __getstate__(self) -> Dict[str, Any]:
        state = self.__dict__.copy()
        state["_s3"] = None
        return state

    @property
    def is_s3(self) -> bool:
        return self.output_path.startswith("s3://")

    @property
    def s3(self):
        if self._s3 is None:
            self._s3 = boto3.client("s3", region_name=self.aws_region)
        return self._s3

    def subdir(self, name: str) -> "TileSink":
        """Sink writing into a sub-directory of this one."""
        return TileSink(
            f"{self.output_path}/{name}" if name else self.output_path,
            self.tile_width,
            self.tile_height,
            self.color,
            self.saturation,
            self.aws_region
        )

    def location_of(self, name: str) -> str:
        return f"{self.output_path}/{name}"

    def _put(self, name: str, data: bytes) -> str:
        location = self.location_of(name)
        if self.is_s3:
            bucket, _, prefix = self.output_path[len("s3://"):].partition("/")
            key = f"{prefix}/{name}" if prefix else name
            self.s3.put_object(
                Bucket=bucket,
                Key=key,
                Body=data,
                ContentType=CONTENT_TYPES.get(os.path.splitext(name)[1], "application/octet-stream")
            )
        else:
            path = Path(location)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        return location

    @staticmethod
    def _png_bytes(image: Image.Image) -> bytes:
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()

    def write_tile(self, tile: TileIndex, layer: RasterLayer) -> str:
        image = layer.to_image(self.color, self.saturation)
        return self._put(tile_file_name(tile), self._png_bytes(image))

    def write_partition(
        self,
        tiles: Iterable[Tuple[TileIndex, RasterLayer]]
    ) -> Iterator[int]:
        """
        Write every tile of one partition.

        Yields a single count so Spark can sum tiles written across executors.
        """
        count = 0
        for tile, layer in tiles:
            self.write_tile(tile, layer)
            count += 1
        yield count

    def write_default_tile(self) -> str:
        """Fully transparent tile served in place of tiles never produced."""
        image = Image.new("RGBA", (self.tile_width, self.tile_height), (0, 0, 0, 0))
        return self._put("default.png", self._png_bytes(image))

    def write_viewer(
        self,
        min_level: int,
        max_level: int,
        routes: Optional[List[Tuple[str, int, int]]] = None
    ) -> str:
        """
        Write ``index.html`` showing levels ``min_level..max_level``.

        Args:
            min_level: Shallowest level in the viewer
            max_level: Deepest level in the viewer
            routes: Sub-directories holding the levels, None when tiles sit
                next to the viewer
        """
        tile_url = routed_tile_url(routes) if routes else TILE_URL_EXPRESSION
        html = render_viewer(self.tile_width, self.tile_height, min_level, max_level, tile_url)
        return self._put("index.html", html.encode("utf-8"))

    def write_metadata(self, metadata: Dict[str, Any]) -> str:
        return self._put("metadata.json", json.dumps(metadata, indent=2).encode("utf-8"))

    def finalize(
        self,
        min_level: int,
        max_level: int,
        routes: Optional[List[Tuple[str, int, int]]] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        """Write the per-directory files once all tiles of a pass are written."""
        self.write_default_tile()
        self.write_viewer(min_level, max_level, routes)
        if metadata is not None:
            self.write_metadata(metadata)
        logger.info(
            "Output finalized",
            output_path=self.output_path,
            levels=f"{min_level}..{max_level}"
        )

    def finalize_run(self, plans: List[Any], metadata: Optional[Dict[str, Any]] = None) -> None:
        """
        Finalize every pass of a run plus the top-level viewer.

        Args:
            plans: PartitionPlan of each pass, shallow levels first
            metadata: Run summary written next to the top-level viewer
        """
        for plan in plans:
            self.subdir(plan.output_subdir).finalize(plan.min_level, plan.max_level)
        routes = [(plan.output_subdir, plan.min_level, plan.max_level) for plan in plans]
        self.finalize(plans[0].min_level, plans[-1].max_level, routes, metadata)
