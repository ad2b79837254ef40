"""
Shape Loader

Reads the shapes to plot and discovers their global MBR.

Two input layouts are supported: text files with one WKT geometry per line,
and Parquet files with a WKT or WKB geometry column (GeoParquet included).
Lines or values that do not decode to a geometry are skipped and counted,
never fatal.

This module demonstrates:
- Distributed input through Spark RDDs and DataFrames
- Local input through pandas and geopandas
- MBR discovery as a per-partition reduction
"""

from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Union

import geopandas as gpd
import pandas as pd
import structlog
from shapely import wkb, wkt
from shapely.errors import ShapelyError
from shapely.geometry.base import BaseGeometry

from ..tile_generation.grid import GeoRectangle
from ..utils.config import Config, ConfigurationError

logger = structlog.get_logger(component="shape_loader")


def parse_wkt(line: str) -> Optional[BaseGeometry]:
    """Parse one WKT line; blank lines, comments and bad WKT give None."""
    text = line.strip()
    if not text or text.startswith("#"):
        return None
    try:
        return wkt.loads(text)
    except ShapelyError:
        return None


def decode_geometry(value) -> Optional[BaseGeometry]:
    """Decode a WKB (bytes) or WKT (str) column value."""
    if value is None:
        return None
    if isinstance(value, BaseGeometry):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        try:
            return wkb.loads(bytes(value))
        except ShapelyError:
            return None
    return parse_wkt(str(value))


def parse_wkt_partition(lines: Iterable[str], skipped=None) -> Iterator[BaseGeometry]:
    """
    Parse a partition of WKT lines.

    Args:
        lines: Raw text lines
        skipped: Optional Spark accumulator counting undecodable lines
    """
    for line in lines:
        shape = parse_wkt(line)
        if shape is None:
            if skipped is not None and line.strip() and not line.lstrip().startswith("#"):
                skipped.add(1)
            continue
        yield shape


def decode_partition(values: Iterable, skipped=None) -> Iterator[BaseGeometry]:
    for value in values:
        shape = decode_geometry(value)
        if shape is None:
            if skipped is not None:
                skipped.add(1)
            continue
        yield shape


def discover_mbr(shapes: Iterable[Optional[BaseGeometry]]) -> Optional[GeoRectangle]:
    """
    Union of the MBRs of all shapes.

    Returns:
        The global MBR, or None when no shape has one
    """
    valid = [shape for shape in shapes if shape is not None and not shape.is_empty]
    if not valid:
        return None
    x1, y1, x2, y2 = gpd.GeoSeries(valid).total_bounds
    return GeoRectangle(float(x1), float(y1), float(x2), float(y2))


def _partition_mbr(shapes: Iterable[BaseGeometry]) -> Iterator[tuple]:
    mbr = discover_mbr(shapes)
    if mbr is not None:
        yield mbr.to_tuple()


def discover_mbr_rdd(rdd) -> Optional[GeoRectangle]:
    """Global MBR of a Spark RDD of shapes; one rectangle per partition reaches the driver."""
    mbr = None
    for bounds in rdd.mapPartitions(_partition_mbr).collect():
        rect = GeoRectangle(*bounds)
        mbr = rect if mbr is None else mbr.union(rect)
    return mbr


class ShapeLoader:
    """Loads shapes for a pyramid run, distributed or in-process."""

    def __init__(self, config: Config, spark_session=None):
        """
        Initialize the loader.

        Args:
            config: Configuration object; reads ``config.pyramid.input_format``
                and ``config.pyramid.geometry_column``
            spark_session: Spark session, required only for ``load_rdd``
        """
        self.config = config
        self.spark = spark_session
        self.logger = structlog.get_logger(
            loader_type="ShapeLoader",
            config_env=config.environment
        )
        self.skipped = None

    def load_rdd(self, input_path: str):
        """
        Read shapes as an RDD of shapely geometries.

        Undecodable records are counted in ``self.skipped`` (a Spark
        accumulator) once an action has run.
        """
        if self.spark is None:
            raise ConfigurationError("A Spark session is required to load an RDD")

        pyramid = self.config.pyramid
        skipped = self.spark.sparkContext.accumulator(0)
        self.skipped = skipped

        if pyramid.input_format == "wkt":
            lines = self.spark.sparkContext.textFile(input_path)
            shapes = lines.mapPartitions(lambda part: parse_wkt_partition(part, skipped))
        elif pyramid.input_format == "parquet":
            frame = self.spark.read.parquet(input_path)
            if pyramid.geometry_column not in frame.columns:
                raise ConfigurationError(
                    f"Geometry column '{pyramid.geometry_column}' not found in {input_path}"
                )
            values = frame.select(pyramid.geometry_column).rdd.map(lambda row: row[0])
            shapes = values.mapPartitions(lambda part: decode_partition(part, skipped))
        else:
            raise ConfigurationError(f"Unsupported input format: {pyramid.input_format!r}")

        self.logger.info(
            "Shape input opened",
            input_path=input_path,
            input_format=pyramid.input_format,
            partitions=shapes.getNumPartitions()
        )
        return shapes

    def load_local(self, input_path: Union[str, Path]) -> List[BaseGeometry]:
        """Read all shapes into memory for the in-process executor."""
        pyramid = self.config.pyramid
        path = Path(input_path)
        if not path.exists():
            raise FileNotFoundError(f"Input not found: {input_path}")

        if pyramid.input_format == "wkt":
            files = sorted(p for p in path.rglob("*") if p.is_file()) if path.is_dir() else [path]
            shapes, skipped = [], 0
            for file_path in files:
                with open(file_path, "r", encoding="utf-8") as f:
                    for line in f:
                        shape = parse_wkt(line)
                        if shape is not None:
                            shapes.append(shape)
                        elif line.strip() and not line.lstrip().startswith("#"):
                            skipped += 1
        elif pyramid.input_format == "parquet":
            frame = pd.read_parquet(path, columns=[pyramid.geometry_column])
            decoded = [decode_geometry(v) for v in frame[pyramid.geometry_column]]
            shapes = [shape for shape in decoded if shape is not None]
            skipped = len(decoded) - len(shapes)
        else:
            raise ConfigurationError(f"Unsupported input format: {pyramid.input_format!r}")

        self.logger.info(
            "Shapes loaded",
            input_path=str(input_path),
            shapes=len(shapes),
            skipped_records=skipped
        )
        return shapes
