"""
Configuration

Typed configuration sections for the pyramid generator. The processors read
settings through attribute paths such as ``config.spark.executor_memory`` and
``config.pyramid.tile_width``; values come from defaults, then
``TILE_PYRAMID_*`` environment variables, then command line flags.

Validation happens here, before any Spark work starts, and reports problems
as ``ConfigurationError``.
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

PARTITION_TECHNIQUES = ("flat", "pyramid")
INPUT_FORMATS = ("wkt", "parquet")

ENV_PREFIX = "TILE_PYRAMID_"


class ConfigurationError(ValueError):
    """Invalid user supplied setting: levels, technique, tile size, rect..."""


def parse_levels(levels: str) -> Tuple[int, int]:
    """
    Parse a level range.

    A single number ``N`` selects the ``N`` levels ``0..N-1``; ``A..B`` is a
    closed range.

    Args:
        levels: Level range text

    Returns:
        (min_level, max_level), both inclusive
    """
    text = str(levels).strip()
    try:
        if ".." in text:
            low, high = text.split("..", 1)
            min_level, max_level = int(low), int(high)
        else:
            min_level, max_level = 0, int(text) - 1
    except ValueError:
        raise ConfigurationError(f"Malformed level range: {levels!r}") from None

    if min_level < 0 or max_level < min_level:
        raise ConfigurationError(f"Invalid level range: {levels!r}")
    return min_level, max_level


def parse_rect(rect: str) -> Tuple[float, float, float, float]:
    """Parse ``x1,y1,x2,y2`` into a validated tuple."""
    try:
        x1, y1, x2, y2 = (float(v) for v in str(rect).split(","))
    except ValueError:
        raise ConfigurationError(
            f"Malformed rectangle {rect!r}, expected x1,y1,x2,y2"
        ) from None
    if x1 > x2 or y1 > y2:
        raise ConfigurationError(f"Rectangle {rect!r} has x1 > x2 or y1 > y2")
    return x1, y1, x2, y2


def normalize_technique(technique: str) -> str:
    """Return the canonical lowercase name of a partitioning technique."""
    name = str(technique).strip().lower()
    if name not in PARTITION_TECHNIQUES:
        raise ConfigurationError(f"Unknown partitioning technique: {technique!r}")
    return name


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(ENV_PREFIX + name, default)


def _env_bool(name: str, default: bool) -> bool:
    value = _env(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = _env(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(
            f"{ENV_PREFIX}{name} must be an integer, got {value!r}"
        ) from None


@dataclass
class SparkConfig:
    """Spark session tuning."""
    master: Optional[str] = None
    executor_memory: str = "4g"
    executor_cores: int = 2
    executor_instances: int = 4
    driver_memory: str = "2g"
    driver_max_result_size: str = "1g"
    log_level: str = "WARN"


@dataclass
class AWSConfig:
    region: str = "us-west-2"
    use_emr: bool = False


@dataclass
class PyramidConfig:
    """
    Pyramid generation settings.

    Attributes:
        levels: Level range, ``"N"`` or ``"A..B"``
        tile_width: Tile width in pixels
        tile_height: Tile height in pixels
        partition: Force ``flat`` or ``pyramid``; None selects by threshold
        write_output: Write tiles; False renders for timing only
        max_levels_per_bucket: Levels rendered by one pyramid aggregation task
        flat_partitioning_level_threshold: Deepest level rendered flat
        keep_ratio: Square the input MBR before building the pyramid
        rect: Explicit input MBR ``(x1, y1, x2, y2)``; discovered when None
        radius: Drawing radius in pixels
        simplify_tolerance: Geometry simplification tolerance, None disables
        input_format: ``wkt`` text lines or ``parquet``
        geometry_column: Column holding WKT or WKB in Parquet input
        num_workers: Worker count of the in-process executor
    """
    levels: str = "7"
    tile_width: int = 256
    tile_height: int = 256
    partition: Optional[str] = None
    write_output: bool = True
    max_levels_per_bucket: int = 3
    flat_partitioning_level_threshold: int = 4
    keep_ratio: bool = True
    rect: Optional[Tuple[float, float, float, float]] = None
    radius: int = 1
    simplify_tolerance: Optional[float] = None
    input_format: str = "wkt"
    geometry_column: str = "geometry"
    num_workers: int = 4

    @property
    def level_range(self) -> Tuple[int, int]:
        return parse_levels(self.levels)

    def validate(self) -> None:
        """Raise ConfigurationError on the first invalid setting; normalizes ``partition``."""
        parse_levels(self.levels)
        if self.tile_width <= 0 or self.tile_height <= 0:
            raise ConfigurationError(
                f"Tile size must be positive, got {self.tile_width}x{self.tile_height}"
            )
        if self.max_levels_per_bucket <= 0:
            raise ConfigurationError(
                f"max_levels_per_bucket must be positive, got {self.max_levels_per_bucket}"
            )
        if self.flat_partitioning_level_threshold < 0:
            raise ConfigurationError("flat_partitioning_level_threshold must be >= 0")
        if self.partition is not None:
            self.partition = normalize_technique(self.partition)
        if self.radius < 0:
            raise ConfigurationError(f"Radius must be non-negative, got {self.radius}")
        if self.input_format not in INPUT_FORMATS:
            raise ConfigurationError(f"Unsupported input format: {self.input_format!r}")
        if self.num_workers <= 0:
            raise ConfigurationError("num_workers must be positive")


@dataclass
class Config:
    """Root configuration object."""
    environment: str = "development"
    spark: SparkConfig = field(default_factory=SparkConfig)
    aws: AWSConfig = field(default_factory=AWSConfig)
    pyramid: PyramidConfig = field(default_factory=PyramidConfig)
    prometheus_gateway: Optional[str] = None
    log_level: str = "INFO"
    json_logs: bool = False

    def validate(self) -> "Config":
        self.pyramid.validate()
        return self

    @classmethod
    def from_env(cls) -> "Config":
        """Build a configuration from ``TILE_PYRAMID_*`` environment variables."""
        spark = SparkConfig(
            master=_env("SPARK_MASTER"),
            executor_memory=_env("SPARK_EXECUTOR_MEMORY", "4g"),
            executor_cores=_env_int("SPARK_EXECUTOR_CORES", 2),
            executor_instances=_env_int("SPARK_EXECUTOR_INSTANCES", 4),
            driver_memory=_env("SPARK_DRIVER_MEMORY", "2g"),
            driver_max_result_size=_env("SPARK_DRIVER_MAX_RESULT_SIZE", "1g"),
            log_level=_env("SPARK_LOG_LEVEL", "WARN")
        )
        aws = AWSConfig(
            region=_env("AWS_REGION", "us-west-2"),
            use_emr=_env_bool("USE_EMR", False)
        )

        rect = _env("RECT")
        tolerance = _env("SIMPLIFY_TOLERANCE")
        try:
            simplify_tolerance = float(tolerance) if tolerance else None
        except ValueError:
            raise ConfigurationError(
                f"{ENV_PREFIX}SIMPLIFY_TOLERANCE must be a number, got {tolerance!r}"
            ) from None

        pyramid = PyramidConfig(
            levels=_env("LEVELS", "7"),
            tile_width=_env_int("TILE_WIDTH", 256),
            tile_height=_env_int("TILE_HEIGHT", 256),
            partition=_env("PARTITION"),
            write_output=_env_bool("WRITE_OUTPUT", True),
            max_levels_per_bucket=_env_int("MAX_LEVELS_PER_BUCKET", 3),
            flat_partitioning_level_threshold=_env_int("FLAT_THRESHOLD", 4),
            keep_ratio=_env_bool("KEEP_RATIO", True),
            rect=parse_rect(rect) if rect else None,
            radius=_env_int("RADIUS", 1),
            simplify_tolerance=simplify_tolerance,
            input_format=_env("INPUT_FORMAT", "wkt"),
            geometry_column=_env("GEOMETRY_COLUMN", "geometry"),
            num_workers=_env_int("NUM_WORKERS", 4)
        )

        return cls(
            environment=_env("ENV", "development"),
            spark=spark,
            aws=aws,
            pyramid=pyramid,
            prometheus_gateway=_env("PROMETHEUS_GATEWAY"),
            log_level=_env("LOG_LEVEL", "INFO"),
            json_logs=_env_bool("JSON_LOGS", False)
        )
