"""
Tile Pyramid Generator

Distributed generation of multilevel image tile pyramids from large
collections of geometric shapes, with flat and bucketed pyramid partitioning
over Apache Spark.
"""

__version__ = "1.0.0"

# Core modules
from . import utils
from . import tile_generation
from . import data_ingestion
from . import monitoring
from . import processing

__all__ = [
    "data_ingestion",
    "processing",
    "tile_generation",
    "monitoring",
    "utils"
]
