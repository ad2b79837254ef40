"""
Data Ingestion Module

Reads input shapes from WKT text or Parquet and discovers their global MBR,
both on Spark and in-process.
"""

from .shape_loader import ShapeLoader, discover_mbr, discover_mbr_rdd, parse_wkt

__all__ = [
    "ShapeLoader",
    "discover_mbr",
    "discover_mbr_rdd",
    "parse_wkt"
]
