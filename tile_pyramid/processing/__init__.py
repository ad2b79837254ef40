"""
Data Processing Module

Execution engines for pyramid generation: Apache Spark for large inputs and
a thread pool executor running the same functions in-process.

Importing this package does not import pyspark; the Spark processor is
loaded from ``tile_pyramid.processing.spark_processor`` on demand.
"""

from .base_processor import BasePyramidProcessor
from .local_executor import LocalPyramidExecutor

__all__ = [
    "BasePyramidProcessor",
    "LocalPyramidExecutor"
]
