"""
Utilities Module

Configuration sections, level and rectangle parsing, and structured logging
setup shared by every other module.
"""

from .config import (
    AWSConfig,
    Config,
    ConfigurationError,
    PyramidConfig,
    SparkConfig,
    parse_levels,
    parse_rect
)
from .logging_config import configure_logging

__all__ = [
    "AWSConfig",
    "Config",
    "ConfigurationError",
    "PyramidConfig",
    "SparkConfig",
    "configure_logging",
    "parse_levels",
    "parse_rect"
]
