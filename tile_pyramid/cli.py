"""
Command line entry point.

    tile-pyramid plot INPUT OUTPUT --levels 0..12 [--engine spark|local]
    tile-pyramid serve OUTPUT --port 8000
"""

import argparse
import sys
from typing import List, Optional

import structlog

from .utils.config import Config, ConfigurationError, parse_rect
from .utils.logging_config import configure_logging

logger = structlog.get_logger(component="cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tile-pyramid",
        description="Generate and serve multilevel image tile pyramids"
    )
    parser.add_argument("--log-level", default=None, help="Log level (default from env or INFO)")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    commands = parser.add_subparsers(dest="command", required=True)

    plot = commands.add_parser("plot", help="Render a tile pyramid")
    plot.add_argument("input", help="Input file or directory (WKT lines or Parquet)")
    plot.add_argument("output", help="Output directory or s3:// prefix")
    plot.add_argument("--levels", help='"N" for levels 0..N-1, or "A..B" (inclusive)')
    plot.add_argument("--engine", choices=("spark", "local"), default="spark")
    plot.add_argument("--partition", choices=("flat", "pyramid"),
                      help="Force one partitioning technique for all levels")
    plot.add_argument("--threshold", type=int,
                      help="Deepest level rendered with flat partitioning")
    plot.add_argument("--max-levels-per-bucket", type=int)
    plot.add_argument("--tile-width", type=int)
    plot.add_argument("--tile-height", type=int)
    plot.add_argument("--radius", type=int, help="Drawing radius in pixels")
    plot.add_argument("--simplify", type=float, help="Geometry simplification tolerance")
    plot.add_argument("--rect", help="Explicit input MBR as x1,y1,x2,y2")
    plot.add_argument("--no-keep-ratio", action="store_true",
                      help="Do not square the input MBR")
    plot.add_argument("--no-output", action="store_true",
                      help="Render without writing tiles")
    plot.add_argument("--input-format", choices=("wkt", "parquet"))
    plot.add_argument("--geometry-column")
    plot.add_argument("--workers", type=int, help="Threads of the local engine")
    plot.add_argument("--master", help="Spark master URL")

    serve = commands.add_parser("serve", help="Serve a generated pyramid over HTTP")
    serve.add_argument("tile_dir", help="Output directory of a plot run")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)

    return parser


def apply_arguments(config: Config, args: argparse.Namespace) -> Config:
    """Override environment configuration with explicit flags."""
    pyramid = config.pyramid
    overrides = {
        "levels": args.levels,
        "partition": args.partition,
        "flat_partitioning_level_threshold": args.threshold,
        "max_levels_per_bucket": args.max_levels_per_bucket,
        "tile_width": args.tile_width,
        "tile_height": args.tile_height,
        "radius": args.radius,
        "simplify_tolerance": args.simplify,
        "input_format": args.input_format,
        "geometry_column": args.geometry_column,
        "num_workers": args.workers,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(pyramid, name, value)
    if args.rect:
        pyramid.rect = parse_rect(args.rect)
    if args.no_keep_ratio:
        pyramid.keep_ratio = False
    if args.no_output:
        pyramid.write_output = False
    if args.master:
        config.spark.master = args.master
    return config.validate()


def run_plot(config: Config, args: argparse.Namespace) -> int:
    if args.engine == "local":
        from .processing.local_executor import LocalPyramidExecutor
        processor = LocalPyramidExecutor(config)
    else:
        from .processing.spark_processor import SparkPyramidProcessor
        processor = SparkPyramidProcessor(config)

    try:
        result = processor.process(args.input, args.output)
    finally:
        processor.shutdown()

    logger.info(
        "Plot finished",
        tiles_written=result['tiles_written'],
        processing_time=round(result['processing_time'], 3),
        output_path=result['output_path']
    )
    return 0


def run_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from .tile_generation.tile_server import create_app

    uvicorn.run(create_app(args.tile_dir), host=args.host, port=args.port, log_level="info")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = Config.from_env()
        configure_logging(args.log_level or config.log_level, args.json_logs or config.json_logs)
        if args.command == "serve":
            return run_serve(args)
        return run_plot(apply_arguments(config, args), args)
    except ConfigurationError as e:
        logger.error("Invalid configuration", error=str(e))
        return 2


if __name__ == "__main__":
    sys.exit(main())
