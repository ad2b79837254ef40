#!/usr/bin/env python3
"""
Pyramid Tile Server

Serves the output directory of a pyramid run. Configured through the
environment like the container image expects:

    TILE_DIR=/app/tiles PORT=8000 python scripts/tile-server.py
"""

import os
from pathlib import Path

import uvicorn

from tile_pyramid.tile_generation.tile_server import create_app
from tile_pyramid.utils.logging_config import configure_logging

TILE_DIR = Path(os.getenv("TILE_DIR", "/app/tiles"))
PORT = int(os.getenv("PORT", "8000"))
HOST = os.getenv("HOST", "0.0.0.0")

configure_logging(os.getenv("LOG_LEVEL", "INFO"), json_logs=True)

app = create_app(TILE_DIR)

if __name__ == "__main__":
    uvicorn.run(
        app,
        host=HOST,
        port=PORT,
        reload=False,
        log_level="info",
        access_log=True
    )
