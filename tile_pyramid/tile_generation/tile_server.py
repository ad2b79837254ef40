"""
Pyramid Tile Server

A FastAPI application serving the PNG tiles of a generated pyramid. Tiles are
addressed by pyramid coordinates ``z/x/y`` (row 0 at the bottom of the input
MBR). Tiles that were never produced resolve to ``default.png``.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles
import structlog
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from .grid import TileIndex
from .tile_sink import tile_file_name

logger = structlog.get_logger(component="tile_server")

# Directories checked for tiles, in order: single pass output, then split output
TILE_SUBDIRS = ("", "flat", "pyramid")


def resolve_tile_path(tile_dir: Path, tile: TileIndex) -> Optional[Path]:
    """
    Locate a tile file, falling back to the nearest ``default.png``.

    Returns:
        Path to serve, or None when neither the tile nor a default exists
    """
    name = tile_file_name(tile)
    for subdir in TILE_SUBDIRS:
        path = tile_dir / subdir / name
        if path.is_file():
            return path
    for subdir in TILE_SUBDIRS:
        path = tile_dir / subdir / "default.png"
        if path.is_file():
            return path
    return None


async def load_metadata(tile_dir: Path) -> Dict[str, Any]:
    """Read ``metadata.json`` written at the end of a run, if present."""
    metadata_file = tile_dir / "metadata.json"
    if not metadata_file.exists():
        logger.info("No metadata file found", tile_dir=str(tile_dir))
        return {}
    async with aiofiles.open(metadata_file, 'r') as f:
        content = await f.read()
    try:
        metadata = json.loads(content)
    except json.JSONDecodeError as e:
        logger.error("Invalid metadata file", path=str(metadata_file), error=str(e))
        return {}
    logger.info("Loaded tile metadata", levels=metadata.get("levels"))
    return metadata


def create_app(tile_dir: Path) -> FastAPI:
    """
    Build the tile server for one output directory.

    Args:
        tile_dir: Root output directory of a pyramid run
    """
    tile_dir = Path(tile_dir)
    app = FastAPI(
        title="Tile Pyramid Server",
        description="Serves PNG tiles of a multilevel pyramid",
        version="1.0.0"
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.state.tile_dir = tile_dir
    app.state.metadata = {}

    @app.on_event("startup")
    async def startup_event():
        logger.info("Starting tile server", tile_dir=str(tile_dir))
        app.state.metadata = await load_metadata(tile_dir)

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy" if tile_dir.is_dir() else "degraded",
            "service": "tile-pyramid-server",
            "tile_directory": str(tile_dir)
        }

    @app.get("/metadata")
    async def get_metadata():
        if not app.state.metadata:
            app.state.metadata = await load_metadata(tile_dir)
        return app.state.metadata

    @app.get("/tiles/{z}/{x}/{y}.png")
    async def get_tile(z: int, x: int, y: int):
        """
        Serve one tile.

        Args:
            z: Pyramid level
            x: Tile column
            y: Tile row, counted from the bottom
        """
        grid_size = 1 << z if z >= 0 else 0
        if z < 0 or not (0 <= x < grid_size and 0 <= y < grid_size):
            raise HTTPException(status_code=400, detail="Tile outside the pyramid")

        path = resolve_tile_path(tile_dir, TileIndex(z, x, y))
        if path is None:
            raise HTTPException(status_code=404, detail="Tile not found")

        logger.debug("Serving tile", z=z, x=x, y=y, path=str(path))
        return FileResponse(
            path,
            media_type="image/png",
            headers={"Cache-Control": "public, max-age=3600"}
        )

    @app.get("/tiles")
    async def list_tiles(z: Optional[int] = Query(None, description="Filter by level")):
        tiles: List[Dict[str, Any]] = []
        for subdir in TILE_SUBDIRS:
            directory = tile_dir / subdir
            if not directory.is_dir():
                continue
            for path in sorted(directory.glob("tile_*_*-*.png")):
                level, coords = path.stem[len("tile_"):].split("_", 1)
                x, y = coords.split("-", 1)
                if z is not None and int(level) != z:
                    continue
                tiles.append({
                    "z": int(level),
                    "x": int(x),
                    "y": int(y),
                    "url": f"/tiles/{level}/{x}/{y}.png"
                })
        return {"count": len(tiles), "tiles": tiles}

    # Viewer pages and their relative tile links
    app.mount(
        "/view",
        StaticFiles(directory=str(tile_dir), html=True, check_dir=False),
        name="view"
    )

    return app
