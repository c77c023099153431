#!/usr/bin/env python3
"""
Feature Tile Server

A FastAPI-based tile server that renders PNG raster tiles on demand from
a feature tile layer described by a YAML layer file.
"""

import io
import os
from typing import Optional

import uvicorn
import structlog
from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from PIL import Image
from prometheus_client import CONTENT_TYPE_LATEST

from feature_tiles import __version__
from feature_tiles.exceptions import ConfigurationError, TileKeyError
from feature_tiles.geo import TileKey
from feature_tiles.monitoring import MetricsCollector
from feature_tiles.tile_generation import FeatureTileSource, LayerState
from feature_tiles.utils import configure_logging, load_config

# Configure logging
configure_logging(
    level=os.getenv("LOG_LEVEL", "INFO"),
    json_output=os.getenv("LOG_FORMAT", "json") == "json"
)

logger = structlog.get_logger()

# Configuration
LAYER_CONFIG = os.getenv("LAYER_CONFIG")
PORT = int(os.getenv("PORT", "8000"))
HOST = os.getenv("HOST", "0.0.0.0")
CACHE_MAX_AGE = int(os.getenv("CACHE_MAX_AGE", "3600"))

# Create FastAPI app
app = FastAPI(
    title="Feature Tile Server",
    description="Renders raster map tiles from vector features on demand",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

metrics = MetricsCollector()

# The layer being served
layer: Optional[FeatureTileSource] = None


def load_layer(config_path: str) -> FeatureTileSource:
    """
    Build and initialize a layer from a YAML layer file.

    Raises:
        ConfigurationError: If the layer file is invalid
    """
    options = load_config(config_path)
    tile_source = FeatureTileSource(options, metrics=metrics)
    status = tile_source.initialize()
    if status.ok:
        logger.info(
            "Layer loaded",
            layer=options.name,
            config=config_path,
            warnings=list(status.warnings)
        )
    else:
        logger.error("Layer failed to initialize", layer=options.name, reason=status.message)
    return tile_source


@app.on_event("startup")
async def startup_event():
    """Load the configured layer."""
    global layer
    logger.info("Starting Feature Tile Server", layer_config=LAYER_CONFIG, port=PORT)

    if layer is None and LAYER_CONFIG:
        try:
            layer = load_layer(LAYER_CONFIG)
        except ConfigurationError as e:
            logger.error("Failed to load layer configuration", error=str(e))

    if layer is None:
        logger.warning("No layer configured; tile requests will be rejected")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info("Shutting down Feature Tile Server")


def _require_layer() -> FeatureTileSource:
    if layer is None or layer.state is not LayerState.INITIALIZED:
        raise HTTPException(status_code=503, detail="No initialized layer available")
    return layer


def _tile_key(tile_source: FeatureTileSource, z: int, x: int, y: int) -> TileKey:
    try:
        return tile_source.profile.tile_key(z, x, y)
    except TileKeyError as e:
        raise HTTPException(status_code=400, detail=str(e))


def encode_png(image) -> bytes:
    """Encode an RGBA tile buffer as PNG."""
    buffer = io.BytesIO()
    Image.fromarray(image).save(buffer, format="PNG")
    return buffer.getvalue()


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    status = layer.status if layer is not None else None
    return {
        "status": "healthy" if status is not None and status.ok else "degraded",
        "service": "feature-tile-server",
        "version": __version__,
        "layer": layer.name if layer is not None else None,
        "initialized": layer is not None and layer.state is LayerState.INITIALIZED,
        "warnings": list(status.warnings) if status is not None else [],
        "metrics": metrics.get_health()
    }


@app.get("/")
async def root():
    """Root endpoint with server information."""
    return {
        "service": "Feature Tile Server",
        "version": __version__,
        "endpoints": {
            "health": "/health",
            "tiles": "/tiles/{z}/{x}/{y}.png",
            "bounds": "/bounds/{z}/{x}/{y}",
            "metrics": "/metrics",
            "docs": "/docs"
        },
        "layer": layer.name if layer is not None else None,
        "profile": layer.profile.name if layer is not None and layer.profile else None
    }


@app.get("/tiles/{z}/{x}/{y}.png")
def get_tile(z: int, x: int, y: int):
    """
    Render and serve a PNG tile.

    Args:
        z: Tile level
        x: Tile column
        y: Tile row (0 is the northernmost row)
    """
    tile_source = _require_layer()
    key = _tile_key(tile_source, z, x, y)

    image = tile_source.render_tile(key)
    if image is None:
        return Response(status_code=204)

    logger.debug("Serving tile", layer=tile_source.name, tile_id=key.tile_id)

    return Response(
        content=encode_png(image),
        media_type="image/png",
        headers={"Cache-Control": f"public, max-age={CACHE_MAX_AGE}"}
    )


@app.get("/bounds/{z}/{x}/{y}")
async def get_tile_bounds(z: int, x: int, y: int):
    """Get the native and geographic bounds of a tile."""
    tile_source = _require_layer()
    key = _tile_key(tile_source, z, x, y)

    extent = key.extent
    geographic = extent.transform("EPSG:4326")
    if not geographic.is_valid():
        raise HTTPException(status_code=500, detail="Tile bounds could not be reprojected")

    b = geographic.bounds
    return {
        "z": z,
        "x": x,
        "y": y,
        "crs": extent.crs.to_string(),
        "native_bbox": list(extent.bounds.as_tuple()),
        "bounds": {
            "west": b.xmin,
            "south": b.ymin,
            "east": b.xmax,
            "north": b.ymax
        },
        "bbox": list(b.as_tuple())
    }


@app.get("/metrics")
async def get_metrics():
    """Prometheus scrape endpoint."""
    return PlainTextResponse(
        metrics.export_metrics("prometheus"),
        media_type=CONTENT_TYPE_LATEST
    )


if __name__ == "__main__":
    # Run the server
    uvicorn.run(
        "tile-server:app",
        host=HOST,
        port=PORT,
        reload=False,
        log_level="info",
        access_log=True
    )
