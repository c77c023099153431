"""
Tile Generation Module

Renders vector features into RGBA raster tiles.

- Per-tile extent intersection across coordinate systems
- Style dispatch (embedded styles, selectors, default style)
- Geometry type coercion before rasterization
- Level-of-detail gating for layers with a display layout
- Pluggable rasterizers, with a Pillow implementation
"""

from .extent_intersector import build_style_query, compute_query_extent
from .feature_tile_source import FeatureTileSource, LayerState, Status, StyleMode
from .lod_gate import FixedLevelLODGate, RangeLODGate, lod_gate_for, tile_radius
from .pillow_rasterizer import PillowBuildData, PillowRasterizer, parse_color
from .rasterizer import Rasterizer, allocate_image

__all__ = [
    "FeatureTileSource",
    "FixedLevelLODGate",
    "LayerState",
    "PillowBuildData",
    "PillowRasterizer",
    "RangeLODGate",
    "Rasterizer",
    "Status",
    "StyleMode",
    "allocate_image",
    "build_style_query",
    "compute_query_extent",
    "lod_gate_for",
    "parse_color",
    "tile_radius",
]
