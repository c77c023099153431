"""
Geospatial primitives: bounds, CRS-aware extents, tiling profiles and tile keys.
"""

from .extent import Bounds, GeoExtent, get_transformer, same_crs, to_crs
from .profile import Profile, TileKey

__all__ = [
    "Bounds",
    "GeoExtent",
    "get_transformer",
    "Profile",
    "TileKey",
    "same_crs",
    "to_crs",
]
