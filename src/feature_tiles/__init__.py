"""
Feature Tiles

Rasterizes styled vector features into map tiles on demand. Features are
read from a pluggable feature source, intersected with each tile's extent
across coordinate systems, grouped by style and painted by a pluggable
rasterizer.
"""

__version__ = "1.0.0"

from . import features
from . import geo
from . import monitoring
from . import styling
from . import tile_generation
from . import utils
from .exceptions import ConfigurationError, TileKeyError
from .tile_generation import FeatureTileSource, Status
from .utils import FeatureTileSourceOptions, load_config

__all__ = [
    "ConfigurationError",
    "FeatureTileSource",
    "FeatureTileSourceOptions",
    "Status",
    "TileKeyError",
    "features",
    "geo",
    "load_config",
    "monitoring",
    "styling",
    "tile_generation",
    "utils",
]
