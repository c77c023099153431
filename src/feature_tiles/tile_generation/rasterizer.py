"""
Rasterizer Contract

A rasterizer paints styled feature groups into a tile image. The tile
source drives it through four calls per tile:

1. ``create_build_data()``: fresh tile-scoped accumulator
2. ``pre_process(image, build_data)``
3. ``render_features_for_style(style, features, build_data, extent, image)``
   once per style group
4. ``post_process(image, build_data)``

Any object with these methods can be plugged into a ``FeatureTileSource``.
Build data is owned by a single tile render and never shared between
concurrent renders.
"""

from typing import Any, List, Protocol, runtime_checkable

import numpy as np

from ..features.feature import Feature
from ..geo.extent import GeoExtent
from ..styling.style import Style

# Pixel layout of every tile image: rows x columns x RGBA, 8 bits per channel
IMAGE_CHANNELS = 4
IMAGE_DTYPE = np.uint8


def allocate_image(tile_size: int) -> np.ndarray:
    """Zero-filled (fully transparent) RGBA tile buffer."""
    return np.zeros((tile_size, tile_size, IMAGE_CHANNELS), dtype=IMAGE_DTYPE)


@runtime_checkable
class Rasterizer(Protocol):
    """The per-tile hooks a rasterizer provides."""

    def create_build_data(self) -> Any:
        ...

    def pre_process(self, image: np.ndarray, build_data: Any) -> bool:
        ...

    def render_features_for_style(
        self,
        style: Style,
        features: List[Feature],
        build_data: Any,
        extent: GeoExtent,
        image: np.ndarray
    ) -> bool:
        ...

    def post_process(self, image: np.ndarray, build_data: Any) -> bool:
        ...
