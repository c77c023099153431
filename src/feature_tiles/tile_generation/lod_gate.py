"""
Level-of-Detail Gate

Decides, per tile, whether a layer with a display layout takes part in
full rendering. The policy is kept separate from the dispatch loop so it
can be swapped without touching the tile source.

Two policies ship with the package:

- ``RangeLODGate``: a tile's visibility range is half its geodesic
  diagonal (metres) multiplied by the layout's ``tile_size_factor``; the
  tile renders when that range lies within ``[min_range, max_range]``.
- ``FixedLevelLODGate``: only the levels listed in the layout render.
"""

from typing import FrozenSet, Iterable

from pyproj import Geod

from ..geo.profile import TileKey
from ..utils.config import FeatureDisplayLayout

_GEOD = Geod(ellps="WGS84")


def tile_radius(key: TileKey) -> float:
    """Half the geodesic diagonal of a tile, in metres."""
    extent = key.extent
    geographic = extent.transform(extent.geographic_crs())
    if not geographic.is_valid():
        return 0.0
    b = geographic.bounds
    _, _, diagonal = _GEOD.inv(b.xmin, b.ymin, b.xmax, b.ymax)
    return abs(diagonal) / 2.0


class RangeLODGate:
    """Passes tiles whose visibility range falls inside the layout's range."""

    def __init__(self, layout: FeatureDisplayLayout):
        self.layout = layout

    def visibility_range(self, key: TileKey) -> float:
        return tile_radius(key) * self.layout.tile_size_factor

    def __call__(self, key: TileKey) -> bool:
        tile_range = self.visibility_range(key)
        return self.layout.min_range <= tile_range <= self.layout.max_range


class FixedLevelLODGate:
    """Passes only the listed levels."""

    def __init__(self, levels: Iterable[int]):
        self.levels: FrozenSet[int] = frozenset(levels)

    def __call__(self, key: TileKey) -> bool:
        return key.level in self.levels


def lod_gate_for(layout: FeatureDisplayLayout):
    """Pick the gate policy a layout asks for."""
    if layout.levels is not None:
        return FixedLevelLODGate(layout.levels)
    return RangeLODGate(layout)
