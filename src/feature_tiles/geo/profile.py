"""
Tiling Profiles

A profile describes a quadtree tiling scheme: the CRS, the full extent
it covers, and how many tiles span that extent at level 0. Tile keys
address one cell of that scheme and derive their extent from it.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

from pyproj import CRS

from .extent import Bounds, GeoExtent, to_crs
from ..exceptions import ConfigurationError, TileKeyError

# Half the circumference of the WGS84 sphere used by Web Mercator
MERCATOR_HALF_WORLD = 20037508.342789244


@dataclass(frozen=True)
class Profile:
    """Quadtree tiling scheme."""
    name: str
    crs: CRS
    bounds: Bounds
    tiles_wide: int = 1
    tiles_high: int = 1

    @classmethod
    def global_geodetic(cls) -> "Profile":
        """Plate carree over WGS84, two tiles wide at level 0."""
        return cls(
            name="global-geodetic",
            crs=CRS.from_epsg(4326),
            bounds=Bounds(-180.0, -90.0, 180.0, 90.0),
            tiles_wide=2,
            tiles_high=1,
        )

    @classmethod
    def spherical_mercator(cls) -> "Profile":
        """Web Mercator square, one tile at level 0."""
        return cls(
            name="spherical-mercator",
            crs=CRS.from_epsg(3857),
            bounds=Bounds(
                -MERCATOR_HALF_WORLD, -MERCATOR_HALF_WORLD,
                MERCATOR_HALF_WORLD, MERCATOR_HALF_WORLD,
            ),
        )

    @classmethod
    def from_name(cls, name: str) -> "Profile":
        key = name.strip().lower().replace("_", "-")
        if key in ("global-geodetic", "geodetic", "wgs84"):
            return cls.global_geodetic()
        if key in ("spherical-mercator", "mercator", "web-mercator"):
            return cls.spherical_mercator()
        raise ConfigurationError(f"Unknown tiling profile: {name}")

    @classmethod
    def from_config(cls, conf: Any) -> "Profile":
        """Accept a well-known profile name or an explicit definition."""
        if isinstance(conf, str):
            return cls.from_name(conf)
        if not isinstance(conf, dict):
            raise ConfigurationError(f"Invalid profile configuration: {conf!r}")
        try:
            return cls(
                name=conf.get("name", "custom"),
                crs=to_crs(conf["crs"]),
                bounds=Bounds.from_sequence(conf["bounds"]),
                tiles_wide=int(conf.get("tiles_wide", 1)),
                tiles_high=int(conf.get("tiles_high", 1)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid profile configuration: {e}") from e

    @property
    def extent(self) -> GeoExtent:
        return GeoExtent(self.crs, self.bounds)

    def num_tiles(self, level: int) -> Tuple[int, int]:
        """Tiles wide and high at the given level."""
        factor = 2 ** level
        return self.tiles_wide * factor, self.tiles_high * factor

    def tile_bounds(self, level: int, x: int, y: int) -> Bounds:
        wide, high = self.num_tiles(level)
        width = self.bounds.width / wide
        height = self.bounds.height / high
        xmin = self.bounds.xmin + x * width
        ymax = self.bounds.ymax - y * height
        return Bounds(xmin, ymax - height, xmin + width, ymax)

    def tile_key(self, level: int, x: int, y: int) -> "TileKey":
        """
        Address a tile in this profile.

        Raises:
            TileKeyError: If the level is negative or x/y fall outside the grid
        """
        if level < 0:
            raise TileKeyError(f"Tile level must be non-negative, got {level}")
        wide, high = self.num_tiles(level)
        if not (0 <= x < wide and 0 <= y < high):
            raise TileKeyError(
                f"Tile {level}/{x}/{y} outside {self.name} grid of {wide}x{high}"
            )
        return TileKey(level=level, x=x, y=y, profile=self)

    def to_config(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "crs": self.crs.to_string(),
            "bounds": list(self.bounds.as_tuple()),
            "tiles_wide": self.tiles_wide,
            "tiles_high": self.tiles_high,
        }


@dataclass(frozen=True)
class TileKey:
    """Quadtree address (level, column, row) within a profile."""
    level: int
    x: int
    y: int
    profile: Profile = field(repr=False)

    @property
    def lod(self) -> int:
        return self.level

    @property
    def tile_id(self) -> str:
        return f"{self.level}/{self.x}/{self.y}"

    @property
    def extent(self) -> GeoExtent:
        return GeoExtent(self.profile.crs, self.profile.tile_bounds(self.level, self.x, self.y))

    def __str__(self) -> str:
        return self.tile_id
