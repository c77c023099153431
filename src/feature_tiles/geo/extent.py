"""
Spatial Extents

Bounding boxes tied to a coordinate reference system, with reprojection
and intersection backed by pyproj.

Reprojection never raises: a failed or degenerate transform produces an
invalid extent, and callers short-circuit on ``is_valid()``.
"""

import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Optional, Tuple

import structlog
from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError, ProjError

logger = structlog.get_logger(__name__)

# Number of points sampled along each edge when reprojecting bounds
DENSIFY_POINTS = 21


@dataclass(frozen=True)
class Bounds:
    """Axis-aligned bounding box (xmin, ymin, xmax, ymax)."""
    xmin: float
    ymin: float
    xmax: float
    ymax: float

    @classmethod
    def from_sequence(cls, values) -> "Bounds":
        """Build bounds from a 4-item sequence such as ``total_bounds``."""
        xmin, ymin, xmax, ymax = (float(v) for v in values)
        return cls(xmin, ymin, xmax, ymax)

    @classmethod
    def empty(cls) -> "Bounds":
        return cls(math.inf, math.inf, -math.inf, -math.inf)

    @property
    def width(self) -> float:
        return self.xmax - self.xmin

    @property
    def height(self) -> float:
        return self.ymax - self.ymin

    @property
    def center(self) -> Tuple[float, float]:
        return ((self.xmin + self.xmax) / 2.0, (self.ymin + self.ymax) / 2.0)

    def is_valid(self) -> bool:
        """True when all coordinates are finite and the box has area."""
        values = (self.xmin, self.ymin, self.xmax, self.ymax)
        if not all(math.isfinite(v) for v in values):
            return False
        return self.xmin < self.xmax and self.ymin < self.ymax

    def union_with(self, other: "Bounds") -> "Bounds":
        """Smallest box covering both boxes. Invalid operands are ignored."""
        if not other.is_valid():
            return self
        if not self.is_valid():
            return other
        return Bounds(
            min(self.xmin, other.xmin),
            min(self.ymin, other.ymin),
            max(self.xmax, other.xmax),
            max(self.ymax, other.ymax),
        )

    def intersection(self, other: "Bounds") -> "Bounds":
        """Overlap of both boxes; invalid when they are disjoint."""
        return Bounds(
            max(self.xmin, other.xmin),
            max(self.ymin, other.ymin),
            min(self.xmax, other.xmax),
            min(self.ymax, other.ymax),
        )

    def intersects(self, other: "Bounds") -> bool:
        return self.intersection(other).is_valid()

    def contains(self, other: "Bounds", tolerance: float = 0.0) -> bool:
        return (
            other.xmin >= self.xmin - tolerance
            and other.ymin >= self.ymin - tolerance
            and other.xmax <= self.xmax + tolerance
            and other.ymax <= self.ymax + tolerance
        )

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.xmin, self.ymin, self.xmax, self.ymax)


def to_crs(value: Any) -> Optional[CRS]:
    """Coerce anything pyproj accepts (EPSG code, string, CRS) into a CRS."""
    if value is None:
        return None
    if isinstance(value, CRS):
        return value
    return CRS.from_user_input(value)


@lru_cache(maxsize=64)
def get_transformer(source: CRS, target: CRS) -> Transformer:
    return Transformer.from_crs(source, target, always_xy=True)


def same_crs(a: Optional[CRS], b: Optional[CRS]) -> bool:
    if a is None or b is None:
        return False
    return a.equals(b, ignore_axis_order=True)


class GeoExtent:
    """
    A bounding box in a specific coordinate reference system.

    An extent is valid only when it has a CRS and non-degenerate bounds.
    Extents in different systems must be reprojected with ``transform``
    before they can be compared or intersected.
    """

    __slots__ = ("_crs", "_bounds")

    def __init__(self, crs: Any, bounds: Optional[Bounds]):
        self._crs = to_crs(crs)
        self._bounds = bounds if bounds is not None else Bounds.empty()

    @classmethod
    def invalid(cls, crs: Any = None) -> "GeoExtent":
        return cls(crs, Bounds.empty())

    @property
    def crs(self) -> Optional[CRS]:
        return self._crs

    @property
    def bounds(self) -> Bounds:
        return self._bounds

    def is_valid(self) -> bool:
        return self._crs is not None and self._bounds.is_valid()

    def geographic_crs(self) -> Optional[CRS]:
        """The geodetic frame underlying this extent's CRS."""
        if self._crs is None:
            return None
        if self._crs.is_geographic:
            return self._crs
        return self._crs.geodetic_crs

    def transform(self, target: Any, clamp_to_area_of_use: bool = True) -> "GeoExtent":
        """
        Reproject this extent into another CRS.

        Bounds in a geographic CRS are clamped to the target's area of use
        first, so that e.g. a whole-world geodetic extent maps onto the valid
        latitude band of Web Mercator. Projections such as UTM stay usable
        well outside their nominal area, so callers that bound the result
        themselves can turn the clamp off.

        Args:
            target: Destination CRS (anything pyproj accepts)
            clamp_to_area_of_use: Clamp geographic bounds to the target's area of use

        Returns:
            The reprojected extent, or an invalid extent if the transform fails
        """
        try:
            target_crs = to_crs(target)
        except CRSError as e:
            logger.warning("Unknown target CRS", target=str(target), error=str(e))
            return GeoExtent.invalid()

        if not self.is_valid() or target_crs is None:
            return GeoExtent.invalid(target_crs)

        if same_crs(self._crs, target_crs):
            return GeoExtent(target_crs, self._bounds)

        bounds = self._bounds
        if (
            clamp_to_area_of_use
            and self._crs.is_geographic
            and target_crs.area_of_use is not None
        ):
            area = target_crs.area_of_use
            bounds = bounds.intersection(
                Bounds(area.west, area.south, area.east, area.north)
            )
            if not bounds.is_valid():
                return GeoExtent.invalid(target_crs)

        try:
            result = get_transformer(self._crs, target_crs).transform_bounds(
                *bounds.as_tuple(), densify_pts=DENSIFY_POINTS
            )
        except ProjError as e:
            logger.warning(
                "Extent transform failed",
                source=self._crs.to_string(),
                target=target_crs.to_string(),
                error=str(e),
            )
            return GeoExtent.invalid(target_crs)

        return GeoExtent(target_crs, Bounds.from_sequence(result))

    def intersection_same_crs(self, other: "GeoExtent") -> "GeoExtent":
        """Intersect with an extent already expressed in the same CRS."""
        if not (self.is_valid() and other.is_valid()):
            return GeoExtent.invalid(self._crs)
        if not same_crs(self._crs, other.crs):
            return GeoExtent.invalid(self._crs)
        return GeoExtent(self._crs, self._bounds.intersection(other.bounds))

    def __eq__(self, other) -> bool:
        if not isinstance(other, GeoExtent):
            return NotImplemented
        return self._bounds == other.bounds and (
            (self._crs is None and other.crs is None) or same_crs(self._crs, other.crs)
        )

    def __hash__(self) -> int:
        return hash(self._bounds)

    def __repr__(self) -> str:
        crs = self._crs.to_string() if self._crs is not None else None
        return f"GeoExtent(crs={crs!r}, bounds={self._bounds.as_tuple()})"
