"""
Feature Model

Features pair a shapely geometry with an attribute map and, for sources
that carry their own symbology, an embedded style. This module also owns
geometry-type coercion: converting a geometry into a forced component type
(point set, line string or polygon) when a layer requests it.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import shapely
from shapely.geometry import (
    LineString,
    MultiLineString,
    MultiPoint,
    MultiPolygon,
    Polygon,
)
from shapely.geometry.base import BaseGeometry


class GeometryType(Enum):
    """Component type of a feature geometry."""
    POINTSET = "point"
    LINESTRING = "line"
    POLYGON = "polygon"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, text: Optional[str]) -> Optional["GeometryType"]:
        """
        Parse a configured geometry type override.

        Accepts the usual synonyms in any case; returns None for anything
        unrecognised, which means "no override".
        """
        if text is None:
            return None
        if isinstance(text, GeometryType):
            return text
        key = str(text).strip().lower()
        if key in ("line", "lines", "linestring"):
            return cls.LINESTRING
        if key in ("point", "points", "pointset"):
            return cls.POINTSET
        if key in ("polygon", "polygons"):
            return cls.POLYGON
        return None

    @property
    def config_name(self) -> Optional[str]:
        if self is GeometryType.UNKNOWN:
            return None
        return self.value


_COMPONENT_TYPES = {
    "Point": GeometryType.POINTSET,
    "MultiPoint": GeometryType.POINTSET,
    "LineString": GeometryType.LINESTRING,
    "LinearRing": GeometryType.LINESTRING,
    "MultiLineString": GeometryType.LINESTRING,
    "Polygon": GeometryType.POLYGON,
    "MultiPolygon": GeometryType.POLYGON,
}


def component_type(geometry: Optional[BaseGeometry]) -> GeometryType:
    """Type of the components making up ``geometry``."""
    if geometry is None or geometry.is_empty:
        return GeometryType.UNKNOWN
    if geometry.geom_type == "GeometryCollection":
        return component_type(geometry.geoms[0])
    return _COMPONENT_TYPES.get(geometry.geom_type, GeometryType.UNKNOWN)


def _is_multi(geometry: BaseGeometry) -> bool:
    return geometry.geom_type.startswith("Multi") or geometry.geom_type == "GeometryCollection"


def _flatten(geometries: List[BaseGeometry]) -> List[BaseGeometry]:
    parts = []
    for geom in geometries:
        if _is_multi(geom):
            parts.extend(_flatten(list(geom.geoms)))
        elif not geom.is_empty:
            parts.append(geom)
    return parts


def _convert_single(geometry: BaseGeometry, target: GeometryType) -> Optional[BaseGeometry]:
    source = component_type(geometry)

    if source == target:
        return geometry

    if target == GeometryType.POINTSET:
        return MultiPoint(shapely.get_coordinates(geometry))

    if target == GeometryType.LINESTRING:
        if source == GeometryType.POLYGON:
            return geometry.boundary
        return None

    if target == GeometryType.POLYGON:
        if source == GeometryType.LINESTRING:
            coords = [tuple(c) for c in shapely.get_coordinates(geometry)]
            if len(set(coords)) < 3:
                return None
            return Polygon(coords)
        return None

    return None


def _assemble(parts: List[BaseGeometry], target: GeometryType) -> Optional[BaseGeometry]:
    parts = _flatten(parts)
    if not parts:
        return None
    if target == GeometryType.POINTSET:
        return MultiPoint(shapely.get_coordinates(parts))
    if len(parts) == 1:
        return parts[0]
    if target == GeometryType.LINESTRING:
        return MultiLineString([LineString(p.coords) for p in parts])
    return MultiPolygon(parts)


def clone_as(geometry: Optional[BaseGeometry], target: GeometryType) -> Optional[BaseGeometry]:
    """
    Convert a geometry into the requested component type.

    Args:
        geometry: Source geometry
        target: Desired component type

    Returns:
        The converted geometry, the original geometry when it already has
        the target type, or None when it cannot be converted (for example a
        point requested as a line).
    """
    if geometry is None or geometry.is_empty or target == GeometryType.UNKNOWN:
        return None

    if component_type(geometry) == target and geometry.geom_type != "GeometryCollection":
        return geometry

    if _is_multi(geometry):
        converted = [_convert_single(part, target) for part in _flatten(list(geometry.geoms))]
        return _assemble([c for c in converted if c is not None], target)

    converted = _convert_single(geometry, target)
    if converted is None or converted.is_empty:
        return None
    return converted


@dataclass
class Feature:
    """
    A vector feature: id, geometry, attributes and optional embedded style.

    ``crs`` records the coordinate system of the geometry when the source
    knows it, so rasterizers can reproject into the tile CRS.
    """
    fid: Any
    geometry: Optional[BaseGeometry]
    attributes: Dict[str, Any] = field(default_factory=dict)
    style: Optional[Any] = None
    crs: Optional[Any] = None

    @property
    def component_type(self) -> GeometryType:
        return component_type(self.geometry)

    def set_geometry(self, geometry: Optional[BaseGeometry]) -> None:
        self.geometry = geometry

    def get(self, name: str, default: Any = None) -> Any:
        return self.attributes.get(name, default)
