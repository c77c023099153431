"""
Extent Intersection

Works out which part of a tile actually needs querying: the overlap of the
tile's extent with the feature source's extent, computed in the source's
geographic frame and mapped back into the source's native CRS.
"""

from typing import Optional

import structlog

from ..features.query import Query
from ..geo.extent import GeoExtent

logger = structlog.get_logger(__name__)


def compute_query_extent(
    features_extent: GeoExtent,
    image_extent: GeoExtent
) -> Optional[GeoExtent]:
    """
    Intersect a tile extent with a feature source extent across CRSs.

    Both extents are reprojected into the geographic CRS underlying the
    feature source, intersected there, and the intersection is reprojected
    back into the feature source's native CRS.

    Args:
        features_extent: Overall extent of the feature source
        image_extent: Extent of the tile being rendered

    Returns:
        The query extent in the feature source's CRS, or None when the
        extents do not overlap or a transform fails
    """
    if not (features_extent.is_valid() and image_extent.is_valid()):
        return None

    geographic = features_extent.geographic_crs()
    if geographic is None:
        return None

    features_geo = features_extent.transform(geographic)
    image_geo = image_extent.transform(geographic)
    query_geo = features_geo.intersection_same_crs(image_geo)
    if not query_geo.is_valid():
        return None

    # Bounded by the clip to the source extent below
    query_extent = query_geo.transform(features_extent.crs, clamp_to_area_of_use=False)
    if not query_extent.is_valid():
        logger.debug(
            "Query extent lost on reprojection",
            intersection=repr(query_geo),
        )
        return None

    # Densified reprojection can overshoot the source extent slightly
    clipped = query_extent.intersection_same_crs(features_extent)
    return clipped if clipped.is_valid() else None


def build_style_query(query: Query, query_extent: GeoExtent) -> Query:
    """Merge the intersection bounds into a style's query without losing its own bounds."""
    return query.merge_bounds(query_extent.bounds)
