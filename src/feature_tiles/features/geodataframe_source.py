"""
GeoDataFrame Feature Source

In-memory feature source backed by a geopandas GeoDataFrame. Spatial
queries go through the frame's spatial index followed by an exact
intersection test; attribute filters use the same mapping dialect as the
layer configuration:

- scalar value: equality
- list: membership
- dict with ``min`` and/or ``max``: inclusive range
"""

from typing import Any, Dict, Iterator, Optional

import geopandas as gpd
import pandas as pd
import structlog
from shapely.geometry import box

from .feature import Feature
from .feature_source import FeatureCursor, FeatureProfile, register_driver
from .query import Query
from ..geo.extent import Bounds, GeoExtent

# Relative padding applied to zero-width or zero-height data extents
DEGENERATE_PADDING = 1e-6


class GeoDataFrameFeatureSource:
    """
    Feature source over a GeoDataFrame.

    Query bounds are interpreted in the frame's own CRS. When a
    ``style_column`` is given the source reports embedded styles and each
    feature carries the value of that column as its style.
    """

    def __init__(
        self,
        gdf: gpd.GeoDataFrame,
        style_column: Optional[str] = None,
        name: Optional[str] = None
    ):
        self.gdf = gdf
        self.style_column = style_column
        self.name = name or "geodataframe"
        self._profile: Optional[FeatureProfile] = None

        self.logger = structlog.get_logger(
            source_type="GeoDataFrameFeatureSource",
            source_name=self.name
        )

    def initialize(self, options: Optional[Dict[str, Any]] = None) -> None:
        """
        Validate the frame and prepare it for querying.

        Raises:
            ValueError: If the frame is not a GeoDataFrame or has no CRS
        """
        if not isinstance(self.gdf, gpd.GeoDataFrame):
            raise ValueError(f"Feature source {self.name} requires a GeoDataFrame")

        if self.gdf.crs is None:
            raise ValueError(f"Feature source {self.name} has no CRS defined")

        if self.style_column and self.style_column not in self.gdf.columns:
            raise ValueError(
                f"Style column {self.style_column!r} not found in feature source {self.name}"
            )

        # Build the spatial index up front
        self.gdf.sindex

        if self.gdf.empty:
            self._profile = FeatureProfile(extent=GeoExtent.invalid(self.gdf.crs))
        else:
            bounds = _pad_degenerate(Bounds.from_sequence(self.gdf.total_bounds))
            self._profile = FeatureProfile(extent=GeoExtent(self.gdf.crs, bounds))

        self.logger.info(
            "Feature source initialized",
            feature_count=len(self.gdf),
            crs=self.gdf.crs.to_string(),
            embedded_styles=self.has_embedded_styles()
        )

    def get_feature_profile(self) -> Optional[FeatureProfile]:
        return self._profile

    def has_embedded_styles(self) -> bool:
        return self.style_column is not None

    def create_feature_cursor(self, query: Query) -> FeatureCursor:
        return FeatureCursor(self._iter_features(query))

    def _iter_features(self, query: Query) -> Iterator[Feature]:
        matches = self._select(query)
        for idx, row in matches.iterrows():
            yield self._row_to_feature(idx, row)

    def _select(self, query: Query) -> gpd.GeoDataFrame:
        gdf = self.gdf

        if query.bounds is not None:
            if not query.bounds.is_valid():
                return gdf.iloc[0:0]
            bbox = query.bounds.as_tuple()
            candidates = gdf.iloc[list(gdf.sindex.intersection(bbox))]
            gdf = candidates[candidates.geometry.intersects(box(*bbox))]

        if query.filters:
            gdf = apply_filters(gdf, query.filters)

        return gdf

    def _row_to_feature(self, idx: Any, row: pd.Series) -> Feature:
        geometry_column = self.gdf.geometry.name
        attributes = {}
        for column, value in row.items():
            if column in (geometry_column, self.style_column):
                continue
            if pd.api.types.is_scalar(value) and pd.isna(value):
                value = None
            elif hasattr(value, "item"):
                # numpy scalars to plain Python values
                value = value.item()
            attributes[column] = value

        style = row[self.style_column] if self.style_column else None
        return Feature(
            fid=idx,
            geometry=row[geometry_column],
            attributes=attributes,
            style=style,
            crs=self.gdf.crs
        )


def _pad_degenerate(bounds: Bounds) -> Bounds:
    """Give single points and axis-aligned lines a sliver of area."""
    pad = max(bounds.width, bounds.height, 1.0) * DEGENERATE_PADDING
    xpad = pad if bounds.width <= 0 else 0.0
    ypad = pad if bounds.height <= 0 else 0.0
    return Bounds(bounds.xmin - xpad, bounds.ymin - ypad, bounds.xmax + xpad, bounds.ymax + ypad)


def apply_filters(gdf: gpd.GeoDataFrame, filters: Dict[str, Any]) -> gpd.GeoDataFrame:
    """Apply attribute filters to a GeoDataFrame."""
    filtered_gdf = gdf

    for column, filter_value in filters.items():
        if column not in filtered_gdf.columns:
            continue

        if isinstance(filter_value, list):
            filtered_gdf = filtered_gdf[filtered_gdf[column].isin(filter_value)]
        elif isinstance(filter_value, dict):
            if "min" in filter_value:
                filtered_gdf = filtered_gdf[filtered_gdf[column] >= filter_value["min"]]
            if "max" in filter_value:
                filtered_gdf = filtered_gdf[filtered_gdf[column] <= filter_value["max"]]
        else:
            filtered_gdf = filtered_gdf[filtered_gdf[column] == filter_value]

    return filtered_gdf


@register_driver("geofile")
def create_geofile_source(options: Dict[str, Any]) -> GeoDataFrameFeatureSource:
    """Load any OGR-readable file (GeoPackage, GeoJSON, Shapefile...)."""
    url = options["url"]
    read_kwargs = {}
    if options.get("layer"):
        read_kwargs["layer"] = options["layer"]
    gdf = gpd.read_file(url, **read_kwargs)
    return GeoDataFrameFeatureSource(
        gdf,
        style_column=options.get("style_column"),
        name=options.get("name", str(url))
    )
