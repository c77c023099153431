"""
Feature Module

Vector feature model, queries, the feature source contract and the
geometry-type coercion applied before rasterization.
"""

from .feature import Feature, GeometryType, clone_as, component_type
from .query import Query
from .feature_source import (
    FeatureCursor,
    FeatureProfile,
    FeatureSource,
    FeatureSourceFactory,
    register_driver,
)
from .geodataframe_source import GeoDataFrameFeatureSource, apply_filters

__all__ = [
    "Feature",
    "FeatureCursor",
    "FeatureProfile",
    "FeatureSource",
    "FeatureSourceFactory",
    "GeoDataFrameFeatureSource",
    "GeometryType",
    "Query",
    "apply_filters",
    "clone_as",
    "component_type",
    "register_driver",
]
