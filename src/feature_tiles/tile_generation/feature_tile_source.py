"""
Feature Tile Source

Renders vector features into raster tiles. For each tile key the source
works out which features intersect the tile, decides how they are styled,
optionally coerces their geometry type, and hands each style group to a
pluggable rasterizer that paints into a fresh RGBA buffer.

Styling follows exactly one of four modes per tile:

- embedded: the feature source carries per-feature styles; each feature
  is rendered on its own with its own style
- selectors: the style sheet declares selectors; each selector's
  sub-query is evaluated and rendered with the selector's style
- default: the style sheet has no selectors; its default style applies
- none: no style sheet; an empty style is passed to the rasterizer

Rendering never raises for sparse data or failed reprojection; a tile
with nothing to draw is still allocated and post-processed. The only hard
failure is initializing a layer without a feature source.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Iterator, List, Optional, Tuple

import numpy as np
import structlog

from .extent_intersector import build_style_query, compute_query_extent
from .lod_gate import lod_gate_for
from .pillow_rasterizer import PillowRasterizer
from .rasterizer import Rasterizer, allocate_image
from ..features.feature import Feature, clone_as, component_type
from ..features.feature_source import FeatureSource, FeatureSourceFactory
from ..features.query import Query
from ..geo.extent import GeoExtent
from ..geo.profile import Profile, TileKey
from ..monitoring.metrics import MetricsCollector
from ..styling.style import Style
from ..utils.config import FeatureTileSourceOptions

NO_FEATURE_SOURCE = "No FeatureSource provided; nothing will be rendered"


class LayerState(Enum):
    """Lifecycle of a feature tile layer."""
    UNCONFIGURED = "unconfigured"
    INITIALIZED = "initialized"


class StyleMode(Enum):
    """How features are styled for a tile."""
    EMBEDDED = "embedded"
    SELECTORS = "selectors"
    DEFAULT = "default"
    NONE = "none"


@dataclass(frozen=True)
class Status:
    """Outcome of a layer operation."""
    ok: bool
    message: str = ""
    warnings: Tuple[str, ...] = ()

    @classmethod
    def success(cls, warnings: Iterable[str] = ()) -> "Status":
        return cls(ok=True, warnings=tuple(warnings))

    @classmethod
    def error(cls, message: str) -> "Status":
        return cls(ok=False, message=message)

    def __bool__(self) -> bool:
        return self.ok


class FeatureTileSource:
    """
    Tile source that rasterizes features from a feature source.

    A layer is configured once: the feature source can be replaced until
    ``initialize`` succeeds, after which the configuration is read-only and
    ``render_tile`` may be called concurrently from several threads.
    """

    def __init__(
        self,
        options: Optional[FeatureTileSourceOptions] = None,
        feature_source: Optional[FeatureSource] = None,
        rasterizer: Optional[Rasterizer] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        """
        Create a feature tile layer.

        Args:
            options: Layer configuration
            feature_source: Explicit feature source; when omitted one is
                created from ``options.features``
            rasterizer: Rasterizer hooks; defaults to ``PillowRasterizer``
            metrics: Optional metrics collector
        """
        self.options = options or FeatureTileSourceOptions()
        self.rasterizer = rasterizer or PillowRasterizer(tile_size=self.options.tile_size)
        self.metrics = metrics
        self.profile: Optional[Profile] = self.options.profile
        self.data_extents: List[GeoExtent] = []
        self.state = LayerState.UNCONFIGURED
        self.status: Optional[Status] = None

        self.logger = structlog.get_logger(
            component="FeatureTileSource",
            layer=self.options.name
        )

        self._features: Optional[FeatureSource] = feature_source
        if self._features is None and self.options.features:
            self._features = FeatureSourceFactory.create(self.options.features)
            if self._features is None:
                self.logger.warning("Failed to create FeatureSource from options")

        layout = self.options.layout
        self._lod_gate = lod_gate_for(layout) if layout is not None else None

    @property
    def feature_source(self) -> Optional[FeatureSource]:
        return self._features

    @property
    def name(self) -> str:
        return self.options.name

    def initialize(self, options: Optional[dict] = None) -> Status:
        """
        Prepare the layer for rendering.

        Defaults the output profile to global geodetic, initializes the
        feature source and records its data extent, and validates the style
        sheet. Selector style names missing from the sheet are reported as
        status warnings; those selectors render nothing.

        Args:
            options: Passed through to the feature source's ``initialize``

        Returns:
            Success status (possibly with warnings), or an error status if
            no usable feature source is attached
        """
        if self.state is LayerState.INITIALIZED:
            return self.status

        if self.profile is None:
            self.profile = Profile.global_geodetic()

        if self._features is None:
            self.logger.error("Layer initialization failed", reason=NO_FEATURE_SOURCE)
            self.status = Status.error(NO_FEATURE_SOURCE)
            return self.status

        try:
            self._features.initialize(options)
        except (OSError, RuntimeError, ValueError) as e:
            message = f"FeatureSource failed to initialize: {e}"
            self.logger.error("Layer initialization failed", reason=message)
            self.status = Status.error(message)
            return self.status

        feature_profile = self._features.get_feature_profile()
        if feature_profile is not None:
            if feature_profile.profile is not None:
                self.data_extents.append(feature_profile.profile.extent)
            elif feature_profile.extent.is_valid():
                self.data_extents.append(feature_profile.extent)

        warnings = []
        styles = self.options.styles
        if styles is not None:
            for missing in styles.validate():
                warnings.append(f"Style '{missing}' is referenced but not defined")
            if warnings:
                self.logger.warning("Style sheet references undefined styles", problems=warnings)

        self.state = LayerState.INITIALIZED
        self.status = Status.success(warnings)

        if self.metrics:
            self.metrics.set_gauge('feature_tile_layers_initialized', 1)

        self.logger.info(
            "Layer initialized",
            profile=self.profile.name,
            data_extents=len(self.data_extents),
            style_mode=self.style_mode().value
        )
        return self.status

    def set_feature_source(self, source: FeatureSource) -> Status:
        """
        Bind a feature source. Only allowed before initialization.

        Returns:
            Success, or an error status (and a logged warning) if the layer
            is already initialized, in which case the current source stays
        """
        if self.state is LayerState.INITIALIZED:
            message = "Illegal: cannot set FeatureSource after initialization"
            self.logger.warning(message)
            return Status.error(message)

        self._features = source
        return Status.success()

    def style_mode(self) -> StyleMode:
        """Which styling mode applies to every tile of this layer."""
        if self._features is not None and self._features.has_embedded_styles():
            return StyleMode.EMBEDDED
        styles = self.options.styles
        if styles is None:
            return StyleMode.NONE
        if styles.selectors:
            return StyleMode.SELECTORS
        return StyleMode.DEFAULT

    def render_tile(self, key: TileKey, progress: Optional[Any] = None) -> Optional[np.ndarray]:
        """
        Render one tile.

        Args:
            key: Tile to render
            progress: Optional object with ``is_canceled()``; once it reports
                cancellation no further style groups are dispatched

        Returns:
            A ``(tile_size, tile_size, 4)`` uint8 RGBA array owned by the
            caller, or None when the layer has nothing it could draw
        """
        if self.state is not LayerState.INITIALIZED:
            return None
        if self._features is None or self._features.get_feature_profile() is None:
            return None

        start_time = time.perf_counter()
        log = self.logger.bind(tile_id=key.tile_id)

        build_data = self.rasterizer.create_build_data()
        image = allocate_image(self.options.tile_size)

        self.rasterizer.pre_process(image, build_data)

        rendered = self._lod_gate is None or self._lod_gate(key)
        if rendered:
            self._render_styles(build_data, key, image, progress)
        else:
            log.debug("Tile suppressed by level-of-detail gate", level=key.level)

        # final tile processing after all styles are done
        self.rasterizer.post_process(image, build_data)

        if self.metrics:
            self.metrics.increment_counter(
                'feature_tiles_rendered',
                labels={'layer': self.name, 'status': 'rendered' if rendered else 'suppressed'}
            )
            self.metrics.record_timing(
                'feature_tile_render_duration_seconds',
                time.perf_counter() - start_time,
                labels={'layer': self.name, 'level': str(key.level)}
            )

        return image

    create_image = render_tile

    def _render_styles(
        self,
        build_data: Any,
        key: TileKey,
        image: np.ndarray,
        progress: Optional[Any]
    ) -> None:
        image_extent = key.extent
        query = Query(tile_key=key)
        mode = self.style_mode()

        if mode is StyleMode.EMBEDDED:
            query_extent = compute_query_extent(
                self._features.get_feature_profile().extent, image_extent
            )
            if query_extent is None:
                return
            cursor = self._features.create_feature_cursor(build_style_query(query, query_extent))
            for feature in self._coerce_features(cursor):
                if _canceled(progress):
                    break
                self._render_group(
                    _embedded_style(feature), [feature], build_data, image_extent, image
                )

        elif mode is StyleMode.SELECTORS:
            styles = self.options.styles
            for selector in styles.selectors:
                if _canceled(progress):
                    break
                style = styles.get_style(selector.style_name)
                if style is None:
                    # reported once by initialize()
                    continue
                self.query_and_render_features_for_style(
                    style, selector.query.with_tile_key(key), build_data, image_extent, image
                )

        elif mode is StyleMode.DEFAULT:
            self.query_and_render_features_for_style(
                self.options.styles.get_default_style(), query, build_data, image_extent, image
            )

        else:
            self.query_and_render_features_for_style(
                Style(), query, build_data, image_extent, image
            )

    def query_and_render_features_for_style(
        self,
        style: Style,
        query: Query,
        build_data: Any,
        image_extent: GeoExtent,
        image: np.ndarray
    ) -> bool:
        """
        Query the features for one style group and render them.

        The query is narrowed to the part of the tile covered by the feature
        source; its own bounds, if any, are widened to include that region.

        Returns:
            False when the tile does not overlap the feature data or the
            rasterizer reports failure
        """
        features_extent = self._features.get_feature_profile().extent
        query_extent = compute_query_extent(features_extent, image_extent)
        if query_extent is None:
            return False

        local_query = build_style_query(query, query_extent)
        cursor = self._features.create_feature_cursor(local_query)
        cell_features = list(self._coerce_features(cursor))

        self.logger.debug(
            "Rendering features",
            style=style.name,
            feature_count=len(cell_features),
            query_bounds=local_query.bounds.as_tuple()
        )

        return self._render_group(style, cell_features, build_data, image_extent, image)

    def _coerce_features(self, cursor: Iterable[Feature]) -> Iterator[Feature]:
        """Apply the geometry type override, dropping features that cannot convert."""
        override = self.options.geometry_type
        dropped = 0

        for feature in cursor:
            geometry = feature.geometry
            if geometry is not None and override is not None and override != component_type(geometry):
                geometry = clone_as(geometry, override)
                if geometry is not None:
                    feature.set_geometry(geometry)
            if geometry is not None:
                yield feature
            else:
                dropped += 1

        if dropped and self.metrics:
            self.metrics.increment_counter(
                'feature_tiles_features_dropped', dropped, labels={'layer': self.name}
            )

    def _render_group(
        self,
        style: Style,
        features: List[Feature],
        build_data: Any,
        image_extent: GeoExtent,
        image: np.ndarray
    ) -> bool:
        try:
            ok = self.rasterizer.render_features_for_style(
                style, features, build_data, image_extent, image
            )
        except Exception as e:
            self.logger.error(
                "Rasterizer failed for style group",
                style=style.name,
                feature_count=len(features),
                error=str(e),
                exc_info=True
            )
            return False

        if self.metrics and features:
            self.metrics.increment_counter(
                'feature_tiles_features', len(features), labels={'layer': self.name}
            )
        return bool(ok)


def _canceled(progress: Optional[Any]) -> bool:
    return progress is not None and progress.is_canceled()


def _embedded_style(feature: Feature) -> Style:
    style = feature.style
    if isinstance(style, Style):
        return style
    if isinstance(style, dict):
        return Style.from_config(style)
    if isinstance(style, str) and style:
        return Style(name=style)
    return Style()
