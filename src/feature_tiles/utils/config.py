"""
Layer Configuration

Typed, validated configuration for a feature tile layer. Options are
plain dataclasses that validate themselves on construction and convert
to and from the mapping form used in YAML layer files::

    name: roads
    tile_size: 256
    profile: global-geodetic
    geometry_type: line
    features:
      driver: geofile
      url: data/roads.gpkg
    styles:
      styles:
        major: {stroke: "#ffcc00", stroke_width: 3}
      selectors:
        - {style: major, query: {filters: {class: [motorway, trunk]}}}
    layout:
      tile_size_factor: 15.0
      max_range: 2000000
"""

import math
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from ..exceptions import ConfigurationError
from ..features.feature import GeometryType
from ..geo.profile import Profile
from ..styling.style import StyleSheet

DEFAULT_TILE_SIZE = 256
DEFAULT_TILE_SIZE_FACTOR = 15.0


@dataclass(frozen=True)
class FeatureDisplayLayout:
    """Per-layer level-of-detail configuration."""
    tile_size_factor: float = DEFAULT_TILE_SIZE_FACTOR
    min_range: float = 0.0
    max_range: float = math.inf
    levels: Optional[Tuple[int, ...]] = None

    def __post_init__(self):
        if self.tile_size_factor <= 0:
            raise ConfigurationError("tile_size_factor must be positive")
        if self.min_range < 0:
            raise ConfigurationError("min_range must be non-negative")
        if self.max_range < self.min_range:
            raise ConfigurationError("max_range must not be less than min_range")
        if self.levels is not None and any(level < 0 for level in self.levels):
            raise ConfigurationError("layout levels must be non-negative")

    @classmethod
    def from_config(cls, conf: Optional[Dict[str, Any]]) -> Optional["FeatureDisplayLayout"]:
        if conf is None:
            return None
        if not isinstance(conf, dict):
            raise ConfigurationError("Layout configuration must be a mapping")
        levels = conf.get("levels")
        try:
            tile_size_factor = float(conf.get("tile_size_factor", DEFAULT_TILE_SIZE_FACTOR))
            min_range = float(conf.get("min_range", 0.0))
            max_range = float(conf.get("max_range", math.inf))
            if levels is not None:
                levels = tuple(int(level) for level in levels)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid layout configuration: {e}") from e

        return cls(
            tile_size_factor=tile_size_factor,
            min_range=min_range,
            max_range=max_range,
            levels=levels,
        )

    def to_config(self) -> Dict[str, Any]:
        conf: Dict[str, Any] = {"tile_size_factor": self.tile_size_factor}
        if self.min_range > 0:
            conf["min_range"] = self.min_range
        if math.isfinite(self.max_range):
            conf["max_range"] = self.max_range
        if self.levels is not None:
            conf["levels"] = list(self.levels)
        return conf



@dataclass
class FeatureTileSourceOptions:
    """Configuration for one feature tile layer."""
    name: str = "features"
    features: Optional[Dict[str, Any]] = None
    styles: Optional[StyleSheet] = None
    layout: Optional[FeatureDisplayLayout] = None
    geometry_type: Optional[GeometryType] = None
    tile_size: int = DEFAULT_TILE_SIZE
    profile: Optional[Profile] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if isinstance(self.geometry_type, str):
            self.geometry_type = GeometryType.parse(self.geometry_type)
        if self.geometry_type == GeometryType.UNKNOWN:
            self.geometry_type = None
        if not isinstance(self.tile_size, int) or self.tile_size <= 0:
            raise ConfigurationError(f"tile_size must be a positive integer, got {self.tile_size!r}")

    @classmethod
    def from_config(cls, conf: Optional[Dict[str, Any]]) -> "FeatureTileSourceOptions":
        """
        Build options from a configuration mapping.

        Unknown keys are preserved in ``extra`` so they survive a
        ``to_config`` round trip.

        Raises:
            ConfigurationError: If any value is invalid
        """
        conf = dict(conf or {})
        known = {"name", "features", "styles", "layout", "geometry_type", "tile_size", "profile"}

        try:
            tile_size = int(conf.get("tile_size", DEFAULT_TILE_SIZE))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid tile_size: {conf.get('tile_size')!r}") from e

        features = conf.get("features")
        if features is not None and not isinstance(features, dict):
            raise ConfigurationError("'features' must be a mapping of driver options")

        styles = conf.get("styles")
        profile = conf.get("profile")

        return cls(
            name=str(conf.get("name", "features")),
            features=dict(features) if features is not None else None,
            styles=StyleSheet.from_config(styles) if styles is not None else None,
            layout=FeatureDisplayLayout.from_config(conf.get("layout")),
            geometry_type=GeometryType.parse(conf.get("geometry_type")),
            tile_size=tile_size,
            profile=Profile.from_config(profile) if profile is not None else None,
            extra={k: v for k, v in conf.items() if k not in known},
        )

    def merge_config(self, conf: Dict[str, Any]) -> "FeatureTileSourceOptions":
        """Return new options with the keys set in ``conf`` taking precedence."""
        merged = self.to_config()
        merged.update(conf or {})
        return FeatureTileSourceOptions.from_config(merged)

    def to_config(self) -> Dict[str, Any]:
        conf: Dict[str, Any] = dict(self.extra)
        conf["name"] = self.name
        conf["tile_size"] = self.tile_size
        if self.features is not None:
            conf["features"] = dict(self.features)
        if self.styles is not None:
            conf["styles"] = self.styles.to_config()
        if self.layout is not None:
            conf["layout"] = self.layout.to_config()
        if self.geometry_type is not None:
            conf["geometry_type"] = self.geometry_type.config_name
        if self.profile is not None:
            conf["profile"] = self.profile.to_config()
        return conf

    def with_features(self, features: Dict[str, Any]) -> "FeatureTileSourceOptions":
        return replace(self, features=dict(features))


def load_config(path: Union[str, Path]) -> FeatureTileSourceOptions:
    """
    Load layer options from a YAML file.

    Relative ``features.url`` paths are resolved against the file's directory.

    Args:
        path: Path to the YAML layer file

    Returns:
        Parsed layer options

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            conf = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if conf is None:
        conf = {}
    if not isinstance(conf, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping")

    features = conf.get("features")
    if isinstance(features, dict) and features.get("url"):
        url = Path(features["url"])
        if not url.is_absolute():
            conf["features"] = dict(features, url=str(path.parent / url))

    return FeatureTileSourceOptions.from_config(conf)
