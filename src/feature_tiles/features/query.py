"""
Feature Queries

A query combines an optional spatial bounds filter, an optional tile key
hint and optional attribute filters. Queries are treated as values: the
``with_*``/``merge_*`` helpers return modified copies.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

from ..exceptions import ConfigurationError
from ..geo.extent import Bounds


@dataclass(frozen=True)
class Query:
    """Spatial and attribute filter handed to a feature source."""
    bounds: Optional[Bounds] = None
    tile_key: Optional[Any] = None
    filters: Dict[str, Any] = field(default_factory=dict)

    def with_bounds(self, bounds: Optional[Bounds]) -> "Query":
        return replace(self, bounds=bounds)

    def with_tile_key(self, tile_key: Any) -> "Query":
        return replace(self, tile_key=tile_key)

    def merge_bounds(self, bounds: Bounds) -> "Query":
        """
        Fold new bounds into this query.

        Existing bounds are widened to also cover ``bounds``; they are
        never replaced outright.
        """
        if self.bounds is not None and self.bounds.is_valid():
            return replace(self, bounds=self.bounds.union_with(bounds))
        return replace(self, bounds=bounds)

    @classmethod
    def from_config(cls, conf: Optional[Dict[str, Any]]) -> "Query":
        if not conf:
            return cls()
        bounds = conf.get("bounds")
        filters = conf.get("filters") or {}
        if not isinstance(filters, dict):
            raise ConfigurationError("Query filters must be a mapping")
        try:
            parsed = Bounds.from_sequence(bounds) if bounds is not None else None
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid query bounds {bounds!r}: {e}") from e
        return cls(bounds=parsed, filters=dict(filters))

    def to_config(self) -> Dict[str, Any]:
        conf: Dict[str, Any] = {}
        if self.bounds is not None:
            conf["bounds"] = list(self.bounds.as_tuple())
        if self.filters:
            conf["filters"] = dict(self.filters)
        return conf
