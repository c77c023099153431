"""
Feature Source Contract

A feature source answers spatial/attribute queries with a lazy cursor over
matching features. The tile pipeline only relies on the small contract
defined here; storage and query execution belong to the implementation.

Sources are created either directly or through ``FeatureSourceFactory``
from a driver options mapping, e.g.::

    {"driver": "geofile", "url": "data/roads.gpkg", "layer": "roads"}
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, Optional, Protocol, runtime_checkable

import structlog

from .feature import Feature
from .query import Query
from ..geo.extent import GeoExtent

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class FeatureProfile:
    """Overall extent of a source's data plus an optional tiling profile."""
    extent: GeoExtent
    profile: Optional[Any] = None


class FeatureCursor:
    """
    Forward-only cursor over query results.

    Wraps any iterable lazily with a one-item look-ahead so ``has_more``
    can answer without consuming a feature.
    """

    _DONE = object()

    def __init__(self, features: Iterable[Feature]):
        self._iterator = iter(features)
        self._next = self._advance()

    def _advance(self) -> Any:
        return next(self._iterator, self._DONE)

    def has_more(self) -> bool:
        return self._next is not self._DONE

    def next_feature(self) -> Feature:
        if self._next is self._DONE:
            raise StopIteration
        feature = self._next
        self._next = self._advance()
        return feature

    def __iter__(self) -> Iterator[Feature]:
        while self.has_more():
            yield self.next_feature()


@runtime_checkable
class FeatureSource(Protocol):
    """Contract every feature source satisfies."""

    def initialize(self, options: Optional[Dict[str, Any]] = None) -> None:
        ...

    def get_feature_profile(self) -> Optional[FeatureProfile]:
        ...

    def has_embedded_styles(self) -> bool:
        ...

    def create_feature_cursor(self, query: Query) -> FeatureCursor:
        ...


_DRIVERS: Dict[str, Callable[[Dict[str, Any]], FeatureSource]] = {}


def register_driver(name: str):
    """Register a factory function for a feature source driver name."""
    def decorator(func: Callable[[Dict[str, Any]], FeatureSource]):
        _DRIVERS[name.lower()] = func
        return func
    return decorator


class FeatureSourceFactory:
    """Builds feature sources from driver option mappings."""

    @staticmethod
    def drivers() -> Iterable[str]:
        return sorted(_DRIVERS)

    @staticmethod
    def create(options: Optional[Dict[str, Any]]) -> Optional[FeatureSource]:
        """
        Create a feature source from driver options.

        Args:
            options: Mapping with at least a ``driver`` key

        Returns:
            The feature source, or None if the driver is unknown or the
            source could not be created
        """
        if not options:
            return None

        driver = str(options.get("driver", "")).lower()
        factory = _DRIVERS.get(driver)
        if factory is None:
            logger.warning(
                "Unknown feature source driver",
                driver=driver,
                available=list(FeatureSourceFactory.drivers()),
            )
            return None

        try:
            return factory(options)
        except (OSError, RuntimeError, ValueError, KeyError) as e:
            logger.warning(
                "Failed to create feature source from options",
                driver=driver,
                error=str(e),
            )
            return None
