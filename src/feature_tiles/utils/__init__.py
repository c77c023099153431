"""
Shared utilities: layer configuration and logging setup.
"""

from .config import (
    FeatureDisplayLayout,
    FeatureTileSourceOptions,
    load_config,
)
from .logging_config import configure_logging

__all__ = [
    "FeatureDisplayLayout",
    "FeatureTileSourceOptions",
    "configure_logging",
    "load_config",
]
