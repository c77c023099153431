"""
Exception types raised by the feature tile pipeline.

Per-tile rendering degrades to empty output instead of raising; these
exceptions cover configuration and addressing mistakes made by callers.
"""


class ConfigurationError(ValueError):
    """Raised when layer configuration is missing or invalid."""


class TileKeyError(ValueError):
    """Raised when a tile address falls outside its tiling profile."""
