"""
Styling Module

Style sheets, named styles and the selectors that map features to styles.
"""

from .style import Style, StyleSelector, StyleSheet

__all__ = [
    "Style",
    "StyleSelector",
    "StyleSheet",
]
