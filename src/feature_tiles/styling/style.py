"""
Styles and Style Sheets

A ``Style`` is a named bundle of symbology. The tile pipeline treats it as
opaque apart from its name; interpreting the symbols is the rasterizer's
job. A ``StyleSheet`` holds named styles, an ordered list of selectors
pairing a style name with a sub-query, and a designated default style.

Configuration shape::

    styles:
      roads: {stroke: "#ff8800", stroke_width: 2}
      water: {fill: "#3366ccaa"}
    selectors:
      - {style: roads, query: {filters: {kind: road}}}
      - {style: water, query: {filters: {kind: [lake, river]}}}
    default: roads
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..exceptions import ConfigurationError
from ..features.query import Query


@dataclass(frozen=True)
class Style:
    """Named symbology bundle."""
    name: str = ""
    symbols: Dict[str, Any] = field(default_factory=dict)

    @property
    def empty(self) -> bool:
        return not self.symbols

    def get(self, key: str, default: Any = None) -> Any:
        return self.symbols.get(key, default)

    @classmethod
    def from_config(cls, conf: Any, name: str = "") -> "Style":
        if conf is None:
            return cls(name=name)
        if isinstance(conf, Style):
            return conf
        if not isinstance(conf, dict):
            raise ConfigurationError(f"Style {name!r} must be a mapping, got {type(conf).__name__}")
        symbols = dict(conf)
        name = symbols.pop("name", name)
        return cls(name=name, symbols=symbols)

    def to_config(self) -> Dict[str, Any]:
        return dict(self.symbols)


@dataclass(frozen=True)
class StyleSelector:
    """Pairs a style name with the sub-query selecting its features."""
    style_name: str
    query: Query = field(default_factory=Query)
    name: Optional[str] = None

    @classmethod
    def from_config(cls, conf: Dict[str, Any]) -> "StyleSelector":
        if not isinstance(conf, dict) or not conf.get("style"):
            raise ConfigurationError(f"Style selector requires a 'style' name: {conf!r}")
        return cls(
            style_name=str(conf["style"]),
            query=Query.from_config(conf.get("query")),
            name=conf.get("name"),
        )

    def to_config(self) -> Dict[str, Any]:
        conf: Dict[str, Any] = {"style": self.style_name}
        query = self.query.to_config()
        if query:
            conf["query"] = query
        if self.name:
            conf["name"] = self.name
        return conf


class StyleSheet:
    """
    Collection of named styles plus selection rules.

    When selectors are present they govern rendering; the default style is
    used only for sheets without selectors.
    """

    def __init__(
        self,
        styles: Optional[Dict[str, Style]] = None,
        selectors: Optional[List[StyleSelector]] = None,
        default_style_name: Optional[str] = None
    ):
        self._styles: Dict[str, Style] = dict(styles or {})
        self._selectors: List[StyleSelector] = list(selectors or [])
        self.default_style_name = default_style_name

    @property
    def styles(self) -> Dict[str, Style]:
        return dict(self._styles)

    @property
    def selectors(self) -> List[StyleSelector]:
        return list(self._selectors)

    def add_style(self, style: Style) -> None:
        self._styles[style.name] = style

    def add_selector(self, selector: StyleSelector) -> None:
        self._selectors.append(selector)

    def get_style(self, name: str) -> Optional[Style]:
        return self._styles.get(name)

    def get_default_style(self) -> Style:
        """
        The sheet's default style.

        Resolution order: the explicitly named default, a style called
        ``default``, the first style declared, and finally an empty style.
        """
        if self.default_style_name and self.default_style_name in self._styles:
            return self._styles[self.default_style_name]
        if "default" in self._styles:
            return self._styles["default"]
        if self._styles:
            return next(iter(self._styles.values()))
        return Style()

    def validate(self) -> List[str]:
        """Names referenced by selectors that the sheet does not define."""
        missing = {
            selector.style_name
            for selector in self._selectors
            if selector.style_name not in self._styles
        }
        if self.default_style_name and self.default_style_name not in self._styles:
            missing.add(self.default_style_name)
        return sorted(missing)

    @classmethod
    def from_config(cls, conf: Optional[Dict[str, Any]]) -> "StyleSheet":
        if conf is None:
            return cls()
        if not isinstance(conf, dict):
            raise ConfigurationError("Style sheet configuration must be a mapping")

        styles_conf = conf.get("styles") or {}
        if not isinstance(styles_conf, dict):
            raise ConfigurationError("'styles' must map style names to symbols")

        sheet = cls(default_style_name=conf.get("default"))
        for name, symbols in styles_conf.items():
            sheet.add_style(Style.from_config(symbols, name=name))
        for selector_conf in conf.get("selectors") or []:
            sheet.add_selector(StyleSelector.from_config(selector_conf))
        return sheet

    def to_config(self) -> Dict[str, Any]:
        conf: Dict[str, Any] = {
            "styles": {name: style.to_config() for name, style in self._styles.items()}
        }
        if self._selectors:
            conf["selectors"] = [s.to_config() for s in self._selectors]
        if self.default_style_name:
            conf["default"] = self.default_style_name
        return conf

    def __repr__(self) -> str:
        return (
            f"StyleSheet(styles={list(self._styles)}, "
            f"selectors={len(self._selectors)}, default={self.default_style_name!r})"
        )
