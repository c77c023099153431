"""
Pillow Rasterizer

Paints styled features onto an RGBA Pillow canvas and composites the
canvas into the tile buffer during post-processing.

Style symbols understood:

- ``fill``: polygon fill colour
- ``stroke``: line and polygon outline colour
- ``stroke_width``: outline/line width in pixels
- ``point_size``: point marker diameter in pixels

Colours are anything ``PIL.ImageColor.getrgb`` accepts, or RGB/RGBA lists.
Features that carry a CRS are reprojected into the tile extent's CRS before
drawing; features without one are assumed to already match it.
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np
import shapely
import structlog
from PIL import Image, ImageColor, ImageDraw
from pyproj.exceptions import ProjError
from shapely.geometry.base import BaseGeometry

from .rasterizer import IMAGE_DTYPE
from ..features.feature import Feature
from ..geo.extent import Bounds, GeoExtent, get_transformer, same_crs, to_crs
from ..styling.style import Style

RGBA = Tuple[int, int, int, int]

DEFAULT_FILL: RGBA = (255, 255, 255, 128)
DEFAULT_STROKE: RGBA = (255, 255, 255, 255)
DEFAULT_STROKE_WIDTH = 1
DEFAULT_POINT_SIZE = 4


def parse_color(value: Any, default: Optional[RGBA]) -> Optional[RGBA]:
    """Normalise a configured colour to an RGBA tuple."""
    if value is None:
        return default
    if isinstance(value, str):
        rgb = ImageColor.getrgb(value)
    else:
        rgb = tuple(int(v) for v in value)
    if len(rgb) == 3:
        return (rgb[0], rgb[1], rgb[2], 255)
    if len(rgb) == 4:
        return (rgb[0], rgb[1], rgb[2], rgb[3])
    raise ValueError(f"Invalid colour: {value!r}")


@dataclass
class PillowBuildData:
    """Canvas and counters for one tile."""
    canvas: Image.Image
    draw: ImageDraw.ImageDraw
    features_drawn: int = 0
    groups_rendered: int = 0


class PillowRasterizer:
    """Rasterizer drawing with ``PIL.ImageDraw``."""

    def __init__(self, tile_size: int = 256, background: Optional[Any] = None):
        self.tile_size = tile_size
        self.background = parse_color(background, (0, 0, 0, 0))
        self.logger = structlog.get_logger(rasterizer_type="PillowRasterizer")

    def create_build_data(self) -> PillowBuildData:
        canvas = Image.new("RGBA", (self.tile_size, self.tile_size), self.background)
        return PillowBuildData(canvas=canvas, draw=ImageDraw.Draw(canvas, "RGBA"))

    def pre_process(self, image: np.ndarray, build_data: PillowBuildData) -> bool:
        image[...] = 0
        return True

    def render_features_for_style(
        self,
        style: Style,
        features: List[Feature],
        build_data: PillowBuildData,
        extent: GeoExtent,
        image: np.ndarray
    ) -> bool:
        """
        Draw one style group onto the tile canvas.

        Args:
            style: Symbology for every feature in the group
            features: Features to draw
            build_data: Tile-scoped canvas
            extent: Tile extent, used for world-to-pixel mapping
            image: Tile buffer (written in post-processing)

        Returns:
            True if the group was drawn
        """
        if not extent.is_valid():
            return False

        width, height = build_data.canvas.size
        to_pixels = _pixel_mapper(extent.bounds, width, height)

        fill = parse_color(style.get("fill"), DEFAULT_FILL)
        stroke = parse_color(style.get("stroke"), DEFAULT_STROKE)
        stroke_width = int(float(style.get("stroke_width", DEFAULT_STROKE_WIDTH)))
        point_size = float(style.get("point_size", DEFAULT_POINT_SIZE))

        for feature in features:
            geometry = self._to_extent_crs(feature, extent)
            if geometry is None or geometry.is_empty:
                continue
            self._draw_geometry(
                build_data, geometry, to_pixels,
                fill, stroke, stroke_width, point_size
            )
            build_data.features_drawn += 1

        build_data.groups_rendered += 1
        return True

    def post_process(self, image: np.ndarray, build_data: PillowBuildData) -> bool:
        canvas = build_data.canvas
        height, width = image.shape[:2]
        if canvas.size != (width, height):
            canvas = canvas.resize((width, height), Image.Resampling.BILINEAR)
        image[...] = np.asarray(canvas, dtype=IMAGE_DTYPE)
        self.logger.debug(
            "Tile composited",
            features_drawn=build_data.features_drawn,
            groups_rendered=build_data.groups_rendered
        )
        return True

    def _to_extent_crs(self, feature: Feature, extent: GeoExtent) -> Optional[BaseGeometry]:
        geometry = feature.geometry
        if geometry is None or feature.crs is None:
            return geometry
        source = to_crs(feature.crs)
        if same_crs(source, extent.crs):
            return geometry
        try:
            transformer = get_transformer(source, extent.crs)
            return shapely.transform(geometry, transformer.transform, interleaved=False)
        except ProjError as e:
            self.logger.warning("Feature reprojection failed", fid=feature.fid, error=str(e))
            return None

    def _draw_geometry(
        self,
        build_data: PillowBuildData,
        geometry: BaseGeometry,
        to_pixels,
        fill: RGBA,
        stroke: RGBA,
        stroke_width: int,
        point_size: float
    ) -> None:
        geom_type = geometry.geom_type

        if geom_type.startswith("Multi") or geom_type == "GeometryCollection":
            for part in geometry.geoms:
                self._draw_geometry(build_data, part, to_pixels, fill, stroke, stroke_width, point_size)

        elif geom_type == "Polygon":
            self._fill_polygon(build_data, geometry, to_pixels, fill)
            for ring in [geometry.exterior, *geometry.interiors]:
                path = to_pixels(ring.coords)
                if len(path) >= 2:
                    build_data.draw.line(path, fill=stroke, width=max(1, stroke_width))

        elif geom_type in ("LineString", "LinearRing"):
            path = to_pixels(geometry.coords)
            if len(path) >= 2:
                build_data.draw.line(path, fill=stroke, width=max(1, stroke_width))

        elif geom_type == "Point":
            (x, y), = to_pixels(geometry.coords)
            r = point_size / 2.0
            build_data.draw.ellipse([x - r, y - r, x + r, y + r], fill=stroke)

    def _fill_polygon(
        self,
        build_data: PillowBuildData,
        polygon: BaseGeometry,
        to_pixels,
        fill: RGBA
    ) -> None:
        exterior = to_pixels(polygon.exterior.coords)
        if len(exterior) < 3 or fill[3] == 0:
            return

        # Holes are cut out of a coverage mask so they stay transparent
        mask = Image.new("L", build_data.canvas.size, 0)
        mask_draw = ImageDraw.Draw(mask)
        mask_draw.polygon(exterior, fill=255)
        for interior in polygon.interiors:
            ring = to_pixels(interior.coords)
            if len(ring) >= 3:
                mask_draw.polygon(ring, fill=0)

        overlay = Image.new("RGBA", build_data.canvas.size, (0, 0, 0, 0))
        overlay.paste(Image.new("RGBA", build_data.canvas.size, fill), (0, 0), mask)
        build_data.canvas.alpha_composite(overlay)


def _pixel_mapper(bounds: Bounds, width: int, height: int):
    """World-to-pixel transform for a tile; pixel rows grow southwards."""
    sx = width / bounds.width
    sy = height / bounds.height

    def to_pixels(coords: Sequence[Sequence[float]]) -> List[Tuple[float, float]]:
        return [
            ((c[0] - bounds.xmin) * sx, (bounds.ymax - c[1]) * sy)
            for c in coords
        ]

    return to_pixels
