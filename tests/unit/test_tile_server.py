"""
Unit Tests for the Tile Server

Loads the server script as a module and drives it with FastAPI's
TestClient against an in-memory layer.
"""

import importlib.util
import io
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import Mock

import geopandas as gpd
import pytest
from fastapi.testclient import TestClient
from PIL import Image
from shapely.geometry import Polygon

import sys
sys.path.append(str(Path(__file__).parent.parent.parent / "src"))

from feature_tiles.features import GeoDataFrameFeatureSource
from feature_tiles.styling import Style, StyleSheet
from feature_tiles.tile_generation import FeatureTileSource
from feature_tiles.utils import FeatureTileSourceOptions

SERVER_PATH = Path(__file__).parent.parent.parent / "scripts" / "tile-server.py"


def load_server():
    spec = importlib.util.spec_from_file_location("tile_server", SERVER_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestTileServer(unittest.TestCase):
    """HTTP endpoints."""

    def setUp(self):
        self.server = load_server()
        gdf = gpd.GeoDataFrame(
            {"kind": ["lake"]},
            geometry=[Polygon([(0, 0), (22.5, 0), (22.5, 45), (0, 45)])],
            crs="EPSG:4326",
        )
        sheet = StyleSheet({"water": Style("water", {"fill": "#0000ff"})})
        self.layer = FeatureTileSource(
            FeatureTileSourceOptions(name="lakes", styles=sheet),
            feature_source=GeoDataFrameFeatureSource(gdf),
            metrics=self.server.metrics,
        )
        self.layer.initialize()
        self.server.layer = self.layer
        self.client = TestClient(self.server.app)

    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "healthy")
        self.assertEqual(body["layer"], "lakes")
        self.assertTrue(body["initialized"])

    def test_root(self):
        body = self.client.get("/").json()
        self.assertEqual(body["profile"], "global-geodetic")

    def test_png_tile(self):
        response = self.client.get("/tiles/2/4/1.png")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["content-type"], "image/png")
        tile = Image.open(io.BytesIO(response.content))
        self.assertEqual(tile.size, (256, 256))
        self.assertEqual(tile.mode, "RGBA")
        self.assertEqual(tile.getpixel((64, 128))[2], 255)

    def test_tile_outside_grid(self):
        self.assertEqual(self.client.get("/tiles/0/5/0.png").status_code, 400)

    def test_tile_without_image(self):
        source = Mock()
        source.get_feature_profile.return_value = None
        source.has_embedded_styles.return_value = False
        layer = FeatureTileSource(feature_source=source, rasterizer=Mock())
        layer.initialize()
        self.server.layer = layer

        self.assertEqual(self.client.get("/tiles/0/0/0.png").status_code, 204)

    def test_no_layer(self):
        self.server.layer = None
        self.assertEqual(self.client.get("/tiles/0/0/0.png").status_code, 503)
        self.assertEqual(self.client.get("/health").json()["status"], "degraded")

    def test_bounds(self):
        body = self.client.get("/bounds/1/0/0").json()
        self.assertEqual(body["bbox"], [-180.0, 0.0, -90.0, 90.0])

    def test_metrics(self):
        self.client.get("/tiles/2/4/1.png")
        response = self.client.get("/metrics")
        self.assertEqual(response.status_code, 200)
        self.assertIn('feature_tiles_rendered_total{layer="lakes",status="rendered"}', response.text)


class TestLoadLayer(unittest.TestCase):
    """Layer loading from a YAML file."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.temp_path = Path(self.temp_dir)
        self.server = load_server()

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_load_layer_from_yaml(self):
        gpd.GeoDataFrame(
            {"kind": ["lake"]},
            geometry=[Polygon([(0, 0), (10, 0), (10, 10), (0, 10)])],
            crs="EPSG:4326",
        ).to_file(self.temp_path / "lakes.geojson", driver="GeoJSON")
        config = self.temp_path / "lakes.yaml"
        config.write_text(
            "name: lakes\n"
            "features:\n"
            "  driver: geofile\n"
            "  url: lakes.geojson\n"
            "styles:\n"
            "  styles:\n"
            "    water: {fill: blue}\n"
        )

        layer = self.server.load_layer(str(config))

        self.assertTrue(layer.status.ok)
        self.assertEqual(layer.name, "lakes")
        self.assertIsNotNone(layer.render_tile(layer.profile.tile_key(0, 1, 0)))


if __name__ == "__main__":
    pytest.main([__file__])
