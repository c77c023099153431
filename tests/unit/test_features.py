"""
Unit Tests for the Feature Model and GeoDataFrame Feature Source

Covers geometry type parsing and coercion, queries, cursors, the
GeoDataFrame-backed source and the driver factory.
"""

import shutil
import tempfile
import unittest
from pathlib import Path

import geopandas as gpd
import pytest
from shapely.geometry import (
    GeometryCollection,
    LineString,
    MultiLineString,
    MultiPoint,
    MultiPolygon,
    Point,
    Polygon,
)

import sys
sys.path.append(str(Path(__file__).parent.parent.parent / "src"))

from feature_tiles.exceptions import ConfigurationError
from feature_tiles.features import (
    Feature,
    FeatureCursor,
    FeatureSource,
    FeatureSourceFactory,
    GeoDataFrameFeatureSource,
    GeometryType,
    Query,
    apply_filters,
    clone_as,
    component_type,
)
from feature_tiles.geo import Bounds


class TestGeometryType(unittest.TestCase):
    """Parsing of geometry type overrides."""

    def test_parse_synonyms(self):
        for text in ("line", "lines", "linestring", "LineString"):
            self.assertEqual(GeometryType.parse(text), GeometryType.LINESTRING)
        for text in ("point", "points", "pointset"):
            self.assertEqual(GeometryType.parse(text), GeometryType.POINTSET)
        for text in ("polygon", "Polygons"):
            self.assertEqual(GeometryType.parse(text), GeometryType.POLYGON)

    def test_parse_unrecognised_means_no_override(self):
        self.assertIsNone(GeometryType.parse("triangle"))
        self.assertIsNone(GeometryType.parse(None))

    def test_config_name_round_trip(self):
        for gtype in (GeometryType.POINTSET, GeometryType.LINESTRING, GeometryType.POLYGON):
            self.assertEqual(GeometryType.parse(gtype.config_name), gtype)
        self.assertIsNone(GeometryType.UNKNOWN.config_name)


class TestGeometryCoercion(unittest.TestCase):
    """clone_as conversions."""

    def setUp(self):
        self.square = Polygon([(0, 0), (1, 0), (1, 1), (0, 1)])
        self.line = LineString([(0, 0), (1, 0), (1, 1)])
        self.point = Point(0.5, 0.5)

    def test_component_types(self):
        self.assertEqual(component_type(self.point), GeometryType.POINTSET)
        self.assertEqual(component_type(MultiLineString([self.line])), GeometryType.LINESTRING)
        self.assertEqual(component_type(self.square), GeometryType.POLYGON)
        self.assertEqual(component_type(None), GeometryType.UNKNOWN)
        self.assertEqual(
            component_type(GeometryCollection([self.line, self.point])),
            GeometryType.LINESTRING
        )

    def test_same_type_is_unchanged(self):
        self.assertIs(clone_as(self.line, GeometryType.LINESTRING), self.line)

    def test_polygon_to_line_uses_boundary(self):
        result = clone_as(self.square, GeometryType.LINESTRING)
        self.assertEqual(component_type(result), GeometryType.LINESTRING)
        self.assertTrue(result.equals(self.square.boundary))

    def test_point_to_line_fails(self):
        self.assertIsNone(clone_as(self.point, GeometryType.LINESTRING))
        self.assertIsNone(clone_as(self.point, GeometryType.POLYGON))

    def test_anything_to_points(self):
        result = clone_as(self.square, GeometryType.POINTSET)
        self.assertIsInstance(result, MultiPoint)
        self.assertEqual(len(result.geoms), 5)

    def test_line_to_polygon(self):
        result = clone_as(self.line, GeometryType.POLYGON)
        self.assertEqual(component_type(result), GeometryType.POLYGON)
        self.assertAlmostEqual(result.area, 0.5)

    def test_short_line_to_polygon_fails(self):
        self.assertIsNone(clone_as(LineString([(0, 0), (1, 1)]), GeometryType.POLYGON))

    def test_multipolygon_to_lines(self):
        other = Polygon([(2, 2), (3, 2), (3, 3), (2, 3)])
        result = clone_as(MultiPolygon([self.square, other]), GeometryType.LINESTRING)
        self.assertIsInstance(result, MultiLineString)
        self.assertEqual(len(result.geoms), 2)

    def test_mixed_collection_keeps_convertible_parts(self):
        collection = GeometryCollection([self.square, self.point])
        result = clone_as(collection, GeometryType.LINESTRING)
        self.assertEqual(component_type(result), GeometryType.LINESTRING)

    def test_empty_or_missing_geometry(self):
        self.assertIsNone(clone_as(None, GeometryType.POINTSET))
        self.assertIsNone(clone_as(Polygon(), GeometryType.POINTSET))


class TestQueryAndCursor(unittest.TestCase):
    """Query values and cursor iteration."""

    def test_merge_bounds_unions_existing(self):
        query = Query(bounds=Bounds(0, 0, 1, 1))
        merged = query.merge_bounds(Bounds(2, 2, 3, 3))
        self.assertEqual(merged.bounds, Bounds(0, 0, 3, 3))
        self.assertEqual(query.bounds, Bounds(0, 0, 1, 1))

    def test_with_bounds_replaces(self):
        query = Query(bounds=Bounds(0, 0, 1, 1), filters={"kind": "road"})
        moved = query.with_bounds(Bounds(2, 2, 3, 3))
        self.assertEqual(moved.bounds, Bounds(2, 2, 3, 3))
        self.assertEqual(moved.filters, {"kind": "road"})
        self.assertIsNone(query.with_bounds(None).bounds)

    def test_query_from_config(self):
        query = Query.from_config({"bounds": [0, 0, 1, 1], "filters": {"kind": "road"}})
        self.assertEqual(query.bounds, Bounds(0, 0, 1, 1))
        self.assertEqual(Query.from_config(query.to_config()), query)
        with self.assertRaises(ConfigurationError):
            Query.from_config({"bounds": [0, 0, 1]})
        with self.assertRaises(ConfigurationError):
            Query.from_config({"filters": ["kind"]})

    def test_cursor_look_ahead(self):
        features = [Feature(fid=i, geometry=Point(i, i)) for i in range(3)]
        cursor = FeatureCursor(iter(features))

        seen = []
        while cursor.has_more():
            seen.append(cursor.next_feature().fid)

        self.assertEqual(seen, [0, 1, 2])
        with self.assertRaises(StopIteration):
            cursor.next_feature()

    def test_empty_cursor(self):
        self.assertFalse(FeatureCursor([]).has_more())


class TestGeoDataFrameFeatureSource(unittest.TestCase):
    """In-memory GeoDataFrame source."""

    def setUp(self):
        self.gdf = gpd.GeoDataFrame(
            {
                "kind": ["road", "river", "road", "lake"],
                "lanes": [2, 0, 4, 0],
                "colour": ["#ff0000", "#0000ff", None, "#00ffff"],
            },
            geometry=[
                LineString([(0, 0), (10, 10)]),
                LineString([(20, 20), (30, 30)]),
                LineString([(0, 10), (10, 0)]),
                Polygon([(40, 40), (45, 40), (45, 45), (40, 45)]),
            ],
            crs="EPSG:4326",
        )
        self.source = GeoDataFrameFeatureSource(self.gdf, name="test")
        self.source.initialize()

    def test_is_a_feature_source(self):
        self.assertIsInstance(self.source, FeatureSource)

    def test_profile_extent(self):
        extent = self.source.get_feature_profile().extent
        self.assertEqual(extent.bounds, Bounds(0, 0, 45, 45))
        self.assertTrue(extent.crs.equals("EPSG:4326"))

    def test_spatial_query(self):
        cursor = self.source.create_feature_cursor(Query(bounds=Bounds(-1, -1, 6, 6)))
        fids = sorted(f.fid for f in cursor)
        self.assertEqual(fids, [0, 2])

    def test_attribute_filters(self):
        cursor = self.source.create_feature_cursor(Query(filters={"kind": ["river", "lake"]}))
        self.assertEqual(sorted(f.get("kind") for f in cursor), ["lake", "river"])

        cursor = self.source.create_feature_cursor(Query(filters={"lanes": {"min": 3}}))
        self.assertEqual([f.fid for f in cursor], [2])

    def test_features_carry_plain_values_and_crs(self):
        feature = next(iter(self.source.create_feature_cursor(Query(filters={"kind": "road", "lanes": 2}))))
        self.assertIsInstance(feature.get("lanes"), int)
        self.assertTrue(feature.crs.equals("EPSG:4326"))
        self.assertIsNone(feature.style)

    def test_missing_values_become_none(self):
        feature = next(iter(self.source.create_feature_cursor(Query(filters={"lanes": 4}))))
        self.assertIsNone(feature.get("colour"))

    def test_invalid_query_bounds_match_nothing(self):
        cursor = self.source.create_feature_cursor(Query(bounds=Bounds.empty()))
        self.assertFalse(cursor.has_more())

    def test_embedded_styles(self):
        styled = GeoDataFrameFeatureSource(self.gdf, style_column="colour")
        styled.initialize()
        self.assertTrue(styled.has_embedded_styles())
        feature = next(iter(styled.create_feature_cursor(Query(filters={"kind": "river"}))))
        self.assertEqual(feature.style, "#0000ff")
        self.assertNotIn("colour", feature.attributes)

    def test_single_point_extent_is_padded(self):
        gdf = gpd.GeoDataFrame({"kind": ["poi"]}, geometry=[Point(5, 5)], crs="EPSG:4326")
        source = GeoDataFrameFeatureSource(gdf)
        source.initialize()
        self.assertTrue(source.get_feature_profile().extent.is_valid())

    def test_initialize_errors(self):
        no_crs = gpd.GeoDataFrame({"kind": ["a"]}, geometry=[Point(0, 0)])
        with self.assertRaises(ValueError):
            GeoDataFrameFeatureSource(no_crs).initialize()

        with self.assertRaises(ValueError):
            GeoDataFrameFeatureSource(self.gdf, style_column="missing").initialize()

    def test_apply_filters_ignores_unknown_columns(self):
        self.assertEqual(len(apply_filters(self.gdf, {"nope": 1})), 4)


class TestFeatureSourceFactory(unittest.TestCase):
    """Driver-based source creation."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.temp_path = Path(self.temp_dir)

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_geofile_driver(self):
        path = self.temp_path / "points.geojson"
        gpd.GeoDataFrame(
            {"name": ["a", "b"]},
            geometry=[Point(0, 0), Point(1, 1)],
            crs="EPSG:4326",
        ).to_file(path, driver="GeoJSON")

        source = FeatureSourceFactory.create({"driver": "geofile", "url": str(path)})

        self.assertIsInstance(source, GeoDataFrameFeatureSource)
        source.initialize()
        self.assertEqual(len(list(source.create_feature_cursor(Query()))), 2)

    def test_unknown_driver(self):
        self.assertIsNone(FeatureSourceFactory.create({"driver": "nope"}))
        self.assertIn("geofile", FeatureSourceFactory.drivers())

    def test_missing_url(self):
        self.assertIsNone(FeatureSourceFactory.create({"driver": "geofile"}))


if __name__ == "__main__":
    pytest.main([__file__])
