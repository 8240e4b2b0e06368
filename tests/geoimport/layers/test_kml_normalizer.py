"""Tests for the KML normalizer: geometry types, minimum points, properties."""

import pytest

from geoimport.errors import ParseError
from geoimport.layers.parsers.kml import (
    coerce_property,
    find_placemarks,
    normalize_document,
    parse_coordinates,
    parse_document,
)


def _doc(body: str, ns: bool = True) -> str:
    xmlns = ' xmlns="http://www.opengis.net/kml/2.2"' if ns else ""
    return f'<?xml version="1.0" encoding="UTF-8"?><kml{xmlns}><Document>{body}</Document></kml>'


class TestCoordinates:

    def test_lng_lat_alt(self):
        assert parse_coordinates("10,20,5 11,21") == [[10.0, 20.0, 5.0], [11.0, 21.0, 0.0]]

    def test_whitespace_and_newlines(self):
        text = "\n   10,20,0\n\t11,21,0   \n"
        assert parse_coordinates(text) == [[10, 20, 0], [11, 21, 0]]

    def test_bad_tuples_dropped(self):
        assert parse_coordinates("10 abc,20 10,xyz 1,2,0 nan,3") == [[1.0, 2.0, 0.0]]


class TestGeometries:
    """Point, LineString, Polygon, MultiGeometry."""

    def test_scenario_a_linestring(self, scenario_a_kml):
        features = normalize_document(scenario_a_kml)
        assert len(features) == 1
        assert features[0].type == "LineString"
        assert features[0].coordinates == [[10, 20, 0], [11, 21, 0]]
        assert features[0].properties == {"name": "Feeder"}

    def test_point_is_depth_one(self):
        features = normalize_document(_doc(
            "<Placemark><Point><coordinates>-122.4,37.7,3</coordinates></Point></Placemark>"
        ))
        assert features[0].type == "Point"
        assert features[0].coordinates == [-122.4, 37.7, 3.0]

    def test_point_with_two_positions_dropped(self):
        features = normalize_document(_doc(
            "<Placemark><Point><coordinates>1,2 3,4</coordinates></Point></Placemark>"
        ))
        assert features == []

    def test_polygon_outer_ring_wrapped(self):
        features = normalize_document(_doc(
            "<Placemark><Polygon>"
            "<outerBoundaryIs><LinearRing><coordinates>0,0 1,0 1,1 0,0</coordinates></LinearRing></outerBoundaryIs>"
            "<innerBoundaryIs><LinearRing><coordinates>0.2,0.2 0.3,0.2 0.3,0.3</coordinates></LinearRing></innerBoundaryIs>"
            "</Polygon></Placemark>"
        ))
        assert features[0].type == "Polygon"
        assert len(features[0].coordinates) == 1
        assert len(features[0].coordinates[0]) == 4

    def test_minimum_points_enforced(self):
        features = normalize_document(_doc(
            "<Placemark><LineString><coordinates>1,2</coordinates></LineString></Placemark>"
            "<Placemark><Polygon><outerBoundaryIs><LinearRing>"
            "<coordinates>0,0 1,1</coordinates></LinearRing></outerBoundaryIs></Polygon></Placemark>"
            "<Placemark><name>no geometry</name></Placemark>"
            "<Placemark><LineString><coordinates>1,2 3,4</coordinates></LineString></Placemark>"
        ))
        assert [f.type for f in features] == ["LineString"]

    def test_multigeometry_of_polygons_becomes_multipolygon(self):
        ring = "<Polygon><outerBoundaryIs><LinearRing><coordinates>{}</coordinates></LinearRing></outerBoundaryIs></Polygon>"
        features = normalize_document(_doc(
            "<Placemark><name>Lots</name><MultiGeometry>"
            + ring.format("0,0 1,0 1,1 0,0") + ring.format("5,5 6,5 6,6 5,5")
            + "</MultiGeometry></Placemark>"
        ))
        assert len(features) == 1
        assert features[0].type == "MultiPolygon"
        assert len(features[0].coordinates) == 2
        assert features[0].properties["name"] == "Lots"

    def test_mixed_multigeometry_splits(self):
        features = normalize_document(_doc(
            "<Placemark><MultiGeometry>"
            "<Point><coordinates>1,2</coordinates></Point>"
            "<LineString><coordinates>1,2 3,4</coordinates></LineString>"
            "</MultiGeometry></Placemark>"
        ))
        assert [f.type for f in features] == ["Point", "LineString"]

    def test_no_namespace_document(self):
        features = normalize_document(_doc(
            "<Placemark><LineString><coordinates>1,2 3,4</coordinates></LineString></Placemark>",
            ns=False,
        ))
        assert len(features) == 1

    def test_nested_folders_in_document_order(self, mixed_kml):
        root = parse_document(mixed_kml)
        placemarks = find_placemarks(root)
        assert len(placemarks) == 4
        features = normalize_document(mixed_kml)
        assert [f.properties["name"] for f in features] == ["Pole 1", "Route A", "Site", "Route B"]


class TestProperties:

    def test_name_description_and_leaf_children(self):
        features = normalize_document(_doc(
            "<Placemark><name>A</name><description>desc</description>"
            "<visibility>0</visibility><styleUrl>#line</styleUrl>"
            "<LineString><coordinates>1,2 3,4</coordinates></LineString></Placemark>"
        ))
        props = features[0].properties
        assert props["name"] == "A"
        assert props["description"] == "desc"
        assert props["visibility"] is False
        assert props["styleUrl"] == "#line"

    def test_extended_data_and_typed_schema(self):
        features = normalize_document(_doc(
            '<Schema name="cable" id="cable_schema">'
            '<SimpleField name="length" type="double"/>'
            '<SimpleField name="cores" type="int"/>'
            '<SimpleField name="buried" type="bool"/>'
            '<SimpleField name="owner" type="string"/>'
            "</Schema>"
            "<Placemark><ExtendedData>"
            '<Data name="zone"><value>Z1</value></Data>'
            '<SchemaData schemaUrl="#cable_schema">'
            '<SimpleData name="length">12.5</SimpleData>'
            '<SimpleData name="cores">24</SimpleData>'
            '<SimpleData name="buried">1</SimpleData>'
            '<SimpleData name="owner">EVN</SimpleData>'
            "</SchemaData></ExtendedData>"
            "<LineString><coordinates>1,2 3,4</coordinates></LineString></Placemark>"
        ))
        props = features[0].properties
        assert props["zone"] == "Z1"
        assert props["length"] == 12.5
        assert props["cores"] == 24
        assert props["buried"] is True
        assert props["owner"] == "EVN"

    def test_bad_typed_value_kept_as_text(self):
        features = normalize_document(_doc(
            '<Schema id="s"><SimpleField name="n" type="int"/></Schema>'
            '<Placemark><ExtendedData><SchemaData schemaUrl="#s">'
            '<SimpleData name="n">twelve</SimpleData></SchemaData></ExtendedData>'
            "<Point><coordinates>1,2</coordinates></Point></Placemark>"
        ))
        assert features[0].properties["n"] == "twelve"

    @pytest.mark.parametrize("value,expected", [
        ("x", "x"), (3, 3), (2.5, 2.5), (True, True), (None, None),
        ({"a": 1}, "{'a': 1}"), ([1, 2], "[1, 2]"),
    ])
    def test_coerce_property(self, value, expected):
        assert coerce_property(value) == expected


class TestErrors:

    def test_malformed_xml_raises_parse_error(self):
        with pytest.raises(ParseError) as exc:
            normalize_document("<kml><Document><Placemark></kml>")
        assert "Invalid KML" in exc.value.message

    def test_zero_placemarks_is_empty_list(self, empty_kml):
        assert normalize_document(empty_kml) == []
