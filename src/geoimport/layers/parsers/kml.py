"""Normalize KML 2.2/2.3 documents into GeometryFeature records.

Handles Placemark/Point, Placemark/LineString, Placemark/Polygon (outer ring)
and Placemark/MultiGeometry. Namespaces are ignored: elements are matched on
their local name, so un-namespaced and gx-extended documents work too.
KML coordinate format: "lng,lat[,alt] lng,lat[,alt]" (longitude first).
All coordinates stored as [lng, lat, alt] (GeoJSON convention), alt defaults
to 0.

Invalid placemarks are skipped, never raised. Only an unparseable document
raises ParseError.
"""

from __future__ import annotations

import math
import xml.etree.ElementTree as ET
from typing import Iterable

from geoimport.errors import ParseError
from geoimport.layers.layer import GeometryFeature, PropertyValue

MIN_POINTS = {"Point": 1, "LineString": 2, "Polygon": 3}

_GEOMETRY_TAGS = ("Point", "LineString", "Polygon", "MultiGeometry")
# Placemark children that are structure, not scalar metadata
_SKIP_TAGS = set(_GEOMETRY_TAGS) | {
    "ExtendedData", "Style", "StyleMap", "Region", "LookAt", "Camera",
    "TimeSpan", "TimeStamp", "Snippet", "Model", "Track", "MultiTrack",
}
_BOOLEAN_TAGS = {"visibility", "open"}

_INT_TYPES = {"int", "uint", "short", "ushort"}
_FLOAT_TYPES = {"float", "double"}


def parse_document(content: bytes | str) -> ET.Element:
    """Parse raw KML into an element tree root.

    Raises:
        ParseError: If the content is not well-formed XML.
    """
    try:
        return ET.fromstring(content)
    except ET.ParseError as e:
        raise ParseError(f"Invalid KML format: {e}") from e


def local_name(tag) -> str:
    """Strip the '{namespace}' prefix from an element tag."""
    if not isinstance(tag, str):
        return ""
    if "}" in tag:
        return tag.rsplit("}", 1)[1]
    return tag


def _children(elem: ET.Element, name: str) -> list[ET.Element]:
    return [child for child in elem if local_name(child.tag) == name]


def _child(elem: ET.Element, name: str) -> ET.Element | None:
    for child in elem:
        if local_name(child.tag) == name:
            return child
    return None


def _text(elem: ET.Element | None) -> str:
    if elem is None or elem.text is None:
        return ""
    return elem.text.strip()


def find_placemarks(root: ET.Element) -> list[ET.Element]:
    """Collect every Placemark in document order by walking the tree."""
    found: list[ET.Element] = []

    def walk(elem: ET.Element) -> None:
        if local_name(elem.tag) == "Placemark":
            found.append(elem)
            return
        for child in elem:
            walk(child)

    walk(root)
    return found


def read_schemas(root: ET.Element) -> dict[str, dict[str, str]]:
    """Map schema id (and name) to {field name: declared type}."""
    schemas: dict[str, dict[str, str]] = {}

    def walk(elem: ET.Element) -> None:
        if local_name(elem.tag) == "Schema":
            fields = {
                f.get("name", ""): f.get("type", "string").lower()
                for f in _children(elem, "SimpleField")
                if f.get("name")
            }
            for key in (elem.get("id"), elem.get("name")):
                if key:
                    schemas[key] = fields
            return
        for child in elem:
            walk(child)

    walk(root)
    return schemas


def parse_coordinates(text: str) -> list[list[float]]:
    """Parse a coordinates text node into [lng, lat, alt] positions.

    Tuples that are short or non-numeric are dropped.
    """
    positions = []
    for token in text.split():
        parts = token.split(",")
        if len(parts) < 2:
            continue
        try:
            lng = float(parts[0])
            lat = float(parts[1])
            alt = float(parts[2]) if len(parts) >= 3 and parts[2] else 0.0
        except ValueError:
            continue
        if not (math.isfinite(lng) and math.isfinite(lat)):
            continue
        if not math.isfinite(alt):
            alt = 0.0
        positions.append([lng, lat, alt])
    return positions


def coerce_property(value) -> PropertyValue | None:
    """Coerce an arbitrary value to str/int/float/bool; None is omitted."""
    if value is None:
        return None
    if isinstance(value, (str, bool, int, float)):
        return value
    return str(value)


def _coerce_typed(text: str, declared: str) -> PropertyValue:
    """Convert SimpleData text using its SimpleField type."""
    try:
        if declared in _INT_TYPES:
            return int(text)
        if declared in _FLOAT_TYPES:
            return float(text)
    except ValueError:
        return text
    if declared == "bool":
        lowered = text.lower()
        if lowered in ("1", "true"):
            return True
        if lowered in ("0", "false"):
            return False
    return text


def _read_properties(
    pm: ET.Element, schemas: dict[str, dict[str, str]]
) -> dict[str, PropertyValue]:
    properties: dict[str, PropertyValue] = {}

    for child in pm:
        name = local_name(child.tag)
        if name in _SKIP_TAGS or len(child):
            continue
        text = _text(child)
        if not text:
            continue
        if name in _BOOLEAN_TAGS:
            properties[name] = text.lower() in ("1", "true")
        else:
            properties[name] = text

    extended = _child(pm, "ExtendedData")
    if extended is None:
        return properties

    for data in _children(extended, "Data"):
        key = data.get("name")
        if key:
            properties[key] = _text(_child(data, "value"))

    for schema_data in _children(extended, "SchemaData"):
        schema_ref = (schema_data.get("schemaUrl") or "").lstrip("#")
        fields = schemas.get(schema_ref, {})
        for simple in _children(schema_data, "SimpleData"):
            key = simple.get("name")
            if key:
                properties[key] = _coerce_typed(_text(simple), fields.get(key, "string"))

    return properties


def _positions(geom: ET.Element) -> list[list[float]]:
    return parse_coordinates(_text(_child(geom, "coordinates")))


def _outer_ring(polygon: ET.Element) -> list[list[float]]:
    outer = _child(polygon, "outerBoundaryIs")
    ring = _child(outer, "LinearRing") if outer is not None else None
    if ring is None:
        return []
    return _positions(ring)


def _geometry_coordinates(geom: ET.Element) -> tuple[str, list] | None:
    """Return (type, coordinates) for a simple geometry, None if invalid."""
    kind = local_name(geom.tag)
    if kind == "Point":
        positions = _positions(geom)
        if len(positions) != MIN_POINTS["Point"]:
            return None
        return "Point", positions[0]
    if kind == "LineString":
        positions = _positions(geom)
        if len(positions) < MIN_POINTS["LineString"]:
            return None
        return "LineString", positions
    if kind == "Polygon":
        ring = _outer_ring(geom)
        if len(ring) < MIN_POINTS["Polygon"]:
            return None
        return "Polygon", [ring]
    return None


def _multi_geometry(
    multi: ET.Element, properties: dict
) -> list[GeometryFeature]:
    parts = []
    for child in multi:
        if local_name(child.tag) == "MultiGeometry":
            parts.extend(_multi_geometry(child, properties))
            continue
        parsed = _geometry_coordinates(child)
        if parsed is not None:
            parts.append(GeometryFeature(parsed[0], parsed[1], dict(properties)))

    if len(parts) > 1 and all(p.type == "Polygon" for p in parts):
        return [GeometryFeature(
            "MultiPolygon", [p.coordinates for p in parts], dict(properties)
        )]
    return parts


def normalize_placemark(
    pm: ET.Element, schemas: dict[str, dict[str, str]] | None = None
) -> list[GeometryFeature]:
    """Turn one Placemark into zero or more GeometryFeatures."""
    properties = _read_properties(pm, schemas or {})
    features: list[GeometryFeature] = []
    for child in pm:
        kind = local_name(child.tag)
        if kind == "MultiGeometry":
            features.extend(_multi_geometry(child, properties))
        elif kind in _GEOMETRY_TAGS:
            parsed = _geometry_coordinates(child)
            if parsed is not None:
                features.append(GeometryFeature(parsed[0], parsed[1], dict(properties)))
    return features


def normalize_placemarks(
    placemarks: Iterable[ET.Element], schemas: dict[str, dict[str, str]] | None = None
) -> list[GeometryFeature]:
    features: list[GeometryFeature] = []
    for pm in placemarks:
        features.extend(normalize_placemark(pm, schemas))
    return features


def normalize_document(content: bytes | str) -> list[GeometryFeature]:
    """Parse and normalize a whole document in one pass."""
    root = parse_document(content)
    return normalize_placemarks(find_placemarks(root), read_schemas(root))
