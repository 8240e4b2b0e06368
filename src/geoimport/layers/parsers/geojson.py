"""Normalize decoded GeoJSON-style dicts into GeometryFeature records.

Handles FeatureCollection, Feature and bare geometry dicts of the four
supported types. Coordinates are already in [lng, lat] order. A geometry
whose nesting depth does not match its type is dropped.
"""

from __future__ import annotations

from geoimport.layers.layer import GEOMETRY_TYPES, GeometryFeature, has_valid_depth
from geoimport.layers.parsers.kml import coerce_property


def normalize_properties(raw) -> dict:
    """Keep scalar values, stringify the rest, drop None."""
    if not isinstance(raw, dict):
        return {}
    properties = {}
    for key, value in raw.items():
        coerced = coerce_property(value)
        if coerced is not None:
            properties[str(key)] = coerced
    return properties


def normalize_geometry(geometry, properties=None) -> GeometryFeature | None:
    """Build a GeometryFeature from a {"type", "coordinates"} dict."""
    if not isinstance(geometry, dict):
        return None
    geom_type = geometry.get("type", "")
    coordinates = geometry.get("coordinates")
    if geom_type not in GEOMETRY_TYPES or not has_valid_depth(geom_type, coordinates):
        return None
    return GeometryFeature(
        type=geom_type,
        coordinates=coordinates,
        properties=normalize_properties(
            properties if properties is not None else geometry.get("properties")
        ),
    )


def _normalize_feature(raw) -> GeometryFeature | None:
    if not isinstance(raw, dict):
        return None
    return normalize_geometry(raw.get("geometry"), raw.get("properties") or {})


def normalize_feature_collection(data) -> list[GeometryFeature]:
    """Normalize a FeatureCollection, a single Feature or a geometry list."""
    if isinstance(data, list):
        return [f for f in (normalize_geometry(g) for g in data) if f is not None]
    if not isinstance(data, dict):
        return []

    if data.get("type") == "FeatureCollection":
        raw_features = data.get("features") or []
        return [f for f in (_normalize_feature(r) for r in raw_features) if f is not None]
    if data.get("type") == "Feature":
        feature = _normalize_feature(data)
        return [feature] if feature is not None else []

    feature = normalize_geometry(data)
    return [feature] if feature is not None else []
