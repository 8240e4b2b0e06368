"""GeometryFeature, Layer and LayerGroup dataclasses.

All coordinates are stored in GeoJSON convention: [lng, lat] or [lng, lat, alt].
Bounds are the other way round: [[minLat, minLng], [maxLat, maxLng]].
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

PropertyValue = Union[str, int, float, bool]
Bounds = list  # [[min_lat, min_lng], [max_lat, max_lng]]

GEOMETRY_TYPES = ("Point", "LineString", "Polygon", "MultiPolygon")

# Nesting depth of the coordinates array for each geometry type
COORDINATE_DEPTH = {
    "Point": 1,
    "LineString": 2,
    "Polygon": 3,
    "MultiPolygon": 4,
}


def coordinate_depth(coordinates) -> int:
    """Return the list nesting depth of a coordinate array.

    Follows the first element at each level, so [[1, 2], [3, 4]] is 2.
    Anything that is not a list (or an empty list) has depth 0.
    """
    depth = 0
    node = coordinates
    while isinstance(node, (list, tuple)) and node:
        depth += 1
        node = node[0]
    return depth


def has_valid_depth(geometry_type: str, coordinates) -> bool:
    """True if the coordinates nesting matches the declared geometry type."""
    expected = COORDINATE_DEPTH.get(geometry_type)
    return expected is not None and coordinate_depth(coordinates) == expected


@dataclass(frozen=True)
class GeometryFeature:
    """One geometric shape with its property bag.

    Attributes:
        type: One of "Point", "LineString", "Polygon", "MultiPolygon".
        coordinates: GeoJSON-style coordinate arrays.
            Point: [lng, lat, alt]
            LineString: [[lng, lat, alt], ...]
            Polygon: [[[lng, lat, alt], ...]]  (outer ring only)
            MultiPolygon: [[[[lng, lat, alt], ...]], ...]
        properties: Scalar metadata (name, description, extended data).
    """

    type: str
    coordinates: list
    properties: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "coordinates": self.coordinates,
            "properties": dict(self.properties),
        }


@dataclass(frozen=True)
class Layer:
    """A named collection of geometries of one geometry type.

    Attributes:
        id: Unique identifier for this layer.
        name: Display name, e.g. "LineString (42)".
        visible: Whether the layer is currently rendered.
        color: Hex display color.
        geometry: Features in source order; never empty.
        bounds: Bounding box of the layer, None when no valid coordinate.
    """

    id: str
    name: str
    color: str
    geometry: tuple[GeometryFeature, ...]
    visible: bool = True
    bounds: Bounds | None = None

    @property
    def geometry_type(self) -> str:
        return self.geometry[0].type if self.geometry else ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "visible": self.visible,
            "color": self.color,
            "geometry": [g.to_dict() for g in self.geometry],
            "bounds": self.bounds,
        }


@dataclass(frozen=True)
class LayerGroup:
    """The set of layers produced from one imported source file.

    Attributes:
        id: Unique identifier for this group.
        name: Source file name with its extension stripped.
        layers: Layers in first-seen geometry type order.
        visible: Whether the group is currently rendered.
        bounds: Union of the layer bounds.
    """

    id: str
    name: str
    layers: tuple[Layer, ...]
    visible: bool = True
    bounds: Bounds | None = None

    @property
    def feature_count(self) -> int:
        return sum(len(layer.geometry) for layer in self.layers)

    def find_layer(self, layer_id: str) -> Layer | None:
        for layer in self.layers:
            if layer.id == layer_id:
                return layer
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "visible": self.visible,
            "layers": [layer.to_dict() for layer in self.layers],
            "bounds": self.bounds,
        }
