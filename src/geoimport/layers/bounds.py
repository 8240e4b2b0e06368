"""Coordinate and bounding-box helpers.

Source coordinates are GeoJSON [lng, lat(, alt)]; everything returned here is
(lat, lng) ordered, as map viewports expect. Invalid values (non-numeric,
NaN, Infinity, short tuples) are skipped rather than raised.
"""

from __future__ import annotations

import math
from typing import Iterable, Iterator

from geoimport.layers.layer import Bounds, GeometryFeature

PAD_FLOOR = 0.01
PAD_CEILING = 0.1


def _is_finite_number(value) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _position_latlng(position) -> tuple[float, float] | None:
    """Return (lat, lng) for a [lng, lat, ...] position, None if invalid."""
    if not isinstance(position, (list, tuple)) or len(position) < 2:
        return None
    lng, lat = position[0], position[1]
    if not (_is_finite_number(lng) and _is_finite_number(lat)):
        return None
    return (float(lat), float(lng))


def _geometry_parts(geometry) -> tuple[str, object]:
    """Accept a GeometryFeature or a {"type", "coordinates"} mapping."""
    if isinstance(geometry, GeometryFeature):
        return geometry.type, geometry.coordinates
    if isinstance(geometry, dict):
        return geometry.get("type", ""), geometry.get("coordinates")
    return "", None


def iter_positions(coordinates) -> Iterator[tuple[float, float]]:
    """Yield every valid (lat, lng) leaf of an arbitrarily nested array."""
    if not isinstance(coordinates, (list, tuple)) or not coordinates:
        return
    if not isinstance(coordinates[0], (list, tuple)):
        latlng = _position_latlng(coordinates)
        if latlng is not None:
            yield latlng
        return
    for child in coordinates:
        yield from iter_positions(child)


def to_latlng_pairs(geometry) -> list[list[float]]:
    """Flatten a geometry into a list of [lat, lng] pairs.

    Point yields one pair, LineString its vertices, Polygon the vertices of
    its outer ring only and MultiPolygon the outer ring of each polygon.
    Malformed input yields an empty list.
    """
    geom_type, coords = _geometry_parts(geometry)
    if not isinstance(coords, (list, tuple)) or not coords:
        return []

    if geom_type == "Point":
        positions = [coords]
    elif geom_type == "Polygon":
        positions = coords[0] if isinstance(coords[0], (list, tuple)) else []
    elif geom_type == "MultiPolygon":
        positions = []
        for polygon in coords:
            if isinstance(polygon, (list, tuple)) and polygon and isinstance(polygon[0], (list, tuple)):
                positions.extend(polygon[0])
    else:
        positions = coords

    pairs = []
    for position in positions:
        latlng = _position_latlng(position)
        if latlng is not None:
            pairs.append([latlng[0], latlng[1]])
    return pairs


class BoundsAccumulator:
    """Running min/max over (lat, lng) pairs.

    Feeding geometries in any number of batches gives the same result as a
    single union_bounds() call over all of them.
    """

    def __init__(self) -> None:
        self.min_lat = math.inf
        self.min_lng = math.inf
        self.max_lat = -math.inf
        self.max_lng = -math.inf
        self.count = 0

    def add(self, lat: float, lng: float) -> None:
        if not (_is_finite_number(lat) and _is_finite_number(lng)):
            return
        if lat < self.min_lat:
            self.min_lat = lat
        if lat > self.max_lat:
            self.max_lat = lat
        if lng < self.min_lng:
            self.min_lng = lng
        if lng > self.max_lng:
            self.max_lng = lng
        self.count += 1

    def add_geometry(self, geometry) -> None:
        _, coords = _geometry_parts(geometry)
        for lat, lng in iter_positions(coords):
            self.add(lat, lng)

    def add_bounds(self, bounds: Bounds | None) -> None:
        if not bounds:
            return
        (min_lat, min_lng), (max_lat, max_lng) = bounds
        self.add(min_lat, min_lng)
        self.add(max_lat, max_lng)

    def result(self) -> Bounds | None:
        if self.count == 0:
            return None
        return [[self.min_lat, self.min_lng], [self.max_lat, self.max_lng]]


def union_bounds(geometries: Iterable) -> Bounds | None:
    """Bounding box over every valid coordinate of every geometry.

    Returns None when nothing valid was found. A single point gives a
    zero-area box, which is not None.
    """
    acc = BoundsAccumulator()
    for geometry in geometries:
        acc.add_geometry(geometry)
    return acc.result()


def merge_bounds(boxes: Iterable[Bounds | None]) -> Bounds | None:
    """Union of already-computed bounding boxes; None entries are ignored."""
    acc = BoundsAccumulator()
    for box in boxes:
        acc.add_bounds(box)
    return acc.result()


def pad_bounds(bounds: Bounds, fraction: float = 0.1) -> Bounds:
    """Expand bounds on every side by fraction * largest span.

    The pad is clamped to [PAD_FLOOR, PAD_CEILING] degrees so point-like
    data still gets a visible margin and huge regions are not zoomed out
    further than necessary.
    """
    (min_lat, min_lng), (max_lat, max_lng) = bounds
    span = max(max_lat - min_lat, max_lng - min_lng)
    raw = fraction * span
    if not _is_finite_number(raw):
        raw = PAD_FLOOR
    pad = max(PAD_FLOOR, min(PAD_CEILING, raw))
    return [[min_lat - pad, min_lng - pad], [max_lat + pad, max_lng + pad]]
