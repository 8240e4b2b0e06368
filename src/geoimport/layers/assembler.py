"""Group normalized features into typed layers and wrap them in a LayerGroup."""

from __future__ import annotations

import uuid
from pathlib import PurePath
from typing import Iterable, Mapping, Sequence

from geoimport.layers.bounds import merge_bounds, union_bounds
from geoimport.layers.layer import Bounds, GeometryFeature, Layer, LayerGroup

PALETTE = {
    "Point": ("#4CAF50", "#66BB6A", "#81C784"),
    "LineString": ("#2196F3", "#42A5F5", "#64B5F6"),
    "Polygon": ("#FF5722", "#FF7043", "#FF8A65"),
    "MultiPolygon": ("#9C27B0", "#AB47BC", "#BA68C8"),
}
FALLBACK_COLORS = ("#607D8B",)


def color_for(geometry_type: str, index: int) -> str:
    """Deterministic color for the index-th layer of a type."""
    colors = PALETTE.get(geometry_type, FALLBACK_COLORS)
    return colors[index % len(colors)]


def group_by_type(
    features: Iterable[GeometryFeature],
    groups: dict[str, list[GeometryFeature]] | None = None,
) -> dict[str, list[GeometryFeature]]:
    """Bucket features by geometry type, keeping first-seen type order.

    Pass the dict from a previous call as `groups` to continue bucketing a
    later batch.
    """
    if groups is None:
        groups = {}
    for feature in features:
        groups.setdefault(feature.type, []).append(feature)
    return groups


def build_layers(
    grouped: Mapping[str, Sequence[GeometryFeature]],
    bounds_by_type: Mapping[str, Bounds | None] | None = None,
    color_offset: int = 0,
) -> list[Layer]:
    """Create one Layer per non-empty type bucket.

    Args:
        grouped: Features bucketed by type, in display order.
        bounds_by_type: Precomputed bounds per type; computed here if absent.
        color_offset: Added to the creation index before picking a palette
            color, so later imports of the same type get the next shade.

    Returns:
        Layers in the same order as `grouped`.
    """
    layers = []
    for index, (geom_type, geometries) in enumerate(
        (t, g) for t, g in grouped.items() if g
    ):
        if bounds_by_type is not None and geom_type in bounds_by_type:
            bounds = bounds_by_type[geom_type]
        else:
            bounds = union_bounds(geometries)
        layers.append(Layer(
            id=f"{geom_type.lower()}-{uuid.uuid4().hex[:8]}",
            name=f"{geom_type} ({len(geometries)})",
            color=color_for(geom_type, color_offset + index),
            geometry=tuple(geometries),
            visible=True,
            bounds=bounds,
        ))
    return layers


def display_name(file_name: str) -> str:
    """File name without directory or extension."""
    return PurePath(file_name).stem or file_name


def build_layer_group(file_name: str, layers: Sequence[Layer]) -> LayerGroup:
    """Wrap layers into a visible LayerGroup named after the source file."""
    return LayerGroup(
        id=f"group-{uuid.uuid4().hex[:8]}",
        name=display_name(file_name),
        layers=tuple(layers),
        visible=True,
        bounds=merge_bounds(layer.bounds for layer in layers),
    )
