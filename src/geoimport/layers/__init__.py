"""Typed geometry model, bounds helpers, normalizers and layer assembly."""

from geoimport.layers.layer import GeometryFeature, Layer, LayerGroup

__all__ = ["GeometryFeature", "Layer", "LayerGroup"]
