"""Immutable records held by the import store.

Every field is replaced, never mutated: the reducer builds a new ImportState
for each action with dataclasses.replace().
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from geoimport.layers.layer import GeometryFeature, Layer, LayerGroup


class FileStatus(str, Enum):
    """Lifecycle of a queued upload."""
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class UploadedFileRecord:
    """A file in the upload queue."""

    id: str
    name: str
    size: int
    status: FileStatus = FileStatus.PENDING
    progress: int = 0
    error: Optional[str] = None
    layer_group_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.size < 0:
            raise ValueError(f"file size must be >= 0, got {self.size}")
        if not 0 <= self.progress <= 100:
            raise ValueError(f"progress must be within 0-100, got {self.progress}")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "size": self.size,
            "status": self.status.value,
            "progress": self.progress,
            "error": self.error,
            "layer_group_id": self.layer_group_id,
        }


@dataclass(frozen=True)
class ProjectRef:
    """The project the import is attached to."""
    project_id: str
    name: str = ""


@dataclass(frozen=True)
class PackageRecord:
    """An external package that can be assigned to a line."""
    package_id: str
    name: str


def feature_key(group_id: str, layer_id: str, index: int) -> str:
    """Identity of the index-th feature of a layer."""
    return f"{group_id}:{layer_id}:{index}"


@dataclass(frozen=True)
class SelectedFeature:
    """A feature picked on the map for import."""

    id: str
    group_id: str
    layer_id: str
    group_name: str
    layer_name: str
    geometry: GeometryFeature
    properties: dict = field(default_factory=dict)

    @classmethod
    def from_layer(cls, group: LayerGroup, layer: Layer, index: int) -> "SelectedFeature":
        """Build the selection entry for layer.geometry[index].

        Raises:
            IndexError: If the index is outside the layer.
        """
        if not 0 <= index < len(layer.geometry):
            raise IndexError(f"feature index {index} out of range for layer {layer.id}")
        geometry = layer.geometry[index]
        return cls(
            id=feature_key(group.id, layer.id, index),
            group_id=group.id,
            layer_id=layer.id,
            group_name=group.name,
            layer_name=layer.name,
            geometry=geometry,
            properties=dict(geometry.properties),
        )


@dataclass(frozen=True)
class LineStringSelection:
    """Points at one line-shaped feature by (group, layer, index)."""
    group_id: str
    layer_id: str
    line_string_id: int


@dataclass(frozen=True)
class PackageAssignment:
    """Links a package to one line-shaped feature."""

    line_string_id: int
    package_id: str
    package_name: str
    group_id: str
    group_name: str
    layer_id: str
    layer_name: str
    timestamp: str

    @property
    def key(self) -> tuple[str, str, int]:
        return (self.group_id, self.layer_id, self.line_string_id)


@dataclass(frozen=True)
class MapRenderData:
    """Snapshot handed to the map after a confirmed import."""

    layer_groups: tuple[LayerGroup, ...]
    assignments: tuple[PackageAssignment, ...]
    project: Optional[ProjectRef]
    imported_at: str


@dataclass(frozen=True)
class ImportState:
    files: tuple[UploadedFileRecord, ...] = ()
    layer_groups: tuple[LayerGroup, ...] = ()
    selected_features: tuple[SelectedFeature, ...] = ()
    assignments: tuple[PackageAssignment, ...] = ()
    project: Optional[ProjectRef] = None
    map_render: Optional[MapRenderData] = None

    def find_group(self, group_id: str) -> LayerGroup | None:
        for group in self.layer_groups:
            if group.id == group_id:
                return group
        return None
