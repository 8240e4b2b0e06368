"""Actions accepted by the import store.

Each action is a small frozen dataclass; the reducer dispatches on its type.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from geoimport.layers.layer import LayerGroup
from geoimport.store.state import (
    FileStatus,
    LineStringSelection,
    PackageRecord,
    ProjectRef,
    SelectedFeature,
    UploadedFileRecord,
)


# -- files -------------------------------------------------------------------

@dataclass(frozen=True)
class AddFiles:
    files: tuple[UploadedFileRecord, ...]


@dataclass(frozen=True)
class UpdateFile:
    """Patch a file record; None fields are left as they are."""
    file_id: str
    status: Optional[FileStatus] = None
    progress: Optional[int] = None
    error: Optional[str] = None
    layer_group_id: Optional[str] = None


@dataclass(frozen=True)
class ResetFile:
    """Back to pending at 0% (after a cancellation)."""
    file_id: str


@dataclass(frozen=True)
class RemoveFile:
    file_id: str


@dataclass(frozen=True)
class ClearFiles:
    pass


# -- project -----------------------------------------------------------------

@dataclass(frozen=True)
class SetProject:
    project: Optional[ProjectRef]


# -- layer groups ------------------------------------------------------------

@dataclass(frozen=True)
class AddLayerGroup:
    group: LayerGroup


@dataclass(frozen=True)
class RemoveLayerGroup:
    group_id: str


@dataclass(frozen=True)
class ToggleGroupVisibility:
    group_id: str


@dataclass(frozen=True)
class ToggleLayerVisibility:
    group_id: str
    layer_id: str


@dataclass(frozen=True)
class RemoveLayer:
    group_id: str
    layer_id: str


# -- selection ---------------------------------------------------------------

@dataclass(frozen=True)
class SelectFeature:
    feature: SelectedFeature


@dataclass(frozen=True)
class DeselectFeature:
    feature_id: str


@dataclass(frozen=True)
class ClearSelection:
    pass


# -- assignments -------------------------------------------------------------

@dataclass(frozen=True)
class AssignPackage:
    selection: LineStringSelection
    package: PackageRecord
    timestamp: str


@dataclass(frozen=True)
class UnassignPackage:
    selection: LineStringSelection


# -- import ------------------------------------------------------------------

@dataclass(frozen=True)
class ConfirmImport:
    imported_at: str


@dataclass(frozen=True)
class ClearImportData:
    pass


Action = Union[
    AddFiles, UpdateFile, ResetFile, RemoveFile, ClearFiles,
    SetProject,
    AddLayerGroup, RemoveLayerGroup, ToggleGroupVisibility,
    ToggleLayerVisibility, RemoveLayer,
    SelectFeature, DeselectFeature, ClearSelection,
    AssignPackage, UnassignPackage,
    ConfirmImport, ClearImportData,
]
