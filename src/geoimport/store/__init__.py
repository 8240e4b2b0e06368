"""Selection & assignment store."""

from geoimport.store.store import ActionResult, ImportStore
from geoimport.store.state import (
    FileStatus,
    ImportState,
    LineStringSelection,
    PackageAssignment,
    PackageRecord,
    ProjectRef,
    SelectedFeature,
    UploadedFileRecord,
)

__all__ = [
    "ActionResult",
    "FileStatus",
    "ImportState",
    "ImportStore",
    "LineStringSelection",
    "PackageAssignment",
    "PackageRecord",
    "ProjectRef",
    "SelectedFeature",
    "UploadedFileRecord",
]
