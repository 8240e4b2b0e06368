"""Derived views over an ImportState snapshot.

Nothing here is cached: each call reads the snapshot it is given, so a view
is always consistent with the state it was computed from.
"""

from __future__ import annotations

from dataclasses import dataclass

from geoimport.layers.bounds import merge_bounds, pad_bounds, union_bounds
from geoimport.layers.layer import Bounds
from geoimport.store.state import FileStatus, ImportState, UploadedFileRecord

FIT_PADDING = 0.1


@dataclass(frozen=True)
class LayerAssignmentStats:
    group_id: str
    layer_id: str
    layer_name: str
    total: int
    assigned: int

    @property
    def unassigned(self) -> int:
        return self.total - self.assigned


def files_with_status(state: ImportState, status: FileStatus) -> list[UploadedFileRecord]:
    return [f for f in state.files if f.status == status]


def successful_files(state: ImportState) -> list[UploadedFileRecord]:
    return files_with_status(state, FileStatus.SUCCESS)


def pending_files(state: ImportState) -> list[UploadedFileRecord]:
    return files_with_status(state, FileStatus.PENDING)


def error_files(state: ImportState) -> list[UploadedFileRecord]:
    return files_with_status(state, FileStatus.ERROR)


def can_proceed(state: ImportState) -> bool:
    """A project is chosen and at least one file parsed successfully."""
    return state.project is not None and bool(successful_files(state))


def total_feature_count(state: ImportState) -> int:
    return sum(group.feature_count for group in state.layer_groups)


def visible_feature_count(state: ImportState) -> int:
    """Features whose group and layer are both visible."""
    return sum(
        len(layer.geometry)
        for group in state.layer_groups if group.visible
        for layer in group.layers if layer.visible
    )


def layer_assignment_stats(state: ImportState) -> list[LayerAssignmentStats]:
    """Assigned / unassigned line counts for every LineString layer.

    Assignments are keyed by (group, layer, line) so a re-assigned line is
    counted once.
    """
    assigned_keys = {x.key for x in state.assignments}
    stats = []
    for group in state.layer_groups:
        for layer in group.layers:
            if layer.geometry_type != "LineString":
                continue
            total = len(layer.geometry)
            assigned = sum(
                1 for (gid, lid, idx) in assigned_keys
                if gid == group.id and lid == layer.id and 0 <= idx < total
            )
            stats.append(LayerAssignmentStats(group.id, layer.id, layer.name, total, assigned))
    return stats


def selected_ids(state: ImportState) -> set[str]:
    return {f.id for f in state.selected_features}


def is_selected(state: ImportState, feature_id: str) -> bool:
    return feature_id in selected_ids(state)


def visible_bounds(state: ImportState) -> Bounds | None:
    """Padded union of the visible groups, for fitting the map viewport."""
    bounds = merge_bounds(
        group.bounds if group.bounds is not None
        else union_bounds(g for layer in group.layers for g in layer.geometry)
        for group in state.layer_groups if group.visible
    )
    return pad_bounds(bounds, FIT_PADDING) if bounds is not None else None


def layer_bounds(state: ImportState, layer_id: str) -> Bounds | None:
    for group in state.layer_groups:
        for layer in group.layers:
            if layer.id != layer_id:
                continue
            if layer.bounds is not None:
                return layer.bounds
            return union_bounds(layer.geometry)
    return None


def group_bounds(state: ImportState, group_id: str) -> Bounds | None:
    group = state.find_group(group_id)
    if group is None:
        return None
    if group.bounds is not None:
        return group.bounds
    return union_bounds(g for layer in group.layers for g in layer.geometry)


def summary(state: ImportState) -> dict:
    """All derived views as one JSON-ready dict."""
    return {
        "total_features": total_feature_count(state),
        "visible_features": visible_feature_count(state),
        "selected_features": len(state.selected_features),
        "assignments": len(state.assignments),
        "can_proceed": can_proceed(state),
        "files": {
            "success": len(successful_files(state)),
            "pending": len(pending_files(state)),
            "error": len(error_files(state)),
        },
        "layers": [
            {
                "group_id": s.group_id,
                "layer_id": s.layer_id,
                "layer_name": s.layer_name,
                "assigned": s.assigned,
                "unassigned": s.unassigned,
                "selected": len(selected_in_layer(state, s.group_id, s.layer_id)),
            }
            for s in layer_assignment_stats(state)
        ],
        "bounds": visible_bounds(state),
    }


def selected_in_layer(state: ImportState, group_id: str, layer_id: str) -> list:
    return [
        f for f in state.selected_features
        if f.group_id == group_id and f.layer_id == layer_id
    ]
