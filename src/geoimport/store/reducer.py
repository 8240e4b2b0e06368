"""Pure state transitions for the import store.

reduce(state, action) never mutates `state`; it returns a new ImportState.
A failed precondition raises StoreError and the caller keeps the old state.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Callable

from geoimport.errors import EmptySelectionError, NoProjectSelectedError
from geoimport.layers.bounds import merge_bounds, union_bounds
from geoimport.layers.layer import Layer, LayerGroup
from geoimport.store import actions as a
from geoimport.store.state import (
    FileStatus,
    ImportState,
    MapRenderData,
    PackageAssignment,
    UploadedFileRecord,
)

IMPORTED_LAYER_COLOR = "#2196f3"
UNKNOWN_GROUP = "Unknown Group"
UNKNOWN_LAYER = "Unknown Layer"


# -- files -------------------------------------------------------------------

def _add_files(state: ImportState, action: a.AddFiles) -> ImportState:
    return replace(state, files=state.files + tuple(action.files))


def _patch_file(record: UploadedFileRecord, action: a.UpdateFile) -> UploadedFileRecord:
    status = action.status if action.status is not None else record.status
    progress = action.progress if action.progress is not None else record.progress
    # Progress only moves forward while the file is still pending
    if record.status == FileStatus.PENDING and status == FileStatus.PENDING:
        progress = max(progress, record.progress)
    error = action.error if action.error is not None else record.error
    if status == FileStatus.SUCCESS:
        error = None
    return replace(
        record,
        status=status,
        progress=progress,
        error=error,
        layer_group_id=action.layer_group_id or record.layer_group_id,
    )


def _update_file(state: ImportState, action: a.UpdateFile) -> ImportState:
    return replace(state, files=tuple(
        _patch_file(f, action) if f.id == action.file_id else f
        for f in state.files
    ))


def _reset_file(state: ImportState, action: a.ResetFile) -> ImportState:
    return replace(state, files=tuple(
        replace(f, status=FileStatus.PENDING, progress=0, error=None)
        if f.id == action.file_id else f
        for f in state.files
    ))


def _remove_file(state: ImportState, action: a.RemoveFile) -> ImportState:
    return replace(state, files=tuple(f for f in state.files if f.id != action.file_id))


def _clear_files(state: ImportState, action: a.ClearFiles) -> ImportState:
    return replace(state, files=())


def _set_project(state: ImportState, action: a.SetProject) -> ImportState:
    return replace(state, project=action.project)


# -- layer groups ------------------------------------------------------------

def _add_layer_group(state: ImportState, action: a.AddLayerGroup) -> ImportState:
    return replace(state, layer_groups=state.layer_groups + (action.group,))


def _drop_references(state: ImportState, group_id: str, layer_id: str | None = None) -> ImportState:
    """Forget selections and assignments that point into a removed group/layer."""
    def inside(g: str, l: str) -> bool:
        return g == group_id and (layer_id is None or l == layer_id)

    return replace(
        state,
        selected_features=tuple(
            f for f in state.selected_features if not inside(f.group_id, f.layer_id)
        ),
        assignments=tuple(
            x for x in state.assignments if not inside(x.group_id, x.layer_id)
        ),
    )


def _remove_layer_group(state: ImportState, action: a.RemoveLayerGroup) -> ImportState:
    if state.find_group(action.group_id) is None:
        return state
    state = replace(state, layer_groups=tuple(
        g for g in state.layer_groups if g.id != action.group_id
    ))
    return _drop_references(state, action.group_id)


def _map_group(state: ImportState, group_id: str, fn: Callable[[LayerGroup], LayerGroup]) -> ImportState:
    return replace(state, layer_groups=tuple(
        fn(g) if g.id == group_id else g for g in state.layer_groups
    ))


def _toggle_group(state: ImportState, action: a.ToggleGroupVisibility) -> ImportState:
    return _map_group(state, action.group_id, lambda g: replace(g, visible=not g.visible))


def _toggle_layer(state: ImportState, action: a.ToggleLayerVisibility) -> ImportState:
    def toggle(group: LayerGroup) -> LayerGroup:
        return replace(group, layers=tuple(
            replace(layer, visible=not layer.visible) if layer.id == action.layer_id else layer
            for layer in group.layers
        ))
    return _map_group(state, action.group_id, toggle)


def _remove_layer(state: ImportState, action: a.RemoveLayer) -> ImportState:
    group = state.find_group(action.group_id)
    if group is None or group.find_layer(action.layer_id) is None:
        return state

    # An emptied group stays; removing it is a separate action
    def remove(g: LayerGroup) -> LayerGroup:
        layers = tuple(layer for layer in g.layers if layer.id != action.layer_id)
        return replace(g, layers=layers, bounds=merge_bounds(layer.bounds for layer in layers))

    state = _map_group(state, action.group_id, remove)
    return _drop_references(state, action.group_id, action.layer_id)


# -- selection ---------------------------------------------------------------

def _select_feature(state: ImportState, action: a.SelectFeature) -> ImportState:
    if any(f.id == action.feature.id for f in state.selected_features):
        return state
    return replace(state, selected_features=state.selected_features + (action.feature,))


def _deselect_feature(state: ImportState, action: a.DeselectFeature) -> ImportState:
    return replace(state, selected_features=tuple(
        f for f in state.selected_features if f.id != action.feature_id
    ))


def _clear_selection(state: ImportState, action: a.ClearSelection) -> ImportState:
    return replace(state, selected_features=())


# -- assignments -------------------------------------------------------------

def _assign_package(state: ImportState, action: a.AssignPackage) -> ImportState:
    sel = action.selection
    group = state.find_group(sel.group_id)
    layer = group.find_layer(sel.layer_id) if group is not None else None
    assignment = PackageAssignment(
        line_string_id=sel.line_string_id,
        package_id=action.package.package_id,
        package_name=action.package.name,
        group_id=sel.group_id,
        group_name=group.name if group is not None else UNKNOWN_GROUP,
        layer_id=sel.layer_id,
        layer_name=layer.name if layer is not None else UNKNOWN_LAYER,
        timestamp=action.timestamp,
    )

    assignments = list(state.assignments)
    for i, existing in enumerate(assignments):
        if existing.key == assignment.key:
            assignments[i] = assignment
            break
    else:
        assignments.append(assignment)
    return replace(state, assignments=tuple(assignments))


def _unassign_package(state: ImportState, action: a.UnassignPackage) -> ImportState:
    sel = action.selection
    key = (sel.group_id, sel.layer_id, sel.line_string_id)
    return replace(state, assignments=tuple(x for x in state.assignments if x.key != key))


# -- import ------------------------------------------------------------------

def _confirm_import(state: ImportState, action: a.ConfirmImport) -> ImportState:
    if not state.selected_features:
        raise EmptySelectionError("Select at least one feature to import")
    if state.project is None:
        raise NoProjectSelectedError("Select a project before importing")

    # group_id -> (group name, layer_id -> (layer name, geometries))
    grouped: dict[str, tuple[str, dict[str, tuple[str, list]]]] = {}
    for feature in state.selected_features:
        _, layers = grouped.setdefault(feature.group_id, (feature.group_name, {}))
        _, geometries = layers.setdefault(feature.layer_id, (feature.layer_name, []))
        geometries.append(feature.geometry)

    groups = []
    for group_id, (group_name, layers) in grouped.items():
        built = tuple(
            Layer(
                id=layer_id,
                name=layer_name,
                color=IMPORTED_LAYER_COLOR,
                geometry=tuple(geometries),
                bounds=union_bounds(geometries),
            )
            for layer_id, (layer_name, geometries) in layers.items()
        )
        groups.append(LayerGroup(
            id=group_id,
            name=group_name,
            layers=built,
            bounds=merge_bounds(layer.bounds for layer in built),
        ))

    selected_layers = {(f.group_id, f.layer_id) for f in state.selected_features}
    assignments = tuple(
        x for x in state.assignments if (x.group_id, x.layer_id) in selected_layers
    )
    return replace(state, map_render=MapRenderData(
        layer_groups=tuple(groups),
        assignments=assignments,
        project=state.project,
        imported_at=action.imported_at,
    ))


def _clear_import_data(state: ImportState, action: a.ClearImportData) -> ImportState:
    return ImportState()


_HANDLERS: dict[type, Callable] = {
    a.AddFiles: _add_files,
    a.UpdateFile: _update_file,
    a.ResetFile: _reset_file,
    a.RemoveFile: _remove_file,
    a.ClearFiles: _clear_files,
    a.SetProject: _set_project,
    a.AddLayerGroup: _add_layer_group,
    a.RemoveLayerGroup: _remove_layer_group,
    a.ToggleGroupVisibility: _toggle_group,
    a.ToggleLayerVisibility: _toggle_layer,
    a.RemoveLayer: _remove_layer,
    a.SelectFeature: _select_feature,
    a.DeselectFeature: _deselect_feature,
    a.ClearSelection: _clear_selection,
    a.AssignPackage: _assign_package,
    a.UnassignPackage: _unassign_package,
    a.ConfirmImport: _confirm_import,
    a.ClearImportData: _clear_import_data,
}


def reduce(state: ImportState, action: a.Action) -> ImportState:
    """Apply one action and return the next state.

    Raises:
        StoreError: If the action's precondition does not hold.
        TypeError: If the action type is unknown.
    """
    handler = _HANDLERS.get(type(action))
    if handler is None:
        raise TypeError(f"Unknown action: {type(action).__name__}")
    return handler(state, action)
