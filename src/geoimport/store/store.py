"""ImportStore: single owner of the import state.

All changes go through dispatch(): the reducer computes the next state from
the current one and the store swaps it in, then notifies subscribers.
Precondition failures come back as ActionResult.error with the state left
untouched.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from loguru import logger

from geoimport.errors import StoreError
from geoimport.layers.layer import LayerGroup
from geoimport.store import actions as a
from geoimport.store import selectors
from geoimport.store.reducer import reduce
from geoimport.store.state import (
    ImportState,
    LineStringSelection,
    PackageRecord,
    ProjectRef,
    SelectedFeature,
)

Listener = Callable[[ImportState, a.Action], None]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ActionResult:
    ok: bool
    error: Optional[StoreError] = None


class ImportStore:
    """Holds the current ImportState and applies actions to it."""

    def __init__(self, state: ImportState | None = None, clock: Callable[[], str] = _now) -> None:
        self._state = state or ImportState()
        self._listeners: list[Listener] = []
        self._clock = clock

    @property
    def state(self) -> ImportState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, action: a.Action) -> ActionResult:
        try:
            new_state = reduce(self._state, action)
        except StoreError as e:
            logger.warning(f"{type(action).__name__} rejected: {e.message}")
            return ActionResult(ok=False, error=e)

        if new_state is not self._state:
            self._state = new_state
            for listener in list(self._listeners):
                listener(new_state, action)
        return ActionResult(ok=True)

    # -- layer groups --------------------------------------------------------

    def add_layer_group(self, group: LayerGroup) -> ActionResult:
        return self.dispatch(a.AddLayerGroup(group))

    def remove_layer_group(self, group_id: str) -> ActionResult:
        return self.dispatch(a.RemoveLayerGroup(group_id))

    def toggle_group_visibility(self, group_id: str) -> ActionResult:
        return self.dispatch(a.ToggleGroupVisibility(group_id))

    def toggle_layer_visibility(self, group_id: str, layer_id: str) -> ActionResult:
        return self.dispatch(a.ToggleLayerVisibility(group_id, layer_id))

    def remove_layer(self, group_id: str, layer_id: str) -> ActionResult:
        return self.dispatch(a.RemoveLayer(group_id, layer_id))

    # -- project -------------------------------------------------------------

    def set_project(self, project: ProjectRef | None) -> ActionResult:
        return self.dispatch(a.SetProject(project))

    # -- selection -----------------------------------------------------------

    def select_feature(self, feature: SelectedFeature) -> ActionResult:
        return self.dispatch(a.SelectFeature(feature))

    def deselect_feature(self, feature_id: str) -> ActionResult:
        return self.dispatch(a.DeselectFeature(feature_id))

    def toggle_feature(self, feature: SelectedFeature) -> ActionResult:
        if selectors.is_selected(self._state, feature.id):
            return self.deselect_feature(feature.id)
        return self.select_feature(feature)

    def clear_selection(self) -> ActionResult:
        return self.dispatch(a.ClearSelection())

    # -- assignments ---------------------------------------------------------

    def assign_package(self, selection: LineStringSelection, package: PackageRecord) -> ActionResult:
        result = self.dispatch(a.AssignPackage(selection, package, self._clock()))
        if result.ok:
            logger.info(
                f"Assigned package {package.package_id} to line {selection.line_string_id} "
                f"of {selection.group_id}/{selection.layer_id}"
            )
        return result

    def unassign_package(self, selection: LineStringSelection) -> ActionResult:
        return self.dispatch(a.UnassignPackage(selection))

    # -- import --------------------------------------------------------------

    def confirm_import_to_map(self) -> ActionResult:
        result = self.dispatch(a.ConfirmImport(self._clock()))
        if result.ok:
            render = self._state.map_render
            logger.info(
                f"Import confirmed: {len(self._state.selected_features)} features, "
                f"{len(render.layer_groups)} groups, {len(render.assignments)} assignments"
            )
        return result

    def clear_import_data(self) -> ActionResult:
        return self.dispatch(a.ClearImportData())
