"""Payloads and HTTP client for the assignment persistence service.

The service stores a confirmed import as {project_id, assignments,
layer_groups} and returns it again by project or import id. Every response is
wrapped in an {IsSuccess, StatusCode, ErrorMessage, Data} envelope.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from geoimport.errors import NoProjectSelectedError, PersistenceError
from geoimport.layers.bounds import merge_bounds, union_bounds
from geoimport.layers.layer import Layer, LayerGroup
from geoimport.layers.parsers.geojson import normalize_geometry
from geoimport.store.state import ImportState, PackageAssignment

T = TypeVar("T")

_SAVE_PATH = "/api/Maps/assignments"
_FETCH_PATH = "/api/Maps/imported-data"
_DELETE_PATH = "/api/Maps/delete-imported-data"


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class GeometryModel(BaseModel):
    type: str
    coordinates: list
    properties: dict[str, Any] = Field(default_factory=dict)


class LayerModel(BaseModel):
    id: str
    name: str
    visible: bool = True
    color: str
    geometry: list[GeometryModel]
    bounds: Optional[list[list[float]]] = None


class LayerGroupModel(BaseModel):
    id: str
    name: str
    visible: bool = True
    layers: list[LayerModel]
    bounds: Optional[list[list[float]]] = None


class AssignmentModel(BaseModel):
    """Assignment as the service expects it (camelCase keys)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    line_string_id: int
    package_id: str
    package_name: str
    group_id: str
    group_name: str
    layer_id: str
    layer_name: str
    timestamp: str


class SaveAssignmentsRequest(BaseModel):
    project_id: str
    assignments: list[AssignmentModel]
    layer_groups: list[LayerGroupModel]


class SaveAssignmentsResponse(BaseModel):
    success: bool
    message: str = ""
    import_id: str = ""


class ImportedLayerData(BaseModel):
    import_id: str
    project_id: str
    project_name: str = ""
    layer_groups: list[LayerGroupModel] = Field(default_factory=list)
    assignments: list[AssignmentModel] = Field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""


class Envelope(BaseModel, Generic[T]):
    is_success: bool = Field(alias="IsSuccess")
    status_code: str = Field(default="", alias="StatusCode")
    error_message: Optional[str] = Field(default=None, alias="ErrorMessage")
    data: Optional[T] = Field(default=None, alias="Data")


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------

def assignment_to_model(assignment: PackageAssignment) -> AssignmentModel:
    group_id, layer_id, line_id = assignment.key
    return AssignmentModel(
        id=f"{group_id}-{layer_id}-{line_id}",
        line_string_id=assignment.line_string_id,
        package_id=assignment.package_id,
        package_name=assignment.package_name,
        group_id=assignment.group_id,
        group_name=assignment.group_name,
        layer_id=assignment.layer_id,
        layer_name=assignment.layer_name,
        timestamp=assignment.timestamp,
    )


def assignment_from_model(model: AssignmentModel) -> PackageAssignment:
    return PackageAssignment(
        line_string_id=model.line_string_id,
        package_id=model.package_id,
        package_name=model.package_name,
        group_id=model.group_id,
        group_name=model.group_name,
        layer_id=model.layer_id,
        layer_name=model.layer_name,
        timestamp=model.timestamp,
    )


def layer_group_to_model(group: LayerGroup) -> LayerGroupModel:
    return LayerGroupModel.model_validate(group.to_dict())


def layer_group_from_model(model: LayerGroupModel) -> LayerGroup:
    """Rebuild a LayerGroup; malformed geometries and emptied layers are dropped."""
    layers = []
    for layer in model.layers:
        geometry = tuple(
            g for g in (
                normalize_geometry(
                    {"type": gm.type, "coordinates": gm.coordinates}, gm.properties
                )
                for gm in layer.geometry
            )
            if g is not None
        )
        if not geometry:
            continue
        layers.append(Layer(
            id=layer.id,
            name=layer.name,
            color=layer.color,
            geometry=geometry,
            visible=layer.visible,
            bounds=layer.bounds if layer.bounds is not None else union_bounds(geometry),
        ))
    return LayerGroup(
        id=model.id,
        name=model.name,
        layers=tuple(layers),
        visible=model.visible,
        bounds=model.bounds if model.bounds is not None else merge_bounds(x.bounds for x in layers),
    )


@dataclass(frozen=True)
class RestoredImport:
    """A previously saved import, rebuilt into domain values."""

    import_id: str
    project_id: str
    project_name: str
    layer_groups: tuple[LayerGroup, ...]
    assignments: tuple[PackageAssignment, ...]
    created_at: str = ""
    updated_at: str = ""


def restore_import(data: ImportedLayerData) -> RestoredImport:
    """Rehydrate fetched data; groups left without valid layers are dropped."""
    groups = tuple(
        g for g in (layer_group_from_model(m) for m in data.layer_groups) if g.layers
    )
    return RestoredImport(
        import_id=data.import_id,
        project_id=data.project_id,
        project_name=data.project_name,
        layer_groups=groups,
        assignments=tuple(assignment_from_model(m) for m in data.assignments),
        created_at=data.created_at,
        updated_at=data.updated_at,
    )


def build_save_payload(state: ImportState) -> SaveAssignmentsRequest:
    """Payload for save_assignments from the confirmed import (or everything).

    Raises:
        NoProjectSelectedError: If no project is selected.
    """
    if state.project is None:
        raise NoProjectSelectedError("Select a project before saving")
    if state.map_render is not None:
        groups, assignments = state.map_render.layer_groups, state.map_render.assignments
    else:
        groups, assignments = state.layer_groups, state.assignments
    return SaveAssignmentsRequest(
        project_id=state.project.project_id,
        assignments=[assignment_to_model(x) for x in assignments],
        layer_groups=[layer_group_to_model(g) for g in groups],
    )


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class AssignmentClient:
    """Synchronous client for the persistence endpoints."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "AssignmentClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _call(self, method: str, path: str, model: type, **kwargs):
        try:
            resp = self._client.request(method, path, **kwargs)
            resp.raise_for_status()
            envelope = Envelope[model].model_validate(resp.json())
        except httpx.HTTPError as e:
            logger.warning(f"Persistence call {method} {path} failed: {e}")
            raise PersistenceError(f"Persistence request failed: {e}") from e
        except (ValueError, ValidationError) as e:
            raise PersistenceError(f"Malformed persistence response: {e}") from e

        if not envelope.is_success:
            message = envelope.error_message or f"status {envelope.status_code}"
            logger.warning(f"Persistence call {method} {path} rejected: {message}")
            raise PersistenceError(message)
        return envelope.data

    def save_assignments(self, payload: SaveAssignmentsRequest) -> SaveAssignmentsResponse:
        data = self._call(
            "POST", _SAVE_PATH, SaveAssignmentsResponse,
            json=payload.model_dump(by_alias=True),
        )
        logger.info(
            f"Saved {len(payload.assignments)} assignments for project {payload.project_id}"
        )
        return data

    def get_imported_data(
        self, project_id: str | None = None, import_id: str | None = None
    ) -> list[RestoredImport]:
        params = {}
        if project_id:
            params["project_id"] = project_id
        if import_id:
            params["import_id"] = import_id
        data = self._call("GET", _FETCH_PATH, list[ImportedLayerData], params=params) or []
        logger.info(f"Fetched {len(data)} saved imports")
        return [restore_import(item) for item in data]

    def delete_imported_data(self, import_id: str) -> bool:
        data = self._call("POST", _DELETE_PATH, dict, json={"import_id": import_id})
        return bool(data and data.get("success"))
