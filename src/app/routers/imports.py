"""KML/KMZ import endpoints.

Upload files, toggle layer visibility, select features, assign packages,
confirm the import and save it to the persistence service. All state lives in one ImportStore owned by the
ImportProcessor returned by get_processor().
"""

from __future__ import annotations

import functools

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from app.config import settings
from geoimport.errors import GeoImportError, PersistenceError
from geoimport.persistence import AssignmentClient, build_save_payload
from geoimport.pipeline import ChunkedParser
from geoimport.processor import ImportProcessor
from geoimport.store import (
    ActionResult,
    ImportStore,
    LineStringSelection,
    PackageRecord,
    ProjectRef,
    SelectedFeature,
)
from geoimport.store import selectors

router = APIRouter(prefix="/api/imports", tags=["imports"])


@functools.lru_cache
def get_processor() -> ImportProcessor:
    return ImportProcessor(
        ImportStore(),
        parser=ChunkedParser(batch_size=settings.parse_batch_size),
        max_upload_bytes=settings.max_upload_bytes,
        time_budget=settings.parse_time_budget,
    )


def get_assignment_client():
    with AssignmentClient(
        settings.persistence_base_url, timeout=settings.persistence_timeout
    ) as client:
        yield client


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class ProjectRequest(BaseModel):
    project_id: str
    name: str = ""


class SelectionRequest(BaseModel):
    group_id: str
    layer_id: str
    index: int


class AssignmentRequest(BaseModel):
    group_id: str
    layer_id: str
    line_string_id: int
    package_id: str
    package_name: str


def _check(result: ActionResult) -> dict:
    if not result.ok:
        raise HTTPException(status_code=400, detail=result.error.message)
    return {"ok": True}


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------

@router.post("/files")
async def upload_file(
    request: Request,
    filename: str = Query(..., min_length=1),
    processor: ImportProcessor = Depends(get_processor),
):
    """Queue the raw request body as a file and process the queue."""
    data = await request.body()
    record = processor.enqueue(filename, data)
    await processor.process_pending()
    for current in processor.store.state.files:
        if current.id == record.id:
            return current.to_dict()
    return record.to_dict()


@router.get("/files")
async def list_files(processor: ImportProcessor = Depends(get_processor)):
    return [f.to_dict() for f in processor.store.state.files]


@router.delete("/files/{file_id}")
async def remove_file(file_id: str, processor: ImportProcessor = Depends(get_processor)):
    processor.remove(file_id)
    return {"ok": True}


# ---------------------------------------------------------------------------
# Project
# ---------------------------------------------------------------------------

@router.put("/project")
async def set_project(body: ProjectRequest, processor: ImportProcessor = Depends(get_processor)):
    return _check(processor.store.set_project(ProjectRef(body.project_id, body.name)))


@router.delete("/project")
async def clear_project(processor: ImportProcessor = Depends(get_processor)):
    return _check(processor.store.set_project(None))


# ---------------------------------------------------------------------------
# Layer groups
# ---------------------------------------------------------------------------

@router.get("/groups")
async def list_groups(processor: ImportProcessor = Depends(get_processor)):
    return [g.to_dict() for g in processor.store.state.layer_groups]


@router.delete("/groups/{group_id}")
async def remove_group(group_id: str, processor: ImportProcessor = Depends(get_processor)):
    return _check(processor.store.remove_layer_group(group_id))


@router.post("/groups/{group_id}/toggle")
async def toggle_group(group_id: str, processor: ImportProcessor = Depends(get_processor)):
    return _check(processor.store.toggle_group_visibility(group_id))


@router.post("/groups/{group_id}/layers/{layer_id}/toggle")
async def toggle_layer(
    group_id: str, layer_id: str, processor: ImportProcessor = Depends(get_processor)
):
    return _check(processor.store.toggle_layer_visibility(group_id, layer_id))


@router.delete("/groups/{group_id}/layers/{layer_id}")
async def remove_layer(
    group_id: str, layer_id: str, processor: ImportProcessor = Depends(get_processor)
):
    return _check(processor.store.remove_layer(group_id, layer_id))


# ---------------------------------------------------------------------------
# Selection and assignments
# ---------------------------------------------------------------------------

@router.post("/selection")
async def select_feature(body: SelectionRequest, processor: ImportProcessor = Depends(get_processor)):
    state = processor.store.state
    group = state.find_group(body.group_id)
    layer = group.find_layer(body.layer_id) if group is not None else None
    if layer is None:
        raise HTTPException(status_code=404, detail="Layer not found")
    try:
        feature = SelectedFeature.from_layer(group, layer, body.index)
    except IndexError as e:
        raise HTTPException(status_code=404, detail=str(e))
    _check(processor.store.select_feature(feature))
    return {"ok": True, "feature_id": feature.id}


@router.delete("/selection/{feature_id}")
async def deselect_feature(feature_id: str, processor: ImportProcessor = Depends(get_processor)):
    return _check(processor.store.deselect_feature(feature_id))


@router.delete("/selection")
async def clear_selection(processor: ImportProcessor = Depends(get_processor)):
    return _check(processor.store.clear_selection())


@router.post("/assignments")
async def assign_package(body: AssignmentRequest, processor: ImportProcessor = Depends(get_processor)):
    selection = LineStringSelection(body.group_id, body.layer_id, body.line_string_id)
    package = PackageRecord(body.package_id, body.package_name)
    return _check(processor.store.assign_package(selection, package))


@router.delete("/assignments/{group_id}/{layer_id}/{line_string_id}")
async def unassign_package(
    group_id: str,
    layer_id: str,
    line_string_id: int,
    processor: ImportProcessor = Depends(get_processor),
):
    selection = LineStringSelection(group_id, layer_id, line_string_id)
    return _check(processor.store.unassign_package(selection))


@router.post("/confirm")
async def confirm_import(processor: ImportProcessor = Depends(get_processor)):
    _check(processor.store.confirm_import_to_map())
    render = processor.store.state.map_render
    return {
        "ok": True,
        "imported_at": render.imported_at,
        "layer_groups": [g.to_dict() for g in render.layer_groups],
        "assignments": len(render.assignments),
    }


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------

@router.get("/summary")
async def summary(processor: ImportProcessor = Depends(get_processor)):
    return selectors.summary(processor.store.state)


@router.get("/payload")
async def save_payload(processor: ImportProcessor = Depends(get_processor)):
    """Body for the persistence service's save-assignments call."""
    try:
        payload = build_save_payload(processor.store.state)
    except GeoImportError as e:
        raise HTTPException(status_code=400, detail=e.message)
    return payload.model_dump(by_alias=True)


@router.post("/save")
def save_import(
    processor: ImportProcessor = Depends(get_processor),
    client: AssignmentClient = Depends(get_assignment_client),
):
    """Send the confirmed import to the persistence service."""
    try:
        payload = build_save_payload(processor.store.state)
    except GeoImportError as e:
        raise HTTPException(status_code=400, detail=e.message)
    try:
        result = client.save_assignments(payload)
    except PersistenceError as e:
        raise HTTPException(status_code=502, detail=e.message)
    return {
        "ok": True,
        "import_id": result.import_id if result is not None else "",
        "assignments": len(payload.assignments),
    }


@router.post("/reset")
async def reset_import(processor: ImportProcessor = Depends(get_processor)):
    """Forget files, groups, selection, assignments and project."""
    processor.clear()
    return {"ok": True}
