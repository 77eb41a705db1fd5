"""Designer HTTP routes over the process-wide DesignerStore.

Endpoints:
- GET  /designer/state — Editor summary (project, selection, history, save status)
- POST /designer/projects/{project_id}/load — Load a project
- POST /designer/save — Save the loaded project
- POST /designer/undo, /designer/redo — History navigation
- POST /designer/templates/{template_id}/select — Switch the current template
- POST /designer/elements — Add an element
- PATCH/DELETE /designer/elements/{element_id} — Update or delete an element
- POST /designer/elements/group, /designer/elements/{group_id}/ungroup
- POST /designer/elements/{element_id}/reorder, /designer/elements/{element_id}/z-order
- POST /designer/keyframes — Add a keyframe
- DELETE /designer/keyframes/{keyframe_id}/properties/{prop} — Remove one keyframe property
- POST /designer/records/{direction} — Step the live data record
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from gfx_engines.common.error_envelope import designer_error_response, error_response, not_found_error
from gfx_engines.common.errors import DesignerError
from gfx_engines.designer.service import DesignerStore, get_designer_store
from gfx_engines.scene_graph.models import ElementType
from gfx_engines.timeline.models import Phase

router = APIRouter(prefix="/designer", tags=["designer"])


# Request/Response Models
class DesignerSummary(BaseModel):
    project_id: Optional[str] = None
    project_name: Optional[str] = None
    current_template_id: Optional[str] = None
    template_count: int = 0
    element_count: int = 0
    selected_element_ids: List[str] = Field(default_factory=list)
    can_undo: bool = False
    can_redo: bool = False
    is_dirty: bool = False
    is_saving: bool = False
    last_saved: Optional[datetime] = None
    error: Optional[str] = None


class AddElementRequest(BaseModel):
    element_type: ElementType
    x: float = 0
    y: float = 0
    parent_element_id: Optional[str] = None


class UpdateElementRequest(BaseModel):
    updates: Dict[str, Any]


class GroupRequest(BaseModel):
    element_ids: List[str]


class ReorderRequest(BaseModel):
    index: int
    parent_element_id: Optional[str] = None
    change_parent: bool = False


class ZOrderRequest(BaseModel):
    action: Literal["front", "back", "forward", "backward", "set"]
    z_index: Optional[int] = None


class AddKeyframeRequest(BaseModel):
    animation_id: str
    position: float
    properties: Dict[str, Any] = Field(default_factory=dict)


class ElementIdsResponse(BaseModel):
    element_ids: List[str]


class RecordResponse(BaseModel):
    index: int
    record: Optional[Dict[str, Any]] = None


def _summary(store: DesignerStore) -> DesignerSummary:
    state = store.state
    return DesignerSummary(
        project_id=state.project.id if state.project else None,
        project_name=state.project.name if state.project else None,
        current_template_id=state.current_template_id,
        template_count=len(state.templates),
        element_count=len(state.elements),
        selected_element_ids=state.selected_element_ids,
        can_undo=store.history.can_undo,
        can_redo=store.history.can_redo,
        is_dirty=state.is_dirty,
        is_saving=state.is_saving,
        last_saved=state.last_saved,
        error=state.error,
    )


def _rejected(action: str, resource_id: str) -> HTTPException:
    return error_response(
        code="designer.rejected",
        message=f"{action} rejected for {resource_id}",
        status_code=409,
        resource_kind="element",
        details={"id": resource_id},
    )


# Endpoints

@router.get("/state", response_model=DesignerSummary)
async def get_state(store: DesignerStore = Depends(get_designer_store)):
    return _summary(store)


@router.post("/projects/{project_id}/load", response_model=DesignerSummary)
async def load_project(project_id: str, store: DesignerStore = Depends(get_designer_store)):
    ok = await store.load_project(project_id)
    if not ok:
        if store.state.error == "Project not found":
            raise not_found_error("project", project_id)
        raise error_response(
            code="designer.load_failed",
            message=store.state.error or "Failed to load project",
            status_code=502,
            resource_kind="project",
            details={"id": project_id},
        )
    return _summary(store)


@router.post("/save")
async def save_project(store: DesignerStore = Depends(get_designer_store)):
    report = await store.save_project()
    if report is None:
        raise error_response(code="designer.no_project", message="No project loaded", status_code=409, resource_kind="project")
    try:
        report.raise_for_failures()
    except DesignerError as exc:
        raise designer_error_response(exc, resource_kind="project")
    return report.model_dump(mode="json")


@router.post("/undo", response_model=DesignerSummary)
async def undo(store: DesignerStore = Depends(get_designer_store)):
    store.undo()
    return _summary(store)


@router.post("/redo", response_model=DesignerSummary)
async def redo(store: DesignerStore = Depends(get_designer_store)):
    store.redo()
    return _summary(store)


@router.post("/templates/{template_id}/select", response_model=DesignerSummary)
async def select_template(template_id: str, store: DesignerStore = Depends(get_designer_store)):
    try:
        store.require_template(template_id)
    except DesignerError as exc:
        raise designer_error_response(exc, resource_kind="template")
    task = store.select_template(template_id)
    if task is not None:
        await task
    return _summary(store)


@router.post("/elements", response_model=ElementIdsResponse)
async def add_element(payload: AddElementRequest, store: DesignerStore = Depends(get_designer_store)):
    if store.state.current_template() is None:
        raise error_response(code="designer.no_template", message="No template selected", status_code=409, resource_kind="template")
    element_id = store.scene.add_element(
        payload.element_type,
        {"x": payload.x, "y": payload.y},
        parent_id=payload.parent_element_id,
    )
    if element_id is None:
        raise _rejected("add_element", payload.parent_element_id or "root")
    return ElementIdsResponse(element_ids=[element_id])


@router.patch("/elements/{element_id}", response_model=ElementIdsResponse)
async def update_element(element_id: str, payload: UpdateElementRequest, store: DesignerStore = Depends(get_designer_store)):
    if store.state.element(element_id) is None:
        raise not_found_error("element", element_id)
    try:
        store.scene.update_element(element_id, **payload.updates)
    except DesignerError as exc:
        raise designer_error_response(exc, resource_kind="element")
    return ElementIdsResponse(element_ids=[element_id])


@router.delete("/elements/{element_id}", response_model=ElementIdsResponse)
async def delete_element(element_id: str, store: DesignerStore = Depends(get_designer_store)):
    removed = store.scene.delete_elements([element_id])
    if not removed:
        raise not_found_error("element", element_id)
    return ElementIdsResponse(element_ids=removed)


@router.post("/elements/group", response_model=ElementIdsResponse)
async def group_elements(payload: GroupRequest, store: DesignerStore = Depends(get_designer_store)):
    group_id = store.scene.group_elements(payload.element_ids)
    if group_id is None:
        raise _rejected("group", ",".join(payload.element_ids))
    return ElementIdsResponse(element_ids=[group_id])


@router.post("/elements/{group_id}/ungroup", response_model=ElementIdsResponse)
async def ungroup_elements(group_id: str, store: DesignerStore = Depends(get_designer_store)):
    children = store.scene.ungroup_elements(group_id)
    if children is None:
        raise _rejected("ungroup", group_id)
    return ElementIdsResponse(element_ids=children)


@router.post("/elements/{element_id}/reorder", response_model=ElementIdsResponse)
async def reorder_element(element_id: str, payload: ReorderRequest, store: DesignerStore = Depends(get_designer_store)):
    if payload.change_parent:
        ok = store.scene.reorder_element(element_id, payload.index, payload.parent_element_id)
    else:
        ok = store.scene.reorder_element(element_id, payload.index)
    if not ok:
        raise _rejected("reorder", element_id)
    return ElementIdsResponse(element_ids=[element_id])


@router.post("/elements/{element_id}/z-order", response_model=ElementIdsResponse)
async def change_z_order(element_id: str, payload: ZOrderRequest, store: DesignerStore = Depends(get_designer_store)):
    scene = store.scene
    if payload.action == "set":
        if payload.z_index is None:
            raise error_response(code="designer.validation", message="z_index is required", status_code=422, resource_kind="element")
        ok = scene.set_z_index(element_id, payload.z_index)
    else:
        ok = {
            "front": scene.bring_to_front,
            "back": scene.send_to_back,
            "forward": scene.bring_forward,
            "backward": scene.send_backward,
        }[payload.action](element_id)
    if not ok:
        raise _rejected(f"z-order {payload.action}", element_id)
    return ElementIdsResponse(element_ids=[element_id])


@router.post("/keyframes")
async def add_keyframe(payload: AddKeyframeRequest, store: DesignerStore = Depends(get_designer_store)):
    keyframe_id = store.timeline.add_keyframe(payload.animation_id, payload.position, payload.properties)
    if keyframe_id is None:
        raise not_found_error("animation", payload.animation_id)
    return {"keyframe_id": keyframe_id}


@router.delete("/keyframes/{keyframe_id}/properties/{prop}")
async def remove_keyframe_property(keyframe_id: str, prop: str, store: DesignerStore = Depends(get_designer_store)):
    if not store.timeline.remove_keyframe_property(keyframe_id, prop):
        raise not_found_error("keyframe", keyframe_id)
    keyframe = store.state.keyframe(keyframe_id)
    return {"keyframe_id": keyframe_id, "properties": keyframe.properties if keyframe else {}}


@router.post("/records/{direction}", response_model=RecordResponse)
async def step_record(direction: Literal["next", "prev"], store: DesignerStore = Depends(get_designer_store)):
    index = store.data.next_record() if direction == "next" else store.data.prev_record()
    return RecordResponse(index=index, record=store.data.current_record())


@router.post("/phase/{phase}", response_model=DesignerSummary)
async def set_phase(phase: Phase, store: DesignerStore = Depends(get_designer_store)):
    store.timeline.set_phase(phase)
    return _summary(store)
