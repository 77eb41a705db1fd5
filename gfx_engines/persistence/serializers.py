"""Row serializers for batch upserts.

Every row of a kind carries the same keys; optional fields are defaulted,
never omitted, so a batch is shape-uniform.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Sequence

from gfx_engines.data_binding.models import Binding
from gfx_engines.designer.models import Layer, Project, Template
from gfx_engines.persistence.models import EntityKind
from gfx_engines.scene_graph.models import Element
from gfx_engines.timeline.models import Animation, Keyframe

Row = Dict[str, Any]

# Keyframe properties mirrored into legacy columns.
_KEYFRAME_COLUMNS = {
    "position_x": "position_x",
    "position_y": "position_y",
    "rotation": "rotation",
    "scale_x": "scale_x",
    "scale_y": "scale_y",
    "opacity": "opacity",
    "color": "color",
    "backgroundColor": "background_color",
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def serialize_project(project: Project) -> Row:
    return {
        "name": project.name,
        "description": project.description,
        "canvas_width": project.canvas_width,
        "canvas_height": project.canvas_height,
        "background_color": project.background_color,
        "frame_rate": project.frame_rate,
        "thumbnail_url": project.thumbnail_url,
        "settings": project.settings or {},
        "updated_at": _now_iso(),
    }


def serialize_layer(layer: Layer, project_id: str) -> Row:
    row = layer.model_dump(mode="json")
    row["project_id"] = project_id
    return row


def serialize_template(template: Template, project_id: str) -> Row:
    row = template.model_dump(mode="json", exclude={"created_at"})
    row["project_id"] = project_id
    row["updated_at"] = _now_iso()
    return row


def serialize_element(element: Element) -> Row:
    row = element.model_dump(mode="json")
    row["z_index"] = element.z_index or 0
    return row


def serialize_animation(animation: Animation) -> Row:
    return animation.model_dump(mode="json", exclude={"created_at"})


def serialize_keyframe(keyframe: Keyframe) -> Row:
    row = keyframe.model_dump(mode="json")
    row["easing"] = keyframe.easing or "linear"
    row["properties"] = dict(keyframe.properties or {})
    for prop, column in _KEYFRAME_COLUMNS.items():
        row[column] = keyframe.properties.get(prop)
    return row


def serialize_binding(binding: Binding) -> Row:
    return binding.model_dump(mode="json")


def serialize_rows(kind: EntityKind, items: Sequence[Any], project_id: str) -> List[Row]:
    serializers: Dict[EntityKind, Callable[[Any], Row]] = {
        EntityKind.LAYERS: lambda item: serialize_layer(item, project_id),
        EntityKind.TEMPLATES: lambda item: serialize_template(item, project_id),
        EntityKind.ELEMENTS: serialize_element,
        EntityKind.ANIMATIONS: serialize_animation,
        EntityKind.KEYFRAMES: serialize_keyframe,
        EntityKind.BINDINGS: serialize_binding,
    }
    serializer = serializers[EntityKind(kind)]
    return [serializer(item) for item in items]
