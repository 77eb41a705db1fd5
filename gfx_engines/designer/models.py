"""Project, layer and template models plus the built-in defaults."""
from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from gfx_engines.data_binding.models import DataSourceConfig

LOCAL_PROJECT_ID = "demo"
_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.I)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def is_local_project_id(project_id: str) -> bool:
    """Local projects never touch the remote store."""
    return project_id == LOCAL_PROJECT_ID or not _UUID_RE.match(project_id or "")


class SelectionMode(str, Enum):
    REPLACE = "replace"
    ADD = "add"
    TOGGLE = "toggle"


class Project(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = "Untitled Project"
    description: Optional[str] = None
    slug: Optional[str] = None
    canvas_width: int = 1920
    canvas_height: int = 1080
    frame_rate: int = 30
    background_color: str = "transparent"
    thumbnail_url: Optional[str] = None
    settings: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class Layer(BaseModel):
    """A named compositing channel such as a lower third or a bug."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    project_id: str
    name: str
    layer_type: str = "custom"
    z_index: int = 0
    sort_order: int = 0
    position_anchor: str = "top-left"
    position_offset_x: float = 0
    position_offset_y: float = 0
    width: Optional[float] = None
    height: Optional[float] = None
    transition_in: str = "fade"
    transition_in_duration: int = 500
    transition_out: str = "fade"
    transition_out_duration: int = 300
    auto_out: bool = False
    allow_multiple: bool = False
    enabled: bool = True
    locked: bool = False
    always_on: bool = False


class Template(BaseModel):
    """A reusable animated composition bound to one layer."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    project_id: str
    layer_id: str
    folder_id: Optional[str] = None
    name: str = "New Template"
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    width: int = 1920
    height: int = 1080
    in_duration: int = 500
    loop_duration: int = 0
    loop_iterations: int = 0
    out_duration: int = 300
    data_source_id: Optional[str] = None
    data_source_config: Optional[DataSourceConfig] = None
    enabled: bool = True
    locked: bool = False
    archived: bool = False
    version: int = 1
    sort_order: int = 0
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


# --- Built-in defaults ---

def default_layers(project_id: str, canvas_width: int = 1920, canvas_height: int = 1080) -> List[Layer]:
    """The four standard layers created when a project has none."""
    return [
        Layer(
            project_id=project_id, name="Background", layer_type="background",
            z_index=10, sort_order=0, width=canvas_width, height=canvas_height,
            transition_out_duration=500, always_on=True,
        ),
        Layer(
            project_id=project_id, name="Fullscreen", layer_type="fullscreen",
            z_index=100, sort_order=1, width=canvas_width, height=canvas_height,
        ),
        Layer(
            project_id=project_id, name="Lower Third", layer_type="lower-third",
            z_index=300, sort_order=2, position_anchor="bottom-left",
            position_offset_x=round(canvas_width * 0.04),
            position_offset_y=round(-canvas_height * 0.11),
            width=round(canvas_width * 0.36), height=round(canvas_height * 0.14),
            transition_in="slide-right", transition_in_duration=400,
            transition_out="slide-left", auto_out=True,
        ),
        Layer(
            project_id=project_id, name="Bug", layer_type="bug",
            z_index=450, sort_order=3, position_anchor="top-right",
            position_offset_x=round(-canvas_width * 0.02),
            position_offset_y=round(canvas_height * 0.04),
            width=round(canvas_width * 0.1), height=round(canvas_height * 0.074),
            transition_in_duration=300, transition_out_duration=200, allow_multiple=True,
        ),
    ]


def default_templates(project_id: str, layers: List[Layer]) -> List[Template]:
    """Starter templates for a demo project, one per non-background layer type."""
    by_type = {layer.layer_type: layer for layer in layers}
    specs: List[Tuple[str, str, str, List[str], int, int, int, int]] = [
        ("fullscreen", "Main Fullscreen", "Primary fullscreen graphic", ["fullscreen"], 1920, 1080, 500, 0),
        ("lower-third", "Basic L3", "Standard lower third", ["lower-third", "name"], 700, 150, 500, 1),
        ("bug", "Score Bug", "Live score display", ["score", "bug"], 200, 80, 300, 3),
    ]
    templates: List[Template] = []
    for layer_type, name, description, tags, width, height, in_duration, sort_order in specs:
        layer = by_type.get(layer_type)
        if layer is None:
            continue
        templates.append(
            Template(
                project_id=project_id, layer_id=layer.id, name=name, description=description,
                tags=tags, width=width, height=height, in_duration=in_duration, sort_order=sort_order,
            )
        )
    return templates


def demo_project(project_id: str) -> Project:
    return Project(
        id=project_id,
        name="Demo Project",
        description="Local demo project",
        slug="demo",
    )
