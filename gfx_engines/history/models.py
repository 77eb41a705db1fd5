from __future__ import annotations

import time
import uuid
from typing import List

from pydantic import BaseModel, Field

from gfx_engines.data_binding.models import Binding
from gfx_engines.scene_graph.models import Element
from gfx_engines.timeline.models import Animation, Keyframe


class DesignerSnapshot(BaseModel):
    """Structural collections only; selection, canvas and UI state are excluded."""
    elements: List[Element] = Field(default_factory=list)
    animations: List[Animation] = Field(default_factory=list)
    keyframes: List[Keyframe] = Field(default_factory=list)
    bindings: List[Binding] = Field(default_factory=list)


class HistoryEntry(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: float = Field(default_factory=time.time)
    description: str
    snapshot: DesignerSnapshot
