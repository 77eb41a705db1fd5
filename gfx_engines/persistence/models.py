"""Persistence models: entity kinds, deletion queues, save reports, local blobs."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from gfx_engines.common.errors import PartialSaveError
from gfx_engines.data_binding.models import Binding
from gfx_engines.designer.models import Layer, Project, Template
from gfx_engines.scene_graph.models import Element
from gfx_engines.timeline.models import Animation, Keyframe


class EntityKind(str, Enum):
    PROJECT = "project"
    LAYERS = "layers"
    TEMPLATES = "templates"
    ELEMENTS = "elements"
    ANIMATIONS = "animations"
    KEYFRAMES = "keyframes"
    BINDINGS = "bindings"


# Upstream before downstream so foreign keys are always satisfiable.
UPSERT_ORDER: List[EntityKind] = [
    EntityKind.LAYERS,
    EntityKind.TEMPLATES,
    EntityKind.ELEMENTS,
    EntityKind.ANIMATIONS,
    EntityKind.KEYFRAMES,
    EntityKind.BINDINGS,
]

DELETION_ORDER: List[EntityKind] = [
    EntityKind.KEYFRAMES,
    EntityKind.ANIMATIONS,
    EntityKind.BINDINGS,
    EntityKind.ELEMENTS,
    EntityKind.TEMPLATES,
    EntityKind.LAYERS,
]


class PendingDeletions(BaseModel):
    """Ordered, de-duplicated id queues awaiting remote delete."""
    elements: List[str] = Field(default_factory=list)
    animations: List[str] = Field(default_factory=list)
    keyframes: List[str] = Field(default_factory=list)
    bindings: List[str] = Field(default_factory=list)
    templates: List[str] = Field(default_factory=list)
    layers: List[str] = Field(default_factory=list)

    def queue(self, kind: EntityKind) -> List[str]:
        return getattr(self, EntityKind(kind).value)

    def enqueue(self, kind: EntityKind, ids: Iterable[str]) -> None:
        queue = self.queue(kind)
        for entity_id in ids:
            if entity_id not in queue:
                queue.append(entity_id)

    def discard(self, kind: EntityKind, ids: Iterable[str]) -> None:
        drop = set(ids)
        queue = self.queue(kind)
        queue[:] = [i for i in queue if i not in drop]

    def clear(self, kinds: Optional[Iterable[EntityKind]] = None) -> None:
        for kind in (kinds if kinds is not None else DELETION_ORDER):
            self.queue(kind).clear()

    def is_empty(self) -> bool:
        return not any(self.queue(kind) for kind in DELETION_ORDER)


class WriteResult(BaseModel):
    success: bool
    error: Optional[str] = None
    count: int = 0


class SaveStep(BaseModel):
    action: str  # update | upsert | delete
    kind: EntityKind
    success: bool
    count: int = 0
    error: Optional[str] = None


class SaveReport(BaseModel):
    project_id: str
    remote: bool = True
    steps: List[SaveStep] = Field(default_factory=list)
    local_backup_written: bool = False
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def failed_steps(self) -> List[SaveStep]:
        return [s for s in self.steps if not s.success]

    @property
    def ok(self) -> bool:
        return not self.failed_steps

    def raise_for_failures(self) -> None:
        if self.failed_steps:
            raise PartialSaveError(self)


class LocalProjectBlob(BaseModel):
    """Full project state as written to the durable local cache."""
    project: Project
    layers: List[Layer] = Field(default_factory=list)
    templates: List[Template] = Field(default_factory=list)
    elements: List[Element] = Field(default_factory=list)
    animations: List[Animation] = Field(default_factory=list)
    keyframes: List[Keyframe] = Field(default_factory=list)
    bindings: List[Binding] = Field(default_factory=list)
    saved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class LoadedProject(BaseModel):
    """Result of a load: the collections plus where they came from."""
    project: Project
    layers: List[Layer] = Field(default_factory=list)
    templates: List[Template] = Field(default_factory=list)
    elements: List[Element] = Field(default_factory=list)
    animations: List[Animation] = Field(default_factory=list)
    keyframes: List[Keyframe] = Field(default_factory=list)
    bindings: List[Binding] = Field(default_factory=list)
    source: str = "remote"  # remote | local_cache | demo
    degraded: Dict[str, str] = Field(default_factory=dict)
