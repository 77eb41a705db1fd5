"""The shared, constructible state object all designer engines operate on."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, Field

from gfx_engines.data_binding.models import Binding, DataBindingState, TemplateDataCacheEntry
from gfx_engines.designer.models import Layer, Project, Template
from gfx_engines.history.models import HistoryEntry
from gfx_engines.persistence.models import PendingDeletions
from gfx_engines.scene_graph.models import Element
from gfx_engines.timeline.models import Animation, Keyframe, OnAirEntry, PhaseDurations, TransportState


class DesignerState(BaseModel):
    project: Optional[Project] = None
    layers: List[Layer] = Field(default_factory=list)
    templates: List[Template] = Field(default_factory=list)
    current_template_id: Optional[str] = None

    elements: List[Element] = Field(default_factory=list)
    animations: List[Animation] = Field(default_factory=list)
    keyframes: List[Keyframe] = Field(default_factory=list)
    bindings: List[Binding] = Field(default_factory=list)

    selected_element_ids: List[str] = Field(default_factory=list)
    hovered_element_id: Optional[str] = None
    selected_keyframe_ids: List[str] = Field(default_factory=list)
    expanded_nodes: Set[str] = Field(default_factory=set)

    phase_durations: PhaseDurations = Field(default_factory=PhaseDurations)
    transport: TransportState = Field(default_factory=TransportState)
    on_air: Dict[str, OnAirEntry] = Field(default_factory=dict)

    data: DataBindingState = Field(default_factory=DataBindingState)
    template_data_cache: Dict[str, TemplateDataCacheEntry] = Field(default_factory=dict)

    history: List[HistoryEntry] = Field(default_factory=list)
    history_index: int = -1

    pending_deletions: PendingDeletions = Field(default_factory=PendingDeletions)
    is_dirty: bool = False
    is_saving: bool = False
    is_loading: bool = False
    last_saved: Optional[datetime] = None
    error: Optional[str] = None

    # --- lookups ---

    def element(self, element_id: str) -> Optional[Element]:
        return next((e for e in self.elements if e.id == element_id), None)

    def template(self, template_id: Optional[str]) -> Optional[Template]:
        return next((t for t in self.templates if t.id == template_id), None)

    def layer(self, layer_id: str) -> Optional[Layer]:
        return next((l for l in self.layers if l.id == layer_id), None)

    def animation(self, animation_id: str) -> Optional[Animation]:
        return next((a for a in self.animations if a.id == animation_id), None)

    def keyframe(self, keyframe_id: str) -> Optional[Keyframe]:
        return next((k for k in self.keyframes if k.id == keyframe_id), None)

    def current_template(self) -> Optional[Template]:
        return self.template(self.current_template_id)

    def template_elements(self, template_id: Optional[str]) -> List[Element]:
        return [e for e in self.elements if e.template_id == template_id]

    def children_of(self, template_id: Optional[str], parent_id: Optional[str]) -> List[Element]:
        return [
            e for e in self.elements
            if e.template_id == template_id and e.parent_element_id == parent_id
        ]

    def mark_dirty(self) -> None:
        self.is_dirty = True
