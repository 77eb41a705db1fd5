"""Timeline models: phases, animations, keyframes and transport state."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Union

from pydantic import BaseModel, Field

MIN_PHASE_DURATION_MS = 500
MAX_PHASE_DURATION_MS = 300_000
# Pressing play this close to the end restarts from 0.
PLAY_RESTART_THRESHOLD_MS = 50

KeyframeValue = Union[str, float, int, None]


class Phase(str, Enum):
    IN = "in"
    LOOP = "loop"
    OUT = "out"

    def next(self) -> Optional["Phase"]:
        order = [Phase.IN, Phase.LOOP, Phase.OUT]
        idx = order.index(self)
        return order[idx + 1] if idx + 1 < len(order) else None


class PhaseDurations(BaseModel):
    """Duration in ms of each phase."""
    in_: int = Field(default=1500, alias="in")
    loop: int = 3000
    out: int = 1500

    model_config = {"populate_by_name": True}

    def get(self, phase: Phase) -> int:
        return {Phase.IN: self.in_, Phase.LOOP: self.loop, Phase.OUT: self.out}[Phase(phase)]

    def set(self, phase: Phase, duration: int) -> None:
        phase = Phase(phase)
        if phase == Phase.IN:
            self.in_ = duration
        elif phase == Phase.LOOP:
            self.loop = duration
        else:
            self.out = duration

    def as_dict(self) -> Dict[str, int]:
        return self.model_dump(by_alias=True)


class Animation(BaseModel):
    """One timed behavior of one element within one phase."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    template_id: str
    element_id: str
    phase: Phase = Phase.IN
    delay: int = 0
    duration: int = 1500
    iterations: int = 1
    direction: str = "normal"
    easing: str = "ease-out"
    preset_id: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Keyframe(BaseModel):
    """A point on an animation's timeline; ``position`` is absolute ms."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    animation_id: str
    position: float = 0
    easing: str = "linear"
    properties: Dict[str, KeyframeValue] = Field(default_factory=dict)
    name: Optional[str] = None
    sort_order: int = 0


class TransportState(BaseModel):
    """Playback state of the editor timeline."""
    current_phase: Phase = Phase.IN
    playhead_position: float = 0
    is_playing: bool = False
    is_playing_full_preview: bool = False
    preview_template_id: Optional[str] = None


class OnAirState(str, Enum):
    IDLE = "idle"
    IN = "in"
    LOOP = "loop"
    OUT = "out"


class OnAirEntry(BaseModel):
    template_id: str
    state: OnAirState = OnAirState.IN
    pending_switch: Optional[str] = None
