"""Timeline engine: transport, phase durations, animations and keyframes."""
from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from gfx_engines.common.errors import ValidationError
from gfx_engines.persistence.models import EntityKind
from gfx_engines.timeline.models import (
    MAX_PHASE_DURATION_MS,
    MIN_PHASE_DURATION_MS,
    PLAY_RESTART_THRESHOLD_MS,
    Animation,
    Keyframe,
    KeyframeValue,
    Phase,
    TransportState,
)

if TYPE_CHECKING:  # pragma: no cover
    from gfx_engines.designer.state import DesignerState
    from gfx_engines.history.service import HistoryManager

logger = logging.getLogger(__name__)

PHASE_DURATIONS_SETTING = "phase_durations"


def sanitize_keyframe_name(name: str) -> str:
    cleaned = re.sub(r"[^a-z0-9]+", "_", (name or "").lower()).strip("_")
    return cleaned or "element"


def clamp_phase_duration(duration_ms: float) -> int:
    return int(max(MIN_PHASE_DURATION_MS, min(MAX_PHASE_DURATION_MS, duration_ms)))


class TimelineService:
    def __init__(self, state: "DesignerState", history: "HistoryManager"):
        self.state = state
        self.history = history

    @property
    def transport(self) -> TransportState:
        return self.state.transport

    def phase_duration(self, phase: Optional[Phase] = None) -> int:
        return self.state.phase_durations.get(phase or self.transport.current_phase)

    # --- transport ---

    def set_phase(self, phase: Phase) -> None:
        transport = self.transport
        transport.current_phase = Phase(phase)
        transport.playhead_position = 0
        if not transport.is_playing_full_preview:
            transport.is_playing = False

    def set_playhead(self, position_ms: float) -> float:
        clamped = max(0.0, min(float(position_ms), float(self.phase_duration())))
        self.transport.playhead_position = clamped
        return clamped

    def set_phase_duration(self, phase: Phase, duration_ms: float) -> int:
        phase = Phase(phase)
        duration = clamp_phase_duration(duration_ms)
        self.state.phase_durations.set(phase, duration)
        project = self.state.project
        if project is not None:
            project.settings = {**project.settings, PHASE_DURATIONS_SETTING: self.state.phase_durations.as_dict()}
        if phase == self.transport.current_phase and self.transport.playhead_position > duration:
            self.transport.playhead_position = duration
        self.state.mark_dirty()
        return duration

    def play(self) -> None:
        transport = self.transport
        if transport.playhead_position >= self.phase_duration() - PLAY_RESTART_THRESHOLD_MS:
            transport.playhead_position = 0
        transport.is_playing = True

    def pause(self) -> None:
        self.transport.is_playing = False
        self.transport.is_playing_full_preview = False

    def stop(self) -> None:
        self.pause()
        self.transport.playhead_position = 0

    def play_full_preview(self, template_id: Optional[str] = None) -> None:
        """Play in, loop and out back to back for one template."""
        transport = self.transport
        transport.preview_template_id = template_id or self.state.current_template_id
        transport.current_phase = Phase.IN
        transport.playhead_position = 0
        transport.is_playing = True
        transport.is_playing_full_preview = True

    def advance(self, elapsed_ms: float) -> TransportState:
        """Move the playhead forward by ``elapsed_ms``; full preview chains phases."""
        transport = self.transport
        if not transport.is_playing:
            return transport
        position = transport.playhead_position + max(0.0, float(elapsed_ms))
        while position >= self.phase_duration():
            duration = self.phase_duration()
            next_phase = transport.current_phase.next() if transport.is_playing_full_preview else None
            if next_phase is None:
                position = duration
                transport.is_playing = False
                transport.is_playing_full_preview = False
                break
            position -= duration
            transport.current_phase = next_phase
        transport.playhead_position = position
        return transport

    # --- animations ---

    def add_animation(self, element_id: str, phase: Phase) -> Optional[str]:
        element = self.state.element(element_id)
        if element is None:
            logger.warning("add_animation: unknown element %s", element_id)
            return None
        phase = Phase(phase)
        animation = Animation(
            template_id=element.template_id,
            element_id=element_id,
            phase=phase,
            duration=self.phase_duration(phase),
        )
        self.state.animations.append(animation)
        self._commit(f"Add {phase.value} animation")
        return animation.id

    def update_animation(self, animation_id: str, **updates: Any) -> bool:
        animation = self.state.animation(animation_id)
        if animation is None:
            return False
        updates.pop("id", None)
        updated = self._validated(Animation, animation, updates)
        if updated.element_id != animation.element_id and self.state.element(updated.element_id) is None:
            logger.warning("update_animation: unknown element %s", updated.element_id)
            return False
        self._replace("animations", updated)
        self.state.mark_dirty()
        return True

    def delete_animation(self, animation_id: str) -> bool:
        state = self.state
        if state.animation(animation_id) is None:
            return False
        keyframe_ids = [k.id for k in state.keyframes if k.animation_id == animation_id]
        state.animations = [a for a in state.animations if a.id != animation_id]
        state.keyframes = [k for k in state.keyframes if k.animation_id != animation_id]
        state.selected_keyframe_ids = [i for i in state.selected_keyframe_ids if i not in keyframe_ids]
        state.pending_deletions.enqueue(EntityKind.KEYFRAMES, keyframe_ids)
        state.pending_deletions.enqueue(EntityKind.ANIMATIONS, [animation_id])
        self._commit("Delete animation")
        return True

    def animations_for(self, element_id: str, phase: Optional[Phase] = None) -> List[Animation]:
        return [
            a for a in self.state.animations
            if a.element_id == element_id and (phase is None or a.phase == Phase(phase))
        ]

    # --- keyframes ---

    def add_keyframe(
        self,
        animation_id: str,
        position: float,
        properties: Optional[Mapping[str, KeyframeValue]] = None,
    ) -> Optional[str]:
        state = self.state
        animation = state.animation(animation_id)
        if animation is None:
            logger.warning("add_keyframe: unknown animation %s", animation_id)
            return None
        element = state.element(animation.element_id)
        existing = len([k for k in state.keyframes if k.animation_id == animation_id])
        keyframe = Keyframe(
            animation_id=animation_id,
            position=position,
            properties=dict(properties or {}),
            name=f"{sanitize_keyframe_name(element.name if element else '')}_key_{existing + 1}",
            sort_order=existing,
        )
        state.keyframes.append(keyframe)
        self._commit("Add keyframe")
        return keyframe.id

    def update_keyframe(
        self,
        keyframe_id: str,
        properties: Optional[Mapping[str, KeyframeValue]] = None,
        **fields: Any,
    ) -> bool:
        """Update a keyframe; ``properties`` are merged into the existing map."""
        keyframe = self.state.keyframe(keyframe_id)
        if keyframe is None:
            return False
        fields.pop("id", None)
        if properties is not None:
            fields["properties"] = {**keyframe.properties, **properties}
        self._replace("keyframes", self._validated(Keyframe, keyframe, fields))
        self.state.mark_dirty()
        return True

    def remove_keyframe_property(self, keyframe_id: str, prop: str) -> bool:
        """Drop one property; an emptied keyframe is deleted outright."""
        keyframe = self.state.keyframe(keyframe_id)
        if keyframe is None or prop not in keyframe.properties:
            return False
        remaining = {k: v for k, v in keyframe.properties.items() if k != prop}
        if not remaining:
            self._remove_keyframes([keyframe_id])
        else:
            self._replace("keyframes", keyframe.model_copy(update={"properties": remaining}))
        self._commit(f"Remove {prop} from keyframe")
        return True

    def delete_keyframe(self, keyframe_id: str) -> bool:
        if self.state.keyframe(keyframe_id) is None:
            return False
        self._remove_keyframes([keyframe_id])
        self._commit("Delete keyframe")
        return True

    def delete_selected_keyframes(self) -> int:
        ids = [i for i in self.state.selected_keyframe_ids if self.state.keyframe(i)]
        self.state.selected_keyframe_ids = []
        if not ids:
            return 0
        self._remove_keyframes(ids)
        self._commit(f"Delete {len(ids)} keyframe(s)")
        return len(ids)

    def select_keyframes(self, ids: List[str]) -> None:
        self.state.selected_keyframe_ids = list(dict.fromkeys(ids))

    def keyframes_for(self, animation_id: str) -> List[Keyframe]:
        return sorted(
            (k for k in self.state.keyframes if k.animation_id == animation_id),
            key=lambda k: k.position,
        )

    # --- internals ---

    def _commit(self, description: str) -> None:
        self.state.mark_dirty()
        self.history.push(description)

    def _remove_keyframes(self, ids: List[str]) -> None:
        drop = set(ids)
        state = self.state
        state.keyframes = [k for k in state.keyframes if k.id not in drop]
        state.selected_keyframe_ids = [i for i in state.selected_keyframe_ids if i not in drop]
        state.pending_deletions.enqueue(EntityKind.KEYFRAMES, ids)

    def _replace(self, collection: str, updated: Any) -> None:
        items = getattr(self.state, collection)
        for idx, item in enumerate(items):
            if item.id == updated.id:
                items[idx] = updated
                return

    @staticmethod
    def _validated(model: Any, current: Any, updates: Dict[str, Any]) -> Any:
        try:
            return model.model_validate({**current.model_dump(), **updates})
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid {model.__name__} update: {exc.error_count()} error(s)") from exc
