"""Snapshot-based undo/redo over the four structural collections."""
from __future__ import annotations

import copy
import logging
from typing import TYPE_CHECKING, Dict, Optional, Set

from gfx_engines.config.runtime_config import get_history_limit
from gfx_engines.history.models import DesignerSnapshot, HistoryEntry
from gfx_engines.persistence.models import EntityKind

if TYPE_CHECKING:  # pragma: no cover
    from gfx_engines.designer.state import DesignerState

logger = logging.getLogger(__name__)

_SNAPSHOT_KINDS = {
    "elements": EntityKind.ELEMENTS,
    "animations": EntityKind.ANIMATIONS,
    "keyframes": EntityKind.KEYFRAMES,
    "bindings": EntityKind.BINDINGS,
}


def _snapshot(state: "DesignerState") -> DesignerSnapshot:
    return DesignerSnapshot(
        elements=copy.deepcopy(state.elements),
        animations=copy.deepcopy(state.animations),
        keyframes=copy.deepcopy(state.keyframes),
        bindings=copy.deepcopy(state.bindings),
    )


def _ids(state: "DesignerState") -> Dict[str, Set[str]]:
    return {field: {item.id for item in getattr(state, field)} for field in _SNAPSHOT_KINDS}


class HistoryManager:
    def __init__(self, state: "DesignerState", limit: Optional[int] = None):
        self.state = state
        self.limit = limit if limit is not None else get_history_limit()

    def push(self, description: str) -> HistoryEntry:
        state = self.state
        # A new edit discards the redo tail.
        del state.history[state.history_index + 1:]
        entry = HistoryEntry(description=description, snapshot=_snapshot(state))
        state.history.append(entry)
        state.history_index = len(state.history) - 1
        while len(state.history) > self.limit:
            state.history.pop(0)
            state.history_index -= 1
        return entry

    @property
    def can_undo(self) -> bool:
        return self.state.history_index > 0

    @property
    def can_redo(self) -> bool:
        return self.state.history_index < len(self.state.history) - 1

    def undo(self) -> bool:
        if not self.can_undo:
            return False
        self._restore(self.state.history_index - 1)
        return True

    def redo(self) -> bool:
        if not self.can_redo:
            return False
        self._restore(self.state.history_index + 1)
        return True

    def clear(self) -> None:
        self.state.history.clear()
        self.state.history_index = -1

    def scrub_template(self, template_id: str) -> None:
        """Remove a deleted template's entities from every snapshot so undo cannot resurrect orphans."""
        for entry in self.state.history:
            snap = entry.snapshot
            element_ids = {e.id for e in snap.elements if e.template_id == template_id}
            dropped_animations = {
                a.id for a in snap.animations
                if a.template_id == template_id or a.element_id in element_ids
            }
            snap.elements = [e for e in snap.elements if e.id not in element_ids]
            snap.animations = [a for a in snap.animations if a.id not in dropped_animations]
            snap.keyframes = [k for k in snap.keyframes if k.animation_id not in dropped_animations]
            snap.bindings = [
                b for b in snap.bindings
                if b.template_id != template_id and b.element_id not in element_ids
            ]

    def _restore(self, index: int) -> None:
        state = self.state
        entry = state.history[index]
        before = _ids(state)
        snap = copy.deepcopy(entry.snapshot)
        state.elements = snap.elements
        state.animations = snap.animations
        state.keyframes = snap.keyframes
        state.bindings = snap.bindings
        state.history_index = index
        self._reconcile_pending_deletions(before)

        state.selected_element_ids = [i for i in state.selected_element_ids if state.element(i)]
        state.selected_keyframe_ids = [i for i in state.selected_keyframe_ids if state.keyframe(i)]
        state.mark_dirty()
        logger.debug("History restored to %s (%s)", index, entry.description)

    def _reconcile_pending_deletions(self, before: Dict[str, Set[str]]) -> None:
        # Ids that come back are no longer pending; ids that vanish must be deleted remotely.
        after = _ids(self.state)
        pending = self.state.pending_deletions
        for field, kind in _SNAPSHOT_KINDS.items():
            pending.discard(kind, after[field])
            pending.enqueue(kind, sorted(before[field] - after[field]))
