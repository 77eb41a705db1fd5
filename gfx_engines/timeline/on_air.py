"""Per-layer on-air preview state machine (idle / in / loop / out)."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from gfx_engines.timeline.models import OnAirEntry, OnAirState

if TYPE_CHECKING:  # pragma: no cover
    from gfx_engines.designer.state import DesignerState

logger = logging.getLogger(__name__)


class OnAirController:
    def __init__(self, state: "DesignerState"):
        self.state = state

    def entry(self, layer_id: str) -> Optional[OnAirEntry]:
        return self.state.on_air.get(layer_id)

    def play_in(self, template_id: str, layer_id: str) -> OnAirEntry:
        logger.info("On-air play in: template=%s layer=%s", template_id, layer_id)
        entry = OnAirEntry(template_id=template_id, state=OnAirState.IN)
        self.state.on_air[layer_id] = entry
        return entry

    def play_out(self, layer_id: str) -> Optional[OnAirEntry]:
        entry = self.entry(layer_id)
        if entry is not None:
            entry.state = OnAirState.OUT
        return entry

    def switch_template(self, template_id: str, layer_id: str) -> OnAirEntry:
        """Take a new template to air; the current one plays out first."""
        current = self.entry(layer_id)
        if current is None:
            return self.play_in(template_id, layer_id)
        if current.template_id != template_id:
            current.state = OnAirState.OUT
            current.pending_switch = template_id
        return current

    def set_on_air_state(self, layer_id: str, state: OnAirState) -> Optional[OnAirEntry]:
        entry = self.entry(layer_id)
        if entry is not None:
            entry.state = OnAirState(state)
        return entry

    def clear_on_air(self, layer_id: str) -> None:
        self.state.on_air.pop(layer_id, None)

    def complete_out(self, layer_id: str) -> Optional[str]:
        """Out transition finished: bring in the pending template or go idle.

        Returns the template now playing in, if any.
        """
        entry = self.entry(layer_id)
        if entry is None:
            return None
        if entry.pending_switch:
            return self.play_in(entry.pending_switch, layer_id).template_id
        self.clear_on_air(layer_id)
        return None
