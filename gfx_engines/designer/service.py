"""DesignerStore: wires the engines to one DesignerState and owns project,
template, layer and selection operations.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Dict, List, Mapping, Optional, Set

from pydantic import ValidationError as PydanticValidationError

from gfx_engines.common.errors import NotFoundError, ValidationError
from gfx_engines.data_binding.endpoints import DataEndpointResolver
from gfx_engines.data_binding.models import DataBindingState
from gfx_engines.data_binding.service import DataBindingService
from gfx_engines.designer.models import (
    Layer,
    Project,
    SelectionMode,
    Template,
    default_layers,
    default_templates,
)
from gfx_engines.designer.state import DesignerState
from gfx_engines.geometry.models import TextMeasurer
from gfx_engines.history.service import HistoryManager
from gfx_engines.persistence.local_cache import ProjectCache
from gfx_engines.persistence.models import EntityKind, LoadedProject, PendingDeletions, SaveReport, SaveStep
from gfx_engines.persistence.remote import RemoteEntityStore
from gfx_engines.persistence.service import REMOTE_ERRORS, PersistenceCoordinator
from gfx_engines.scene_graph.scheduler import DeferredTaskQueue
from gfx_engines.scene_graph.service import SceneGraphService
from gfx_engines.timeline.models import Phase, PhaseDurations, TransportState
from gfx_engines.timeline.on_air import OnAirController
from gfx_engines.timeline.service import PHASE_DURATIONS_SETTING, TimelineService

logger = logging.getLogger(__name__)

DESIGN_SYSTEM_SETTING = "design_system"


class DesignerStore:
    def __init__(
        self,
        state: Optional[DesignerState] = None,
        remote: Optional[RemoteEntityStore] = None,
        cache: Optional[ProjectCache] = None,
        endpoints: Optional[DataEndpointResolver] = None,
        measurer: Optional[TextMeasurer] = None,
        history_limit: Optional[int] = None,
    ):
        self.state = state or DesignerState()
        self.scheduler = DeferredTaskQueue()
        self.history = HistoryManager(self.state, limit=history_limit)
        self.scene = SceneGraphService(self.state, self.history, self.scheduler, measurer)
        self.timeline = TimelineService(self.state, self.history)
        self.on_air = OnAirController(self.state)
        self.data = DataBindingService(self.state, self.history, endpoints)
        self.persistence = PersistenceCoordinator(self.state, remote, cache)
        self._tasks: Set["asyncio.Task[Any]"] = set()

    # --- background work ---

    def _schedule(self, work: Awaitable[Any]) -> Optional["asyncio.Task[Any]"]:
        """Run ``work`` as a task on the running loop, or to completion if there is none."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(work)
            return None
        task = loop.create_task(work)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Await every outstanding hydration task."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def flush_deferred(self) -> int:
        return self.scheduler.flush()

    # --- project ---

    def _reset_editor(self) -> None:
        state = self.state
        self.scheduler.cancel_all()
        state.current_template_id = None
        state.selected_element_ids = []
        state.selected_keyframe_ids = []
        state.hovered_element_id = None
        state.expanded_nodes = set()
        state.transport = TransportState()
        state.on_air = {}
        state.data = DataBindingState()
        state.template_data_cache = {}
        state.pending_deletions = PendingDeletions()
        state.error = None
        self.history.clear()

    def _apply_phase_durations(self, project: Project) -> None:
        stored = project.settings.get(PHASE_DURATIONS_SETTING)
        try:
            self.state.phase_durations = PhaseDurations.model_validate(stored) if stored else PhaseDurations()
        except PydanticValidationError:
            logger.warning("Ignoring malformed phase durations on project %s", project.id)
            self.state.phase_durations = PhaseDurations()

    def new_project(self, name: str = "Untitled Project", project_id: Optional[str] = None, **fields: Any) -> Project:
        project = Project(id=project_id or str(uuid.uuid4()), name=name, **fields)
        layers = default_layers(project.id, project.canvas_width, project.canvas_height)
        self._reset_editor()
        state = self.state
        state.project = project
        state.layers = layers
        state.templates = default_templates(project.id, layers)
        state.elements, state.animations, state.keyframes, state.bindings = [], [], [], []
        self._apply_phase_durations(project)
        state.current_template_id = state.templates[0].id if state.templates else None
        self.history.push("New project")
        state.is_dirty = True
        return project

    async def load_project(self, project_id: str) -> bool:
        state = self.state
        state.is_loading = True
        state.error = None
        try:
            loaded = await self.persistence.load(project_id)
        except NotFoundError:
            state.error = "Project not found"
            logger.warning("Project %s not found", project_id)
            return False
        except REMOTE_ERRORS as exc:
            state.error = f"Failed to load project: {exc}"
            logger.error("Loading project %s failed: %s", project_id, exc)
            return False
        finally:
            state.is_loading = False

        self._apply_loaded(loaded)
        if state.current_template_id:
            self._hydrate(state.current_template_id)
        return True

    def _apply_loaded(self, loaded: LoadedProject) -> None:
        self._reset_editor()
        state = self.state
        state.project = loaded.project
        state.layers = loaded.layers
        state.templates = loaded.templates
        state.elements = loaded.elements
        state.animations = loaded.animations
        state.keyframes = loaded.keyframes
        state.bindings = loaded.bindings
        self._apply_phase_durations(loaded.project)
        state.current_template_id = loaded.templates[0].id if loaded.templates else None
        # Baseline so the first edit can be undone.
        self.history.push("Load project")
        state.is_dirty = False
        if loaded.degraded:
            state.error = f"Loaded with {len(loaded.degraded)} unavailable item(s)"

    async def save_project(self) -> Optional[SaveReport]:
        self.flush_deferred()
        return await self.persistence.sync()

    async def update_project_settings(self, updates: Mapping[str, Any], skip_save: bool = False) -> Optional[SaveStep]:
        state = self.state
        project = state.project
        if project is None:
            return None
        updates = dict(updates)
        updates.pop("id", None)
        if isinstance(updates.get("settings"), Mapping):
            updates["settings"] = {**project.settings, **updates["settings"]}
        try:
            state.project = Project.model_validate({**project.model_dump(), **updates})
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid project settings: {exc.error_count()} error(s)") from exc
        if "settings" in updates:
            self._apply_phase_durations(state.project)
        state.mark_dirty()
        if skip_save:
            return None
        step = await self.persistence.persist_project()
        if step is not None and not step.success:
            state.error = f"Failed to update project settings: {step.error}"
        return step

    def update_design_system(self, design_system: Mapping[str, Any]) -> None:
        project = self.state.project
        if project is None:
            return
        project.settings = {**project.settings, DESIGN_SYSTEM_SETTING: dict(design_system)}
        self.state.mark_dirty()
        self.history.push("Update Design System")

    @property
    def design_system(self) -> Optional[Dict[str, Any]]:
        project = self.state.project
        return project.settings.get(DESIGN_SYSTEM_SETTING) if project else None

    # --- templates ---

    def select_template(self, template_id: Optional[str]) -> Optional["asyncio.Task[Any]"]:
        """Switch the current template and hydrate its data.

        Returns the hydration task when a fetch had to be scheduled on a
        running loop.
        """
        if template_id is not None and self.state.template(template_id) is None:
            logger.warning("select_template: unknown template %s", template_id)
            return None
        state = self.state
        state.current_template_id = template_id
        state.selected_element_ids = []
        state.selected_keyframe_ids = []
        self.timeline.set_phase(Phase.IN)
        return self._hydrate(template_id)

    def _hydrate(self, template_id: Optional[str]) -> Optional["asyncio.Task[Any]"]:
        work = self.data.hydrate(template_id)
        if work is None:
            return None
        return self._schedule(work)

    def add_template(self, layer_id: str, name: Optional[str] = None) -> Optional[str]:
        state = self.state
        layer = state.layer(layer_id)
        if layer is None or state.project is None:
            logger.warning("add_template: unknown layer %s", layer_id)
            return None
        siblings = [t for t in state.templates if t.layer_id == layer_id]
        template = Template(
            project_id=state.project.id,
            layer_id=layer_id,
            name=name or f"{layer.name} {len(siblings) + 1}",
            width=int(layer.width or 1920),
            height=int(layer.height or 1080),
            loop_iterations=-1,
            sort_order=len(siblings),
        )
        state.templates.append(template)
        state.mark_dirty()
        self.select_template(template.id)
        return template.id

    def duplicate_template(self, template_id: str) -> Optional[str]:
        state = self.state
        original = state.template(template_id)
        if original is None:
            return None
        siblings = [t for t in state.templates if t.layer_id == original.layer_id]
        copy = original.model_copy(
            update={"id": str(uuid.uuid4()), "name": f"{original.name} Copy", "sort_order": len(siblings)},
            deep=True,
        )
        originals = state.template_elements(template_id)
        id_map = {el.id: str(uuid.uuid4()) for el in originals}
        for el in originals:
            state.elements.append(el.model_copy(
                update={
                    "id": id_map[el.id],
                    "template_id": copy.id,
                    "element_id": f"el-{uuid.uuid4().hex[:12]}",
                    "parent_element_id": id_map.get(el.parent_element_id, el.parent_element_id),
                },
                deep=True,
            ))
        self.scene.copy_dependents(set(id_map), id_map, template_id=copy.id)
        state.templates.append(copy)
        if template_id in state.template_data_cache:
            state.template_data_cache[copy.id] = state.template_data_cache[template_id].model_copy(deep=True)
        state.mark_dirty()
        self.history.push(f"Duplicate template {original.name}")
        self.select_template(copy.id)
        return copy.id

    async def delete_template(self, template_id: str, skip_save: bool = False) -> bool:
        """Hard-remove locally (with cascade); archive remotely unless ``skip_save``."""
        state = self.state
        if state.template(template_id) is None:
            return False
        element_ids = {e.id for e in state.template_elements(template_id)}
        animation_ids = [
            a.id for a in state.animations
            if a.template_id == template_id or a.element_id in element_ids
        ]
        animation_set = set(animation_ids)
        keyframe_ids = [k.id for k in state.keyframes if k.animation_id in animation_set]
        keyframe_set = set(keyframe_ids)
        binding_ids = [
            b.id for b in state.bindings
            if b.template_id == template_id or b.element_id in element_ids
        ]
        binding_set = set(binding_ids)

        pending = state.pending_deletions
        pending.enqueue(EntityKind.ELEMENTS, [e.id for e in state.elements if e.id in element_ids])
        pending.enqueue(EntityKind.ANIMATIONS, animation_ids)
        pending.enqueue(EntityKind.KEYFRAMES, keyframe_ids)
        pending.enqueue(EntityKind.BINDINGS, binding_ids)
        pending.enqueue(EntityKind.TEMPLATES, [template_id])

        state.templates = [t for t in state.templates if t.id != template_id]
        state.elements = [e for e in state.elements if e.id not in element_ids]
        state.animations = [a for a in state.animations if a.id not in animation_set]
        state.keyframes = [k for k in state.keyframes if k.id not in keyframe_set]
        state.bindings = [b for b in state.bindings if b.id not in binding_set]
        state.template_data_cache.pop(template_id, None)
        for layer_id, entry in list(state.on_air.items()):
            if entry.template_id == template_id:
                self.on_air.clear_on_air(layer_id)
        self.history.scrub_template(template_id)
        if state.current_template_id == template_id:
            state.current_template_id = None
            state.selected_element_ids = []
            state.data = DataBindingState()
        state.mark_dirty()

        if not skip_save:
            await self.persistence.archive_template(template_id)
        return True

    def update_template(self, template_id: str, **updates: Any) -> bool:
        template = self.state.template(template_id)
        if template is None:
            return False
        updates.pop("id", None)
        try:
            updated = Template.model_validate({**template.model_dump(), **updates})
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid template update: {exc.error_count()} error(s)") from exc
        self.state.templates = [updated if t.id == template_id else t for t in self.state.templates]
        if "data_source_id" in updates or "data_source_config" in updates:
            self.data.invalidate(template_id)
        self.state.mark_dirty()
        return True

    def toggle_template_visibility(self, template_id: str) -> bool:
        template = self.state.template(template_id)
        if template is None:
            return False
        template.enabled = not template.enabled
        self.state.mark_dirty()
        return template.enabled

    def toggle_template_lock(self, template_id: str) -> bool:
        template = self.state.template(template_id)
        if template is None:
            return False
        template.locked = not template.locked
        self.state.mark_dirty()
        return template.locked

    def show_all_templates(self) -> None:
        for template in self.state.templates:
            template.enabled = True
        self.state.mark_dirty()

    # --- layers ---

    def add_layer(self, layer_type: str, name: str) -> Optional[Layer]:
        state = self.state
        if state.project is None:
            return None
        layer = Layer(
            project_id=state.project.id,
            name=name,
            layer_type=layer_type,
            z_index=len(state.layers) * 100,
            sort_order=len(state.layers),
        )
        state.layers.append(layer)
        state.expanded_nodes.add(layer.id)
        state.mark_dirty()
        return layer

    def update_layer(self, layer_id: str, **updates: Any) -> bool:
        layer = self.state.layer(layer_id)
        if layer is None:
            return False
        updates.pop("id", None)
        try:
            updated = Layer.model_validate({**layer.model_dump(), **updates})
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid layer update: {exc.error_count()} error(s)") from exc
        self.state.layers = [updated if l.id == layer_id else l for l in self.state.layers]
        self.state.mark_dirty()
        return True

    def delete_layer(self, layer_id: str) -> bool:
        state = self.state
        if state.layer(layer_id) is None:
            return False
        if any(t.layer_id == layer_id for t in state.templates):
            logger.warning("delete_layer: layer %s still contains templates", layer_id)
            return False
        state.layers = [l for l in state.layers if l.id != layer_id]
        state.expanded_nodes.discard(layer_id)
        self.on_air.clear_on_air(layer_id)
        state.pending_deletions.enqueue(EntityKind.LAYERS, [layer_id])
        state.mark_dirty()
        self.history.push("Delete layer")
        return True

    def toggle_layer_visibility(self, layer_id: str) -> bool:
        layer = self.state.layer(layer_id)
        if layer is None:
            return False
        layer.enabled = not layer.enabled
        self.state.mark_dirty()
        return layer.enabled

    def toggle_layer_lock(self, layer_id: str) -> bool:
        layer = self.state.layer(layer_id)
        if layer is None:
            return False
        layer.locked = not layer.locked
        self.state.mark_dirty()
        return layer.locked

    def show_all_layers(self) -> None:
        for layer in self.state.layers:
            layer.enabled = True
        self.state.mark_dirty()

    def show_all(self) -> None:
        for layer in self.state.layers:
            layer.enabled = True
        for template in self.state.templates:
            template.enabled = True
        self.state.mark_dirty()

    # --- selection & outline ---

    def select_elements(
        self,
        ids: List[str],
        mode: SelectionMode = SelectionMode.REPLACE,
        expand_in_outline: bool = False,
        skip_template_switch: bool = False,
    ) -> List[str]:
        state = self.state
        ids = [i for i in dict.fromkeys(ids) if state.element(i) is not None]
        if ids and not skip_template_switch:
            first = state.element(ids[0])
            if first.template_id != state.current_template_id:
                # Keep the selection; only the template and its data change.
                state.current_template_id = first.template_id
                self._hydrate(first.template_id)

        mode = SelectionMode(mode)
        if mode == SelectionMode.REPLACE:
            state.selected_element_ids = ids
        elif mode == SelectionMode.ADD:
            state.selected_element_ids = list(dict.fromkeys([*state.selected_element_ids, *ids]))
        else:
            current = list(state.selected_element_ids)
            for element_id in ids:
                if element_id in current:
                    current.remove(element_id)
                else:
                    current.append(element_id)
            state.selected_element_ids = current

        if expand_in_outline:
            for element_id in ids:
                element = state.element(element_id)
                template = state.template(element.template_id)
                if template is not None:
                    state.expanded_nodes.add(template.layer_id)
                    state.expanded_nodes.add(template.id)
                state.expanded_nodes.update(self.scene.ancestor_ids(element_id))
        return state.selected_element_ids

    def select_all(self) -> List[str]:
        state = self.state
        state.selected_element_ids = [
            e.id for e in state.template_elements(state.current_template_id)
            if e.visible and not e.locked
        ]
        return state.selected_element_ids

    def deselect_all(self) -> None:
        self.state.selected_element_ids = []

    def set_hovered_element(self, element_id: Optional[str]) -> None:
        self.state.hovered_element_id = element_id

    def toggle_node(self, node_id: str) -> bool:
        expanded = self.state.expanded_nodes
        if node_id in expanded:
            expanded.discard(node_id)
            return False
        expanded.add(node_id)
        return True

    def expand_all(self) -> None:
        state = self.state
        state.expanded_nodes = {l.id for l in state.layers} | {t.id for t in state.templates}

    def collapse_all(self) -> None:
        self.state.expanded_nodes = set()

    # --- history ---

    def push_history(self, description: str) -> None:
        self.history.push(description)

    def undo(self) -> bool:
        return self.history.undo()

    def redo(self) -> bool:
        return self.history.redo()

    def clear_history(self) -> None:
        self.history.clear()

    # --- lookups ---

    def require_template(self, template_id: str) -> Template:
        template = self.state.template(template_id)
        if template is None:
            raise NotFoundError(f"Template {template_id} not found")
        return template


_default_store: Optional[DesignerStore] = None


def get_designer_store() -> DesignerStore:
    global _default_store
    if _default_store is None:
        _default_store = DesignerStore()
    return _default_store


def set_designer_store(store: Optional[DesignerStore]) -> None:
    global _default_store
    _default_store = store
