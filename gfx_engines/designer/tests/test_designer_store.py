from __future__ import annotations

import uuid

import pytest

from gfx_engines.data_binding.endpoints import InMemoryDataEndpointResolver
from gfx_engines.data_binding.models import DataEndpoint, DataSourceConfig, TemplateDataCacheEntry
from gfx_engines.designer.models import SelectionMode
from gfx_engines.designer.service import DesignerStore
from gfx_engines.persistence.local_cache import FileSystemProjectCache, InMemoryProjectCache
from gfx_engines.persistence.models import EntityKind
from gfx_engines.persistence.remote import InMemoryRemoteEntityStore
from gfx_engines.scene_graph.models import ElementType
from gfx_engines.timeline.models import Phase


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def store() -> DesignerStore:
    store = DesignerStore(history_limit=50)
    store.new_project("Show")
    return store


def _add(store: DesignerStore, element_type=ElementType.SHAPE, **kwargs):
    return store.scene.add_element(element_type, {"x": kwargs.get("x", 0), "y": kwargs.get("y", 0)}, parent_id=kwargs.get("parent_id"))


def test_new_project_has_defaults_and_baseline(store: DesignerStore):
    state = store.state
    assert [l.name for l in state.layers] == ["Background", "Fullscreen", "Lower Third", "Bug"]
    assert state.current_template_id == state.templates[0].id
    assert [h.description for h in state.history] == ["New project"]
    assert store.history.can_undo is False


def test_add_template_names_sizes_and_selects(store: DesignerStore):
    lower_third = next(l for l in store.state.layers if l.name == "Lower Third")
    template_id = store.add_template(lower_third.id)
    template = store.state.template(template_id)
    assert template.name == "Lower Third 2"
    assert (template.width, template.height) == (lower_third.width, lower_third.height)
    assert template.loop_iterations == -1
    assert store.state.current_template_id == template_id
    assert store.add_template("missing-layer") is None


def test_duplicate_template_copies_elements_and_dependents(store: DesignerStore):
    source = store.state.current_template_id
    parent = _add(store, ElementType.DIV)
    child = _add(store, ElementType.TEXT, parent_id=parent)
    animation_id = store.timeline.add_animation(child, Phase.IN)
    store.timeline.add_keyframe(animation_id, 0, {"opacity": 0})
    store.data.add_binding(child, "name")

    copy_id = store.duplicate_template(source)

    copy = store.state.template(copy_id)
    assert copy.name.endswith(" Copy")
    copied = store.state.template_elements(copy_id)
    assert len(copied) == 2
    copied_parent = next(e for e in copied if e.parent_element_id is None)
    copied_child = next(e for e in copied if e.parent_element_id is not None)
    assert copied_child.parent_element_id == copied_parent.id
    assert {a.template_id for a in store.state.animations} == {source, copy_id}
    assert len(store.state.keyframes) == 2
    assert {b.template_id for b in store.state.bindings} == {source, copy_id}
    assert store.state.current_template_id == copy_id


@pytest.mark.anyio
async def test_delete_template_cascades_and_scrubs_history(store: DesignerStore):
    template_id = store.state.current_template_id
    element_id = _add(store)
    animation_id = store.timeline.add_animation(element_id, Phase.IN)
    keyframe_id = store.timeline.add_keyframe(animation_id, 0, {"opacity": 0})
    binding_id = store.data.add_binding(element_id, "name")

    assert await store.delete_template(template_id, skip_save=True)

    state = store.state
    assert state.template(template_id) is None
    assert state.elements == [] and state.animations == [] and state.keyframes == [] and state.bindings == []
    pending = state.pending_deletions
    assert pending.queue(EntityKind.TEMPLATES) == [template_id]
    assert pending.queue(EntityKind.ELEMENTS) == [element_id]
    assert pending.queue(EntityKind.ANIMATIONS) == [animation_id]
    assert pending.queue(EntityKind.KEYFRAMES) == [keyframe_id]
    assert pending.queue(EntityKind.BINDINGS) == [binding_id]
    assert state.current_template_id is None

    store.undo()
    assert state.elements == []


@pytest.mark.anyio
async def test_delete_template_archives_remotely_for_remote_projects():
    remote = InMemoryRemoteEntityStore()
    store = DesignerStore(remote=remote, history_limit=10)
    store.new_project("Remote", project_id=str(uuid.uuid4()))
    template_id = store.state.templates[0].id
    remote.seed(EntityKind.TEMPLATES, store.state.templates[0])

    await store.delete_template(template_id)

    assert remote.rows[EntityKind.TEMPLATES][template_id]["archived"] is True
    assert store.state.pending_deletions.queue(EntityKind.TEMPLATES) == []


def test_layer_operations(store: DesignerStore):
    layer = store.add_layer("custom", "Overlay")
    assert layer.z_index == 400
    assert layer.sort_order == 4
    assert layer.id in store.state.expanded_nodes

    bug = next(l for l in store.state.layers if l.name == "Bug")
    assert store.delete_layer(bug.id) is False
    assert store.delete_layer(layer.id) is True
    assert store.state.pending_deletions.queue(EntityKind.LAYERS) == [layer.id]

    assert store.toggle_layer_visibility(bug.id) is False
    assert store.toggle_layer_lock(bug.id) is True
    store.show_all()
    assert all(l.enabled for l in store.state.layers)


def test_template_visibility_and_updates(store: DesignerStore):
    template_id = store.state.templates[1].id
    assert store.toggle_template_visibility(template_id) is False
    store.show_all_templates()
    assert store.state.template(template_id).enabled
    assert store.toggle_template_lock(template_id) is True
    assert store.update_template(template_id, name="Renamed")
    assert store.state.template(template_id).name == "Renamed"
    assert store.update_template("missing", name="x") is False


def test_select_elements_modes(store: DesignerStore):
    a, b, c = _add(store), _add(store), _add(store)
    assert store.select_elements([a, b]) == [a, b]
    assert store.select_elements([c], SelectionMode.ADD) == [a, b, c]
    assert store.select_elements([b, "missing"], SelectionMode.TOGGLE) == [a, c]
    store.deselect_all()
    assert store.state.selected_element_ids == []


def test_select_element_in_other_template_switches_without_clearing(store: DesignerStore):
    first = store.state.current_template_id
    element_id = _add(store)
    other = store.state.templates[1].id
    store.select_template(other)
    assert store.state.selected_element_ids == []

    store.select_elements([element_id], expand_in_outline=True)

    assert store.state.current_template_id == first
    assert store.state.selected_element_ids == [element_id]
    template = store.state.template(first)
    assert {template.id, template.layer_id} <= store.state.expanded_nodes


def test_select_all_skips_hidden_and_locked(store: DesignerStore):
    visible = _add(store)
    hidden = _add(store)
    locked = _add(store)
    store.scene.update_element(hidden, visible=False)
    store.scene.update_element(locked, locked=True)
    assert store.select_all() == [visible]


def test_outline_expand_collapse(store: DesignerStore):
    store.expand_all()
    assert {l.id for l in store.state.layers} <= store.state.expanded_nodes
    store.collapse_all()
    assert store.state.expanded_nodes == set()
    assert store.toggle_node("n1") is True
    assert store.toggle_node("n1") is False


def test_select_template_resets_phase_and_uses_cache(store: DesignerStore):
    other = store.state.templates[1].id
    store.state.template_data_cache[other] = TemplateDataCacheEntry(records=[{"name": "cached"}])
    store.timeline.set_phase(Phase.OUT)

    assert store.select_template(other) is None

    assert store.state.transport.current_phase == Phase.IN
    assert store.data.current_record() == {"name": "cached"}


def test_select_template_without_loop_runs_fetch_to_completion():
    endpoints = InMemoryDataEndpointResolver()
    endpoints.register(DataEndpoint(id="ep", name="Scores", slug="scores"), [{"name": "A"}])
    store = DesignerStore(endpoints=endpoints, history_limit=10)
    store.new_project("Sync")
    template = store.state.templates[1]
    template.data_source_id = "ep"
    template.data_source_config = DataSourceConfig(slug="scores", name="Scores")

    assert store.select_template(template.id) is None
    assert endpoints.fetch_calls == ["scores"]
    assert store.data.current_record() == {"name": "A"}


@pytest.mark.anyio
async def test_update_project_settings_persists_and_merges():
    remote = InMemoryRemoteEntityStore()
    store = DesignerStore(remote=remote, history_limit=10)
    project = store.new_project("Settings", project_id=str(uuid.uuid4()))
    remote.seed(EntityKind.PROJECT, project)

    step = await store.update_project_settings({"settings": {"theme": "dark"}, "frame_rate": 50})

    assert step.success
    assert store.state.project.frame_rate == 50
    assert remote.rows[EntityKind.PROJECT][project.id]["settings"]["theme"] == "dark"
    assert await store.update_project_settings({"name": "Quiet"}, skip_save=True) is None
    assert remote.calls.count(("update_project", "project")) == 1


def test_update_design_system_records_history(store: DesignerStore):
    store.update_design_system({"colors": {"primary": "#f00"}})
    assert store.design_system == {"colors": {"primary": "#f00"}}
    assert store.state.history[-1].description == "Update Design System"


@pytest.mark.anyio
async def test_load_project_applies_state_and_baseline():
    cache = InMemoryProjectCache()
    store = DesignerStore(cache=cache, history_limit=10)
    store.new_project("Local", project_id="demo")
    store.state.project.settings["phase_durations"] = {"in": 800, "loop": 2000, "out": 900}
    _add(store)
    report = await store.save_project()
    assert report.ok

    fresh = DesignerStore(cache=cache, history_limit=10)
    assert await fresh.load_project("demo")

    state = fresh.state
    assert len(state.elements) == 1
    assert state.phase_durations.in_ == 800
    assert state.is_dirty is False
    assert [h.description for h in state.history] == ["Load project"]
    assert state.current_template_id == state.templates[0].id


@pytest.mark.anyio
async def test_load_missing_project_sets_error():
    store = DesignerStore(remote=InMemoryRemoteEntityStore(), history_limit=10)
    assert await store.load_project(str(uuid.uuid4())) is False
    assert store.state.error == "Project not found"
    assert store.state.is_loading is False


@pytest.mark.anyio
async def test_load_schedules_hydration_for_first_template():
    endpoints = InMemoryDataEndpointResolver()
    endpoints.register(DataEndpoint(id="ep", name="Scores", slug="scores"), [{"name": "A"}, {"name": "B"}])
    cache = InMemoryProjectCache()
    seed = DesignerStore(cache=cache, history_limit=10)
    seed.new_project("Local", project_id="demo")
    first = seed.state.templates[0]
    first.data_source_id = "ep"
    first.data_source_config = DataSourceConfig(slug="scores", name="Scores")
    await seed.save_project()

    store = DesignerStore(cache=cache, endpoints=endpoints, history_limit=10)
    await store.load_project("demo")
    await store.wait_idle()

    assert len(store.state.data.records) == 2
    assert endpoints.fetch_calls == ["scores"]


@pytest.mark.anyio
async def test_save_flushes_pending_fit_first(store: DesignerStore):
    container = _add(store, ElementType.DIV)
    store.scene.update_element(container, content={"fit_to_content": True})
    store.scheduler.cancel_all()
    _add(store, parent_id=container, x=40, y=40)
    assert store.scheduler.pending() == 1

    await store.save_project()

    assert store.scheduler.pending() == 0
    assert store.state.element(container).width == 232


@pytest.mark.anyio
async def test_undecodable_local_blob_falls_back_to_demo_project(tmp_path):
    (tmp_path / "demo.json").write_bytes(b"\xff\xfe{not json")
    store = DesignerStore(cache=FileSystemProjectCache(tmp_path), history_limit=50)

    assert await store.load_project("demo") is True

    assert store.state.error is None
    assert store.state.project.name == "Demo Project"
    assert store.state.templates
    assert not (tmp_path / "demo.json").exists()
