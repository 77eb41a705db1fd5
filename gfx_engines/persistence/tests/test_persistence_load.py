from __future__ import annotations

import uuid

import pytest

from gfx_engines.common.errors import NotFoundError
from gfx_engines.data_binding.models import Binding
from gfx_engines.designer.models import Layer, Project, Template
from gfx_engines.designer.state import DesignerState
from gfx_engines.persistence.local_cache import InMemoryProjectCache
from gfx_engines.persistence.models import EntityKind, LocalProjectBlob
from gfx_engines.persistence.remote import InMemoryRemoteEntityStore
from gfx_engines.persistence.service import PersistenceCoordinator
from gfx_engines.scene_graph.models import Element
from gfx_engines.timeline.models import Animation, Keyframe


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def seeded():
    project = Project(id=str(uuid.uuid4()), name="Remote")
    layer = Layer(project_id=project.id, name="Lower Third", enabled=False)
    live = Template(id="tpl-live", project_id=project.id, layer_id=layer.id, enabled=False)
    archived = Template(id="tpl-archived", project_id=project.id, layer_id=layer.id, archived=True)
    element = Element(id="el-1", template_id=live.id)
    animation = Animation(id="anim-1", template_id=live.id, element_id=element.id)
    keyframe = Keyframe(id="kf-1", animation_id=animation.id, position=200)
    binding = Binding(template_id=live.id, element_id=element.id, binding_key="name", target_property="content.text")

    remote = InMemoryRemoteEntityStore()
    remote.seed(EntityKind.PROJECT, project)
    remote.seed(EntityKind.LAYERS, layer)
    remote.seed(EntityKind.TEMPLATES, live, archived)
    remote.seed(EntityKind.ELEMENTS, element)
    remote.seed(EntityKind.ANIMATIONS, animation)
    remote.seed(EntityKind.KEYFRAMES, keyframe)
    remote.seed(EntityKind.BINDINGS, binding)
    return project, remote


def _coordinator(remote=None, cache=None) -> PersistenceCoordinator:
    return PersistenceCoordinator(DesignerState(), remote, cache, fetch_timeout_s=1.0)


@pytest.mark.anyio
async def test_load_fetches_every_collection(seeded):
    project, remote = seeded
    loaded = await _coordinator(remote).load(project.id)

    assert loaded.source == "remote"
    assert loaded.project.name == "Remote"
    assert [t.id for t in loaded.templates] == ["tpl-live"]
    assert [e.id for e in loaded.elements] == ["el-1"]
    assert [a.id for a in loaded.animations] == ["anim-1"]
    assert [k.id for k in loaded.keyframes] == ["kf-1"]
    assert len(loaded.bindings) == 1
    assert all(layer.enabled for layer in loaded.layers)
    assert all(template.enabled for template in loaded.templates)
    assert loaded.degraded == {}


@pytest.mark.anyio
async def test_missing_project_raises_not_found():
    with pytest.raises(NotFoundError):
        await _coordinator(InMemoryRemoteEntityStore()).load(str(uuid.uuid4()))


@pytest.mark.anyio
async def test_project_without_layers_gets_defaults(seeded):
    project, remote = seeded
    remote.rows[EntityKind.LAYERS].clear()
    loaded = await _coordinator(remote).load(project.id)
    assert [layer.name for layer in loaded.layers] == ["Background", "Fullscreen", "Lower Third", "Bug"]


@pytest.mark.anyio
async def test_failed_child_fetch_degrades(seeded):
    project, remote = seeded
    remote.failures.add(("fetch_bindings", "bindings"))
    loaded = await _coordinator(remote).load(project.id)
    assert loaded.bindings == []
    assert [e.id for e in loaded.elements] == ["el-1"]
    assert list(loaded.degraded) == ["bindings:tpl-live"]


@pytest.mark.anyio
async def test_unreachable_remote_falls_back_to_cache(seeded):
    project, remote = seeded
    cache = InMemoryProjectCache()
    cache.set(project.id, LocalProjectBlob(project=project.model_copy(update={"name": "Cached"})))
    remote.failures.add(("fetch_project", "project"))

    loaded = await _coordinator(remote, cache).load(project.id)

    assert loaded.source == "local_cache"
    assert loaded.project.name == "Cached"
    assert "project" in loaded.degraded


@pytest.mark.anyio
async def test_unreachable_remote_without_cache_raises(seeded):
    project, remote = seeded
    remote.failures.add(("fetch_project", "project"))
    with pytest.raises(RuntimeError):
        await _coordinator(remote).load(project.id)


@pytest.mark.anyio
async def test_local_project_prefers_cache_then_demo():
    cache = InMemoryProjectCache()
    coordinator = _coordinator(InMemoryRemoteEntityStore(), cache)

    demo = await coordinator.load("demo")
    assert demo.source == "demo"
    assert demo.project.name == "Demo Project"
    assert len(demo.layers) == 4
    assert [t.name for t in demo.templates] == ["Main Fullscreen", "Basic L3", "Score Bug"]

    cache.set("demo", LocalProjectBlob(project=Project(id="demo", name="Saved demo")))
    again = await coordinator.load("demo")
    assert again.source == "local_cache"
    assert again.project.name == "Saved demo"
    assert coordinator.remote.calls == []
