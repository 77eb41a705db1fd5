import pytest

from gfx_engines.designer.models import Layer, Project, Template
from gfx_engines.designer.state import DesignerState
from gfx_engines.history.service import HistoryManager
from gfx_engines.persistence.models import EntityKind
from gfx_engines.scene_graph.models import ElementType
from gfx_engines.scene_graph.service import SceneGraphService
from gfx_engines.timeline.models import Animation, Keyframe


@pytest.fixture
def state() -> DesignerState:
    project = Project(name="History")
    layer = Layer(project_id=project.id, name="Fullscreen")
    return DesignerState(
        project=project,
        layers=[layer],
        templates=[
            Template(id="tpl-a", project_id=project.id, layer_id=layer.id),
            Template(id="tpl-b", project_id=project.id, layer_id=layer.id),
        ],
        current_template_id="tpl-a",
    )


def _scene(state: DesignerState, limit: int = 50) -> SceneGraphService:
    history = HistoryManager(state, limit=limit)
    history.push("baseline")
    return SceneGraphService(state, history)


def test_undo_redo_round_trip(state: DesignerState):
    scene = _scene(state)
    element_id = scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0})
    after_add = [e.model_dump() for e in state.elements]

    assert scene.history.undo()
    assert state.elements == []
    assert scene.history.redo()
    assert [e.model_dump() for e in state.elements] == after_add
    assert state.element(element_id) is not None


def test_cannot_undo_past_baseline(state: DesignerState):
    scene = _scene(state)
    assert scene.history.can_undo is False
    assert scene.history.undo() is False
    scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0})
    assert scene.history.can_undo is True
    assert scene.history.can_redo is False


def test_new_edit_truncates_redo_tail(state: DesignerState):
    scene = _scene(state)
    scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0})
    scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0})
    scene.history.undo()
    scene.add_element(ElementType.TEXT, {"x": 0, "y": 0})
    assert scene.history.can_redo is False
    assert [h.description for h in state.history] == ["baseline", "Add shape", "Add text"]


def test_history_is_bounded(state: DesignerState):
    scene = _scene(state, limit=5)
    for _ in range(12):
        scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0})
    assert len(state.history) == 5
    assert state.history_index == 4


def test_snapshots_are_independent_of_live_state(state: DesignerState):
    scene = _scene(state)
    element_id = scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0})
    state.element(element_id).position_x = 999
    scene.history.undo()
    scene.history.redo()
    assert state.element(element_id).position_x == 0


def test_undo_of_delete_removes_pending_deletion(state: DesignerState):
    scene = _scene(state)
    element_id = scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0})
    scene.delete_elements([element_id])
    assert state.pending_deletions.queue(EntityKind.ELEMENTS) == [element_id]

    scene.history.undo()
    assert state.element(element_id) is not None
    assert state.pending_deletions.queue(EntityKind.ELEMENTS) == []

    scene.history.redo()
    assert state.pending_deletions.queue(EntityKind.ELEMENTS) == [element_id]


def test_undo_of_add_queues_deletion(state: DesignerState):
    scene = _scene(state)
    element_id = scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0})
    scene.history.undo()
    assert state.pending_deletions.queue(EntityKind.ELEMENTS) == [element_id]


def test_restore_filters_stale_selection(state: DesignerState):
    scene = _scene(state)
    element_id = scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0})
    assert state.selected_element_ids == [element_id]
    scene.history.undo()
    assert state.selected_element_ids == []


def test_scrub_template_drops_entities_from_every_snapshot(state: DesignerState):
    scene = _scene(state)
    keep = scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0})
    state.current_template_id = "tpl-b"
    drop = scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0})
    anim = Animation(template_id="tpl-b", element_id=drop)
    state.animations.append(anim)
    state.keyframes.append(Keyframe(animation_id=anim.id, properties={"opacity": 1}))
    scene.history.push("Add animation")

    scene.history.scrub_template("tpl-b")

    for entry in state.history:
        assert all(e.template_id != "tpl-b" for e in entry.snapshot.elements)
        assert entry.snapshot.animations == []
        assert entry.snapshot.keyframes == []
    assert any(e.id == keep for e in state.history[-1].snapshot.elements)


def test_clear_resets_index(state: DesignerState):
    history = HistoryManager(state, limit=3)
    history.push("one")
    history.clear()
    assert state.history == []
    assert state.history_index == -1
