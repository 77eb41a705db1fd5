from __future__ import annotations

import pytest

from gfx_engines.common.errors import ValidationError
from gfx_engines.data_binding.models import Binding
from gfx_engines.designer.models import Layer, Project, Template
from gfx_engines.designer.state import DesignerState
from gfx_engines.history.service import HistoryManager
from gfx_engines.persistence.models import EntityKind
from gfx_engines.scene_graph.models import ElementType, TextContent
from gfx_engines.scene_graph.service import SceneGraphService
from gfx_engines.timeline.models import Animation, Keyframe


@pytest.fixture
def state() -> DesignerState:
    project = Project(name="Scene")
    layer = Layer(project_id=project.id, name="Lower Third")
    main = Template(id="tpl-main", project_id=project.id, layer_id=layer.id, name="Main")
    other = Template(id="tpl-other", project_id=project.id, layer_id=layer.id, name="Other")
    return DesignerState(project=project, layers=[layer], templates=[main, other], current_template_id="tpl-main")


@pytest.fixture
def scene(state: DesignerState) -> SceneGraphService:
    history = HistoryManager(state, limit=50)
    history.push("baseline")
    return SceneGraphService(state, history)


def _attach_animation(state: DesignerState, element_id: str, props=None) -> Animation:
    element = state.element(element_id)
    anim = Animation(template_id=element.template_id, element_id=element_id)
    state.animations.append(anim)
    state.keyframes.append(Keyframe(animation_id=anim.id, position=0, properties=props or {"opacity": 0}))
    return anim


def test_add_element_uses_defaults_and_selects(scene: SceneGraphService, state: DesignerState):
    element_id = scene.add_element(ElementType.TEXT, {"x": 10, "y": 20})
    element = state.element(element_id)
    assert element.template_id == "tpl-main"
    assert element.name == "Text"
    assert isinstance(element.content, TextContent)
    assert element.styles["fontSize"] == "32px"
    assert element.element_id.startswith("el-")
    assert (element.position_x, element.position_y) == (10, 20)
    assert state.selected_element_ids == [element_id]
    assert state.is_dirty
    assert state.history[-1].description == "Add text"


def test_add_element_without_template_is_rejected(scene: SceneGraphService, state: DesignerState):
    state.current_template_id = None
    assert scene.add_element(ElementType.DIV, {"x": 0, "y": 0}) is None
    assert state.elements == []


def test_add_element_with_foreign_parent_is_rejected(scene: SceneGraphService, state: DesignerState):
    parent = scene.add_element(ElementType.DIV, {"x": 0, "y": 0})
    state.current_template_id = "tpl-other"
    assert scene.add_element(ElementType.DIV, {"x": 0, "y": 0}, parent_id=parent) is None


def test_new_elements_stack_on_top_except_pinned_types(scene: SceneGraphService, state: DesignerState):
    first = scene.add_element(ElementType.DIV, {"x": 0, "y": 0})
    second = scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0})
    video = scene.add_element(ElementType.VIDEO, {"x": 0, "y": 0})
    ticker = scene.add_element(ElementType.TICKER, {"x": 0, "y": 0})
    assert state.element(first).z_index == 10
    assert state.element(second).z_index == 20
    assert state.element(video).z_index == 0
    assert state.element(ticker).z_index == 500


def test_add_element_from_data_fills_defaults(scene: SceneGraphService, state: DesignerState):
    element_id = scene.add_element_from_data({"element_type": "text", "name": "Headline", "content": {"type": "text", "text": "Hi"}})
    element = state.element(element_id)
    assert element.name == "Headline"
    assert element.content.text == "Hi"
    assert element.width == 200
    assert state.history[-1].description == "AI Create: Headline"


def test_add_element_from_data_rejects_malformed_payload(scene: SceneGraphService, state: DesignerState):
    with pytest.raises(ValidationError):
        scene.add_element_from_data({"element_type": "shape", "opacity": "very"})
    assert state.elements == []


def test_update_element_merges_content_without_history(scene: SceneGraphService, state: DesignerState):
    element_id = scene.add_element(ElementType.TEXT, {"x": 0, "y": 0})
    history_len = len(state.history)
    assert scene.update_element(element_id, content={"text": "Updated"}, opacity=0.5)
    element = state.element(element_id)
    assert element.content.text == "Updated"
    assert element.opacity == 0.5
    assert len(state.history) == history_len


def test_update_element_rejects_parent_cycle(scene: SceneGraphService, state: DesignerState):
    outer = scene.add_element(ElementType.DIV, {"x": 0, "y": 0})
    inner = scene.add_element(ElementType.DIV, {"x": 0, "y": 0}, parent_id=outer)
    assert scene.update_element(outer, parent_element_id=inner) is False
    assert state.element(outer).parent_element_id is None


def test_update_unknown_element_returns_false(scene: SceneGraphService):
    assert scene.update_element("missing", opacity=0) is False


def test_delete_cascades_to_descendants_and_dependents(scene: SceneGraphService, state: DesignerState):
    parent = scene.add_element(ElementType.DIV, {"x": 0, "y": 0})
    child = scene.add_element(ElementType.TEXT, {"x": 5, "y": 5}, parent_id=parent)
    grandchild = scene.add_element(ElementType.SHAPE, {"x": 1, "y": 1}, parent_id=child)
    anim = _attach_animation(state, grandchild)
    binding = Binding(template_id="tpl-main", element_id=child, binding_key="name", target_property="content.text")
    state.bindings.append(binding)
    state.selected_element_ids = [child]

    removed = scene.delete_elements([parent])

    assert set(removed) == {parent, child, grandchild}
    assert state.elements == []
    assert state.animations == []
    assert state.keyframes == []
    assert state.bindings == []
    pending = state.pending_deletions
    assert set(pending.queue(EntityKind.ELEMENTS)) == {parent, child, grandchild}
    assert pending.queue(EntityKind.ANIMATIONS) == [anim.id]
    assert len(pending.queue(EntityKind.KEYFRAMES)) == 1
    assert pending.queue(EntityKind.BINDINGS) == [binding.id]
    assert state.selected_element_ids == []


def test_delete_unknown_ids_is_noop(scene: SceneGraphService, state: DesignerState):
    history_len = len(state.history)
    assert scene.delete_elements(["nope"]) == []
    assert len(state.history) == history_len


def test_duplicate_copies_subtree_and_dependents(scene: SceneGraphService, state: DesignerState):
    parent = scene.add_element(ElementType.DIV, {"x": 10, "y": 10})
    child = scene.add_element(ElementType.TEXT, {"x": 5, "y": 5}, parent_id=parent)
    _attach_animation(state, child)

    copies = scene.duplicate_elements([parent, child])

    assert len(copies) == 1
    copy = state.element(copies[0])
    assert copy.name == "Container Copy"
    assert (copy.position_x, copy.position_y) == (30, 30)
    copied_children = state.children_of("tpl-main", copy.id)
    assert len(copied_children) == 1
    assert copied_children[0].element_id != state.element(child).element_id
    assert len(state.animations) == 2
    assert len(state.keyframes) == 2
    assert state.selected_element_ids == copies


def test_group_then_ungroup_restores_positions(scene: SceneGraphService, state: DesignerState):
    a = scene.add_element(ElementType.SHAPE, {"x": 100, "y": 50})
    b = scene.add_element(ElementType.SHAPE, {"x": 300, "y": 200})
    _attach_animation(state, a, {"position_x": 120, "position_y": 60})
    before = {i: (state.element(i).position_x, state.element(i).position_y) for i in (a, b)}

    group_id = scene.group_elements([a, b])
    group = state.element(group_id)
    assert group.element_type == ElementType.GROUP
    assert (group.position_x, group.position_y) == (100, 50)
    assert (group.width, group.height) == (400, 250)
    assert state.element(a).parent_element_id == group_id
    assert (state.element(b).position_x, state.element(b).position_y) == (200, 150)
    assert state.keyframes[0].properties["position_x"] == 20

    children = scene.ungroup_elements(group_id)
    assert set(children) == {a, b}
    assert state.element(group_id) is None
    for element_id, position in before.items():
        element = state.element(element_id)
        assert element.parent_element_id is None
        assert (element.position_x, element.position_y) == position
    assert state.keyframes[0].properties == {"position_x": 120, "position_y": 60}
    assert group_id in state.pending_deletions.queue(EntityKind.ELEMENTS)


def test_group_requires_shared_parent(scene: SceneGraphService, state: DesignerState):
    outer = scene.add_element(ElementType.DIV, {"x": 0, "y": 0})
    nested = scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0}, parent_id=outer)
    loose = scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0})
    assert scene.group_elements([nested, loose]) is None
    assert scene.group_elements([loose]) is None


def test_ungroup_non_group_is_rejected(scene: SceneGraphService):
    shape = scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0})
    assert scene.ungroup_elements(shape) is None


def test_move_to_template_makes_positions_absolute(scene: SceneGraphService, state: DesignerState):
    parent = scene.add_element(ElementType.DIV, {"x": 100, "y": 100})
    child = scene.add_element(ElementType.TEXT, {"x": 10, "y": 20}, parent_id=parent)
    anim = _attach_animation(state, child)

    assert scene.move_elements_to_template([child], "tpl-other")

    moved = state.element(child)
    assert moved.template_id == "tpl-other"
    assert moved.parent_element_id is None
    assert (moved.position_x, moved.position_y) == (110, 120)
    assert state.animation(anim.id).template_id == "tpl-other"
    assert state.current_template_id == "tpl-main"


def test_move_to_unknown_template_is_rejected(scene: SceneGraphService):
    element_id = scene.add_element(ElementType.DIV, {"x": 0, "y": 0})
    assert scene.move_elements_to_template([element_id], "nope") is False


def test_reorder_renumbers_siblings(scene: SceneGraphService, state: DesignerState):
    ids = [scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0}) for _ in range(5)]
    assert scene.reorder_element(ids[4], 0)
    ordered = sorted(state.template_elements("tpl-main"), key=lambda e: e.sort_order)
    assert [e.id for e in ordered] == [ids[4], *ids[:4]]
    assert [e.sort_order for e in ordered] == [0, 1, 2, 3, 4]
    assert [e.z_index for e in ordered] == [0, 10, 20, 30, 40]


def test_reorder_into_new_parent_keeps_screen_position(scene: SceneGraphService, state: DesignerState):
    container = scene.add_element(ElementType.DIV, {"x": 50, "y": 60})
    shape = scene.add_element(ElementType.SHAPE, {"x": 80, "y": 100})
    assert scene.reorder_element(shape, 0, container)
    moved = state.element(shape)
    assert moved.parent_element_id == container
    assert (moved.position_x, moved.position_y) == (30, 40)


def test_reorder_into_own_descendant_is_rejected(scene: SceneGraphService):
    outer = scene.add_element(ElementType.DIV, {"x": 0, "y": 0})
    inner = scene.add_element(ElementType.DIV, {"x": 0, "y": 0}, parent_id=outer)
    assert scene.reorder_element(outer, 0, inner) is False


def test_fit_to_content_runs_after_child_added(scene: SceneGraphService, state: DesignerState):
    container = scene.add_element(ElementType.DIV, {"x": 0, "y": 0})
    scene.update_element(container, content={"fit_to_content": True, "padding": {"top": 0, "right": 0, "bottom": 0, "left": 0}})
    scene.add_element(ElementType.SHAPE, {"x": 20, "y": 30}, parent_id=container)
    assert scene.scheduler.pending() == 1

    scene.scheduler.flush()

    fitted = state.element(container)
    assert (fitted.position_x, fitted.position_y) == (20, 30)
    assert (fitted.width, fitted.height) == (200, 100)
    child = state.children_of("tpl-main", container)[0]
    assert (child.position_x, child.position_y) == (0, 0)


def test_new_siblings_follow_the_highest_sort_order(scene: SceneGraphService, state: DesignerState):
    a, b, _ = [scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0}) for _ in range(3)]
    scene.delete_elements([b])

    added = scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0})
    assert state.element(added).sort_order == 3

    [copy_id] = scene.duplicate_elements([a])
    assert state.element(copy_id).sort_order == 4
    orders = [e.sort_order for e in state.template_elements("tpl-main")]
    assert len(orders) == len(set(orders))


def test_moved_roots_append_after_target_siblings(scene: SceneGraphService, state: DesignerState):
    state.current_template_id = "tpl-other"
    scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0})
    state.current_template_id = "tpl-main"
    first = scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0})
    second = scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0})

    assert scene.move_elements_to_template([first, second], "tpl-other")

    assert sorted(e.sort_order for e in state.template_elements("tpl-other")) == [0, 1, 2]


def test_ungroup_takes_over_the_group_slot(scene: SceneGraphService, state: DesignerState):
    before, a, b, after = [scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0}) for _ in range(4)]
    group_id = scene.group_elements([a, b])
    assert state.element(group_id).sort_order == 1

    scene.ungroup_elements(group_id)

    ordered = sorted(state.template_elements("tpl-main"), key=lambda e: e.sort_order)
    assert [e.id for e in ordered] == [before, a, b, after]
    assert [e.sort_order for e in ordered] == [0, 1, 2, 3]
    assert (state.element(a).z_index, state.element(b).z_index) == (30, 31)
    assert len({e.z_index for e in ordered}) == 4
