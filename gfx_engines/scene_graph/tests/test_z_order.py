import pytest

from gfx_engines.designer.models import Layer, Project, Template
from gfx_engines.designer.state import DesignerState
from gfx_engines.history.service import HistoryManager
from gfx_engines.scene_graph.models import ElementType
from gfx_engines.scene_graph.service import SceneGraphService


@pytest.fixture
def scene() -> SceneGraphService:
    project = Project(name="Z")
    layer = Layer(project_id=project.id, name="Bug")
    template = Template(id="tpl", project_id=project.id, layer_id=layer.id)
    state = DesignerState(project=project, layers=[layer], templates=[template], current_template_id="tpl")
    return SceneGraphService(state, HistoryManager(state, limit=10))


def _z(scene: SceneGraphService, *ids):
    return [scene.state.element(i).z_index for i in ids]


def test_three_adds_get_increasing_z(scene: SceneGraphService):
    ids = [scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0}) for _ in range(3)]
    scene.reorder_element(ids[0], 0)
    assert _z(scene, *ids) == [0, 10, 20]
    assert [e.id for e in scene.paint_order("tpl")] == ids


def test_bring_to_front_and_send_to_back(scene: SceneGraphService):
    a, b, c = [scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0}) for _ in range(3)]
    assert scene.bring_to_front(a)
    assert scene.paint_order("tpl")[-1].id == a
    assert scene.send_to_back(a)
    assert scene.paint_order("tpl")[0].id == a
    assert min(_z(scene, a, b, c)) >= 0


def test_forward_and_backward_swap_with_neighbour(scene: SceneGraphService):
    a, b, c = [scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0}) for _ in range(3)]
    assert scene.bring_forward(a)
    assert _z(scene, a, b, c) == [20, 10, 30]
    assert scene.send_backward(c)
    assert _z(scene, a, b, c) == [30, 10, 20]


def test_bring_forward_on_top_element_steps_up(scene: SceneGraphService):
    a = scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0})
    assert scene.bring_forward(a)
    assert _z(scene, a) == [20]


def test_set_z_index_clamps_and_records_history(scene: SceneGraphService):
    a = scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0})
    assert scene.set_z_index(a, -5)
    assert _z(scene, a) == [0]
    assert scene.state.history[-1].description == "Set z-index"


def test_equal_z_falls_back_to_outline_order(scene: SceneGraphService):
    a, b = [scene.add_element(ElementType.SHAPE, {"x": 0, "y": 0}) for _ in range(2)]
    scene.set_z_index(a, 50)
    scene.set_z_index(b, 50)
    assert [e.id for e in scene.paint_order("tpl")] == [a, b]


def test_z_ops_on_unknown_element(scene: SceneGraphService):
    assert scene.bring_to_front("nope") is False
    assert scene.send_backward("nope") is False
