import json

from gfx_engines.designer.models import Project
from gfx_engines.persistence.local_cache import FileSystemProjectCache, InMemoryProjectCache
from gfx_engines.persistence.models import LocalProjectBlob
from gfx_engines.scene_graph.models import Element, TextContent


def _blob() -> LocalProjectBlob:
    return LocalProjectBlob(
        project=Project(id="demo", name="Cached"),
        elements=[Element(id="el", template_id="tpl", content=TextContent(text="hi"))],
    )


def test_in_memory_round_trip_and_corruption():
    cache = InMemoryProjectCache()
    cache.set("demo", _blob())
    assert cache.get("demo").elements[0].content.text == "hi"

    cache.set_raw("demo", "{not json")
    assert cache.get("demo") is None
    assert cache.get("demo") is None


def test_filesystem_cache_writes_one_file_per_project(tmp_path):
    cache = FileSystemProjectCache(tmp_path / "cache")
    cache.set("demo", _blob())
    path = tmp_path / "cache" / "demo.json"
    assert path.exists()
    assert json.loads(path.read_text())["project"]["name"] == "Cached"
    assert cache.get("demo").project.name == "Cached"
    assert cache.get("other") is None


def test_filesystem_cache_clears_corrupted_file(tmp_path):
    cache = FileSystemProjectCache(tmp_path)
    (tmp_path / "demo.json").write_text('{"project": 5}')
    assert cache.get("demo") is None
    assert not (tmp_path / "demo.json").exists()


def test_filesystem_cache_sanitizes_ids(tmp_path):
    cache = FileSystemProjectCache(tmp_path)
    cache.set("../escape", _blob())
    assert list(p.name for p in tmp_path.iterdir()) == ["__escape.json"]
    cache.remove("../escape")
    cache.remove("../escape")
    assert list(tmp_path.iterdir()) == []


def test_filesystem_cache_clears_undecodable_file(tmp_path):
    cache = FileSystemProjectCache(tmp_path)
    (tmp_path / "demo.json").write_bytes(b"\xff\xfe{not json")
    assert cache.get("demo") is None
    assert not (tmp_path / "demo.json").exists()
