# Test file for managed storage

import pytest
from campack.core.exceptions import RegistryError
from campack.core.storage import (
    ManagedStorage,
    expand_globs,
    get_random_id,
    is_escaping,
    read_json,
    write_json,
)


@pytest.fixture
def source(tmp_path):
    """Create a small source tree"""
    root = tmp_path / "source"
    (root / "assets" / "img").mkdir(parents=True)
    (root / "index.html").write_text("index", encoding="utf-8")
    (root / "assets" / "main.js").write_text("js", encoding="utf-8")
    (root / "assets" / "img" / "logo.png").write_bytes(b"png")
    return root


def test_get_random_id():
    """Test random directory names"""
    first, second = get_random_id(), get_random_id()
    assert len(first) == 20
    assert first != second
    assert len(get_random_id(7)) == 7


def test_expand_globs(source):
    """Test that globs match files only, once each"""
    files = expand_globs(["index.html", "assets/**", "*.html"], source)
    assert sorted(files) == sorted(
        ["index.html", "assets/main.js", "assets/img/logo.png"]
    )
    assert expand_globs(["*.css"], source) == []


@pytest.mark.parametrize(
    "path,expected",
    [
        ("index.html", False),
        ("assets/../index.html", False),
        ("../secret.txt", True),
        ("assets/../../secret.txt", True),
        ("..", True),
    ],
)
def test_is_escaping(path, expected):
    """Test detection of paths leaving their base directory"""
    assert is_escaping(path) is expected


def test_json_documents(tmp_path):
    """Test reading and writing registry documents"""
    path = tmp_path / "nested" / "registry.json"
    assert read_json(path) is None

    write_json(path, {"plot@1.0.0": {"name": "Plot"}})
    assert read_json(path) == {"plot@1.0.0": {"name": "Plot"}}

    path.write_text("{broken", encoding="utf-8")
    assert read_json(path) is None


def test_write_json_failure(tmp_path):
    """Test that unwritable documents raise RegistryError"""
    blocker = tmp_path / "file"
    blocker.write_text("", encoding="utf-8")
    with pytest.raises(RegistryError):
        write_json(blocker / "registry.json", {})


@pytest.mark.asyncio
async def test_managed_storage_lifecycle(tmp_path, source):
    """Test allocate, import, relocate and free"""
    storage = ManagedStorage(tmp_path / "arena", "registry.json")
    assert storage.read_registry() == {}

    location = storage.allocate()
    await storage.import_files(source, ["index.html", "assets/img/logo.png"], location)
    assert (storage.path(location) / "assets" / "img" / "logo.png").read_bytes() == b"png"

    moved = await storage.relocate(location)
    assert moved != location
    assert (storage.path(moved) / "index.html").read_text(encoding="utf-8") == "index"
    assert storage.path(location).is_dir()

    await storage.free(location)
    assert not storage.path(location).exists()

    storage.write_registry({"a": {}})
    assert storage.read_registry() == {"a": {}}
    assert sorted(entry.name for entry in storage.entries()) == sorted([moved, "registry.json"])
