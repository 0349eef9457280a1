# Test file for campack.toml settings

import pytest
import tomlkit
from campack.config import Config


@pytest.fixture
def config_file(tmp_path):
    """Create a campack.toml with a comment to preserve"""
    path = tmp_path / "campack.toml"
    path.write_text(
        "# Local settings\n[campack]\nindex_file_name = \"main.html\"\n",
        encoding="utf-8",
    )
    return path


def test_defaults(tmp_path, monkeypatch):
    """Test that a missing file reads as defaults"""
    monkeypatch.delenv("CAMPACK_HOME", raising=False)
    config = Config(file_path=tmp_path / "missing.toml")

    assert config._data is None  # Data should be lazy loaded
    assert config.index_file_name == "index.html"
    assert config.component_manifest == "component.cam.json"
    assert config.package_manifest == "package.cam.json"
    assert config.storage_root.name == ".campack"


def test_read_settings(config_file):
    """Test reading values from campack.toml"""
    config = Config(file_path=config_file)
    assert config.index_file_name == "main.html"


def test_storage_root_precedence(tmp_path, config_file, monkeypatch):
    """Test explicit root, then $CAMPACK_HOME, then campack.toml"""
    config_file.write_text(
        f"[campack]\nstorage_root = \"{(tmp_path / 'from-file').as_posix()}\"\n",
        encoding="utf-8",
    )
    monkeypatch.delenv("CAMPACK_HOME", raising=False)
    assert Config(file_path=config_file).storage_root == tmp_path / "from-file"

    monkeypatch.setenv("CAMPACK_HOME", str(tmp_path / "from-env"))
    assert Config(file_path=config_file).storage_root == tmp_path / "from-env"

    config = Config(file_path=config_file, storage_root=tmp_path / "explicit")
    assert config.storage_root == tmp_path / "explicit"
    assert config.components_dir == tmp_path / "explicit" / "components"
    assert config.packages_dir == tmp_path / "explicit" / "packages"
    assert config.temp_dir == tmp_path / "explicit" / ".zipInstall"


def test_set_preserves_formatting(config_file):
    """Test that writing a setting keeps comments"""
    config = Config(file_path=config_file)
    config.set("package_manifest", "bundle.json")

    content = config_file.read_text(encoding="utf-8")
    assert content.startswith("# Local settings")
    assert tomlkit.parse(content)["campack"]["package_manifest"] == "bundle.json"
    assert Config(file_path=config_file).package_manifest == "bundle.json"


def test_unknown_setting(config_file):
    """Test that only known settings are accepted"""
    config = Config(file_path=config_file)
    with pytest.raises(KeyError):
        config.get("colour")
    with pytest.raises(KeyError):
        config.set("colour", "blue")
