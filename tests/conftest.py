"""Test configuration for campack"""

import json
import os
import sys
from pathlib import Path
import pytest

# Add the source directory to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

# The product console forces terminal output; keep CLI output free of ANSI
# codes regardless of the developer's terminal
os.environ["TERM"] = "dumb"

from campack.config import Config
from campack.core.context import Context


@pytest.fixture
def config(tmp_path):
    """Create a config whose storage root lives in a temporary directory"""
    return Config(file_path=tmp_path / "campack.toml", storage_root=tmp_path / "store")


@pytest.fixture
def logs():
    """Collect (message, severity) pairs written by the collections"""
    return []


@pytest.fixture
def context(config, logs):
    """Create a fresh, not yet initialized context"""
    return Context(config, log=lambda message, severity=0: logs.append((message, int(severity))))


@pytest.fixture
def make_component(tmp_path):
    """Factory writing a component manifest and its files, returns the manifest path"""

    def factory(id="plot", version="1.0.0", compatible_until=None, directory=None, **fields):
        source = Path(directory) if directory else tmp_path / "sources" / f"{id}-{version}"
        source.mkdir(parents=True, exist_ok=True)
        (source / "index.html").write_text(f"<h1>{id} {version}</h1>", encoding="utf-8")
        (source / "assets").mkdir(exist_ok=True)
        (source / "assets" / "main.js").write_text("console.log('ok')", encoding="utf-8")

        manifest = {
            "type": "component",
            "id": id,
            "name": id.capitalize(),
            "description": f"The {id} component",
            "version": version,
            "files": ["index.html", "assets/**"],
            "indexFile": "index.html",
            **fields,
        }
        if compatible_until is not None:
            manifest["compatibleUntil"] = compatible_until

        manifest_path = source / "component.cam.json"
        manifest_path.write_text(json.dumps(manifest), encoding="utf-8")
        return manifest_path

    return factory


@pytest.fixture
def make_package(tmp_path):
    """Factory writing a package manifest, returns the manifest path"""

    def factory(id="dashboard", version="1.0.0", includes=None, directory=None, **fields):
        target = Path(directory) if directory else tmp_path / "packages" / f"{id}-{version}"
        target.mkdir(parents=True, exist_ok=True)
        manifest = {
            "type": "package",
            "id": id,
            "name": id.capitalize(),
            "description": f"The {id} package",
            "version": version,
            "includes": includes if includes is not None else [],
            **fields,
        }
        manifest_path = target / "package.cam.json"
        manifest_path.write_text(json.dumps(manifest), encoding="utf-8")
        return manifest_path

    return factory
