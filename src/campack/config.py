import os
from pathlib import Path
from typing import Any, Dict, Optional, Union
import tomlkit


ENV_HOME = "CAMPACK_HOME"
CONFIG_FILE_NAME = "campack.toml"
SECTION = "campack"

DEFAULTS: Dict[str, Any] = {
    "storage_root": str(Path.home() / ".campack"),
    "index_file_name": "index.html",
    "component_manifest": "component.cam.json",
    "package_manifest": "package.cam.json",
}


class Config:
    """Settings of the component and package collections, stored in campack.toml"""

    def __init__(
        self,
        file_path: Optional[Union[str, Path]] = None,
        storage_root: Optional[Union[str, Path]] = None,
    ):
        """
        Initialize Config

        Args:
            file_path: Path to campack.toml, defaults to <storage root>/campack.toml
            storage_root: Storage root overriding both the file and the environment
        """
        self._override_root = Path(storage_root) if storage_root else None
        if file_path is None:
            file_path = self._default_root() / CONFIG_FILE_NAME
        self.file_path = Path(file_path)
        self._data: Optional[tomlkit.TOMLDocument] = None

    def _default_root(self) -> Path:
        if self._override_root:
            return self._override_root
        return Path(os.environ.get(ENV_HOME) or DEFAULTS["storage_root"])

    @property
    def data(self) -> tomlkit.TOMLDocument:
        """Cached property to access campack.toml content"""
        if self._data is None:
            self._read()
        return self._data

    def _read(self) -> None:
        """Read and parse campack.toml, a missing file reads as empty"""
        if not self.file_path.exists():
            self._data = tomlkit.document()
            return

        with self.file_path.open("r", encoding="utf-8") as f:
            self._data = tomlkit.parse(f.read())

    def _write(self) -> None:
        """Write current data back to campack.toml"""
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        with self.file_path.open("w", encoding="utf-8") as f:
            f.write(tomlkit.dumps(self._data))

    def _ensure_section(self) -> None:
        if SECTION not in self.data:
            self.data[SECTION] = tomlkit.table()

    def get(self, key: str) -> Any:
        """
        Get a setting

        Raises:
            KeyError: If the setting is unknown
        """
        if key not in DEFAULTS:
            raise KeyError(f"Unknown setting: {key}")
        section = self.data.get(SECTION, {})
        value = section.get(key, DEFAULTS[key])
        return value.unwrap() if hasattr(value, "unwrap") else value

    def set(self, key: str, value: Any) -> None:
        """
        Set a setting and persist it, keeping the file's formatting

        Raises:
            KeyError: If the setting is unknown
        """
        if key not in DEFAULTS:
            raise KeyError(f"Unknown setting: {key}")
        self._ensure_section()
        self.data[SECTION][key] = value
        self._write()

    @property
    def storage_root(self) -> Path:
        """Storage root: explicit override, then $CAMPACK_HOME, then campack.toml"""
        if self._override_root:
            return self._override_root
        if os.environ.get(ENV_HOME):
            return Path(os.environ[ENV_HOME])
        return Path(str(self.get("storage_root"))).expanduser()

    @property
    def components_dir(self) -> Path:
        return self.storage_root / "components"

    @property
    def packages_dir(self) -> Path:
        return self.storage_root / "packages"

    @property
    def temp_dir(self) -> Path:
        return self.storage_root / ".zipInstall"

    @property
    def index_file_name(self) -> str:
        return str(self.get("index_file_name"))

    @property
    def component_manifest(self) -> str:
        return str(self.get("component_manifest"))

    @property
    def package_manifest(self) -> str:
        return str(self.get("package_manifest"))
