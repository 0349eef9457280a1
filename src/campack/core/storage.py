"""Managed storage: randomly named directories, registry documents and archives"""

import asyncio
import glob
import json
import os
import secrets
import shutil
import zipfile
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from .exceptions import RegistryError


def get_random_id(length: int = 20) -> str:
    """Generate a cryptographically random hex string"""
    length = max(0, int(length))
    return secrets.token_hex((length + 1) // 2)[:length]


def expand_globs(patterns: Iterable[str], cwd: Union[str, Path]) -> List[str]:
    """
    Expand glob patterns relative to a directory

    Args:
        patterns: Glob patterns, "**" matches nested directories
        cwd: Directory the patterns are relative to

    Returns:
        List[str]: Unique normalized relative paths of regular files, in
        the order they were first matched
    """
    cwd = str(cwd)
    files: Dict[str, None] = {}
    for pattern in patterns:
        for match in sorted(glob.glob(pattern, root_dir=cwd, recursive=True)):
            if os.path.isfile(os.path.join(cwd, match)):
                files[os.path.normpath(match)] = None
    return list(files)


def is_escaping(relative_path: str) -> bool:
    """Whether a relative path leaves its base directory"""
    normalized = os.path.normpath(relative_path)
    return os.path.isabs(normalized) or normalized == ".." or normalized.startswith(
        ".." + os.sep
    )


def read_json(path: Path) -> Optional[Any]:
    """Read a JSON document, None if it is missing or cannot be parsed"""
    try:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError):
        return None


def write_json(path: Path, data: Any) -> None:
    """
    Write a JSON document, creating parent directories

    Raises:
        RegistryError: If the document cannot be written
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
    except OSError as e:
        raise RegistryError(f"Failed to write {path}", details=str(e))


def extract_archive(archive: Union[str, Path], destination: Path) -> None:
    destination.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(archive) as zf:
        zf.extractall(destination)


class ManagedStorage:
    """
    An arena of directories addressed by opaque random names

    Records point at their directory through a stored location, so a
    relocation is allocate + copy + repoint, and the superseded directory
    is freed later.
    """

    def __init__(self, root: Union[str, Path], registry_name: str):
        """
        Initialize managed storage.

        Args:
            root: Directory holding the arena
            registry_name: File name of the registry document inside root
        """
        self.root = Path(root)
        self.registry_path = self.root / registry_name

    def ensure(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def path(self, location: str) -> Path:
        return self.root / location

    def allocate(self) -> str:
        """Create a fresh, empty directory and return its location"""
        self.ensure()
        while True:
            location = get_random_id()
            try:
                self.path(location).mkdir()
                return location
            except FileExistsError:
                continue

    async def import_files(self, source: Path, files: List[str], location: str) -> None:
        """Copy files relative to source into a location, keeping timestamps"""

        def copy():
            for file in files:
                destination = self.path(location) / file
                destination.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(source / file, destination)

        await asyncio.to_thread(copy)

    async def relocate(self, location: str) -> str:
        """Copy a location into a freshly allocated one, the old one is left untouched"""
        new_location = get_random_id()
        await asyncio.to_thread(
            shutil.copytree, self.path(location), self.path(new_location)
        )
        return new_location

    async def free(self, location: str) -> None:
        if not location:
            return
        await asyncio.to_thread(remove_path, self.path(location))

    def read_registry(self) -> Dict[str, Any]:
        """Read the registry document, missing or corrupted reads as empty"""
        data = read_json(self.registry_path)
        return data if isinstance(data, dict) else {}

    def write_registry(self, data: Dict[str, Any]) -> None:
        write_json(self.registry_path, data)

    def entries(self) -> List[Path]:
        if not self.root.is_dir():
            return []
        return list(self.root.iterdir())


def remove_path(path: Path) -> None:
    """Remove a file or a directory tree, missing paths are ignored"""
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path, ignore_errors=True)
    elif path.exists() or path.is_symlink():
        path.unlink()
