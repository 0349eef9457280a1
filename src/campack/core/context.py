"""Composition of the collections sharing one graph and one transaction coordinator"""

import zipfile
from pathlib import Path
from typing import Callable, Optional, Union

from ..config import Config
from ..ui.console import log as console_log
from .componentizer import Componentizer, read_manifest
from .exceptions import OperationError
from .graph import Graph
from .packager import Packager
from .transact import Transact


class Context:
    """Owner of the Transact coordinator, the Graph and both collections"""

    def __init__(
        self,
        config: Optional[Config] = None,
        log: Callable[[str, int], None] = console_log,
    ):
        self.config = config or Config()
        self.log = log
        self.transact = Transact()
        self.graph = Graph(self.transact)
        self.componentizer = Componentizer(self.config, self.transact, self.graph, log)
        self.packager = Packager(self.config, self.graph, self.componentizer, log)

    async def init(self) -> None:
        """Load the component registry, then the package registry"""
        await self.componentizer.load_all()
        await self.packager.load_all()

    def reset(self) -> None:
        """Drop every in-memory record and start from an empty graph"""
        self.transact = Transact()
        self.graph = Graph(self.transact)
        self.componentizer = Componentizer(self.config, self.transact, self.graph, self.log)
        self.packager = Packager(self.config, self.graph, self.componentizer, self.log)

    def manifest_type(self, input_path: Union[str, Path]) -> str:
        """
        Tell whether a JSON manifest or a ZIP archive holds a component or a package

        Raises:
            OperationError: If the kind cannot be determined
        """
        input_path = Path(input_path)
        extension = input_path.suffix.lower()
        if extension == ".json":
            data = read_manifest(input_path)
            kind = data.get("type") if isinstance(data, dict) else None
            if kind in ("component", "package"):
                return kind
            raise OperationError(f"Unknown installation file type `{kind}`")

        if extension == ".zip":
            try:
                with zipfile.ZipFile(input_path) as zf:
                    names = set(zf.namelist())
            except zipfile.BadZipFile as e:
                raise OperationError(f"Invalid zip file {input_path}", details=str(e))
            if self.config.package_manifest in names:
                return "package"
            if self.config.component_manifest in names:
                return "component"
            raise OperationError(f"Invalid zip file, no manifest found in {input_path}")

        raise OperationError(f"Unsupported extension `{extension}` in `{input_path}`")

    async def install(self, input_path: Union[str, Path], force: bool = False) -> Optional[str]:
        """Install a component or a package, whichever the input holds"""
        if self.manifest_type(input_path) == "package":
            return await self.packager.add_package(input_path, force)
        return await self.componentizer.add_component(input_path, force)
