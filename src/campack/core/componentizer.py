"""The component collection

Components are leaf units: a manifest, a set of files copied into managed
storage, and an index file. Every installed version is a node "com/<id>"
of the shared dependency graph.
"""

import asyncio
import io
import json
import os
import zipfile
from copy import deepcopy
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from ..config import Config
from ..ui.console import log as console_log
from ..ui.style import Severity
from .exceptions import ConsistencyError, ManifestError, OperationError, TransactError
from .graph import Graph
from .models import COMPONENT_PREFIX, Component, ComponentManifest, component_node
from .storage import (
    ManagedStorage,
    expand_globs,
    extract_archive,
    get_random_id,
    is_escaping,
    remove_path,
)
from .transact import Transact, TransactEnabled
from .version_utils import decombine, satisfy_combined, sort_key, to_version


REGISTRY_FILE_NAME = "components.json"


def read_manifest(manifest_path: Path) -> Any:
    """
    Read an install manifest

    Raises:
        ManifestError: If the file is not valid JSON
    """
    try:
        with manifest_path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except ValueError as e:
        raise ManifestError(f"Cannot parse installation file {manifest_path}", details=str(e))


class Componentizer(TransactEnabled):
    """Registry, installer, remover and compiler of components"""

    _holder = "ComponentCollection"

    def __init__(
        self,
        config: Config,
        transact: Transact,
        graph: Graph,
        log: Callable[[str, int], None] = console_log,
    ):
        """
        Initialize the component collection.

        Args:
            config: Settings, including the storage root
            transact: Transaction coordinator shared with the graph
            graph: Dependency graph shared with the package collection
            log: (message, severity) logging sink
        """
        self.config = config
        self._transact = transact
        self._graph = graph
        self._log = log
        self.storage = ManagedStorage(config.components_dir, REGISTRY_FILE_NAME)
        self._components: Dict[str, Component] = {}
        self._loaded = False

    # Transact

    def _get_managed_state(self) -> Dict[str, Component]:
        return deepcopy(self._components)

    async def _set_managed_state(self, state: Optional[Dict[str, Component]], declined: bool) -> None:
        if state is not None:
            self._components = state

    def begin_transact(self, caller: str = "anonymous") -> bool:
        """Begin a transaction covering both the registry and the dependency graph"""
        if self._graph.has_transact(caller):
            raise TransactError(
                "Cannot start two transacts of the same caller-holder",
                details=f"{caller} -> {self._graph._holder}",
            )
        if not super().begin_transact(caller):
            return False
        return self._graph.begin_transact(caller)

    async def end_transact(self, caller: str = "anonymous", decline: bool = False) -> Optional[Any]:
        try:
            state = await super().end_transact(caller, decline)
        finally:
            try:
                await self._graph.end_transact(caller, decline)
            finally:
                await self.cleanup()
        return state

    # Lifecycle

    def loaded(self) -> bool:
        """Check if all components are loaded"""
        return self._loaded

    def _reset(self) -> None:
        graph = self._graph.get()
        for combined_id in self._components:
            graph.remove_node(component_node(combined_id))
        self._loaded = False
        self._components = {}

    async def load_all(self) -> None:
        """
        Load every component from the persisted registry

        A missing or corrupted registry reads as empty. Any other failure
        resets the collection to empty and is re-raised.

        Raises:
            ConsistencyError: If an index file cannot be resolved
        """
        self._reset()
        try:
            self.storage.ensure()
            components = {
                combined_id: Component.from_record(combined_id, data)
                for combined_id, data in self.storage.read_registry().items()
            }

            for combined_id, component in components.items():
                if not component.location or not self._index_path(component).is_file():
                    raise ConsistencyError(
                        f"Unknown source: Index file `{component.index_file}` "
                        f"not resolvable for com/{combined_id}"
                    )

            self._components = components
            graph = self._graph.get()
            for combined_id in components:
                graph.add_node(component_node(combined_id))

            await self.cleanup()
            self._loaded = True
        except Exception:
            self._log(
                "[red]The component collection is corrupted so we performed a temporary cleanup.[/red]",
                Severity.DETAIL,
            )
            self._reset()
            raise

    async def cleanup(self) -> None:
        """
        Remove unused graph nodes, files and directories

        Directories still referenced by an open transaction's snapshot are kept.
        """
        self._graph.filter_by(
            lambda node: node.startswith(COMPONENT_PREFIX)
            and node[len(COMPONENT_PREFIX):] not in self._components
        )

        owned = {component.location for component in self._components.values()}
        for snapshot in self._transact.snapshots(self._holder):
            owned.update(component.location for component in snapshot.values())

        for entry in self.storage.entries():
            if (entry.is_dir() and entry.name not in owned) or (
                not entry.is_dir() and entry.name != REGISTRY_FILE_NAME
            ):
                await asyncio.to_thread(remove_path, entry)

    # Installation

    async def add_component_from_json(
        self, manifest_path: Union[str, Path], force: bool = False
    ) -> Optional[str]:
        """
        Add a component from its JSON manifest

        Args:
            manifest_path: Path to the manifest, declared files are relative to it
            force: Replace an installed component of the same version instead of skipping

        Returns:
            Optional[str]: The combined id, or None if the installation was skipped

        Raises:
            OperationError: If the manifest or its files are invalid
        """
        manifest_path = Path(os.path.normpath(str(manifest_path)))
        extension = manifest_path.suffix.lower()
        if extension != ".json":
            raise OperationError(
                f"Wrong extension name, expected `.json`, found `{extension}`"
            )

        manifest = ComponentManifest.from_dict(read_manifest(manifest_path))
        combined_id = manifest.combined_id

        if self.has_component(combined_id):
            if force:
                self._log(f"Replacing existing com/[b][red]{combined_id}[/red][/b]", Severity.WARNING)
            else:
                self._log(f"Skipped installation of com/[b][cyan]{combined_id}[/cyan][/b]", Severity.WARNING)
                return None

        self._log(f"Installing com/{combined_id}", Severity.INFO)

        source = manifest_path.parent
        files = expand_globs(manifest.files, source)
        if not files:
            raise OperationError("A component must contain at least one file")
        if any(is_escaping(file) for file in files):
            raise OperationError("Backward relative paths are not allowed for component files")

        self._log(
            f"Will import {len(files)} file{'s' if len(files) > 1 else ''} of com/{combined_id}",
            Severity.DETAIL,
        )

        location = self.storage.allocate()
        try:
            await self.storage.import_files(source, files, location)
            index_file = self._resolve_index(location, manifest.index_file)
        except Exception:
            await self.storage.free(location)
            raise

        existing = self._components.get(combined_id)
        if existing is not None:
            await self._free_after_commit(existing.location)

        self._components[combined_id] = manifest.to_component(location, index_file)
        self._graph.get().add_node(component_node(combined_id))
        await self._save()

        return combined_id

    async def add_component_from_zip(
        self, archive_path: Union[str, Path], force: bool = False
    ) -> Optional[str]:
        """
        Add a component from a compiled ZIP archive

        The archive is extracted to a temporary directory, removed afterwards
        whatever the outcome.

        Raises:
            OperationError: If the archive is invalid or lacks its manifest
        """
        archive_path = Path(archive_path)
        extension = archive_path.suffix.lower()
        if extension != ".zip":
            raise OperationError(f"Wrong extension name, expected `.zip`, found `{extension}`")

        temp_dir = self.config.temp_dir / get_random_id()
        try:
            try:
                await asyncio.to_thread(extract_archive, archive_path, temp_dir)
            except zipfile.BadZipFile as e:
                raise OperationError(f"Invalid zip file {archive_path}", details=str(e))

            manifest_path = temp_dir / self.config.component_manifest
            if not manifest_path.is_file():
                raise OperationError(
                    f"Invalid zip file, {self.config.component_manifest} is missing"
                )
            return await self.add_component_from_json(manifest_path, force)
        finally:
            await asyncio.to_thread(remove_path, temp_dir)

    async def add_component(
        self, input_path: Union[str, Path], force: bool = False
    ) -> Optional[str]:
        """
        Add a component from a JSON manifest or a ZIP archive

        Raises:
            OperationError: If the extension is not supported
        """
        extension = Path(input_path).suffix.lower()
        if extension == ".json":
            return await self.add_component_from_json(input_path, force)
        if extension == ".zip":
            return await self.add_component_from_zip(input_path, force)
        raise OperationError(f"Unsupported extension `{extension}` in `{input_path}`")

    async def remove_component(self, query: str) -> List[str]:
        """
        Remove every matching version that nothing depends on

        Args:
            query: "name" or "name@range"

        Returns:
            List[str]: Removed combined ids
        """
        graph = self._graph.get()
        versions = [
            combined_id
            for combined_id in self.has_component(query)
            if not graph.direct_dependants_of(component_node(combined_id))
        ]

        removing = ", ".join(f"com/{combined_id}" for combined_id in versions)
        self._log(f"Removing {removing or 'none'}", Severity.INFO)

        for combined_id in versions:
            await self._free_after_commit(self._components[combined_id].location)
            del self._components[combined_id]
            graph.remove_node(component_node(combined_id))

        await self._save()
        return versions

    # Queries

    def has_component(self, query: str) -> List[str]:
        """
        Get installed versions matching a query, ascending

        Args:
            query: "name" for any version, or "name@range"
        """
        return [
            combined_id
            for combined_id in self.components()
            if satisfy_combined(combined_id, query)
        ]

    def components(self) -> List[str]:
        """
        Get every installed combined id, ascending

        Raises:
            ConsistencyError: If a registry entry has no graph node
        """
        graph = self._graph.get()
        for combined_id in self._components:
            if not graph.has_node(component_node(combined_id)):
                raise ConsistencyError(
                    f"com/{combined_id} exists in the collection but is missing in the dependency graph"
                )
        return sorted(self._components, key=sort_key)

    async def get_component(self, query: str, as_is: bool = False) -> Optional[Dict[str, Any]]:
        """
        Get the highest installed version matching a query

        Args:
            query: "name" or "name@range"
            as_is: Return the stored record with its declared files and the
                relative index file, without touching managed storage.
                Otherwise the files are relocated first and the index file
                is an absolute path.

        Returns:
            Optional[Dict[str, Any]]: Manifest-shaped description, or None

        Raises:
            OperationError: If the index file is missing from managed storage
        """
        versions = self.has_component(query)
        if not versions:
            return None

        combined_id = versions[-1]
        if as_is:
            return self._components[combined_id].to_manifest()

        await self._ensure_components(combined_id)
        component = self._components[combined_id]
        index_path = self._index_path(component)
        if not index_path.is_file():
            raise OperationError(
                f"Index file `{component.index_file}` not found for com/{combined_id}"
            )
        return component.to_manifest(index_file=str(index_path), with_files=False)

    async def get_component_compatible_with(self, query: str) -> Optional[str]:
        """
        Get the installed version usable by consumers of the requested one

        Versions are scanned ascending. An exact version match wins right
        away, otherwise the last version whose compatibleUntil is not newer
        than the requested version is chosen.

        Args:
            query: "name@version", or "name" for the latest version

        Returns:
            Optional[str]: A combined id, or None if no version qualifies
        """
        name, version = decombine(query)
        versions = self.has_component(name)
        if not versions:
            return None
        if not version:
            return versions[-1]

        requested = to_version(version)
        result = None
        for combined_id in versions:
            component = self._components[combined_id]
            if to_version(component.version) == requested:
                result = combined_id
                break
            if requested >= to_version(component.compatible_until):
                result = combined_id

        return result

    def real_path_to_component(self, query: str) -> Optional[Path]:
        """Managed directory of the lowest matching version"""
        versions = self.has_component(query)
        if not versions:
            return None
        return self.storage.path(self._components[versions[0]].location)

    # Compilation

    async def compile_component(
        self,
        query: str,
        destination: Optional[Union[str, Path]] = None,
        to_buffer: bool = False,
    ) -> Union[bytes, Path]:
        """
        Pack the highest matching version into a ZIP archive

        Args:
            query: "name" or "name@range"
            destination: Directory receiving "<name>.v<version>.zip"
            to_buffer: Return the archive content instead of writing it

        Returns:
            Union[bytes, Path]: Archive content, or the written file

        Raises:
            OperationError: If no installed version matches
        """
        versions = self.has_component(query)
        if not versions:
            raise OperationError(f"Cannot locate com/{query}")

        component = self._components[versions[-1]]
        manifest = {"type": "component", **component.to_manifest()}
        directory = self.storage.path(component.location)
        files = expand_globs(component.files, directory)
        comment = f"com/{manifest['id']} v{manifest['version']} compiled under Componentizer"

        def build() -> bytes:
            buffer = io.BytesIO()
            with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
                for file in files:
                    zf.write(directory / file, file)
                zf.writestr(self.config.component_manifest, json.dumps(manifest, indent=2))
                zf.comment = comment.encode("utf-8")
            return buffer.getvalue()

        content = await asyncio.to_thread(build)
        if to_buffer:
            return content

        target = Path(destination or ".").resolve() / f"{manifest['id']}.v{manifest['version']}.zip"
        target.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(target.write_bytes, content)
        self._log(f"Generated file: {target}", Severity.INFO)
        return target

    # Storage

    async def _ensure_components(self, query: str) -> None:
        """Relocate every matching version into a fresh directory"""
        for combined_id in self.has_component(query):
            component = self._components[combined_id]
            previous = component.location
            component.location = await self.storage.relocate(previous)
            await self._free_after_commit(previous)
        await self._save()

    async def _free_after_commit(self, location: str) -> None:
        await self.after_transact_commit(lambda: self.storage.free(location))

    async def _save(self) -> None:
        await self.after_transact_commit(self._write_registry)

    def _write_registry(self) -> None:
        self.storage.write_registry(
            {
                combined_id: component.to_record()
                for combined_id, component in self._components.items()
            }
        )

    def _index_path(self, component: Component) -> Path:
        return self.storage.path(component.location) / component.index_file

    def _resolve_index(self, location: str, index_file: str) -> str:
        """
        Resolve the index file inside a location

        A directory resolves to its default index file.

        Raises:
            OperationError: If the index is not a regular file inside the location
        """
        base = self.storage.path(location)
        relative = os.path.normpath(index_file or ".")
        if is_escaping(relative):
            raise OperationError("Component index file does not exist")

        index_path = base / relative
        if index_path.is_dir():
            index_path = index_path / self.config.index_file_name
        if not index_path.is_file():
            raise OperationError("Component index file does not exist")

        return os.path.relpath(index_path, base)
