"""The package collection

A package is a named bundle of includes referring to components and other
packages. Installing one resolves every include against the installed
units, falling back to component files shipped alongside the manifest,
inside a transaction on the component collection so that a failure undoes
every component installed on the way.
"""

import asyncio
import io
import json
import os
import zipfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from ..config import Config
from ..ui.console import log as console_log
from ..ui.style import Severity
from .componentizer import Componentizer, read_manifest
from .exceptions import (
    CampackError,
    ConsistencyError,
    DependencyError,
    OperationError,
    TransactError,
)
from .graph import Graph
from .models import (
    COMPONENT_PREFIX,
    PACKAGE_PREFIX,
    Include,
    Package,
    PackageManifest,
    component_node,
    package_node,
)
from .storage import ManagedStorage, extract_archive, get_random_id, remove_path
from .version_utils import (
    combine,
    decombine,
    normalize_id,
    satisfy_combined,
    sort_key,
)


REGISTRY_FILE_NAME = "packages.json"
CALLER = "Packager"


class Packager:
    """Registry, dependency resolver, installer, remover and compiler of packages"""

    def __init__(
        self,
        config: Config,
        graph: Graph,
        componentizer: Componentizer,
        log: Callable[[str, int], None] = console_log,
    ):
        """
        Initialize the package collection.

        Args:
            config: Settings, including the storage root
            graph: Dependency graph shared with the component collection
            componentizer: Component collection the packages depend on
            log: (message, severity) logging sink
        """
        self.config = config
        self._graph = graph
        self.componentizer = componentizer
        self._log = log
        self.storage = ManagedStorage(config.packages_dir, REGISTRY_FILE_NAME)
        self._packages: Dict[str, Package] = {}
        self._loaded = False

    # Lifecycle

    def loaded(self) -> bool:
        """Check if all packages are loaded"""
        return self._loaded

    def _reset(self) -> None:
        graph = self._graph.get()
        for combined_id in self._packages:
            graph.remove_node(package_node(combined_id))
        self._loaded = False
        self._packages = {}

    async def load_all(self) -> None:
        """
        Load every package from the persisted registry

        The component collection must be loaded first. Any failure resets
        the collection to empty and is re-raised.

        Raises:
            ConsistencyError: If an include is not a known node
        """
        self._reset()
        try:
            self.storage.ensure()
            packages = {
                combined_id: Package.from_record(combined_id, data)
                for combined_id, data in self.storage.read_registry().items()
            }

            self._packages = packages
            graph = self._graph.get()
            for combined_id in packages:
                graph.add_node(package_node(combined_id))

            for combined_id, package in packages.items():
                for include in package.includes:
                    if not graph.has_node(include):
                        raise ConsistencyError(f"{include} is required but not available")
                    graph.add_dependency(package_node(combined_id), include)

            self._loaded = True
        except Exception:
            self._log(
                "[red]The package collection is corrupted so we performed a temporary cleanup.[/red]",
                Severity.DETAIL,
            )
            self._reset()
            raise

    # Installation

    async def add_package_from_json(
        self, manifest_path: Union[str, Path], force: bool = False
    ) -> Optional[str]:
        """
        Add a package from its JSON manifest

        Args:
            manifest_path: Path to the manifest, include fallbacks are relative to it
            force: Replace an installed package of the same version instead of
                skipping, and install every fallback even when an installed
                version already satisfies its include

        Returns:
            Optional[str]: The combined id, or None if the installation was skipped

        Raises:
            OperationError: If the manifest is invalid
            DependencyError: If an include cannot be satisfied or a cycle appears
        """
        manifest_path = Path(os.path.normpath(str(manifest_path)))
        extension = manifest_path.suffix.lower()
        if extension != ".json":
            raise OperationError(
                f"Wrong extension name, expected `.json`, found `{extension}`"
            )

        manifest = PackageManifest.from_dict(read_manifest(manifest_path))
        combined_id = manifest.combined_id

        if self.has_package(combined_id):
            if force:
                self._log(f"Replacing existing pkg/[b][red]{combined_id}[/red][/b]", Severity.WARNING)
            else:
                self._log(f"Skipped installation of pkg/[b][cyan]{combined_id}[/cyan][/b]", Severity.WARNING)
                return None

        self._log(f"Installing pkg/{combined_id}", Severity.INFO)

        includes = self._normalize_includes(manifest.includes, manifest_path.parent)
        if not includes:
            raise OperationError("A package must include at least one element")

        self._begin()
        node = package_node(combined_id)
        try:
            graph = self._graph.get()
            graph.add_node(node)
            for dependency in graph.direct_dependencies_of(node):
                graph.remove_dependency(node, dependency)

            for include in includes:
                await self._resolve_include(node, include, force)

            if self._graph.get(safe=False, circular_test=True) is None:
                raise DependencyError("Circular dependencies are not allowed")

            package = Package(
                id=combined_id,
                name=manifest.name,
                description=manifest.description,
                includes=self._graph.get().dependencies_of(node),
            )
        except Exception:
            await self.componentizer.end_transact(CALLER, decline=True)
            raise

        await self.componentizer.after_transact_commit(
            lambda: self._packages.__setitem__(combined_id, package)
        )
        await self.componentizer.end_transact(CALLER)
        self._save()

        self._log("Now cleaning up", Severity.DETAIL)
        await self.clean_isolated()
        return combined_id

    async def add_package_from_zip(
        self, archive_path: Union[str, Path], force: bool = False
    ) -> Optional[str]:
        """
        Add a package from a compiled ZIP archive

        Nested component archives are used as include fallbacks. The
        temporary extraction is removed whatever the outcome.
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

            manifest_path = temp_dir / self.config.package_manifest
            if not manifest_path.is_file():
                raise OperationError(
                    f"Invalid zip file, {self.config.package_manifest} is missing"
                )
            return await self.add_package_from_json(manifest_path, force)
        finally:
            await asyncio.to_thread(remove_path, temp_dir)

    async def add_package(
        self, input_path: Union[str, Path], force: bool = False
    ) -> Optional[str]:
        """
        Add a package from a JSON manifest or a ZIP archive

        Raises:
            OperationError: If the extension is not supported
        """
        extension = Path(input_path).suffix.lower()
        if extension == ".json":
            return await self.add_package_from_json(input_path, force)
        if extension == ".zip":
            return await self.add_package_from_zip(input_path, force)
        raise OperationError(f"Unsupported extension `{extension}` in `{input_path}`")

    def _normalize_includes(self, includes: List[Include], base_dir: Path) -> List[Include]:
        """Namespace every include, dropping the malformed ones with a warning"""
        normalized = []
        for include in includes:
            name, version = decombine(include.cond, coerce_version=False)
            kind, _, bare = name.rpartition("/")
            kind = f"{kind}/" if kind else COMPONENT_PREFIX
            bare = normalize_id(bare)

            if kind not in (COMPONENT_PREFIX, PACKAGE_PREFIX) or not bare:
                self._log(
                    f"Ignore include `{include.cond}` not starting with `{COMPONENT_PREFIX}` or `{PACKAGE_PREFIX}`",
                    Severity.WARNING,
                )
                continue

            cond = combine(f"{kind}{bare}", "" if version == "*" else version, coerce_version=False)
            ref = None
            if include.ref:
                if kind == PACKAGE_PREFIX:
                    self._log(f"References for including {kind}{bare} will be ignored", Severity.WARNING)
                else:
                    ref = str((base_dir / include.ref).resolve())
            normalized.append(Include(cond=cond, ref=ref))
        return normalized

    async def _resolve_include(self, node: str, include: Include, force: bool) -> str:
        """
        Satisfy one include and add the matching dependency edge

        Raises:
            DependencyError: If neither an installed unit nor the fallback satisfies it
        """
        chosen = None if force and include.ref else self._fulfil(node, include.cond)
        if chosen is None and include.ref:
            installed = await self.componentizer.add_component(include.ref, force)
            preferred = component_node(installed) if installed else None
            chosen = self._fulfil(node, include.cond, preferred, force)
            if chosen is None:
                raise DependencyError(f"Failed to satisfy {include.cond}, bad reference")

        if chosen is None:
            raise DependencyError(f"Failed to satisfy {include.cond}, no reference")
        return chosen

    def _fulfil(
        self,
        node: str,
        cond: str,
        preferred: Optional[str] = None,
        force: bool = False,
    ) -> Optional[str]:
        """
        Pick the unit satisfying a condition and depend on it

        The highest satisfying version is chosen, unless the preferred node
        (the one just installed) satisfies the condition too.
        """
        graph = self._graph.get()
        candidates = sorted(
            (
                candidate
                for candidate in graph.nodes()
                if candidate != node and satisfy_combined(candidate, cond)
            ),
            key=sort_key,
        )
        if not candidates:
            return None

        chosen = candidates[-1]
        if preferred and preferred != chosen:
            if preferred in candidates:
                chosen = preferred
            elif force:
                self._log(f"You asked to install [b][red]{preferred}[/red][/b], which does NOT meet {cond}", Severity.DETAIL)
                self._log(f"Falling back to [b]{chosen}[/b]", Severity.DETAIL)

        graph.add_dependency(node, chosen)
        return chosen

    # Compilation

    async def compile_package(
        self,
        query: str,
        destination: Optional[Union[str, Path]] = None,
        to_buffer: bool = False,
    ) -> Union[bytes, Path]:
        """
        Pack the highest matching version into a ZIP archive

        Every transitively included component is compiled into a nested
        archive, referenced as the fallback of an exact-version include.

        Returns:
            Union[bytes, Path]: Archive content, or the written file

        Raises:
            OperationError: If no installed version matches
        """
        versions = self.has_package(query)
        if not versions:
            raise OperationError(f"Cannot locate pkg/{query}")

        package = await self.get_package(versions[-1], fetch_components=False)
        name, version = decombine(package["id"])

        archives: Dict[str, bytes] = {}
        includes = []
        for component_id in package["components"]:
            component_name, component_version = decombine(component_id)
            file_name = f"{component_name}.v{component_version}.zip"
            archives[file_name] = await self.componentizer.compile_component(
                component_id, to_buffer=True
            )
            includes.append({"cond": f"{COMPONENT_PREFIX}{component_id}", "ref": file_name})

        manifest = {
            "type": "package",
            "id": name,
            "name": package["name"],
            "description": package["description"],
            "version": version,
            "includes": includes,
        }
        comment = f"pkg/{name} v{version} compiled under Packager"

        def build() -> bytes:
            buffer = io.BytesIO()
            with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
                zf.writestr(self.config.package_manifest, json.dumps(manifest, indent=2))
                for file_name, content in archives.items():
                    zf.writestr(file_name, content)
                zf.comment = comment.encode("utf-8")
            return buffer.getvalue()

        content = await asyncio.to_thread(build)
        if to_buffer:
            return content

        target = Path(destination or ".").resolve() / f"{name}.v{version}.zip"
        target.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(target.write_bytes, content)
        self._log(f"Generated file: {target}", Severity.INFO)
        return target

    # Queries

    def has_package(self, query: str) -> List[str]:
        """Get installed versions matching "name" or "name@range", ascending"""
        return [
            combined_id
            for combined_id in self.packages()
            if satisfy_combined(combined_id, query)
        ]

    def packages(self) -> List[str]:
        """
        Get every installed combined id, ascending

        Raises:
            ConsistencyError: If a registry entry has no graph node
        """
        graph = self._graph.get()
        for combined_id in self._packages:
            if not graph.has_node(package_node(combined_id)):
                raise ConsistencyError(
                    f"pkg/{combined_id} exists in the collection but is missing in the dependency graph"
                )
        return sorted(self._packages, key=sort_key)

    async def get_package(
        self, query: str, fetch_components: bool = True
    ) -> Optional[Dict[str, Any]]:
        """
        Get the highest installed version matching a query

        Args:
            query: "name" or "name@range"
            fetch_components: Describe every transitively included component
                through the component collection, skipping failures.
                Otherwise list their combined ids.
        """
        versions = self.has_package(query)
        if not versions:
            return None

        combined_id = versions[-1]
        components = []
        for included in self.get_includes(combined_id, deep=True)[combined_id]:
            if not included.startswith(COMPONENT_PREFIX):
                continue
            component_id = included[len(COMPONENT_PREFIX):]
            if not fetch_components:
                components.append(component_id)
                continue
            try:
                component = await self.componentizer.get_component(component_id)
            except (CampackError, OSError):
                continue
            if component is not None:
                components.append(component)

        package = self._packages[combined_id]
        return {
            "id": combined_id,
            "name": package.name,
            "description": package.description,
            "version": package.version,
            "components": components,
        }

    def get_includes(self, query: str, deep: bool = False) -> Optional[Dict[str, List[str]]]:
        """
        Get what each matching package includes

        Recorded includes are reconciled with the graph first: edges with no
        recorded include are dropped.

        Args:
            query: "name" or "name@range"
            deep: Transitive components instead of direct includes

        Returns:
            Optional[Dict[str, List[str]]]: Prefixed node ids per combined id,
            or None if nothing matches
        """
        versions = self.has_package(query)
        if not versions:
            return None

        graph = self._graph.get()
        result = {}
        for combined_id in versions:
            node = package_node(combined_id)
            package = self._packages[combined_id]
            direct = graph.direct_dependencies_of(node)
            recorded = [
                include
                for include in package.includes
                if include in direct and include.startswith((COMPONENT_PREFIX, PACKAGE_PREFIX))
            ]
            for dependency in direct:
                if dependency not in recorded:
                    graph.remove_dependency(node, dependency)

            result[combined_id] = (
                graph.dependencies_of(node, leaves_only=True) if deep else list(recorded)
            )
        return result

    # Removal

    async def remove_package(self, query: str) -> List[str]:
        """
        Remove every matching version that nothing depends on

        Each removal is followed by a sweep of isolated units, all inside one
        transaction on the component collection.

        Returns:
            List[str]: Removed combined ids
        """
        graph = self._graph.get()
        versions = [
            combined_id
            for combined_id in self.has_package(query)
            if not graph.direct_dependants_of(package_node(combined_id))
        ]

        removing = ", ".join(f"pkg/{combined_id}" for combined_id in versions)
        self._log(f"Removing {removing or 'none'}", Severity.INFO)

        self._begin()
        try:
            for combined_id in versions:
                self._graph.get().remove_node(package_node(combined_id))
                await self._forget_after_commit(combined_id)
                await self.clean_isolated()
        except Exception:
            await self.componentizer.end_transact(CALLER, decline=True)
            raise

        await self.componentizer.end_transact(CALLER)
        self._save()
        return versions

    async def clean_isolated(self) -> List[str]:
        """
        Remove every component and package that neither includes nor is included

        Sweeps repeat until no isolated unit remains.

        Returns:
            List[str]: Removed node ids
        """
        removed: List[str] = []
        while True:
            graph = self._graph.get()
            isolated = [
                node
                for node in graph.overall_order()
                if not graph.direct_dependants_of(node)
                and not graph.direct_dependencies_of(node)
            ]
            if not isolated:
                break

            for node in isolated:
                if node.startswith(PACKAGE_PREFIX):
                    combined_id = node[len(PACKAGE_PREFIX):]
                    graph.remove_node(node)
                    await self._forget_after_commit(combined_id)
                    removed.append(node)
                else:
                    combined_id = node[len(COMPONENT_PREFIX):]
                    ids = await self.componentizer.remove_component(combined_id)
                    removed.extend(component_node(id_) for id_ in ids)
                    # Unknown nodes are dropped so the sweep terminates
                    graph.remove_node(node)

        if removed:
            self._save()
        return list(dict.fromkeys(removed))

    async def clean_co_existing(self, query: str) -> Optional[int]:
        """
        Remove every other installed version of the highest matching package

        Returns:
            Optional[int]: Number of removed versions, None if nothing matches
        """
        versions = self.has_package(query)
        if not versions:
            return None

        name, version = decombine(versions[-1])
        others = self.has_package(f"{name}@<{version}||>{version}")
        if not others:
            return 0

        self._log(f"Cleaning up co-existing versions of pkg/[cyan]{versions[-1]}[/cyan]...", Severity.DETAIL)

        success = 0
        for combined_id in others:
            try:
                if await self.remove_package(combined_id):
                    success += 1
            except CampackError as e:
                self._log(f"Failed to remove pkg/{combined_id}: {e}", Severity.WARNING)

        self._log(
            f"{success} co-existing version{'s have' if success != 1 else ' has'} been removed",
            Severity.DETAIL,
        )
        return success

    # Internals

    def _begin(self) -> None:
        """
        Begin the transaction on the component collection

        Raises:
            TransactError: If a transaction end is in progress, retry later
        """
        if not self.componentizer.begin_transact(CALLER):
            raise TransactError("Another transaction is ending, retry later")

    async def _forget_after_commit(self, combined_id: str) -> None:
        await self.componentizer.after_transact_commit(
            lambda: self._packages.pop(combined_id, None)
        )

    def _save(self) -> None:
        self.storage.write_registry(
            {
                combined_id: package.to_record()
                for combined_id, package in self._packages.items()
            }
        )
