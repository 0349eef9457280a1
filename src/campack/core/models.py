"""Typed records for components, packages and their install manifests"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .exceptions import ManifestError
from .version_utils import combine, decombine, normalize_id, to_version, valid


COMPONENT_PREFIX = "com/"
PACKAGE_PREFIX = "pkg/"

DEFAULT_SIZE = 200
DEFAULT_CATEGORY = "Uncategorized"


def _to_str(value: Any) -> str:
    return "" if value is None else str(value)


def _to_int(value: Any) -> int:
    """Convert loosely to an integer, anything unusable becomes 0"""
    if isinstance(value, bool):
        return int(value)
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        return [value]
    return []


def component_node(combined_id: str) -> str:
    return f"{COMPONENT_PREFIX}{combined_id}"


def package_node(combined_id: str) -> str:
    return f"{PACKAGE_PREFIX}{combined_id}"


@dataclass
class InputSpec:
    """A variable passed to a component as input"""

    name: str
    limit: int = 0
    required: bool = False
    type: str = ""

    @classmethod
    def from_value(cls, value: Any) -> Optional["InputSpec"]:
        value = value if isinstance(value, dict) else {}
        name = _to_str(value.get("name"))
        if not name:
            return None
        return cls(
            name=name,
            limit=max(0, _to_int(value.get("limit"))),
            required=bool(value.get("required")),
            type=_to_str(value.get("type")) or name,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "limit": self.limit,
            "name": self.name,
            "required": self.required,
            "type": self.type,
        }


@dataclass
class OutputSpec:
    """A variable read from a component as output"""

    name: str
    type: str = ""

    @classmethod
    def from_value(cls, value: Any) -> Optional["OutputSpec"]:
        value = value if isinstance(value, dict) else {}
        name = _to_str(value.get("name"))
        if not name:
            return None
        return cls(name=name, type=_to_str(value.get("type")) or name)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "type": self.type}


def _component_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize the fields shared by component manifests and records"""
    files = data.get("files")
    if isinstance(files, str):
        files = [files]
    return {
        "description": _to_str(data.get("description")),
        "default_height": max(0, _to_int(data.get("defaultHeight"))) or DEFAULT_SIZE,
        "default_width": max(0, _to_int(data.get("defaultWidth"))) or DEFAULT_SIZE,
        "input": [
            spec
            for spec in map(InputSpec.from_value, _as_list(data.get("input")))
            if spec
        ],
        "output": [
            spec
            for spec in map(OutputSpec.from_value, _as_list(data.get("output")))
            if spec
        ],
        "category": _to_str(data.get("category")) or DEFAULT_CATEGORY,
        "minimized": bool(data.get("minimized", False)),
        "files": [_to_str(f) for f in files] if isinstance(files, list) else [],
        "index_file": _to_str(data.get("indexFile")),
    }


@dataclass
class Component:
    """An installed component, keyed by its combined id"""

    id: str
    name: str
    description: str = ""
    default_height: int = DEFAULT_SIZE
    default_width: int = DEFAULT_SIZE
    input: List[InputSpec] = field(default_factory=list)
    output: List[OutputSpec] = field(default_factory=list)
    category: str = DEFAULT_CATEGORY
    minimized: bool = False
    files: List[str] = field(default_factory=list)
    index_file: str = ""
    compatible_until: str = "0.0.0"
    # Name of the managed directory currently holding the files
    location: str = ""

    @property
    def version(self) -> str:
        return decombine(self.id)[1]

    @classmethod
    def from_record(cls, combined_id: str, data: Any) -> "Component":
        """Normalize a persisted registry entry, never fails"""
        data = data if isinstance(data, dict) else {}
        version = decombine(combined_id)[1] or "0.0.0"
        compatible_until = valid(data.get("compatibleUntil")) or version
        # Never newer than the component itself
        if to_version(compatible_until) > to_version(version):
            compatible_until = version
        return cls(
            id=combined_id,
            name=_to_str(data.get("name")),
            compatible_until=compatible_until,
            location=_to_str(data.get("location")),
            **_component_fields(data),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "defaultHeight": self.default_height,
            "defaultWidth": self.default_width,
            "input": [spec.to_dict() for spec in self.input],
            "output": [spec.to_dict() for spec in self.output],
            "category": self.category,
            "minimized": self.minimized,
            "files": list(self.files),
            "indexFile": self.index_file,
            "compatibleUntil": self.compatible_until,
            "location": self.location,
        }

    def to_manifest(self, index_file: Optional[str] = None, with_files: bool = True) -> Dict[str, Any]:
        """
        Describe the component the way an install manifest does

        Args:
            index_file: Index path to report instead of the relative one
            with_files: Whether to include the declared file patterns
        """
        name, version = decombine(self.id)
        manifest = {
            "id": name,
            "name": self.name,
            "description": self.description,
            "defaultHeight": self.default_height,
            "defaultWidth": self.default_width,
            "input": [spec.to_dict() for spec in self.input],
            "output": [spec.to_dict() for spec in self.output],
            "category": self.category,
            "minimized": self.minimized,
            "version": version,
            "indexFile": self.index_file if index_file is None else index_file,
            "compatibleUntil": self.compatible_until,
        }
        if with_files:
            manifest["files"] = list(self.files)
        return manifest


@dataclass
class ComponentManifest:
    """A validated component install manifest"""

    id: str
    name: str
    version: str
    compatible_until: str
    description: str = ""
    default_height: int = DEFAULT_SIZE
    default_width: int = DEFAULT_SIZE
    input: List[InputSpec] = field(default_factory=list)
    output: List[OutputSpec] = field(default_factory=list)
    category: str = DEFAULT_CATEGORY
    minimized: bool = False
    files: List[str] = field(default_factory=list)
    index_file: str = ""

    @property
    def combined_id(self) -> str:
        return combine(self.id, self.version, coerce_version=False)

    @classmethod
    def from_dict(cls, data: Any) -> "ComponentManifest":
        """
        Parse and validate a component manifest

        Raises:
            ManifestError: If the manifest is not a valid component manifest
        """
        if not isinstance(data, dict):
            raise ManifestError("Installation file must contain a JSON object")

        if _to_str(data.get("type")) != "component":
            raise ManifestError(
                "Cannot load non-component installation files while installing components"
            )

        identifier = normalize_id(data.get("id"))
        name = _to_str(data.get("name"))
        if not identifier or not name:
            raise ManifestError("Component ids and names cannot be empty")

        version = valid(data.get("version"))
        if not version:
            raise ManifestError("Component version is not a valid semantic version")

        compatible_until = valid(data.get("compatibleUntil") or version)
        if not compatible_until:
            raise ManifestError(
                "Component backward-compatible version is not a valid semantic version"
            )
        if to_version(compatible_until) > to_version(version):
            raise ManifestError(
                "Component backward-compatible version cannot be newer than the component",
                details=f"{compatible_until} > {version}",
            )

        return cls(
            id=identifier,
            name=name,
            version=version,
            compatible_until=compatible_until,
            **_component_fields(data),
        )

    def to_component(self, location: str, index_file: str) -> Component:
        return Component(
            id=self.combined_id,
            name=self.name,
            description=self.description,
            default_height=self.default_height,
            default_width=self.default_width,
            input=list(self.input),
            output=list(self.output),
            category=self.category,
            minimized=self.minimized,
            files=list(self.files),
            index_file=index_file,
            compatible_until=self.compatible_until,
            location=location,
        )


@dataclass
class Include:
    """A package include, with an optional fallback file used when unsatisfied"""

    cond: str
    ref: Optional[str] = None

    @classmethod
    def from_value(cls, value: Any) -> "Include":
        if isinstance(value, dict):
            ref = _to_str(value.get("ref"))
            return cls(cond=_to_str(value.get("cond")).strip(), ref=ref or None)
        return cls(cond=_to_str(value).strip())


@dataclass
class Package:
    """An installed package, keyed by its combined id"""

    id: str
    name: str
    description: str = ""
    # Resolved node ids ("com/..." or "pkg/..."), transitively closed
    includes: List[str] = field(default_factory=list)

    @property
    def version(self) -> str:
        return decombine(self.id)[1]

    @classmethod
    def from_record(cls, combined_id: str, data: Any) -> "Package":
        """Normalize a persisted registry entry, never fails"""
        data = data if isinstance(data, dict) else {}
        includes = data.get("includes")
        return cls(
            id=combined_id,
            name=_to_str(data.get("name")),
            description=_to_str(data.get("description")),
            includes=[
                _to_str(node)
                for node in (includes if isinstance(includes, list) else [])
                if _to_str(node).startswith((COMPONENT_PREFIX, PACKAGE_PREFIX))
            ],
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "includes": list(self.includes),
        }


@dataclass
class PackageManifest:
    """A validated package install manifest"""

    id: str
    name: str
    version: str
    description: str = ""
    includes: List[Include] = field(default_factory=list)

    @property
    def combined_id(self) -> str:
        return combine(self.id, self.version, coerce_version=False)

    @classmethod
    def from_dict(cls, data: Any) -> "PackageManifest":
        """
        Parse and validate a package manifest

        Raises:
            ManifestError: If the manifest is not a valid package manifest
        """
        if not isinstance(data, dict):
            raise ManifestError("Installation file must contain a JSON object")

        if _to_str(data.get("type")) != "package":
            raise ManifestError(
                "Cannot load non-package installation files while installing packages"
            )

        identifier = normalize_id(data.get("id"))
        name = _to_str(data.get("name"))
        if not identifier or not name:
            raise ManifestError("Package ids and names cannot be empty")

        version = valid(data.get("version"))
        if not version:
            raise ManifestError("Package version is not a valid semantic version")

        includes = data.get("includes")
        if isinstance(includes, (str, dict)):
            includes = [includes]
        if not isinstance(includes, list) or not includes:
            raise ManifestError("A package must include at least one element")

        return cls(
            id=identifier,
            name=name,
            version=version,
            description=_to_str(data.get("description")),
            includes=[Include.from_value(value) for value in includes],
        )
