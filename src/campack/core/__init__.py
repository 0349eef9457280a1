# Core functionality for component and package management
from .context import Context
from .componentizer import Componentizer
from .packager import Packager
from .graph import Graph, DepGraph
from .transact import Transact, TransactEnabled
from .exceptions import (
    CampackError,
    OperationError,
    ManifestError,
    DependencyError,
    ConsistencyError,
    TransactError,
    RegistryError,
)

__all__ = [
    "Context",
    "Componentizer",
    "Packager",
    "Graph",
    "DepGraph",
    "Transact",
    "TransactEnabled",
    "CampackError",
    "OperationError",
    "ManifestError",
    "DependencyError",
    "ConsistencyError",
    "TransactError",
    "RegistryError",
]
