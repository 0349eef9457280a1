"""Custom exceptions for the component and package collections"""

from typing import Optional


class CampackError(Exception):
    """Base exception for campack"""

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class OperationError(CampackError):
    """An operation was rejected, reported to the caller as is"""

    pass


class ManifestError(OperationError):
    """Install manifest parsing and validation errors"""

    pass


class DependencyError(OperationError):
    """Unsatisfiable includes and circular dependencies"""

    pass


class ConsistencyError(CampackError):
    """The registry and the dependency graph disagree"""

    pass


class TransactError(CampackError):
    """Transact misuse, e.g. a caller beginning twice on one holder"""

    pass


class RegistryError(CampackError):
    """Persisted registry related errors"""

    pass
