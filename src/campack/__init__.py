"""
Campack
Transactional, version-aware manager for components and packages.
"""

__version__ = "0.1.0"

from .core import Context

__all__ = ["Context"]
