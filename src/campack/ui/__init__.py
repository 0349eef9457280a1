# UI components for the component and package collections
from .console import console, log
from .style import StyleType, SymbolType, Severity

__all__ = [
    # Console
    "console",
    "log",
    # Style
    "StyleType",
    "SymbolType",
    "Severity",
]
