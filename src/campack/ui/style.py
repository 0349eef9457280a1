"""Style definitions for consistent UI appearance"""

from rich.style import Style
from enum import Enum
from dataclasses import dataclass


@dataclass
class PanelConfig:
    """Standard panel configuration"""

    title_align: str = "left"
    border_style: str = "blue"
    padding: tuple = (1, 2)


@dataclass
class TableConfig:
    """Standard table configuration"""

    title_justify: str = "left"
    show_header: bool = True
    header_style: str = "bold magenta"
    expand: bool = False
    padding: tuple = (0, 1)


class StyleType(Enum):
    """Style definitions that can be used directly without .value"""

    # Status styles
    SUCCESS = Style(color="green", bold=True)
    ERROR = Style(color="red", bold=True)
    WARNING = Style(color="yellow")
    INFO = Style(color="blue")

    # Unit related styles
    COMPONENT_NAME = Style(color="cyan")
    PACKAGE_NAME = Style(color="magenta")
    UNIT_VERSION = Style(color="bright_black")
    UNIT_INCLUDE = Style(dim=True)

    # Other styles
    HIGHLIGHT = Style(color="cyan")
    DIM = Style(dim=True)
    PATH = Style(color="blue")

    def __call__(self):
        return self.value


class SymbolType(str, Enum):
    SUCCESS = "✓"
    ERROR = "✗"
    WARNING = "⚠"
    INFO = "ℹ"
    ARROW = "→"
    BULLET = "•"

    def __format__(self, format_spec):
        return str(self.value)


class Severity(int, Enum):
    """Severity levels accepted by the logging sink"""

    INFO = 0
    DETAIL = 1
    WARNING = 2
    ERROR = 3


# Default configurations
DEFAULT_PANEL = PanelConfig()
DEFAULT_TABLE = TableConfig()
