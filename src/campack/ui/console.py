"""Console output handling with consistent styling"""

from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.text import Text
from rich.tree import Tree
from typing import Any, Dict, List, Union
from ..ui.style import (
    StyleType,
    SymbolType,
    Severity,
    DEFAULT_PANEL,
    DEFAULT_TABLE,
)

console = Console(force_terminal=True, color_system="auto")


def print_error(message: str):
    """Display error message"""
    console.print(f"{SymbolType.ERROR} {message}", style=StyleType.ERROR())


def print_warning(message: str):
    """Display warning message"""
    console.print(f"{SymbolType.WARNING} {message}", style=StyleType.WARNING())


def print_success(message: str):
    """Display success message"""
    console.print(f"{SymbolType.SUCCESS} {message}", style=StyleType.SUCCESS())


def print_info(message: str):
    """Display info message"""
    console.print(f"{SymbolType.INFO} {message}", style=StyleType.INFO())


def print_detail(message: str):
    """Display secondary progress message"""
    console.print(f"  {message}", style=StyleType.DIM())


def log(message: str, severity: Union[int, Severity] = Severity.INFO) -> None:
    """Logging sink used by the collections

    Args:
        message: Message, rich markup allowed
        severity: 0 info, 1 detail, 2 warning, 3 error
    """
    writers = {
        Severity.INFO: print_info,
        Severity.DETAIL: print_detail,
        Severity.WARNING: print_warning,
        Severity.ERROR: print_error,
    }
    try:
        writer = writers[Severity(int(severity))]
    except ValueError:
        writer = print_info
    writer(message)


def create_component_table(components: List[Dict[str, Any]]) -> Table:
    """Create component table with consistent styling"""
    table = Table(
        title="Installed Components",
        show_header=DEFAULT_TABLE.show_header,
        header_style=DEFAULT_TABLE.header_style,
        title_justify=DEFAULT_TABLE.title_justify,
        expand=DEFAULT_TABLE.expand,
        padding=DEFAULT_TABLE.padding,
    )

    table.add_column("Component", style=StyleType.COMPONENT_NAME())
    table.add_column("Version", style=StyleType.UNIT_VERSION())
    table.add_column("Compatible Until", style=StyleType.UNIT_VERSION())
    table.add_column("Category")
    table.add_column("Dependants", justify="right")

    for component in components:
        table.add_row(
            Text(component["id"], style=StyleType.COMPONENT_NAME()),
            component["version"],
            component["compatibleUntil"],
            component["category"],
            str(component.get("dependants", 0)),
        )

    return table


def create_package_tree(includes: Dict[str, List[str]]) -> Tree:
    """Create package include tree, one branch per package version"""
    tree = Tree(Text("Packages", style=StyleType.HIGHLIGHT()))
    for package_id, nodes in includes.items():
        branch = tree.add(Text(f"pkg/{package_id}", style=StyleType.PACKAGE_NAME()))
        for node in nodes:
            style = (
                StyleType.COMPONENT_NAME()
                if node.startswith("com/")
                else StyleType.PACKAGE_NAME()
            )
            branch.add(Text(node, style=style))
    return tree


def create_summary_panel(title: str, content: Union[str, Text]) -> Panel:
    """Create summary panel with consistent styling"""
    return Panel.fit(
        content,
        title=title,
        title_align=DEFAULT_PANEL.title_align,
        border_style=DEFAULT_PANEL.border_style,
        padding=DEFAULT_PANEL.padding,
    )


def create_component_summary(component: Dict[str, Any]) -> Text:
    """Describe one component, as returned by the component collection"""
    content = Text()
    fields = [
        ("Name", component.get("name", "")),
        ("Version", component.get("version", "")),
        ("Compatible until", component.get("compatibleUntil", "")),
        ("Category", component.get("category", "")),
        ("Index file", component.get("indexFile", "")),
    ]
    for label, value in fields:
        content.append(f"{label}: ", style=StyleType.DIM())
        content.append(f"{value}\n", style=StyleType.HIGHLIGHT())

    if component.get("description"):
        content.append(f"\n{component['description']}\n")

    for direction in ("input", "output"):
        specs = component.get(direction) or []
        if specs:
            content.append(f"\n{direction.capitalize()}:\n")
            for spec in specs:
                content.append(f"{SymbolType.BULLET} {spec['name']}")
                content.append(f" ({spec['type']})\n", style=StyleType.DIM())

    if content.plain.endswith("\n"):
        content.remove_suffix("\n")

    return content


def print_table(table: Table) -> None:
    """Print table with consistent padding"""
    console.print()
    console.print(table)
    console.print()
