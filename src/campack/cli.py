"""Command-line interface for component and package management"""

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import click
from rich.panel import Panel

from . import __version__
from .config import Config
from .core.context import Context
from .core.exceptions import CampackError
from .core.models import component_node
from .ui.console import (
    console,
    create_component_summary,
    create_component_table,
    create_package_tree,
    create_summary_panel,
    print_error,
    print_info,
    print_success,
    print_table,
    print_warning,
)
from .ui.style import DEFAULT_PANEL


class CampackGroup(click.Group):
    """Command group with custom help formatting"""

    def format_help(self, ctx, formatter):
        """Format help message with modern styling"""
        console.print(
            Panel.fit(
                "\n".join(
                    [
                        "[bold blue]Installation:[/bold blue]",
                        f"  [cyan]install[/cyan]     [dim]Install a component or a package from a manifest or an archive[/dim] ([cyan]-f[/cyan]: force)",
                        f"  [cyan]remove[/cyan]      [dim]Remove units nothing depends on[/dim] ([cyan]-p[/cyan]: packages) (alias: [cyan]rm[/cyan])",
                        f"  [cyan]compile[/cyan]     [dim]Pack an installed unit into a ZIP archive[/dim] ([cyan]-p[/cyan]: packages)",
                        "",
                        "[bold blue]Queries:[/bold blue]",
                        f"  [cyan]list[/cyan]        [dim]List installed components[/dim] ([cyan]-p[/cyan]: packages) (alias: [cyan]ls[/cyan])",
                        f"  [cyan]show[/cyan]        [dim]Describe the highest matching version[/dim] ([cyan]-p[/cyan]: packages)",
                        f"  [cyan]compat[/cyan]      [dim]Find the installed component compatible with a version[/dim]",
                        "",
                        "[bold blue]Maintenance:[/bold blue]",
                        f"  [cyan]clean[/cyan]       [dim]Remove units that neither include nor are included[/dim]",
                        f"  [cyan]dedupe[/cyan]      [dim]Remove other versions of a package[/dim]",
                        "",
                        "[bold blue]Global Options:[/bold blue]",
                        f"  [cyan]--root[/cyan]      [dim]Storage root[/dim] ([cyan]env: CAMPACK_HOME[/cyan])",
                        f"  [cyan]--version[/cyan]   [dim]Show version number[/dim] ([cyan]alias: -V, -v[/cyan])",
                    ]
                ),
                title="Campack - Component and package manager",
                title_align=DEFAULT_PANEL.title_align,
                border_style=DEFAULT_PANEL.border_style,
                padding=(2, 2),
            )
        )


def run(ctx: click.Context, action: Callable[[Context], Awaitable[Any]]) -> Any:
    """Load both collections, then run an action, reporting failures"""

    async def main():
        context = Context(ctx.obj)
        await context.init()
        return await action(context)

    try:
        return asyncio.run(main())
    except CampackError as e:
        print_error(str(e))
        ctx.exit(1)


@click.group(cls=CampackGroup)
@click.option(
    "--version",
    "-v",
    "-V",
    is_flag=True,
    help="Show version number",
    is_eager=True,
    callback=lambda ctx, param, value: value
    and (console.print(f"campack {__version__}") or ctx.exit()),
)
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    help="Storage root",
)
@click.pass_context
def cli(ctx: click.Context, version: bool = False, root: Optional[Path] = None):
    """Campack - Component and package manager"""
    ctx.obj = Config(storage_root=root)


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-f", "--force", is_flag=True, help="Replace an installed version")
@click.pass_context
def install(ctx: click.Context, path: Path, force: bool = False):
    """Install a component or a package

    PATH: JSON manifest or ZIP archive
    """
    result = run(ctx, lambda context: context.install(path, force))
    if result:
        print_success(f"Installed [cyan]{result}[/cyan]")
    else:
        print_warning("Nothing was installed")


@cli.command()
@click.argument("query")
@click.option("-p", "--package", is_flag=True, help="Remove packages")
@click.pass_context
def remove(ctx: click.Context, query: str, package: bool = False):
    """Remove every matching version nothing depends on

    QUERY: "name" or "name@range"
    """

    async def action(context: Context):
        if package:
            return await context.packager.remove_package(query)
        removed = await context.componentizer.remove_component(query)
        await context.packager.clean_isolated()
        return removed

    removed = run(ctx, action)
    if removed:
        print_success(f"Removed {', '.join(removed)}")
    else:
        print_warning(f"Nothing removable matches [cyan]{query}[/cyan]")


@cli.command(name="list")
@click.option("-p", "--packages", is_flag=True, help="List packages")
@click.pass_context
def list_units(ctx: click.Context, packages: bool = False):
    """List installed components or packages"""

    async def action(context: Context):
        if packages:
            includes = {}
            for combined_id in context.packager.packages():
                includes.update(context.packager.get_includes(combined_id))
            return includes

        graph = context.graph.get()
        rows = []
        for combined_id in context.componentizer.components():
            component = await context.componentizer.get_component(combined_id, as_is=True)
            component["dependants"] = len(graph.direct_dependants_of(component_node(combined_id)))
            rows.append(component)
        return rows

    result = run(ctx, action)
    if not result:
        print_info("Nothing installed")
    elif packages:
        console.print(create_package_tree(result))
    else:
        print_table(create_component_table(result))


@cli.command()
@click.argument("query")
@click.option("-p", "--package", is_flag=True, help="Show a package")
@click.pass_context
def show(ctx: click.Context, query: str, package: bool = False):
    """Describe the highest installed version matching a query

    QUERY: "name" or "name@range"
    """

    async def action(context: Context):
        if package:
            return await context.packager.get_package(query, fetch_components=False)
        return await context.componentizer.get_component(query)

    unit = run(ctx, action)
    if unit is None:
        print_warning(f"Cannot locate [cyan]{query}[/cyan]")
    elif package:
        console.print(
            create_summary_panel(
                f"pkg/{unit['id']}",
                "\n".join(
                    [unit["description"] or unit["name"], ""]
                    + [f"com/{component}" for component in unit["components"]]
                ),
            )
        )
    else:
        console.print(
            create_summary_panel(f"com/{unit['id']}@{unit['version']}", create_component_summary(unit))
        )


@cli.command(name="compile")
@click.argument("query")
@click.argument("dest", type=click.Path(file_okay=False, path_type=Path))
@click.option("-p", "--package", is_flag=True, help="Compile a package")
@click.pass_context
def compile_unit(ctx: click.Context, query: str, dest: Path, package: bool = False):
    """Pack the highest matching version into DEST"""

    async def action(context: Context):
        if package:
            return await context.packager.compile_package(query, dest)
        return await context.componentizer.compile_component(query, dest)

    target = run(ctx, action)
    print_success(f"Compiled into [blue]{target}[/blue]")


@cli.command()
@click.argument("query")
@click.pass_context
def compat(ctx: click.Context, query: str):
    """Find the installed component compatible with a version

    QUERY: "name@version"
    """
    result = run(ctx, lambda context: context.componentizer.get_component_compatible_with(query))
    if result:
        print_success(f"com/{result}")
    else:
        print_warning(f"No installed version is compatible with [cyan]{query}[/cyan]")


@cli.command()
@click.pass_context
def clean(ctx: click.Context):
    """Remove units that neither include nor are included"""
    removed = run(ctx, lambda context: context.packager.clean_isolated())
    if removed:
        print_success(f"Removed {', '.join(removed)}")
    else:
        print_info("Nothing to clean")


@cli.command()
@click.argument("query")
@click.pass_context
def dedupe(ctx: click.Context, query: str):
    """Remove every other version of the highest matching package"""
    count = run(ctx, lambda context: context.packager.clean_co_existing(query))
    if count is None:
        print_warning(f"Cannot locate pkg/[cyan]{query}[/cyan]")
    else:
        print_success(f"{count} co-existing version{'s' if count != 1 else ''} removed")


# Register command aliases
cli.add_command(list_units, name="ls")
cli.add_command(remove, name="rm")


if __name__ == "__main__":
    cli()
