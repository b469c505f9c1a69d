"""Command-line interface for Foundry.

Thin argparse front end over :class:`foundry.layout.LayoutManager` and
:class:`foundry.routes.RouteUpdater`.  Every command returns an exit status;
any ``FoundryError`` is printed in red and yields status 1.
"""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

from rich.markup import escape
from rich.prompt import Confirm

from foundry import __version__
from foundry.config import format_duration
from foundry.database import get_database, write_env_example
from foundry.errors import ComponentNotFoundError, FoundryError
from foundry.layout import LayoutManager, ProjectData
from foundry.naming import (
    COMPONENT_TYPES,
    lower,
    validate_component_name,
    validate_component_type,
)
from foundry.project import find_project_root, read_module_name
from foundry.routes import RouteUpdate, RouteUpdater, apply_update
from foundry.utils import (
    console,
    print_error,
    print_success,
    print_summary_table,
    print_warning,
)

DEFAULT_LAYOUT = "standard"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _parse_vars(pairs: list[str]) -> dict[str, str]:
    variables: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got {pair!r}")
        variables[key.strip()] = value
    return variables


def _project_root(explicit: str | None) -> Path:
    if explicit:
        return Path(explicit)
    return find_project_root(Path.cwd()) or Path.cwd()


def _manager(args: argparse.Namespace) -> LayoutManager:
    return LayoutManager.from_config(args.config)


async def _preview_and_apply(
    updater: RouteUpdater, update: RouteUpdate, dry_run: bool, assume_yes: bool
) -> bool:
    """Print ``update``'s changes, confirm, then write it through ``apply_update``.

    Returns:
        ``True`` if the routes file was changed.
    """
    console.print(f"[bold]Changes to {escape(str(update.path))}:[/bold]")
    for change in update.changes:
        console.print(f"  • {escape(change)}")

    if dry_run:
        console.print("[dim]Dry run: no files written.[/dim]")
        return False
    if not assume_yes and not Confirm.ask("Apply these changes?", default=True):
        print_warning("routes not updated")
        return False

    await apply_update(update, updater)
    return True


async def _wire_handler(root: Path, name: str, dry_run: bool, assume_yes: bool) -> bool:
    updater = RouteUpdater(root)
    update = updater.update_routes(name, read_module_name(root))
    return await _preview_and_apply(updater, update, dry_run, assume_yes)


async def _wire_middleware(root: Path, name: str, dry_run: bool, assume_yes: bool) -> bool:
    source = root / "internal" / "middleware" / f"{lower(name)}.go"
    if not source.is_file():
        raise ComponentNotFoundError(
            f"middleware {name} not found; run: foundry add middleware {name}",
            path=str(source),
        )
    updater = RouteUpdater(root)
    update = updater.update_middleware(name, read_module_name(root))
    return await _preview_and_apply(updater, update, dry_run, assume_yes)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_new(args: argparse.Namespace) -> int:
    target = Path(args.output) if args.output else Path.cwd() / args.name
    data = ProjectData(
        project_name=args.name,
        module_name=args.module or args.name,
        author=args.author,
        license=args.license,
        description=args.description,
        github_username=args.github_user,
        go_version=args.go_version,
        custom_variables=_parse_vars(args.var),
    )

    manager = _manager(args)
    root = asyncio.run(manager.generate_project(args.layout, target, data))
    print_success(f"Created project {args.name} in {root}")
    return 0


def cmd_add(args: argparse.Namespace) -> int:
    validate_component_type(args.type)
    validate_component_name(args.name)
    # For databases the component name is the engine.
    database = get_database(args.name) if args.type == "database" else None

    root = _project_root(args.project)
    manager = _manager(args)

    async def _run() -> None:
        await manager.generate_component(
            args.layout, args.type, args.name, root, module_name=read_module_name(root)
        )
        if args.type == "handler" and not args.no_wire:
            if await _wire_handler(root, args.name, dry_run=False, assume_yes=args.yes):
                print_success(f"Registered {args.name} handler in routes")

    asyncio.run(_run())

    if database is not None:
        if write_env_example(root, database):
            console.print(f"[green]Updated:[/green] {escape(str(root / '.env.example'))}")
        print_success(f"Added {database.description} support (driver: {database.driver})")
        console.print(f"Next: go get {database.driver_module} && go mod tidy")
    return 0


def cmd_wire_handler(args: argparse.Namespace) -> int:
    validate_component_name(args.name)
    root = _project_root(args.project)
    if asyncio.run(_wire_handler(root, args.name, args.dry_run, args.yes)):
        print_success(f"Registered {args.name} handler in routes")
    return 0


def cmd_wire_middleware(args: argparse.Namespace) -> int:
    validate_component_name(args.name)
    root = _project_root(args.project)
    if asyncio.run(_wire_middleware(root, args.name, args.dry_run, args.yes)):
        print_success(f"Wired {args.name} middleware into routes")
    return 0


def cmd_layout_list(args: argparse.Namespace) -> int:
    entries = _manager(args).list_layouts()
    if not entries:
        console.print("[dim]No layouts found.[/dim]")
        return 0

    rows = [
        [
            entry.name,
            entry.version or "-",
            entry.source.type.value,
            "yes" if entry.installed else "no",
            entry.description,
        ]
        for entry in entries
    ]
    print_summary_table(
        rows, ["Name", "Version", "Source", "Installed", "Description"], title="Layouts"
    )
    return 0


def cmd_layout_info(args: argparse.Namespace) -> int:
    manager = _manager(args)
    layout = asyncio.run(manager.get_layout(args.name))
    manifest = layout.manifest

    console.print(f"[bold cyan]{escape(manifest.name)}[/bold cyan] {escape(manifest.version)}")
    if manifest.description:
        console.print(escape(manifest.description))
    if manifest.author:
        console.print(f"Author: {escape(manifest.author)}")
    console.print(f"Source: {layout.source.type.value} ({escape(layout.source.location)})")

    if manifest.variables:
        print_summary_table(
            [
                [v.name, v.default, "yes" if v.required else "no", v.description]
                for v in manifest.variables
            ],
            ["Variable", "Default", "Required", "Description"],
        )
    if manifest.components:
        print_summary_table(
            [[name, c.template, c.target_dir] for name, c in sorted(manifest.components.items())],
            ["Component", "Template", "Target"],
        )
    return 0


def cmd_layout_add(args: argparse.Namespace) -> int:
    entry = _manager(args).add_remote_layout(args.url, name=args.name)
    print_success(f"Added layout {entry.name}")
    return 0


def cmd_layout_remove(args: argparse.Namespace) -> int:
    manager = _manager(args)
    manager.registry.remove_layout(args.name)
    manager.cache.remove(args.name)
    print_success(f"Removed layout {args.name}")
    return 0


def cmd_layout_refresh(args: argparse.Namespace) -> int:
    _manager(args).refresh_layouts()
    print_success("Layout registry refreshed")
    return 0


def cmd_cache_list(args: argparse.Namespace) -> int:
    manager = _manager(args)
    rows = [
        [
            meta.name,
            meta.version,
            meta.source,
            meta.cached_at.strftime("%Y-%m-%d %H:%M"),
            meta.expires_at.strftime("%Y-%m-%d %H:%M"),
        ]
        for meta in manager.cache.list()
    ]
    if not rows:
        console.print("[dim]Cache is empty.[/dim]")
        return 0
    print_summary_table(
        rows,
        ["Name", "Version", "Source", "Cached", "Expires"],
        title=f"Layout cache (TTL {format_duration(manager.cache.ttl)})",
    )
    return 0


def cmd_cache_clear(args: argparse.Namespace) -> int:
    manager = _manager(args)
    if not args.yes and not Confirm.ask("Clear the layout cache?", default=False):
        return 0
    manager.cache.clear()
    print_success("Layout cache cleared")
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="foundry",
        description="Foundry -- scaffold Go web services from layouts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  foundry new myapp --module github.com/me/myapp\n"
            "  foundry add handler user\n"
            "  foundry wire handler user --dry-run\n"
            "  foundry add database postgres\n"
            "  foundry wire middleware auth\n"
            "  foundry layout list\n"
        ),
    )
    parser.add_argument("--version", action="version", version=f"foundry {__version__}")
    parser.add_argument(
        "--config",
        default=None,
        help="Registry config file (default: $FOUNDRY_CONFIG or ~/.foundry/layouts.yaml)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    # new
    new = commands.add_parser("new", help="Create a new project from a layout")
    new.add_argument("name", help="Project name")
    new.add_argument("--layout", default=DEFAULT_LAYOUT, help="Layout name (default: standard)")
    new.add_argument("--module", default=None, help="Go module path (default: project name)")
    new.add_argument("--author", default="")
    new.add_argument("--license", default="MIT")
    new.add_argument("--description", default="")
    new.add_argument("--github-user", default="")
    new.add_argument("--go-version", default="1.22")
    new.add_argument(
        "--var",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Layout variable (repeatable)",
    )
    new.add_argument("--output", "-o", default=None, help="Target directory (default: ./NAME)")
    new.set_defaults(func=cmd_new)

    # add
    add = commands.add_parser("add", help="Generate a component into the current project")
    add.add_argument("type", choices=COMPONENT_TYPES, help="Component type")
    add.add_argument("name", help="Component name")
    add.add_argument("--layout", default=DEFAULT_LAYOUT)
    add.add_argument("--project", default=None, help="Project root (default: nearest go.mod)")
    add.add_argument("--no-wire", action="store_true", help="Do not register handlers in routes")
    add.add_argument("--yes", "-y", action="store_true", help="Apply route changes without asking")
    add.set_defaults(func=cmd_add)

    # wire
    wire = commands.add_parser("wire", help="Register generated components")
    wire_commands = wire.add_subparsers(dest="wire_command", required=True)
    wire_handler = wire_commands.add_parser("handler", help="Register a handler in routes.go")
    wire_handler.add_argument("name", help="Handler name")
    wire_handler.add_argument("--project", default=None)
    wire_handler.add_argument("--dry-run", action="store_true", help="Show changes only")
    wire_handler.add_argument("--yes", "-y", action="store_true")
    wire_handler.set_defaults(func=cmd_wire_handler)
    wire_middleware = wire_commands.add_parser(
        "middleware", help="Apply a generated middleware to the router in routes.go"
    )
    wire_middleware.add_argument("name", help="Middleware name (internal/middleware/NAME.go)")
    wire_middleware.add_argument("--project", default=None)
    wire_middleware.add_argument("--dry-run", action="store_true", help="Show changes only")
    wire_middleware.add_argument("--yes", "-y", action="store_true")
    wire_middleware.set_defaults(func=cmd_wire_middleware)

    # layout
    layout = commands.add_parser("layout", help="Manage layouts")
    layout_commands = layout.add_subparsers(dest="layout_command", required=True)

    layout_commands.add_parser("list", help="List available layouts").set_defaults(
        func=cmd_layout_list
    )

    info = layout_commands.add_parser("info", help="Show a layout's manifest")
    info.add_argument("name")
    info.set_defaults(func=cmd_layout_info)

    add_layout = layout_commands.add_parser("add", help="Register a remote layout archive")
    add_layout.add_argument("url")
    add_layout.add_argument("--name", default=None, help="Layout name (default: from URL)")
    add_layout.set_defaults(func=cmd_layout_add)

    remove = layout_commands.add_parser("remove", help="Forget a layout")
    remove.add_argument("name")
    remove.set_defaults(func=cmd_layout_remove)

    layout_commands.add_parser("refresh", help="Refresh remote registries").set_defaults(
        func=cmd_layout_refresh
    )

    cache = layout_commands.add_parser("cache", help="Inspect the layout cache")
    cache_commands = cache.add_subparsers(dest="cache_command", required=True)
    cache_commands.add_parser("list", help="List cached layouts").set_defaults(
        func=cmd_cache_list
    )
    clear = cache_commands.add_parser("clear", help="Remove all cached layouts")
    clear.add_argument("--yes", "-y", action="store_true")
    clear.set_defaults(func=cmd_cache_clear)

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for ``foundry`` and ``python -m foundry``."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        return args.func(args)
    except argparse.ArgumentTypeError as exc:
        parser.error(str(exc))
    except FoundryError as exc:
        print_error(f"Error: {exc.message}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
