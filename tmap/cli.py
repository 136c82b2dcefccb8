#!/usr/bin/env python3
"""
tmap - graph views over a tiddler store

Command-line interface for inspecting and managing views and for running
the data structure fixer.
"""
import sys
import argparse
import json
import logging
from pathlib import Path
from typing import List, Optional
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from tmap.config import init_config, get_config
from tmap.db import get_wiki
from tmap.fixer import run_fixer
from tmap.views import ViewAbstraction, list_views, open_view

logger = logging.getLogger(__name__)


console = Console()


def _open_existing(args) -> ViewAbstraction:
    view = open_view(args.name, wiki=get_wiki(args.db))
    if not view.exists():
        console.print(f"[red]View not found: {escape(args.name)}[/red]")
        sys.exit(1)
    return view


def cmd_view_list(args):
    """List all views."""
    wiki = get_wiki(args.db)
    roots = list_views(wiki)

    if args.output == "json":
        print(json.dumps([open_view(root, wiki=wiki).get_label() for root in roots]))
        return

    table = Table(title="Views")
    table.add_column("Label", style="green")
    table.add_column("Layout", style="cyan")
    table.add_column("Node filter", style="yellow")
    table.add_column("Created", style="magenta")

    for root in roots:
        view = open_view(root, wiki=wiki)
        table.add_row(
            escape(view.get_label()),
            escape(str(view.get_config("layout.active"))),
            escape(view.get_node_filter("expression")[:50]),
            view.get_creation_date(as_string=True),
        )

    console.print(table)


def cmd_view_show(args):
    """Show the parts of a view."""
    view = _open_existing(args)

    data = {
        "label": view.get_label(),
        "root": view.get_root(),
        "config": view.get_config(),
        "node_filter": view.get_node_filter("expression"),
        "edge_filter": view.get_edge_filter("expression"),
        "edge_types": sorted(view.get_type_white_list()),
        "positions": view.get_positions(),
        "references": view.get_references(),
    }

    if args.output == "json":
        print(json.dumps(data, indent=2, default=str))
        return

    table = Table(title=f"View: {escape(data['label'])}", show_header=False)
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")
    for key, value in data.items():
        if isinstance(value, (dict, list)):
            value = json.dumps(value, default=str)
        table.add_row(key, escape(str(value)))
    console.print(table)


def cmd_view_create(args):
    """Create a view, replacing an existing one with the same name."""
    view = open_view(args.name, create=True, wiki=get_wiki(args.db))
    if not view.exists():
        console.print(f"[red]Invalid view name: {escape(args.name)}[/red]")
        sys.exit(1)
    if not args.quiet:
        console.print(f"[green]Created view {escape(view.get_label())}[/green]")


def cmd_view_rename(args):
    """Rename a view."""
    view = _open_existing(args)
    view.rename(args.new_name)
    if view.get_label() != args.new_name:
        sys.exit(1)
    if not args.quiet:
        console.print(f"[green]Renamed view {escape(args.name)} to {escape(args.new_name)}[/green]")


def cmd_view_destroy(args):
    """Delete a view and all its tiddlers."""
    view = _open_existing(args)
    view.destroy()
    if not args.quiet:
        console.print(f"[green]Destroyed view {escape(args.name)}[/green]")


def cmd_view_filter(args):
    """Show or set the filters of a view."""
    view = _open_existing(args)

    if args.nodes is not None:
        view.set_node_filter(args.nodes, force=args.force)
    if args.edges is not None:
        view.set_edge_filter(args.edges)

    console.print(f"[cyan]nodes:[/cyan] {escape(view.get_node_filter('expression'))}")
    console.print(f"[cyan]edges:[/cyan] {escape(view.get_edge_filter('expression'))}")


def cmd_view_config(args):
    """Show or set view configuration options."""
    view = _open_existing(args)

    if args.key is None:
        print(json.dumps(view.get_config(), indent=2, default=str))
    elif args.unset:
        view.set_config(args.key, None)
    elif args.value is None:
        value = view.get_config(args.key)
        if value is None:
            console.print(f"[red]Option not set: {escape(args.key)}[/red]")
            sys.exit(1)
        print(value)
    else:
        view.set_config(args.key, args.value)
        if not args.quiet:
            console.print(f"[green]Set {escape(args.key)} = {escape(str(view.get_config(args.key)))}[/green]")


def cmd_fix(args):
    """Upgrade the stored data structure."""
    applied = run_fixer(get_wiki(args.db))
    if args.quiet:
        return
    if applied:
        console.print(f"[green]Upgraded data structure to {applied[-1]}[/green]")
    else:
        console.print("[cyan]Data structure is up to date[/cyan]")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="tmap - graph views over a tiddler store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  tmap view create "Concepts"
  tmap view filter "Concepts" --nodes "[tag[concept]]"
  tmap view config "Concepts" layout.active hierarchical
  tmap view rename "Concepts" "Ideas"
  tmap view list --output json
  tmap fix

Configuration:
  Default database: ./tmap.db or from config
  Config file: ~/.config/tmap/config.toml
  Environment: TMAP_DATABASE, TMAP_LOG_LEVEL
        """
    )

    parser.add_argument("--db", help="Database file (default: tmap.db)")
    parser.add_argument("--config", help="Config file path")
    parser.add_argument("-q", "--quiet", action="store_true", help="Minimal output")
    parser.add_argument("-o", "--output", choices=["table", "json"], default="table",
                        help="Output format")

    subparsers = parser.add_subparsers(dest="command", required=True, help="Command groups")

    # =================
    # VIEW GROUP
    # =================
    view_parser = subparsers.add_parser("view", help="View operations")
    view_subparsers = view_parser.add_subparsers(dest="view_command", required=True)

    view_list = view_subparsers.add_parser("list", help="List views")
    view_list.set_defaults(func=cmd_view_list)

    view_show = view_subparsers.add_parser("show", help="Show a view")
    view_show.add_argument("name", help="View name")
    view_show.set_defaults(func=cmd_view_show)

    view_create = view_subparsers.add_parser("create", help="Create (or replace) a view")
    view_create.add_argument("name", help="View name")
    view_create.set_defaults(func=cmd_view_create)

    view_rename = view_subparsers.add_parser("rename", help="Rename a view")
    view_rename.add_argument("name", help="Current view name")
    view_rename.add_argument("new_name", help="New view name")
    view_rename.set_defaults(func=cmd_view_rename)

    view_destroy = view_subparsers.add_parser("destroy", help="Delete a view")
    view_destroy.add_argument("name", help="View name")
    view_destroy.set_defaults(func=cmd_view_destroy)

    view_filter = view_subparsers.add_parser("filter", help="Show or set view filters")
    view_filter.add_argument("name", help="View name")
    view_filter.add_argument("--nodes", help="New node filter")
    view_filter.add_argument("--edges", help="New edge filter")
    view_filter.add_argument("--force", action="store_true",
                             help="Allow changing the live view's node filter")
    view_filter.set_defaults(func=cmd_view_filter)

    view_config = view_subparsers.add_parser("config", help="Show or set view options")
    view_config.add_argument("name", help="View name")
    view_config.add_argument("key", nargs="?", help="Option name")
    view_config.add_argument("value", nargs="?", help="Option value")
    view_config.add_argument("--unset", action="store_true", help="Remove the option")
    view_config.set_defaults(func=cmd_view_config)

    # =================
    # FIX COMMAND
    # =================
    fix_parser = subparsers.add_parser("fix", help="Upgrade the stored data structure")
    fix_parser.set_defaults(func=cmd_fix)

    return parser


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.config:
        get_config(reload=True, config_file=Path(args.config))
    config = init_config(database=args.db)

    logging.basicConfig(
        level=getattr(logging, str(config.log_level).upper(), logging.INFO),
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        args.func(args)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)
    except Exception as e:
        logger.debug("Command failed", exc_info=True)
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
