"""pgnav index/resolve commands - inspect a workspace's definitions offline."""

import asyncio
import json
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from pgnav.config.loader import load_config
from pgnav.core.errors import ConfigError
from pgnav.index.manager import DefinitionsManager, LoadStats, path_to_uri, uri_to_path
from pgnav.index.models import Declaration


def _load(root: Path, patterns: tuple[str, ...]) -> tuple[DefinitionsManager, LoadStats, str]:
    """Load ``root`` with ``patterns`` (or its configured ones)."""
    try:
        config = load_config(root)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    definition_files = list(patterns) or config.workspace.definition_files
    if not definition_files:
        raise click.ClickException(
            "No definition files configured. Pass --pattern or set "
            "workspace.definition_files in .pgnav/config.yaml"
        )

    manager = DefinitionsManager(max_file_size_bytes=config.index.max_file_size_bytes)
    stats = asyncio.run(manager.load_workspace(root, definition_files))
    return manager, stats, config.workspace.default_schema


def _relative(root: Path, uri: str) -> str:
    path = uri_to_path(uri)
    if path is None:
        return uri
    try:
        return str(path.relative_to(root))
    except ValueError:
        return str(path)


def _declaration_row(root: Path, decl: Declaration) -> dict[str, object]:
    start = decl.location.selection.start
    return {
        "kind": decl.kind.value,
        "name": decl.key,
        "file": _relative(root, decl.uri),
        "line": start.line + 1,
        "character": start.character + 1,
    }


@click.command()
@click.argument("path", default=".", type=click.Path(exists=True, path_type=Path))
@click.option(
    "-p", "--pattern", "patterns", multiple=True, help="Definition file glob (repeatable)"
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def index_command(path: Path, patterns: tuple[str, ...], as_json: bool) -> None:
    """Index a workspace and list every declaration found.

    PATH is the workspace root (default: current directory).
    """
    root = path.resolve()
    manager, stats, _ = _load(root, patterns)
    workspace = manager.registry.get(root)
    declarations = workspace.index.declarations() if workspace else []
    rows = [_declaration_row(root, decl) for decl in declarations]

    if as_json:
        click.echo(
            json.dumps(
                {
                    "files_indexed": stats.files_indexed,
                    "files_failed": stats.files_failed,
                    "declarations": rows,
                },
                indent=2,
            )
        )
        return

    console = Console()
    table = Table(title=f"Definitions in {root.name}", show_lines=False)
    table.add_column("Kind", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Location", style="dim")
    for row in rows:
        table.add_row(str(row["kind"]), str(row["name"]), f"{row['file']}:{row['line']}")
    console.print(table)
    console.print(
        f"[green]{stats.files_indexed}[/green] files indexed, "
        f"[red]{stats.files_failed}[/red] failed, "
        f"{stats.declarations} declarations in {stats.duration_seconds:.2f}s"
    )


@click.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path))
@click.argument("token")
@click.option(
    "-p", "--pattern", "patterns", multiple=True, help="Definition file glob (repeatable)"
)
@click.option("-s", "--schema", default=None, help="Default schema for bare names")
def resolve_command(path: Path, token: str, patterns: tuple[str, ...], schema: str | None) -> None:
    """Resolve TOKEN the way go-to-definition would and print its locations.

    PATH is the workspace root. Exits with status 1 when nothing matches.
    """
    root = path.resolve()
    manager, _, default_schema = _load(root, patterns)
    locations = manager.resolve(path_to_uri(root), token, schema or default_schema)
    if not locations:
        click.echo(f"No definition found for {token}", err=True)
        raise SystemExit(1)

    for location in locations:
        start = location.selection.start
        click.echo(f"{_relative(root, location.uri)}:{start.line + 1}:{start.character + 1}")
