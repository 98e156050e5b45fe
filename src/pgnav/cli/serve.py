"""pgnav serve command - run the language server."""

from pathlib import Path
from typing import Any

import click

from pgnav.config.loader import load_config
from pgnav.core.errors import ConfigError
from pgnav.core.logging import configure_logging
from pgnav.server.app import run


@click.command()
@click.option("--tcp", is_flag=True, help="Listen on TCP instead of stdio")
@click.option("--host", default=None, help="Bind address for --tcp")
@click.option("--port", type=int, default=None, help="Port for --tcp")
@click.pass_context
def serve_command(ctx: click.Context, tcp: bool, host: str | None, port: int | None) -> None:
    """Start the language server.

    Editors normally spawn this over stdio. Logs always go to stderr or the
    configured files, never to stdout.
    """
    overrides: dict[str, Any] = {}
    if tcp:
        overrides["transport"] = "tcp"
    if host is not None:
        overrides["host"] = host
    if port is not None:
        overrides["port"] = port

    try:
        config = load_config(Path.cwd(), **({"server": overrides} if overrides else {}))
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    verbose = bool(ctx.obj and ctx.obj.get("verbose"))
    if verbose:
        config.logging.level = "DEBUG"
    configure_logging(config=config.logging)

    run(config)
