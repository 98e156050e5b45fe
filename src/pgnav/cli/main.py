"""pgnav CLI - pgnav command."""

import click

from pgnav import __version__
from pgnav.cli.index import index_command, resolve_command
from pgnav.cli.serve import serve_command
from pgnav.core.logging import configure_logging


@click.group()
@click.version_option(version=__version__, prog_name="pgnav")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """pgnav - Go-to-definition for PostgreSQL schema files."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    configure_logging(level="DEBUG" if verbose else "INFO")


cli.add_command(serve_command, name="serve")
cli.add_command(index_command, name="index")
cli.add_command(resolve_command, name="resolve")


if __name__ == "__main__":
    cli()
