"""bucketstore CLI - bucketstore command."""

from pathlib import Path

import click

from bucketstore.cli.pages import categories_command, clear_command, put_command
from bucketstore.cli.query import query_command
from bucketstore.cli.schema import schema_group
from bucketstore.core.logging import configure_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="bucketstore")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    help="Directory holding .bucketstore/ (default: current directory)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, root: Path) -> None:
    """bucketstore - Schema-evolving structured data buckets on SQLite."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["root"] = root.resolve()
    configure_logging(level="DEBUG" if verbose else "WARNING")


cli.add_command(schema_group, name="schema")
cli.add_command(put_command, name="put")
cli.add_command(clear_command, name="clear")
cli.add_command(categories_command, name="categories")
cli.add_command(query_command, name="query")


if __name__ == "__main__":
    cli()
