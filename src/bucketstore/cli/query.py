"""bucketstore query command - run a JSON query against the store."""

import json
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from bucketstore.cli.utils import open_ops, read_document
from bucketstore.core.errors import BucketStoreError


@click.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--debug", is_flag=True, help="Print the generated SQL")
@click.option("--json", "as_json", is_flag=True, help="Output rows as JSON")
@click.pass_context
def query_command(ctx: click.Context, file: Path, debug: bool, as_json: bool) -> None:
    """Run the query in FILE.

    FILE holds {"tableName": ..., "selects": [...], "joins": [...],
    "wheres": ..., "orderBy": {...}, "limit": N, "offset": N}.
    """
    request = read_document(file)
    if not isinstance(request, dict):
        raise click.ClickException(f"{file} must contain a query object")
    if debug:
        request["debug"] = True

    ops = open_ops(ctx)
    try:
        result = ops.query(request)
    except BucketStoreError as e:
        raise click.ClickException(str(e)) from e

    if result.sql:
        Console(stderr=True).print(f"[dim]{result.sql}[/dim]")

    if as_json:
        click.echo(json.dumps(result.rows, ensure_ascii=False))
        return

    console = Console()
    if not result.rows:
        console.print("[dim]No rows[/dim]")
        return
    table = Table()
    for column in result.rows[0]:
        table.add_column(column)
    for row in result.rows:
        table.add_row(*(_cell(v) for v in row.values()))
    console.print(table)


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return json.dumps(value, ensure_ascii=False)
    return str(value)
