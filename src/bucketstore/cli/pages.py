"""bucketstore page commands - write, clear and categorize a page's data."""

import json
from collections.abc import Mapping
from pathlib import Path

import click
from rich.console import Console

from bucketstore.buckets.models import Severity
from bucketstore.cli.utils import open_ops, read_document
from bucketstore.core.errors import BucketStoreError


@click.command()
@click.argument("page_id", type=int)
@click.argument("title")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def put_command(ctx: click.Context, page_id: int, title: str, file: Path, as_json: bool) -> None:
    """Replace everything page PAGE_ID stores with the puts in FILE.

    FILE maps bucket names to lists of {"sub": ..., "data": {...}} records.
    """
    puts = read_document(file)
    if not isinstance(puts, Mapping):
        raise click.ClickException(f"{file} must map bucket names to lists of records")
    ops = open_ops(ctx)
    try:
        result = ops.write(page_id, title, puts)
    except BucketStoreError as e:
        raise click.ClickException(str(e)) from e

    if as_json:
        click.echo(
            json.dumps(
                {
                    "page_id": result.page_id,
                    "written": result.written,
                    "unchanged": result.unchanged,
                    "orphaned": result.orphaned,
                    "issues": [i.to_put()["data"] for i in result.issues],
                }
            )
        )
        return

    console = Console(stderr=True)
    for name in result.written:
        console.print(f"  [green]✓[/green] {name}")
    for name in result.unchanged:
        console.print(f"  [dim]=[/dim] {name} [dim](unchanged)[/dim]")
    for name in result.orphaned:
        console.print(f"  [yellow]-[/yellow] {name} [dim](cleared)[/dim]")
    for issue in result.issues:
        color = "red" if issue.severity is Severity.ERROR else "yellow"
        console.print(f"  [{color}]{issue.severity.value}[/{color}] {issue.bucket}.{issue.field}: {issue.message}")


@click.command()
@click.argument("page_id", type=int)
@click.pass_context
def clear_command(ctx: click.Context, page_id: int) -> None:
    """Remove all rows written by a deleted page."""
    ops = open_ops(ctx)
    cleared = ops.clear(page_id)
    console = Console(stderr=True)
    if not cleared:
        console.print(f"[yellow]Nothing to clear[/yellow] - page {page_id} stores no data")
        return
    console.print(f"[green]✓[/green] Cleared {', '.join(cleared)}")


@click.command()
@click.argument("page_id", type=int)
@click.argument("categories", nargs=-1)
@click.pass_context
def categories_command(ctx: click.Context, page_id: int, categories: tuple[str, ...]) -> None:
    """Set the categories of page PAGE_ID (none clears them)."""
    ops = open_ops(ctx)
    names = ops.set_categories(page_id, categories)
    click.echo(", ".join(names))
