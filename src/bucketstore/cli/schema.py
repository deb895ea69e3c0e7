"""bucketstore schema commands - declare, inspect, drop and move buckets."""

import json
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from bucketstore.buckets.models import SYSTEM_FIELDS, BucketSchema
from bucketstore.cli.utils import open_ops, read_document
from bucketstore.core.errors import BucketStoreError


@click.group(name="schema")
def schema_group() -> None:
    """Manage bucket schemas."""


@schema_group.command(name="apply")
@click.argument("name")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--existing", is_flag=True, help="The schema document already existed (allow updating)")
@click.pass_context
def apply_command(ctx: click.Context, name: str, file: Path, existing: bool) -> None:
    """Create or migrate bucket NAME from the field declarations in FILE."""
    ops = open_ops(ctx)
    declared = read_document(file)
    try:
        schema = ops.apply_schema(name, declared, is_existing_document=existing)
    except BucketStoreError as e:
        raise click.ClickException(str(e)) from e
    console = Console(stderr=True)
    console.print(f"[green]✓[/green] {schema.name}: {len(schema.declared_fields())} fields")


@schema_group.command(name="show")
@click.argument("name", required=False)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def show_command(ctx: click.Context, name: str | None, as_json: bool) -> None:
    """Show one bucket's fields, or list all buckets."""
    ops = open_ops(ctx)
    try:
        schemas = [ops.schema(name)] if name else ops.schemas.list_buckets()
    except BucketStoreError as e:
        raise click.ClickException(str(e)) from e

    if as_json:
        click.echo(json.dumps({s.name: _schema_json(s) for s in schemas}, indent=2))
        return

    console = Console()
    for schema in schemas:
        console.print(_schema_table(schema))


@schema_group.command(name="drop")
@click.argument("name")
@click.pass_context
def drop_command(ctx: click.Context, name: str) -> None:
    """Delete bucket NAME. Fails while any page still writes to it."""
    ops = open_ops(ctx)
    try:
        ops.drop(name)
    except BucketStoreError as e:
        raise click.ClickException(str(e)) from e
    Console(stderr=True).print(f"[green]✓[/green] Dropped {name}")


@schema_group.command(name="move")
@click.argument("old")
@click.argument("new")
@click.pass_context
def move_command(ctx: click.Context, old: str, new: str) -> None:
    """Rename bucket OLD to NEW, keeping OLD readable as an alias."""
    ops = open_ops(ctx)
    try:
        ops.move(old, new)
    except BucketStoreError as e:
        raise click.ClickException(str(e)) from e
    Console(stderr=True).print(f"[green]✓[/green] Moved {old} -> {new}")


def _schema_json(schema: BucketSchema) -> dict[str, object]:
    data: dict[str, object] = {"fields": {f.name: f.to_json() for f in schema.declared_fields()}}
    if schema.alias_of:
        data["alias_of"] = schema.alias_of.target
    return data


def _schema_table(schema: BucketSchema) -> Table:
    title = schema.name if not schema.alias_of else f"{schema.name} -> {schema.alias_of.target}"
    table = Table(title=title, title_justify="left")
    table.add_column("field")
    table.add_column("type")
    table.add_column("repeated")
    table.add_column("indexed")
    for name, field in schema.fields.items():
        style = "dim" if name in SYSTEM_FIELDS else None
        table.add_row(
            name,
            field.type.value,
            "yes" if field.repeated else "",
            "yes" if field.indexed else "",
            style=style,
        )
    return table
