"""CLI utilities."""

from pathlib import Path
from typing import Any

import click
import yaml

from bucketstore.buckets.ops import BucketOps
from bucketstore.config.loader import load_config
from bucketstore.core.errors import BucketStoreError


def open_ops(ctx: click.Context) -> BucketOps:
    """Open the store for the root given to the command group.

    Raises:
        click.ClickException: If the configuration is invalid.
    """
    root: Path = ctx.obj["root"]
    try:
        ops = BucketOps.open(load_config(root))
    except BucketStoreError as e:
        raise click.ClickException(str(e)) from e
    ctx.call_on_close(ops.close)
    return ops


def read_document(path: Path) -> Any:
    """Load a JSON or YAML document (JSON is valid YAML).

    Raises:
        click.ClickException: If the file does not parse.
    """
    try:
        with path.open(encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise click.ClickException(f"Cannot parse {path}: {e}") from e
