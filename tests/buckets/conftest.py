"""Shared fixtures for bucket tests."""

from __future__ import annotations

import tempfile
from collections.abc import Callable, Generator
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest

if TYPE_CHECKING:
    from bucketstore.buckets._internal.db import Database
    from bucketstore.buckets.ops import BucketOps


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory(ignore_cleanup_errors=True) as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_db(temp_dir: Path) -> Generator[Database, None, None]:
    """Temporary database with the fixed relations created."""
    from bucketstore.buckets._internal.db import Database

    db = Database(temp_dir / "test.db")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def ops(temp_dir: Path) -> Generator[BucketOps, None, None]:
    """Installed store (issues bucket present) with default limits."""
    from bucketstore.buckets.ops import BucketOps
    from bucketstore.config.models import BucketStoreConfig

    config = BucketStoreConfig()
    config.database.path = str(temp_dir / "state" / "buckets.db")
    with BucketOps.open(config) as opened:
        yield opened


@pytest.fixture
def rows_of(ops: BucketOps) -> Callable[[str], list[dict[str, Any]]]:
    """Raw rows of a bucket table (or alias view), ordered by page and index."""
    from sqlalchemy import text

    def _rows(bucket: str) -> list[dict[str, Any]]:
        table = f"bucket__{bucket}"
        with ops.db.session() as session:
            result = session.execute(text(f'SELECT * FROM "{table}" ORDER BY _page_id, _index'))
            return [dict(row._mapping) for row in result]

    return _rows
