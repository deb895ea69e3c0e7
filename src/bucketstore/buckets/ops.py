"""High-level bucket operations.

BucketOps is the single entry point a host uses: it owns the database and
wires the schema store, write coordinator, query compiler, rename manager
and category index together so they share one schema cache.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import structlog
from sqlalchemy import text

from bucketstore.buckets._internal.categories import CategoryIndex
from bucketstore.buckets._internal.db import Database, quote_identifier
from bucketstore.buckets._internal.query import QueryCompiler, QueryRequest, QueryResult
from bucketstore.buckets._internal.rename import RenameManager
from bucketstore.buckets._internal.schema import SchemaStore
from bucketstore.buckets._internal.write import WriteCoordinator
from bucketstore.buckets.models import BucketSchema, WriteResult
from bucketstore.config.models import BucketStoreConfig
from bucketstore.core.errors import ConfigError, SchemaError
from bucketstore.core.logging import request_scope

logger = structlog.get_logger()


class BucketOps:
    """Facade over one bucket database."""

    def __init__(self, db: Database, config: BucketStoreConfig | None = None) -> None:
        self.db = db
        self.config = config or BucketStoreConfig()
        self.schemas = SchemaStore(db)
        self.writer = WriteCoordinator(db, self.schemas, self.config.limits)
        self.compiler = QueryCompiler(db, self.schemas, self.config.limits, debug=self.config.debug.enabled)
        self.renames = RenameManager(db, self.schemas)
        self.categories = CategoryIndex(db)

    @classmethod
    def open(cls, config: BucketStoreConfig) -> BucketOps:
        """Open (creating if needed) the database named by ``config``.

        Raises:
            ConfigError: If no database path is configured.
        """
        if not config.database.path:
            raise ConfigError.missing_required("database.path")
        path = Path(config.database.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        db = Database(path, busy_timeout_ms=config.database.busy_timeout_ms)
        ops = cls(db, config)
        ops.schemas.install()
        logger.debug("bucket_store_opened", path=str(path))
        return ops

    # =========================================================================
    # Schemas
    # =========================================================================

    def apply_schema(
        self,
        bucket_name: str,
        declared: Mapping[str, Any],
        is_existing_document: bool = False,
    ) -> BucketSchema:
        with request_scope("apply_schema"):
            return self.schemas.create_or_update(bucket_name, declared, is_existing_document)

    def schema(self, bucket_name: str) -> BucketSchema:
        """Schema of an existing bucket.

        Raises:
            SchemaError: If the bucket does not exist.
        """
        schema = self.schemas.get(bucket_name)
        if schema is None:
            raise SchemaError.no_such_bucket(str(bucket_name))
        return schema

    def drop(self, bucket_name: str) -> None:
        self.schemas.drop(bucket_name)

    def move(self, old_name: str, new_name: str) -> None:
        with request_scope("move"):
            self.renames.move(old_name, new_name)

    # =========================================================================
    # Pages
    # =========================================================================

    def write(self, page_id: int, title: str, puts: Mapping[str, Any]) -> WriteResult:
        with request_scope("write", page_id=page_id):
            return self.writer.write(page_id, title, puts)

    def clear(self, page_id: int) -> list[str]:
        """Forget everything a deleted page stored."""
        with request_scope("clear", page_id=page_id):
            return self.writer.clear_for_deleted_document(page_id)

    def set_categories(self, page_id: int, categories: Iterable[str]) -> list[str]:
        return self.categories.set_page_categories(page_id, categories)

    # =========================================================================
    # Queries
    # =========================================================================

    def query(self, request: QueryRequest | Mapping[str, Any]) -> QueryResult:
        with request_scope("query"):
            return self.compiler.execute(request)

    def count(self, bucket_name: str) -> int:
        """Rows currently stored in a bucket (through its alias view if renamed)."""
        schema = self.schema(bucket_name)
        with self.db.session() as session:
            total = session.execute(text(f"SELECT COUNT(*) FROM {quote_identifier(schema.table_name)}")).scalar_one()
        return int(total)

    def close(self) -> None:
        self.db.dispose()

    def __enter__(self) -> BucketOps:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()
