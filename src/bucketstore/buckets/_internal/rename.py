"""Bucket rename with a compatibility view left at the old name.

After ``move(old, new)`` the table is ``bucket__new``, ``bucket__old`` is a
view selecting from it, and the old schema record is an alias backed by
``new``. Reads under the old name keep working; writes under the old name
land in the new table (see WriteCoordinator).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy import delete, text
from sqlmodel import col

from bucketstore.buckets._internal.db.introspect import live_indexes, relation_kind
from bucketstore.buckets._internal.db.quoting import quote_identifier
from bucketstore.buckets._internal.schema.migration import AddIndex, DropIndex
from bucketstore.buckets._internal.schema.names import validate_bucket_name
from bucketstore.buckets._internal.schema.store import drop_relation
from bucketstore.buckets.models import BucketPage, BucketSchemaRecord, bucket_table_name
from bucketstore.config.constants import ISSUES_BUCKET
from bucketstore.core.errors import RenameError, SchemaError

if TYPE_CHECKING:
    from sqlmodel import Session

    from bucketstore.buckets._internal.db.database import Database
    from bucketstore.buckets._internal.schema.store import SchemaStore

logger = structlog.get_logger()

# The bucket itself plus the alias left by its own previous rename
MAX_REFERENCES = 2


class RenameManager:
    """Renames buckets, keeping the old name readable through a view."""

    def __init__(self, db: Database, schemas: SchemaStore) -> None:
        self.db = db
        self.schemas = schemas

    def move(self, old_name: str, new_name: str) -> None:
        """Rename ``old_name`` to ``new_name``.

        A schema record at ``new_name`` that is an alias of ``old_name``, or
        that no document writes to, is dropped first. Any other occupant is
        an error.

        Raises:
            SchemaError: If either name is invalid or ``old_name`` is missing,
                an alias, or the issues bucket.
            RenameError: If the names match, ``new_name`` is occupied, or
                ``old_name`` is referenced by too many schema records.
        """
        old = validate_bucket_name(old_name)
        new = validate_bucket_name(new_name)
        if old == new:
            raise RenameError.same_name(old)
        if ISSUES_BUCKET in (old, new):
            raise SchemaError.system_bucket(ISSUES_BUCKET)

        old_table = bucket_table_name(old)
        new_table = bucket_table_name(new)

        with self.db.immediate_transaction() as session:
            old_record = session.get(BucketSchemaRecord, old)
            if old_record is not None and old_record.backing_bucket_name:
                raise SchemaError.is_alias(old, old_record.backing_bucket_name)
            if old_record is None or relation_kind(session, old_table) != "table":
                raise SchemaError.no_such_bucket(old)

            self._clear_destination(session, old, new)

            references = self.schemas.references(session, old)
            if references > MAX_REFERENCES:
                raise RenameError.dangling_alias(old, references)

            session.execute(text(f"ALTER TABLE {quote_identifier(old_table)} RENAME TO {quote_identifier(new_table)}"))
            self._rename_indexes(session, new_table)
            session.execute(
                text(f"CREATE VIEW {quote_identifier(old_table)} AS SELECT * FROM {quote_identifier(new_table)}")
            )

            session.add(BucketSchemaRecord(bucket_name=new, schema_json=old_record.schema_json))
            old_record.backing_bucket_name = new
            session.add(old_record)
            session.execute(
                text("UPDATE bucket_pages SET bucket_name = :new WHERE bucket_name = :old"),
                {"new": new, "old": old},
            )

        self.schemas.cache.invalidate()
        logger.info("bucket_moved", old=old, new=new)

    def _clear_destination(self, session: Session, old: str, new: str) -> None:
        new_record = session.get(BucketSchemaRecord, new)
        if new_record is None:
            if relation_kind(session, bucket_table_name(new)) is not None:
                raise RenameError.destination_occupied(old, new)
            return

        stale = new_record.backing_bucket_name == old or self.schemas.writer_count(session, new) == 0
        if not stale:
            raise RenameError.destination_occupied(old, new)

        for alias in self.schemas.aliases_of(session, new):
            drop_relation(session, alias.bucket_name)
            session.delete(alias)
        drop_relation(session, new)
        session.delete(new_record)
        session.execute(delete(BucketPage).where(col(BucketPage.bucket_name) == new))
        session.flush()
        logger.info("stale_destination_dropped", old=old, new=new)

    def _rename_indexes(self, session: Session, table: str) -> None:
        # Index names embed the table name; rebuild them so the old name is reusable
        for column, index in live_indexes(session, table).items():
            for statement in DropIndex(table, column, index).statements() + AddIndex(table, column).statements():
                session.execute(text(statement))
