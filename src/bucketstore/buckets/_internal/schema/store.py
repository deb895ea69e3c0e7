"""Authoritative bucket schemas and the migration entry point.

SchemaStore validates declarations, migrates the live table inside one
BEGIN IMMEDIATE transaction, then re-reads the live columns and persists
them as the schema record. SchemaCache holds the parsed records for the
query compiler and the write path; every migration, drop and move
invalidates it.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import func, or_, text
from sqlmodel import select

from bucketstore.buckets._internal.db.introspect import live_columns, live_indexes, relation_kind
from bucketstore.buckets._internal.db.quoting import quote_identifier
from bucketstore.buckets._internal.schema.migration import plan_migration
from bucketstore.buckets._internal.schema.names import (
    normalize_bucket_name,
    validate_bucket_name,
    validate_field_name,
)
from bucketstore.buckets.models import (
    SYSTEM_FIELDS,
    AliasOf,
    BucketPage,
    BucketSchema,
    BucketSchemaRecord,
    FieldDefinition,
    FieldType,
    bucket_table_name,
)
from bucketstore.config.constants import ISSUES_BUCKET, MAX_FIELDS
from bucketstore.core.errors import SchemaError

if TYPE_CHECKING:
    from sqlmodel import Session

    from bucketstore.buckets._internal.db.database import Database

logger = structlog.get_logger()

ISSUES_DECLARATION: dict[str, dict[str, Any]] = {
    "bucket": {"type": "PAGE"},
    "field": {"type": "TEXT"},
    "severity": {"type": "TEXT"},
    "message": {"type": "TEXT"},
}


def build_schema(
    bucket_name: str,
    declared: Mapping[str, Any],
    *,
    allow_system: bool = False,
) -> BucketSchema:
    """Validate a declaration and merge it with the system fields.

    Raises:
        SchemaError: On any validation failure.
    """
    name = validate_bucket_name(bucket_name)
    if name == ISSUES_BUCKET and not allow_system:
        raise SchemaError.system_bucket(name)
    if not isinstance(declared, Mapping) or not declared:
        raise SchemaError.empty_schema(name)

    fields: dict[str, FieldDefinition] = dict(SYSTEM_FIELDS)
    for raw_name, data in declared.items():
        field_name = validate_field_name(raw_name)
        if field_name in SYSTEM_FIELDS:
            raise SchemaError.reserved_field(field_name)
        if field_name in fields:
            raise SchemaError.duplicate_field(field_name)
        if not isinstance(data, Mapping):
            raise SchemaError.invalid_type(field_name, data)
        field_type = FieldType.parse(data.get("type"))
        if field_type is None:
            raise SchemaError.invalid_type(field_name, data.get("type"))
        indexed = bool(data.get("index", True))
        repeated = bool(data.get("repeated", False))
        if repeated and not indexed:
            raise SchemaError.repeated_not_indexed(field_name)
        fields[field_name] = FieldDefinition(field_name, field_type, indexed=indexed, repeated=repeated)

    if len(fields) > MAX_FIELDS:
        raise SchemaError.too_many_fields(len(fields), MAX_FIELDS)
    return BucketSchema(name=name, fields=fields)


class SchemaCache:
    """Process-wide parsed schema cache, keyed by bucket name."""

    def __init__(self) -> None:
        self._schemas: dict[str, BucketSchema] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> BucketSchema | None:
        with self._lock:
            return self._schemas.get(name)

    def put(self, schema: BucketSchema) -> None:
        with self._lock:
            self._schemas[schema.name] = schema

    def invalidate(self, *names: str) -> None:
        """Drop the named entries and every alias of them. No names clears all."""
        with self._lock:
            if not names:
                self._schemas.clear()
                return
            stale = set(names)
            for key, schema in list(self._schemas.items()):
                if key in stale or (schema.alias_of and schema.alias_of.target in stale):
                    del self._schemas[key]


class SchemaStore:
    """Schema definitions, migrations and bucket lifecycle."""

    def __init__(self, db: Database, cache: SchemaCache | None = None) -> None:
        self.db = db
        self.cache = cache or SchemaCache()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def install(self) -> None:
        """Create the fixed relations and the issues bucket."""
        self.db.create_all()
        with self.db.immediate_transaction() as session:
            if session.get(BucketSchemaRecord, ISSUES_BUCKET) is not None:
                return
            schema = build_schema(ISSUES_BUCKET, ISSUES_DECLARATION, allow_system=True)
            self._apply(session, schema)
        logger.info("schema_installed", issues_bucket=ISSUES_BUCKET)

    def create_or_update(
        self,
        bucket_name: str,
        declared: Mapping[str, Any],
        is_existing_document: bool = False,
    ) -> BucketSchema:
        """Create the bucket table or migrate it to the declared fields.

        Args:
            bucket_name: Bucket name as written by the author.
            declared: Ordered mapping of field name to
                ``{"type": ..., "index": bool, "repeated": bool}``.
            is_existing_document: False when the schema document is new; an
                existing bucket of the same name is then an error.

        Returns:
            The schema persisted after re-reading the live table.

        Raises:
            SchemaError: On validation failure, or when the name is taken
                (new documents) or is an alias of a renamed bucket.
        """
        schema = build_schema(bucket_name, declared)
        with self.db.immediate_transaction() as session:
            record = session.get(BucketSchemaRecord, schema.name)
            if record is not None and record.backing_bucket_name:
                raise SchemaError.is_alias(schema.name, record.backing_bucket_name)
            if not is_existing_document and not self._can_create(session, schema.name):
                raise SchemaError.already_exists(schema.name)
            applied = self._apply(session, schema)
        self.cache.invalidate(schema.name)
        return applied

    def _apply(self, session: Session, schema: BucketSchema) -> BucketSchema:
        table = schema.table_name
        live = live_columns(session, table)
        plan = plan_migration(schema, live, live_indexes(session, table) if live else None)
        for statement in plan.statements():
            logger.debug("migration_statement", bucket=schema.name, sql=statement)
            session.execute(text(statement))

        # Persist what the table actually looks like, in declared order when possible
        final = live_columns(session, table) or {}
        if set(final) == set(schema.fields):
            final = {name: final[name] for name in schema.fields}
        persisted = BucketSchema(name=schema.name, fields=final)

        record = session.get(BucketSchemaRecord, schema.name)
        if record is None:
            record = BucketSchemaRecord(bucket_name=schema.name, schema_json=persisted.dumps())
        else:
            record.schema_json = persisted.dumps()
            record.backing_bucket_name = None
        session.add(record)
        session.flush()

        logger.info(
            "schema_migrated",
            bucket=schema.name,
            created=live is None,
            operations=len(plan.operations),
        )
        return persisted

    def drop(self, bucket_name: str) -> None:
        """Delete a bucket, its table (or view) and any aliases backed by it.

        Raises:
            SchemaError: If the bucket does not exist, is the issues bucket,
                or still has writers.
        """
        name = validate_bucket_name(bucket_name)
        if name == ISSUES_BUCKET:
            raise SchemaError.system_bucket(name)
        with self.db.immediate_transaction() as session:
            record = session.get(BucketSchemaRecord, name)
            kind = relation_kind(session, bucket_table_name(name))
            if record is None and kind is None:
                raise SchemaError.no_such_bucket(name)
            writers = self.writer_count(session, name)
            if writers:
                raise SchemaError.in_use(name, writers)

            aliases = self.aliases_of(session, name)
            alias_names = [a.bucket_name for a in aliases]
            for alias in aliases:
                drop_relation(session, alias.bucket_name)
                session.delete(alias)
            drop_relation(session, name)
            if record is not None:
                session.delete(record)
        self.cache.invalidate()
        logger.info("bucket_dropped", bucket=name, aliases=alias_names)

    # =========================================================================
    # Queries
    # =========================================================================

    def can_create(self, bucket_name: str) -> bool:
        """True iff neither a schema record nor a live table or view uses the name."""
        name = normalize_bucket_name(bucket_name)
        if name is None:
            return False
        with self.db.session() as session:
            return self._can_create(session, name)

    def _can_create(self, session: Session, name: str) -> bool:
        if session.get(BucketSchemaRecord, name) is not None:
            return False
        return relation_kind(session, bucket_table_name(name)) is None

    def can_delete(self, bucket_name: str) -> bool:
        """True iff no document currently writes to the bucket."""
        name = normalize_bucket_name(bucket_name)
        if name is None:
            return False
        with self.db.session() as session:
            return self.writer_count(session, name) == 0

    def writer_count(self, session: Session, name: str) -> int:
        return int(
            session.exec(
                select(func.count()).select_from(BucketPage).where(BucketPage.bucket_name == name)
            ).one()
        )

    def get(self, bucket_name: str) -> BucketSchema | None:
        """Schema of a bucket. Aliases carry their target's current fields."""
        name = normalize_bucket_name(bucket_name)
        if name is None:
            return None
        return self.get_many([name]).get(name)

    def get_many(self, names: Iterable[str], session: Session | None = None) -> dict[str, BucketSchema]:
        """Schemas by name; unknown names are omitted.

        Pass ``session`` to read inside an open transaction (bypasses the cache).
        """
        wanted = list(dict.fromkeys(names))
        if session is not None:
            return self._read(session, wanted)

        found: dict[str, BucketSchema] = {}
        missing: list[str] = []
        for name in wanted:
            cached = self.cache.get(name)
            if cached is None:
                missing.append(name)
            else:
                found[name] = cached
        if missing:
            with self.db.session() as fresh:
                loaded = self._read(fresh, missing)
            for schema in loaded.values():
                self.cache.put(schema)
            found.update(loaded)
        return found

    def _read(self, session: Session, names: list[str]) -> dict[str, BucketSchema]:
        schemas: dict[str, BucketSchema] = {}
        for name in names:
            schema = self._resolve(session, name)
            if schema is not None:
                schemas[name] = schema
        return schemas

    def _resolve(self, session: Session, name: str) -> BucketSchema | None:
        """Parse a record, following alias chains to the bucket that owns the table."""
        record = session.get(BucketSchemaRecord, name)
        if record is None:
            return None
        target = record
        seen = {name}
        while target.backing_bucket_name and target.backing_bucket_name not in seen:
            backing = session.get(BucketSchemaRecord, target.backing_bucket_name)
            if backing is None:
                break
            seen.add(backing.bucket_name)
            target = backing
        if target is record:
            return BucketSchema.from_record(record)
        fields = BucketSchema.from_record(target).fields
        return BucketSchema(name=name, fields=dict(fields), alias_of=AliasOf(target.bucket_name))

    def list_buckets(self) -> list[BucketSchema]:
        """All schema records, aliases included, sorted by name."""
        with self.db.session() as session:
            names = session.exec(select(BucketSchemaRecord.bucket_name)).all()
        return sorted(self.get_many(names).values(), key=lambda s: s.name)

    def aliases_of(self, session: Session, name: str) -> list[BucketSchemaRecord]:
        """Every alias record whose chain of backing buckets leads to ``name``."""
        found: list[BucketSchemaRecord] = []
        seen = {name}
        frontier = [name]
        while frontier:
            current = frontier.pop()
            rows = session.exec(
                select(BucketSchemaRecord).where(BucketSchemaRecord.backing_bucket_name == current)
            ).all()
            for row in rows:
                if row.bucket_name not in seen:
                    seen.add(row.bucket_name)
                    found.append(row)
                    frontier.append(row.bucket_name)
        return found

    def references(self, session: Session, name: str) -> int:
        """Schema records that are ``name`` or are backed by it."""
        return int(
            session.exec(
                select(func.count())
                .select_from(BucketSchemaRecord)
                .where(
                    or_(
                        BucketSchemaRecord.bucket_name == name,
                        BucketSchemaRecord.backing_bucket_name == name,
                    )
                )
            ).one()
        )


def drop_relation(session: Session, bucket_name: str) -> None:
    """Drop the bucket's table or view, whichever exists."""
    table = bucket_table_name(bucket_name)
    kind = relation_kind(session, table)
    if kind == "view":
        session.execute(text(f"DROP VIEW {quote_identifier(table)}"))
    elif kind == "table":
        session.execute(text(f"DROP TABLE {quote_identifier(table)}"))
