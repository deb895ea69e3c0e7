"""Tests for SchemaStore: validation, live migrations and bucket lifecycle."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
from sqlalchemy import text

from bucketstore.buckets._internal.db import live_columns, live_indexes
from bucketstore.buckets._internal.schema.store import SchemaCache, build_schema
from bucketstore.buckets.models import SYSTEM_FIELDS, AliasOf, BucketSchema, FieldType
from bucketstore.buckets.ops import BucketOps
from bucketstore.config.constants import ISSUES_BUCKET
from bucketstore.core.errors import ErrorCode, SchemaError

Rows = Callable[[str], list[dict[str, Any]]]


def _rec(data: dict[str, Any], sub: str = "") -> dict[str, Any]:
    return {"sub": sub, "data": data}


class TestBuildSchema:
    def test_system_fields_come_first(self) -> None:
        schema = build_schema("books", {"title": {"type": "text"}})
        assert list(schema.fields) == [*SYSTEM_FIELDS, "title"]
        assert schema.field("title").type is FieldType.TEXT

    def test_defaults(self) -> None:
        field = build_schema("books", {"title": {"type": "TEXT"}}).field("title")
        assert field.indexed
        assert not field.repeated

    @pytest.mark.parametrize(
        ("declared", "code"),
        [
            ({}, ErrorCode.SCHEMA_EMPTY),
            ({"page_name": {"type": "TEXT"}}, ErrorCode.SCHEMA_RESERVED_FIELD),
            ({"title": {"type": "STRING"}}, ErrorCode.SCHEMA_INVALID_TYPE),
            ({"title": {"type": "JSON"}}, ErrorCode.SCHEMA_INVALID_TYPE),
            ({"title": "TEXT"}, ErrorCode.SCHEMA_INVALID_TYPE),
            ({"tags": {"type": "TEXT", "repeated": True, "index": False}}, ErrorCode.SCHEMA_REPEATED_NOT_INDEXED),
            ({"bad-name": {"type": "TEXT"}}, ErrorCode.SCHEMA_INVALID_NAME),
        ],
    )
    def test_invalid_declarations(self, declared: dict[str, Any], code: ErrorCode) -> None:
        with pytest.raises(SchemaError) as exc_info:
            build_schema("books", declared)
        assert exc_info.value.code == code

    def test_duplicate_after_normalization(self) -> None:
        with pytest.raises(SchemaError) as exc_info:
            build_schema("books", {"Title": {"type": "TEXT"}, "title": {"type": "TEXT"}})
        assert exc_info.value.code == ErrorCode.SCHEMA_DUPLICATE_FIELD

    def test_too_many_fields(self) -> None:
        declared = {f"f{i}": {"type": "TEXT"} for i in range(61)}
        with pytest.raises(SchemaError) as exc_info:
            build_schema("books", declared)
        assert exc_info.value.code == ErrorCode.SCHEMA_TOO_MANY_FIELDS

    def test_field_limit_is_inclusive(self) -> None:
        declared = {f"f{i}": {"type": "TEXT"} for i in range(60)}
        assert len(build_schema("books", declared).fields) == 64

    def test_issues_bucket_is_reserved(self) -> None:
        with pytest.raises(SchemaError) as exc_info:
            build_schema(ISSUES_BUCKET, {"x": {"type": "TEXT"}})
        assert exc_info.value.code == ErrorCode.SCHEMA_SYSTEM_BUCKET


class TestInstall:
    def test_issues_bucket_exists(self, ops: BucketOps) -> None:
        schema = ops.schema(ISSUES_BUCKET)
        assert [f.name for f in schema.declared_fields()] == ["bucket", "field", "severity", "message"]

    def test_install_is_idempotent(self, ops: BucketOps) -> None:
        ops.schemas.install()
        assert ops.schema(ISSUES_BUCKET).field("bucket").type is FieldType.PAGE


class TestCreateOrUpdate:
    def test_creates_table(self, ops: BucketOps) -> None:
        schema = ops.apply_schema("Books", {"title": {"type": "TEXT"}, "tags": {"type": "TEXT", "repeated": True}})

        assert schema.name == "books"
        with ops.db.session() as session:
            live = live_columns(session, "bucket__books")
            indexes = live_indexes(session, "bucket__books")
        assert live is not None
        assert live["tags"].repeated
        assert set(indexes) == {"page_name", "page_name_sub", "title", "tags"}

    def test_new_document_cannot_reuse_name(self, ops: BucketOps) -> None:
        ops.apply_schema("books", {"title": {"type": "TEXT"}})
        with pytest.raises(SchemaError) as exc_info:
            ops.apply_schema("books", {"title": {"type": "TEXT"}})
        assert exc_info.value.code == ErrorCode.SCHEMA_ALREADY_EXISTS

    def test_existing_document_migrates(self, ops: BucketOps) -> None:
        ops.apply_schema("books", {"title": {"type": "TEXT"}})
        schema = ops.apply_schema(
            "books",
            {"title": {"type": "TEXT"}, "year": {"type": "INTEGER"}},
            is_existing_document=True,
        )
        assert schema.has_field("year")
        assert ops.schema("books").has_field("year")

    def test_persisted_schema_is_read_from_live_table(self, ops: BucketOps) -> None:
        ops.apply_schema("books", {"b": {"type": "TEXT"}, "a": {"type": "DOUBLE", "index": False}})
        schema = ops.schema("books")
        assert list(schema.fields)[-2:] == ["b", "a"]
        assert schema.field("a").type is FieldType.DOUBLE
        assert not schema.field("a").indexed

    def test_failed_validation_changes_nothing(self, ops: BucketOps) -> None:
        ops.apply_schema("books", {"title": {"type": "TEXT"}})
        with pytest.raises(SchemaError):
            ops.apply_schema("books", {"title": {"type": "NOPE"}}, is_existing_document=True)
        assert ops.schema("books").field("title").type is FieldType.TEXT


class TestDataMigration:
    def test_scalar_to_repeated_wraps_values(self, ops: BucketOps, rows_of: Rows) -> None:
        ops.apply_schema("books", {"tag": {"type": "TEXT"}})
        ops.write(1, "Dune", {"books": [_rec({"tag": "scifi"}), _rec({"tag": ""})]})

        ops.apply_schema("books", {"tag": {"type": "TEXT", "repeated": True}}, is_existing_document=True)

        assert [r["tag"] for r in rows_of("books")] == ['["scifi"]', None]

    def test_repeated_to_scalar_keeps_first(self, ops: BucketOps, rows_of: Rows) -> None:
        ops.apply_schema("books", {"tag": {"type": "TEXT", "repeated": True}})
        ops.write(1, "Dune", {"books": [_rec({"tag": ["scifi", "classic"]})]})

        ops.apply_schema("books", {"tag": {"type": "TEXT"}}, is_existing_document=True)

        assert rows_of("books")[0]["tag"] == "scifi"

    def test_text_to_integer(self, ops: BucketOps, rows_of: Rows) -> None:
        ops.apply_schema("books", {"year": {"type": "TEXT"}})
        ops.write(1, "Dune", {"books": [_rec({"year": "1965"})]})

        ops.apply_schema("books", {"year": {"type": "INTEGER"}}, is_existing_document=True)

        assert rows_of("books")[0]["year"] == 1965
        with ops.db.session() as session:
            assert "year" in live_indexes(session, "bucket__books")
            columns = session.execute(text("SELECT name FROM pragma_table_info('bucket__books')")).scalars().all()
        assert "year__migrating" not in columns

    def test_integer_to_boolean(self, ops: BucketOps, rows_of: Rows) -> None:
        ops.apply_schema("books", {"n": {"type": "INTEGER"}})
        ops.write(1, "Dune", {"books": [_rec({"n": 5}), _rec({"n": 0})]})

        ops.apply_schema("books", {"n": {"type": "BOOLEAN"}}, is_existing_document=True)

        assert [r["n"] for r in rows_of("books")] == [1, 0]

    def test_removed_field_is_dropped(self, ops: BucketOps, rows_of: Rows) -> None:
        ops.apply_schema("books", {"title": {"type": "TEXT"}, "year": {"type": "INTEGER"}})
        ops.write(1, "Dune", {"books": [_rec({"title": "Dune", "year": 1965})]})

        ops.apply_schema("books", {"title": {"type": "TEXT"}}, is_existing_document=True)

        row = rows_of("books")[0]
        assert "year" not in row
        assert row["title"] == "Dune"


class TestDrop:
    def test_drop_unused_bucket(self, ops: BucketOps) -> None:
        ops.apply_schema("books", {"title": {"type": "TEXT"}})
        ops.drop("books")
        assert ops.schemas.get("books") is None
        assert ops.schemas.can_create("books")

    def test_drop_in_use(self, ops: BucketOps) -> None:
        ops.apply_schema("books", {"title": {"type": "TEXT"}})
        ops.write(1, "Dune", {"books": [_rec({"title": "Dune"})]})

        assert not ops.schemas.can_delete("books")
        with pytest.raises(SchemaError) as exc_info:
            ops.drop("books")
        assert exc_info.value.code == ErrorCode.SCHEMA_IN_USE

    def test_drop_missing(self, ops: BucketOps) -> None:
        with pytest.raises(SchemaError) as exc_info:
            ops.drop("nothing")
        assert exc_info.value.code == ErrorCode.SCHEMA_NO_SUCH_BUCKET

    def test_drop_issues_bucket(self, ops: BucketOps) -> None:
        with pytest.raises(SchemaError) as exc_info:
            ops.drop(ISSUES_BUCKET)
        assert exc_info.value.code == ErrorCode.SCHEMA_SYSTEM_BUCKET

    def test_drop_removes_aliases(self, ops: BucketOps) -> None:
        ops.apply_schema("books", {"title": {"type": "TEXT"}})
        ops.move("books", "novels")

        ops.drop("novels")

        assert ops.schemas.get("books") is None
        assert ops.schemas.can_create("books")


class TestSchemaCache:
    def test_invalidate_removes_aliases_of_target(self) -> None:
        cache = SchemaCache()
        cache.put(BucketSchema("novels", {}))
        cache.put(BucketSchema("books", {}, alias_of=AliasOf("novels")))
        cache.put(BucketSchema("films", {}))

        cache.invalidate("novels")

        assert cache.get("novels") is None
        assert cache.get("books") is None
        assert cache.get("films") is not None

    def test_invalidate_all(self) -> None:
        cache = SchemaCache()
        cache.put(BucketSchema("films", {}))
        cache.invalidate()
        assert cache.get("films") is None

    def test_store_sees_migrations(self, ops: BucketOps) -> None:
        ops.apply_schema("books", {"title": {"type": "TEXT"}})
        assert not ops.schema("books").has_field("year")

        ops.apply_schema("books", {"title": {"type": "TEXT"}, "year": {"type": "INTEGER"}}, is_existing_document=True)

        assert ops.schema("books").has_field("year")

    def test_list_buckets(self, ops: BucketOps) -> None:
        ops.apply_schema("books", {"title": {"type": "TEXT"}})
        names = [s.name for s in ops.schemas.list_buckets()]
        assert names == ["books", ISSUES_BUCKET]
