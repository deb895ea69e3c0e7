"""Tests for RenameManager (bucket moves with a compatibility alias)."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
from sqlalchemy import text

from bucketstore.buckets._internal.db import live_indexes, relation_kind
from bucketstore.buckets.models import BucketSchemaRecord
from bucketstore.buckets.ops import BucketOps
from bucketstore.config.constants import ISSUES_BUCKET
from bucketstore.core.errors import ErrorCode, RenameError, SchemaError

Rows = Callable[[str], list[dict[str, Any]]]


def _rec(data: dict[str, Any]) -> dict[str, Any]:
    return {"sub": "", "data": data}


@pytest.fixture
def books(ops: BucketOps) -> BucketOps:
    ops.apply_schema("books", {"title": {"type": "TEXT"}})
    ops.write(1, "Dune", {"books": [_rec({"title": "Dune"})]})
    return ops


class TestMove:
    def test_table_renamed_and_view_left_behind(self, books: BucketOps) -> None:
        books.move("books", "novels")

        with books.db.session() as session:
            assert relation_kind(session, "bucket__novels") == "table"
            assert relation_kind(session, "bucket__books") == "view"
            assert set(live_indexes(session, "bucket__novels")) == {"page_name", "page_name_sub", "title"}
            names = session.execute(text("SELECT name FROM sqlite_master WHERE type = 'index'")).scalars().all()
        assert not any("bucket__books" in name for name in names)

    def test_schemas_after_move(self, books: BucketOps) -> None:
        books.move("books", "novels")

        old = books.schema("books")
        new = books.schema("novels")
        assert old.alias_of is not None
        assert old.alias_of.target == "novels"
        assert new.alias_of is None
        assert old.fields == new.fields

    def test_fingerprints_follow_the_move(self, books: BucketOps) -> None:
        books.move("books", "novels")

        assert books.schemas.can_delete("books")
        assert not books.schemas.can_delete("novels")
        result = books.write(1, "Dune", {"novels": [_rec({"title": "Dune"})]})
        assert result.unchanged == ["novels"]
        assert result.orphaned == []

    def test_alias_sees_later_migrations(self, books: BucketOps) -> None:
        books.move("books", "novels")
        books.apply_schema(
            "novels",
            {"title": {"type": "TEXT"}, "year": {"type": "INTEGER"}},
            is_existing_document=True,
        )

        assert books.schema("books").has_field("year")
        rows = books.query({"tableName": "books", "selects": ["title", "year"]}).rows
        assert rows == [{"title": "Dune", "year": None}]

    def test_alias_schema_cannot_be_updated(self, books: BucketOps) -> None:
        books.move("books", "novels")
        with pytest.raises(SchemaError) as exc_info:
            books.apply_schema("books", {"title": {"type": "TEXT"}}, is_existing_document=True)
        assert exc_info.value.code == ErrorCode.SCHEMA_IS_ALIAS

    def test_chained_moves(self, books: BucketOps, rows_of: Rows) -> None:
        books.move("books", "novels")
        books.move("novels", "fiction")

        assert books.schema("books").alias_of.target == "fiction"  # type: ignore[union-attr]
        assert books.schema("novels").alias_of.target == "fiction"  # type: ignore[union-attr]
        assert [r["title"] for r in rows_of("books")] == ["Dune"]

        result = books.write(1, "Dune", {"books": [_rec({"title": "Dune Messiah"})]})
        assert result.written == ["fiction"]


class TestMoveBack:
    def test_move_back_over_own_alias(self, books: BucketOps, rows_of: Rows) -> None:
        books.move("books", "novels")
        books.move("novels", "books")

        assert books.schema("books").alias_of is None
        assert books.schema("novels").alias_of.target == "books"  # type: ignore[union-attr]
        assert [r["title"] for r in rows_of("books")] == ["Dune"]
        with books.db.session() as session:
            assert relation_kind(session, "bucket__books") == "table"


class TestMoveErrors:
    def test_same_name(self, books: BucketOps) -> None:
        with pytest.raises(RenameError) as exc_info:
            books.move("books", "Books")
        assert exc_info.value.code == ErrorCode.RENAME_SAME_NAME

    def test_missing_source(self, books: BucketOps) -> None:
        with pytest.raises(SchemaError) as exc_info:
            books.move("films", "movies")
        assert exc_info.value.code == ErrorCode.SCHEMA_NO_SUCH_BUCKET

    def test_source_is_alias(self, books: BucketOps) -> None:
        books.move("books", "novels")
        with pytest.raises(SchemaError) as exc_info:
            books.move("books", "fiction")
        assert exc_info.value.code == ErrorCode.SCHEMA_IS_ALIAS

    def test_issues_bucket(self, books: BucketOps) -> None:
        with pytest.raises(SchemaError) as exc_info:
            books.move(ISSUES_BUCKET, "issues")
        assert exc_info.value.code == ErrorCode.SCHEMA_SYSTEM_BUCKET

    def test_destination_in_use(self, books: BucketOps) -> None:
        books.apply_schema("novels", {"title": {"type": "TEXT"}})
        books.write(2, "Emma", {"novels": [_rec({"title": "Emma"})]})

        with pytest.raises(RenameError) as exc_info:
            books.move("books", "novels")
        assert exc_info.value.code == ErrorCode.RENAME_DESTINATION_OCCUPIED

    def test_unused_destination_is_replaced(self, books: BucketOps, rows_of: Rows) -> None:
        books.apply_schema("novels", {"name": {"type": "TEXT"}})

        books.move("books", "novels")

        assert books.schema("novels").has_field("title")
        assert [r["title"] for r in rows_of("novels")] == ["Dune"]

    def test_destination_table_without_schema(self, books: BucketOps) -> None:
        with books.db.immediate_transaction() as session:
            session.execute(text('CREATE TABLE "bucket__novels" (x TEXT)'))

        with pytest.raises(RenameError) as exc_info:
            books.move("books", "novels")
        assert exc_info.value.code == ErrorCode.RENAME_DESTINATION_OCCUPIED

    def test_long_chains_are_allowed(self, books: BucketOps) -> None:
        books.move("books", "novels")
        books.move("novels", "fiction")
        books.move("fiction", "stories")

        assert books.count("books") == 1
        assert books.schema("books").alias_of.target == "stories"  # type: ignore[union-attr]

    def test_too_many_references(self, books: BucketOps) -> None:
        books.move("books", "novels")
        # A second alias of the same bucket can only come from out-of-band edits
        with books.db.immediate_transaction() as session:
            record = session.get(BucketSchemaRecord, "novels")
            assert record is not None
            session.add(
                BucketSchemaRecord(bucket_name="extra", schema_json=record.schema_json, backing_bucket_name="novels")
            )

        with pytest.raises(RenameError) as exc_info:
            books.move("novels", "fiction")
        assert exc_info.value.code == ErrorCode.RENAME_DANGLING_ALIAS

    def test_failed_move_changes_nothing(self, books: BucketOps) -> None:
        books.apply_schema("novels", {"title": {"type": "TEXT"}})
        books.write(2, "Emma", {"novels": [_rec({"title": "Emma"})]})

        with pytest.raises(RenameError):
            books.move("books", "novels")

        assert books.schema("books").alias_of is None
        assert books.count("books") == 1
        assert books.count("novels") == 1
