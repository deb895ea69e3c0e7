"""Unit tests for the database layer (database.py, introspect.py, quoting.py).

Tests cover:
- Engine pragmas (WAL, busy_timeout, foreign_keys)
- Fixed relation creation
- Immediate transactions commit and roll back as a unit
- Query deadline
- Identifier quoting
- Live structure introspection
"""

from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import text

from bucketstore.buckets._internal.db import (
    Database,
    live_columns,
    live_indexes,
    qualified,
    query_deadline,
    quote_identifier,
    relation_kind,
    table_exists,
)
from bucketstore.buckets.models import FieldType
from bucketstore.core.errors import ErrorCode, InternalError, QueryError


class TestDatabaseEngine:
    """Tests for Database engine configuration."""

    def test_wal_mode(self, temp_db: Database) -> None:
        with temp_db.session() as session:
            assert session.execute(text("PRAGMA journal_mode")).scalar_one() == "wal"

    def test_default_busy_timeout(self, temp_db: Database) -> None:
        with temp_db.session() as session:
            assert session.execute(text("PRAGMA busy_timeout")).scalar_one() == 30000

    def test_custom_busy_timeout(self, temp_dir: Path) -> None:
        db = Database(temp_dir / "custom.db", busy_timeout_ms=1234)
        with db.session() as session:
            assert session.execute(text("PRAGMA busy_timeout")).scalar_one() == 1234
        db.dispose()

    def test_foreign_keys(self, temp_db: Database) -> None:
        with temp_db.session() as session:
            assert session.execute(text("PRAGMA foreign_keys")).scalar_one() == 1

    def test_fixed_relations(self, temp_db: Database) -> None:
        with temp_db.session() as session:
            tables = set(session.execute(text("SELECT name FROM sqlite_master WHERE type='table'")).scalars())
        assert {"bucket_schemas", "bucket_pages", "category_links"} <= tables


class TestImmediateTransaction:
    def test_commits(self, temp_db: Database) -> None:
        with temp_db.immediate_transaction() as session:
            session.execute(text('CREATE TABLE "bucket__t" (x INTEGER)'))
            session.execute(text('INSERT INTO "bucket__t" VALUES (1)'))

        with temp_db.session() as session:
            assert session.execute(text('SELECT COUNT(*) FROM "bucket__t"')).scalar_one() == 1

    def test_rolls_back_ddl_and_data(self, temp_db: Database) -> None:
        with pytest.raises(RuntimeError), temp_db.immediate_transaction() as session:
            session.execute(text('CREATE TABLE "bucket__t" (x INTEGER)'))
            raise RuntimeError("boom")

        with temp_db.session() as session:
            assert not table_exists(session, "bucket__t")


class TestQueryDeadline:
    def test_runaway_query_times_out(self, temp_db: Database) -> None:
        endless = "WITH RECURSIVE c(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM c) SELECT COUNT(*) FROM c"
        with temp_db.session() as session:
            with pytest.raises(QueryError) as exc_info, query_deadline(session, 20):
                session.execute(text(endless)).all()
        assert exc_info.value.code == ErrorCode.QUERY_TIMEOUT

    def test_fast_query_passes(self, temp_db: Database) -> None:
        with temp_db.session() as session, query_deadline(session, 1000):
            assert session.execute(text("SELECT 1")).scalar_one() == 1

    def test_handler_is_removed(self, temp_db: Database) -> None:
        counted = (
            "WITH RECURSIVE c(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM c WHERE x < 200000) "
            "SELECT COUNT(*) FROM c"
        )
        with temp_db.session() as session:
            with query_deadline(session, 60000):
                pass
            assert session.execute(text(counted)).scalar_one() == 200000


class TestQuoting:
    def test_quotes(self) -> None:
        assert quote_identifier("bucket__books") == '"bucket__books"'
        assert qualified("bucket__books", "title") == '"bucket__books"."title"'

    @pytest.mark.parametrize("identifier", ['a"b', "A", "a b", "", "a;--"])
    def test_rejects_unsafe(self, identifier: str) -> None:
        with pytest.raises(InternalError):
            quote_identifier(identifier)


class TestIntrospection:
    def test_missing_table(self, temp_db: Database) -> None:
        with temp_db.session() as session:
            assert live_columns(session, "bucket__none") is None
            assert relation_kind(session, "bucket__none") is None

    def test_reads_declared_types_and_indexes(self, temp_db: Database) -> None:
        with temp_db.immediate_transaction() as session:
            session.execute(text('CREATE TABLE "bucket__t" ("a" PAGE_TEXT, "b" JSON_INTEGER, "c" DOUBLE)'))
            session.execute(text('CREATE INDEX "ix__bucket__t__b" ON "bucket__t" ("b")'))

        with temp_db.session() as session:
            columns = live_columns(session, "bucket__t")
            indexes = live_indexes(session, "bucket__t")

        assert columns is not None
        assert list(columns) == ["a", "b", "c"]
        assert columns["a"].type is FieldType.PAGE
        assert columns["b"].repeated and columns["b"].type is FieldType.INTEGER
        assert columns["b"].indexed and not columns["c"].indexed
        assert indexes == {"b": "ix__bucket__t__b"}

    def test_foreign_type_reads_as_text(self, temp_db: Database) -> None:
        with temp_db.immediate_transaction() as session:
            session.execute(text('CREATE TABLE "bucket__t" ("a" VARCHAR(10))'))

        with temp_db.session() as session:
            columns = live_columns(session, "bucket__t")

        assert columns is not None
        assert columns["a"].type is FieldType.TEXT
        assert not columns["a"].repeated
