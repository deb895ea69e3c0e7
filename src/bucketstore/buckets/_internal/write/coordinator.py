"""Per-page write and delete orchestration.

A write replaces everything one page stores across all buckets in a single
BEGIN IMMEDIATE transaction:

1. Load the page's fingerprints and the schemas of every requested bucket.
2. Per bucket, build rows from the known columns, hash rows + schema, and
   skip the bucket when the hash matches its fingerprint.
3. Otherwise delete the page's rows and insert the new ones, unless the
   call's size budget is exhausted.
4. Flush collected issues into the issues bucket (same transaction).
5. Clear buckets the page fingerprinted before but no longer writes.

Only rows owned by the page are ever touched.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import delete, text
from sqlmodel import col, select

from bucketstore.buckets._internal.db.introspect import live_columns, relation_kind
from bucketstore.buckets._internal.db.quoting import quote_identifier
from bucketstore.buckets._internal.schema.codec import CastError, cast_for_storage
from bucketstore.buckets._internal.schema.names import normalize_bucket_name
from bucketstore.buckets._internal.write.issues import IssueLog
from bucketstore.buckets.models import (
    SYSTEM_FIELDS,
    BucketPage,
    BucketSchema,
    CategoryLink,
    WriteResult,
    bucket_table_name,
)
from bucketstore.config.constants import ISSUES_BUCKET
from bucketstore.config.models import LimitsConfig

if TYPE_CHECKING:
    from sqlmodel import Session

    from bucketstore.buckets._internal.db.database import Database
    from bucketstore.buckets._internal.schema.store import SchemaStore

logger = structlog.get_logger()

Puts = Mapping[str, Sequence[Any]]


class WriteCoordinator:
    """Idempotent, size-bounded per-page writes."""

    def __init__(self, db: Database, schemas: SchemaStore, limits: LimitsConfig | None = None) -> None:
        self.db = db
        self.schemas = schemas
        self.limits = limits or LimitsConfig()

    def write(self, page_id: int, title: str, puts: Puts) -> WriteResult:
        """Replace the page's data with ``puts``.

        Args:
            page_id: Identifier of the writing document.
            title: Document title, stored as ``page_name``.
            puts: Bucket name -> ordered ``{"sub": str, "data": {field: value}}`` records.

        Returns:
            WriteResult with the issues recorded (and persisted) for this call.
        """
        issues = IssueLog(self.limits.max_issues, page_id=page_id)
        result = WriteResult(page_id=page_id)
        with self.db.immediate_transaction() as session:
            self._write(session, page_id, title, puts, issues, result, writing_issues=False)
        result.issues = issues.issues()
        logger.info(
            "page_written",
            page_id=page_id,
            written=result.written,
            unchanged=result.unchanged,
            orphaned=result.orphaned,
            issues=len(result.issues),
        )
        return result

    def clear_for_deleted_document(self, page_id: int) -> list[str]:
        """Remove every row and fingerprint the page owns. Returns the cleared buckets."""
        with self.db.immediate_transaction() as session:
            fingerprints = self._fingerprints(session, page_id)
            for name in fingerprints:
                self._clear_bucket(session, page_id, name)
            session.execute(delete(CategoryLink).where(col(CategoryLink.page_id) == page_id))
        cleared = sorted(fingerprints)
        logger.info("page_cleared", page_id=page_id, buckets=cleared)
        return cleared

    # =========================================================================
    # Internals
    # =========================================================================

    def _fingerprints(self, session: Session, page_id: int) -> dict[str, BucketPage]:
        rows = session.exec(select(BucketPage).where(BucketPage.page_id == page_id)).all()
        return {row.bucket_name: row for row in rows}

    def _clear_bucket(self, session: Session, page_id: int, name: str) -> None:
        table = bucket_table_name(name)
        if relation_kind(session, table) == "table":
            session.execute(
                text(f"DELETE FROM {quote_identifier(table)} WHERE {quote_identifier('_page_id')} = :page_id"),
                {"page_id": page_id},
            )
        session.execute(
            delete(BucketPage).where(
                col(BucketPage.page_id) == page_id,
                col(BucketPage.bucket_name) == name,
            )
        )

    def _normalize(self, puts: Puts, issues: IssueLog, writing_issues: bool) -> list[tuple[str, Sequence[Any]]]:
        requested: list[tuple[str, Sequence[Any]]] = []
        for raw_name, records in puts.items():
            if raw_name == "":
                issues.error("", "", "No bucket name was given")
                continue
            name = normalize_bucket_name(raw_name)
            if name is None:
                issues.warning(str(raw_name), "", f"'{raw_name}' is not a valid bucket name")
                continue
            if name != raw_name:
                issues.warning(name, "", f"Bucket name '{raw_name}' was written as '{name}'")
            if name == ISSUES_BUCKET and not writing_issues:
                issues.error(name, ISSUES_BUCKET, "Cannot write to the system issues bucket")
                continue
            if not isinstance(records, Sequence) or isinstance(records, (str, bytes)):
                issues.error(name, "", "Records must be a list")
                continue
            requested.append((name, records))
        return requested

    def _build_rows(
        self,
        name: str,
        schema: BucketSchema,
        known: list[str],
        page_id: int,
        title: str,
        records: Sequence[Any],
        issues: IssueLog,
    ) -> list[dict[str, Any]]:
        known_set = set(known)
        rows: list[dict[str, Any]] = []
        for idx, record in enumerate(records):
            data = record.get("data") if isinstance(record, Mapping) else None
            if not isinstance(data, Mapping):
                issues.error(name, "", f"Record {idx} is not a mapping of field values")
                continue
            for key in data:
                if key not in known_set:
                    issues.warning(name, str(key), f"Field '{key}' does not exist in bucket '{name}'")

            row: dict[str, Any] = {}
            for column in known:
                if column in SYSTEM_FIELDS:
                    continue
                try:
                    row[column] = cast_for_storage(data.get(column), schema.field(column))
                except CastError as e:
                    row[column] = None
                    issues.error(name, column, str(e))

            sub = record.get("sub") or ""
            row["_page_id"] = page_id
            row["_index"] = idx
            row["page_name"] = title
            row["page_name_sub"] = f"{title}#{sub}" if sub else title
            rows.append(row)
        return rows

    def _replace_rows(self, session: Session, table: str, page_id: int, rows: list[dict[str, Any]]) -> None:
        quoted = quote_identifier(table)
        session.execute(
            text(f"DELETE FROM {quoted} WHERE {quote_identifier('_page_id')} = :page_id"),
            {"page_id": page_id},
        )
        if not rows:
            return
        columns = list(rows[0])
        column_list = ", ".join(quote_identifier(c) for c in columns)
        placeholders = ", ".join(f":c{i}" for i in range(len(columns)))
        params = [{f"c{i}": row[c] for i, c in enumerate(columns)} for row in rows]
        session.execute(text(f"INSERT INTO {quoted} ({column_list}) VALUES ({placeholders})"), params)

    def _write(
        self,
        session: Session,
        page_id: int,
        title: str,
        puts: Puts,
        issues: IssueLog,
        result: WriteResult,
        writing_issues: bool,
    ) -> None:
        old = self._fingerprints(session, page_id)
        requested = self._normalize(puts, issues, writing_issues)
        schemas = self.schemas.get_many([name for name, _ in requested], session=session)

        # A bucket and its alias resolve to one table; writing both is ambiguous
        targets: dict[str, list[str]] = {}
        for name, _ in requested:
            schema = schemas.get(name)
            if schema is not None:
                target = schema.alias_of.target if schema.alias_of else name
                targets.setdefault(target, []).append(name)
        double_written = {t for t, names in targets.items() if len(names) > 1}

        put_length = 0
        over_budget = False
        budget = self.limits.max_data_per_page
        for name, records in requested:
            schema = schemas.get(name)
            if schema is None:
                issues.error(name, "", f"Bucket '{name}' does not exist")
                continue
            target = schema.alias_of.target if schema.alias_of else name
            if target in double_written:
                others = [n for n in targets[target] if n != name]
                issues.error(
                    name,
                    "",
                    f"Bucket '{name}' and '{', '.join(others)}' store into the same bucket "
                    f"'{target}'; nothing was written to either",
                )
                continue

            table = bucket_table_name(target)
            live = live_columns(session, table) or {}
            known: list[str] = []
            for column in live:
                if schema.has_field(column):
                    known.append(column)
                else:
                    issues.error(name, column, "Bucket schema is out of date with its table")

            rows = self._build_rows(name, schema, known, page_id, title, records, issues)
            rows_json = json.dumps(rows, ensure_ascii=False, separators=(",", ":"))
            put_length += len(rows_json.encode("utf-8"))
            new_hash = hashlib.sha256((rows_json + schema.dumps()).encode("utf-8")).hexdigest()

            prior = old.pop(target, None)
            if prior is not None and prior.put_hash == new_hash:
                result.unchanged.append(target)
                logger.debug("bucket_write_skipped_unchanged", page_id=page_id, bucket=target)
                continue

            if put_length > budget and not writing_issues:
                over_budget = True
                logger.debug("bucket_write_skipped_budget", page_id=page_id, bucket=target)
                continue

            self._replace_rows(session, table, page_id, rows)
            if prior is None:
                prior = BucketPage(page_id=page_id, bucket_name=target, put_hash=new_hash)
            else:
                prior.put_hash = new_hash
            session.add(prior)
            session.flush()
            result.written.append(target)
            logger.debug("bucket_written", page_id=page_id, bucket=target, rows=len(rows))

        if writing_issues:
            return

        if over_budget:
            issues.error("", "", f"Data written by this page is {put_length} bytes, limit is {budget}")

        # Neither side of a double write was written; keep what the target holds
        for target in double_written:
            old.pop(target, None)

        if issues:
            flush_issues = IssueLog(self.limits.max_issues, page_id=page_id)
            self._write(
                session,
                page_id,
                title,
                {ISSUES_BUCKET: issues.to_puts()},
                flush_issues,
                result,
                writing_issues=True,
            )
            old.pop(ISSUES_BUCKET, None)
            # Problems storing the issues themselves are reported, not persisted
            issues.merge(flush_issues)

        for name in old:
            self._clear_bucket(session, page_id, name)
            result.orphaned.append(name)
            logger.info("orphaned_bucket_cleared", page_id=page_id, bucket=name)
