"""Reads the live structure of bucket tables back from SQLite.

The live table, not the stored schema record, is the source of truth for
migrations. Column declared types carry the field type (see types.sql_type)
and single-column indexes created by the migration engine carry the
indexed flag.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy import text

from bucketstore.buckets._internal.db.types import parse_sql_type
from bucketstore.buckets.models import FieldDefinition, FieldType

if TYPE_CHECKING:
    from sqlmodel import Session

logger = structlog.get_logger()


def relation_kind(session: Session, name: str) -> str | None:
    """'table', 'view' or None."""
    row = session.execute(
        text("SELECT type FROM sqlite_master WHERE name = :name AND type IN ('table', 'view')"),
        {"name": name},
    ).first()
    return row[0] if row else None


def table_exists(session: Session, name: str) -> bool:
    return relation_kind(session, name) == "table"


def live_indexes(session: Session, table: str) -> dict[str, str]:
    """Map column name -> index name for explicitly created single-column indexes."""
    indexes: dict[str, str] = {}
    index_rows = session.execute(
        text("SELECT name FROM pragma_index_list(:table) WHERE origin = 'c'"),
        {"table": table},
    ).all()
    for (index_name,) in index_rows:
        columns = session.execute(
            text("SELECT name FROM pragma_index_info(:index) ORDER BY seqno"),
            {"index": index_name},
        ).all()
        if len(columns) == 1 and columns[0][0] is not None:
            indexes[columns[0][0]] = index_name
    return indexes


def live_columns(session: Session, table: str) -> dict[str, FieldDefinition] | None:
    """Field definitions of the live table in column order, or None if absent.

    A column with a declared type this package never writes (an
    out-of-band change) is reported as non-repeated TEXT.
    """
    rows = session.execute(
        text("SELECT name, type FROM pragma_table_info(:table) ORDER BY cid"),
        {"table": table},
    ).all()
    if not rows:
        return None

    indexed = live_indexes(session, table)
    columns: dict[str, FieldDefinition] = {}
    for name, declared in rows:
        parsed = parse_sql_type(declared or "")
        if parsed is None:
            logger.warning("unknown_column_type", table=table, column=name, declared=declared)
            parsed = (FieldType.TEXT, False)
        field_type, repeated = parsed
        columns[name] = FieldDefinition(name, field_type, indexed=name in indexed, repeated=repeated)
    return columns
