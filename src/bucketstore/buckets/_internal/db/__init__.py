"""Database layer for buckets."""

from bucketstore.buckets._internal.db.database import Database, query_deadline
from bucketstore.buckets._internal.db.introspect import live_columns, live_indexes, relation_kind, table_exists
from bucketstore.buckets._internal.db.quoting import qualified, quote_identifier

__all__ = [
    "Database",
    "query_deadline",
    "live_columns",
    "live_indexes",
    "relation_kind",
    "table_exists",
    "qualified",
    "quote_identifier",
]
