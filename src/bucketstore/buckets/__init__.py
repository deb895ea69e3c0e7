"""Schema-evolving buckets of per-page structured data.

Authors declare a bucket's fields in a schema document; documents write
rows into buckets and readers query them with a small JSON query language.
Each bucket is a real SQLite table migrated in place when its declaration
changes.

Usage::

    ops = BucketOps.open(load_config())
    ops.apply_schema("books", {"title": {"type": "TEXT"}, "tags": {"type": "TEXT", "repeated": True}})
    ops.write(42, "Dune", {"books": [{"sub": "", "data": {"title": "Dune", "tags": ["scifi"]}}]})
    result = ops.query({"tableName": "books", "selects": ["title", "tags"], "wheres": ["tags", "scifi"]})
"""

from bucketstore.buckets._internal.query import CompiledQuery, QueryRequest, QueryResult
from bucketstore.buckets.models import (
    AliasOf,
    BucketSchema,
    FieldDefinition,
    FieldType,
    Issue,
    Severity,
    WriteResult,
)
from bucketstore.buckets.ops import BucketOps

__all__ = [
    # Facade
    "BucketOps",
    # Schemas
    "AliasOf",
    "BucketSchema",
    "FieldDefinition",
    "FieldType",
    # Writes
    "Issue",
    "Severity",
    "WriteResult",
    # Queries
    "CompiledQuery",
    "QueryRequest",
    "QueryResult",
]
