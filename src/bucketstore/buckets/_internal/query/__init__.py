"""Condition trees, column resolution and SQL compilation."""

from bucketstore.buckets._internal.query.compiler import (
    CompiledQuery,
    QueryCompiler,
    QueryRequest,
    QueryResult,
)
from bucketstore.buckets._internal.query.conditions import parse_condition

__all__ = [
    "CompiledQuery",
    "QueryCompiler",
    "QueryRequest",
    "QueryResult",
    "parse_condition",
]
