"""Schema validation, value casting and migrations."""

from bucketstore.buckets._internal.schema.codec import CastError, cast_for_result, cast_for_storage
from bucketstore.buckets._internal.schema.migration import MigrationPlan, plan_migration
from bucketstore.buckets._internal.schema.store import SchemaCache, SchemaStore, build_schema

__all__ = [
    "CastError",
    "cast_for_result",
    "cast_for_storage",
    "MigrationPlan",
    "plan_migration",
    "SchemaCache",
    "SchemaStore",
    "build_schema",
]
