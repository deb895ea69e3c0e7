"""Column token resolution for one query.

A token is ``bucket.field``, a bare ``field`` (which must exist in exactly
one in-scope bucket), or ``category:Name``. Category tokens register a
left join against category_links the first time they are seen.
"""

from __future__ import annotations

from dataclasses import dataclass

from bucketstore.buckets._internal.db.quoting import qualified, quote_identifier
from bucketstore.buckets._internal.query.conditions import is_category_column
from bucketstore.buckets._internal.schema.names import is_valid_name, normalize_bucket_name, normalize_category
from bucketstore.buckets.models import BucketSchema, FieldDefinition
from bucketstore.config.constants import CATEGORY_PREFIX
from bucketstore.core.errors import QueryError


@dataclass(frozen=True)
class ResolvedColumn:
    """A column token bound to its bucket field or category join."""

    token: str
    sql: str
    bucket: str | None = None
    field: FieldDefinition | None = None
    category: str | None = None

    @property
    def is_category(self) -> bool:
        return self.category is not None

    @property
    def identity(self) -> tuple[str | None, str | None, str | None]:
        return (self.bucket, self.field.name if self.field else None, self.category)


class ColumnScope:
    """Buckets visible to a query, in join order (primary first)."""

    def __init__(self, primary: BucketSchema) -> None:
        self.primary = primary
        self.buckets: dict[str, BucketSchema] = {primary.name: primary}
        self.categories: dict[str, str] = {}

    def add(self, schema: BucketSchema) -> None:
        self.buckets[schema.name] = schema

    def category_alias(self, category: str) -> str:
        alias = self.categories.get(category)
        if alias is None:
            alias = f"category{len(self.categories)}"
            self.categories[category] = alias
        return alias

    def resolve(self, token: object) -> ResolvedColumn:
        """Bind a column token.

        Raises:
            QueryError: If the token is malformed, names a bucket outside the
                query or a missing field, or is ambiguous.
        """
        if not isinstance(token, str) or not token.strip():
            raise QueryError.invalid_column(token)

        if is_category_column(token):
            category = normalize_category(token.strip()[len(CATEGORY_PREFIX) :])
            if not category:
                raise QueryError.invalid_column(token)
            alias = self.category_alias(category)
            return ResolvedColumn(
                token=token,
                sql=f"{quote_identifier(alias)}.{quote_identifier('category')}",
                category=category,
            )

        parts = token.split(".")
        if len(parts) > 2:
            raise QueryError.invalid_column(token)
        field_name = parts[-1].strip().lower()
        if not is_valid_name(field_name):
            raise QueryError.invalid_column(token)

        if len(parts) == 2:
            bucket = normalize_bucket_name(parts[0])
            if bucket is None:
                raise QueryError.invalid_column(token)
            if bucket not in self.buckets:
                raise QueryError.bucket_not_in_query(bucket)
            schema = self.buckets[bucket]
            if not schema.has_field(field_name):
                raise QueryError.field_not_found(field_name, bucket)
        else:
            owners = [s for s in self.buckets.values() if s.has_field(field_name)]
            if not owners:
                raise QueryError.field_not_found(field_name, self.primary.name)
            if len(owners) > 1:
                raise QueryError.ambiguous_field(field_name, [s.name for s in owners])
            schema = owners[0]

        return ResolvedColumn(
            token=token,
            sql=qualified(schema.table_name, field_name),
            bucket=schema.name,
            field=schema.field(field_name),
        )

    def system_column(self, column: str) -> str:
        """Qualified system column of the primary bucket."""
        return qualified(self.primary.table_name, column)
