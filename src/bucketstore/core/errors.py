"""bucketstore error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Schema
- 4xxx: Query
- 6xxx: Rename
- 9xxx: Internal

Write-time problems are never raised; they are collected as issues
(see buckets/_internal/write/issues.py).
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_MISSING_REQUIRED = 2003

    # Schema (3xxx)
    SCHEMA_INVALID_NAME = 3001
    SCHEMA_AMBIGUOUS_CAPITALIZATION = 3002
    SCHEMA_EMPTY = 3003
    SCHEMA_DUPLICATE_FIELD = 3004
    SCHEMA_RESERVED_FIELD = 3005
    SCHEMA_INVALID_TYPE = 3006
    SCHEMA_REPEATED_NOT_INDEXED = 3007
    SCHEMA_TOO_MANY_FIELDS = 3008
    SCHEMA_SYSTEM_BUCKET = 3009
    SCHEMA_ALREADY_EXISTS = 3010
    SCHEMA_NO_SUCH_BUCKET = 3011
    SCHEMA_IS_ALIAS = 3012
    SCHEMA_IN_USE = 3013

    # Query (4xxx)
    QUERY_INVALID_COLUMN = 4001
    QUERY_BUCKET_NOT_IN_QUERY = 4002
    QUERY_NO_SUCH_BUCKET = 4003
    QUERY_FIELD_NOT_FOUND = 4004
    QUERY_AMBIGUOUS_FIELD = 4005
    QUERY_INVALID_OPERATOR = 4006
    QUERY_NON_SCALAR_VALUE = 4007
    QUERY_INVALID_CONDITION = 4008
    QUERY_EMPTY_OPERANDS = 4009
    QUERY_EMPTY_SELECTS = 4010
    QUERY_INVALID_JOIN = 4011
    QUERY_REPEATED_JOIN = 4012
    QUERY_DUPLICATE_JOIN = 4013
    QUERY_ORDER_BY_NOT_SELECTED = 4014
    QUERY_INVALID_DIRECTION = 4015
    QUERY_TIMEOUT = 4016
    QUERY_INVALID_REQUEST = 4017

    # Rename (6xxx)
    RENAME_DESTINATION_OCCUPIED = 6001
    RENAME_DANGLING_ALIAS = 6002
    RENAME_SAME_NAME = 6003

    # Internal (9xxx)
    INTERNAL_UNSAFE_IDENTIFIER = 9002


@dataclass(eq=False)
class BucketStoreError(Exception):
    """Base error with structured context for callers and the CLI."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'SCHEMA_INVALID_NAME')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(BucketStoreError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def missing_required(cls, field: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_MISSING_REQUIRED,
            message=f"Missing required config field: {field}",
            details={"field": field},
        )


class SchemaError(BucketStoreError):
    """Schema definition and bucket lifecycle errors."""

    @classmethod
    def invalid_name(cls, name: Any) -> "SchemaError":
        return cls(
            code=ErrorCode.SCHEMA_INVALID_NAME,
            message=f"'{name}' is not a valid name",
            details={"name": str(name)},
        )

    @classmethod
    def ambiguous_capitalization(cls, name: str) -> "SchemaError":
        return cls(
            code=ErrorCode.SCHEMA_AMBIGUOUS_CAPITALIZATION,
            message=f"Bucket name '{name}' may only capitalize its first letter",
            details={"name": name},
        )

    @classmethod
    def empty_schema(cls, bucket: str) -> "SchemaError":
        return cls(
            code=ErrorCode.SCHEMA_EMPTY,
            message=f"Schema for bucket '{bucket}' declares no fields",
            details={"bucket": bucket},
        )

    @classmethod
    def duplicate_field(cls, field: str) -> "SchemaError":
        return cls(
            code=ErrorCode.SCHEMA_DUPLICATE_FIELD,
            message=f"Field '{field}' is declared more than once",
            details={"field": field},
        )

    @classmethod
    def reserved_field(cls, field: str) -> "SchemaError":
        return cls(
            code=ErrorCode.SCHEMA_RESERVED_FIELD,
            message=f"Field '{field}' is a system field and cannot be redefined",
            details={"field": field},
        )

    @classmethod
    def invalid_type(cls, field: str, type_name: Any) -> "SchemaError":
        return cls(
            code=ErrorCode.SCHEMA_INVALID_TYPE,
            message=f"Field '{field}' has unrecognized type '{type_name}'",
            details={"field": field, "type": str(type_name)},
        )

    @classmethod
    def repeated_not_indexed(cls, field: str) -> "SchemaError":
        return cls(
            code=ErrorCode.SCHEMA_REPEATED_NOT_INDEXED,
            message=f"Repeated field '{field}' must be indexed",
            details={"field": field},
        )

    @classmethod
    def too_many_fields(cls, count: int, limit: int) -> "SchemaError":
        return cls(
            code=ErrorCode.SCHEMA_TOO_MANY_FIELDS,
            message=f"Schema has {count} fields, the limit is {limit}",
            details={"count": count, "limit": limit},
        )

    @classmethod
    def system_bucket(cls, bucket: str) -> "SchemaError":
        return cls(
            code=ErrorCode.SCHEMA_SYSTEM_BUCKET,
            message=f"Bucket '{bucket}' is reserved by the system",
            details={"bucket": bucket},
        )

    @classmethod
    def already_exists(cls, bucket: str) -> "SchemaError":
        return cls(
            code=ErrorCode.SCHEMA_ALREADY_EXISTS,
            message=f"Bucket '{bucket}' already exists",
            details={"bucket": bucket},
        )

    @classmethod
    def no_such_bucket(cls, bucket: str) -> "SchemaError":
        return cls(
            code=ErrorCode.SCHEMA_NO_SUCH_BUCKET,
            message=f"Bucket '{bucket}' does not exist",
            details={"bucket": bucket},
        )

    @classmethod
    def is_alias(cls, bucket: str, target: str) -> "SchemaError":
        return cls(
            code=ErrorCode.SCHEMA_IS_ALIAS,
            message=f"Bucket '{bucket}' is an alias of '{target}'",
            details={"bucket": bucket, "target": target},
        )

    @classmethod
    def in_use(cls, bucket: str, writers: int) -> "SchemaError":
        return cls(
            code=ErrorCode.SCHEMA_IN_USE,
            message=f"Bucket '{bucket}' is still written to by {writers} page(s)",
            details={"bucket": bucket, "writers": writers},
        )


class RenameError(SchemaError):
    """Bucket move/alias errors."""

    @classmethod
    def destination_occupied(cls, old: str, new: str) -> "RenameError":
        return cls(
            code=ErrorCode.RENAME_DESTINATION_OCCUPIED,
            message=f"Cannot move '{old}' to '{new}': '{new}' is in use",
            details={"old": old, "new": new},
        )

    @classmethod
    def dangling_alias(cls, bucket: str, references: int) -> "RenameError":
        return cls(
            code=ErrorCode.RENAME_DANGLING_ALIAS,
            message=f"Bucket '{bucket}' is referenced by {references} schema records, expected at most 2",
            details={"bucket": bucket, "references": references},
        )

    @classmethod
    def same_name(cls, bucket: str) -> "RenameError":
        return cls(
            code=ErrorCode.RENAME_SAME_NAME,
            message=f"Cannot move '{bucket}' onto itself",
            details={"bucket": bucket},
        )


class QueryError(BucketStoreError):
    """Query compilation and execution errors."""

    @classmethod
    def invalid_column(cls, column: Any) -> "QueryError":
        return cls(
            code=ErrorCode.QUERY_INVALID_COLUMN,
            message=f"'{column}' is not a valid column name",
            details={"column": str(column)},
        )

    @classmethod
    def bucket_not_in_query(cls, bucket: str) -> "QueryError":
        return cls(
            code=ErrorCode.QUERY_BUCKET_NOT_IN_QUERY,
            message=f"Bucket '{bucket}' is not part of this query",
            details={"bucket": bucket},
        )

    @classmethod
    def no_such_bucket(cls, bucket: str) -> "QueryError":
        return cls(
            code=ErrorCode.QUERY_NO_SUCH_BUCKET,
            message=f"Bucket '{bucket}' does not exist",
            details={"bucket": bucket},
        )

    @classmethod
    def field_not_found(cls, field: str, bucket: str) -> "QueryError":
        return cls(
            code=ErrorCode.QUERY_FIELD_NOT_FOUND,
            message=f"Field '{field}' not found in bucket '{bucket}'",
            details={"field": field, "bucket": bucket},
        )

    @classmethod
    def ambiguous_field(cls, field: str, buckets: list[str]) -> "QueryError":
        return cls(
            code=ErrorCode.QUERY_AMBIGUOUS_FIELD,
            message=f"Field '{field}' exists in {', '.join(buckets)}; qualify it as bucket.field",
            details={"field": field, "buckets": buckets},
        )

    @classmethod
    def invalid_operator(cls, op: Any) -> "QueryError":
        return cls(
            code=ErrorCode.QUERY_INVALID_OPERATOR,
            message=f"'{op}' is not a valid operator",
            details={"operator": str(op)},
        )

    @classmethod
    def non_scalar_value(cls, column: str) -> "QueryError":
        return cls(
            code=ErrorCode.QUERY_NON_SCALAR_VALUE,
            message=f"Condition on '{column}' must compare against a scalar value",
            details={"column": column},
        )

    @classmethod
    def invalid_condition(cls, condition: Any, reason: str = "unrecognized condition") -> "QueryError":
        return cls(
            code=ErrorCode.QUERY_INVALID_CONDITION,
            message=f"Invalid condition {condition!r}: {reason}",
            details={"condition": repr(condition), "reason": reason},
        )

    @classmethod
    def empty_operands(cls, op: str) -> "QueryError":
        return cls(
            code=ErrorCode.QUERY_EMPTY_OPERANDS,
            message=f"{op} condition needs at least one operand",
            details={"op": op},
        )

    @classmethod
    def empty_selects(cls) -> "QueryError":
        return cls(
            code=ErrorCode.QUERY_EMPTY_SELECTS,
            message="A query must select at least one column",
        )

    @classmethod
    def invalid_join(cls, bucket: str, reason: str) -> "QueryError":
        return cls(
            code=ErrorCode.QUERY_INVALID_JOIN,
            message=f"Invalid join on '{bucket}': {reason}",
            details={"bucket": bucket, "reason": reason},
        )

    @classmethod
    def repeated_join(cls, left: str, right: str) -> "QueryError":
        return cls(
            code=ErrorCode.QUERY_REPEATED_JOIN,
            message=f"Cannot join two repeated fields ('{left}' and '{right}')",
            details={"left": left, "right": right},
        )

    @classmethod
    def duplicate_join(cls, bucket: str) -> "QueryError":
        return cls(
            code=ErrorCode.QUERY_DUPLICATE_JOIN,
            message=f"Bucket '{bucket}' is joined more than once",
            details={"bucket": bucket},
        )

    @classmethod
    def order_by_not_selected(cls, column: str) -> "QueryError":
        return cls(
            code=ErrorCode.QUERY_ORDER_BY_NOT_SELECTED,
            message=f"Cannot order by '{column}' unless it is selected",
            details={"column": column},
        )

    @classmethod
    def invalid_direction(cls, direction: Any) -> "QueryError":
        return cls(
            code=ErrorCode.QUERY_INVALID_DIRECTION,
            message=f"Order direction must be ASC or DESC, got '{direction}'",
            details={"direction": str(direction)},
        )

    @classmethod
    def timeout(cls, timeout_ms: int) -> "QueryError":
        return cls(
            code=ErrorCode.QUERY_TIMEOUT,
            message=f"Query exceeded the {timeout_ms}ms execution limit",
            details={"timeout_ms": timeout_ms},
        )

    @classmethod
    def invalid_request(cls, reason: str) -> "QueryError":
        return cls(
            code=ErrorCode.QUERY_INVALID_REQUEST,
            message=f"Malformed query request: {reason}",
            details={"reason": reason},
        )


class InternalError(BucketStoreError):
    """Internal invariant violations."""

    @classmethod
    def unsafe_identifier(cls, identifier: str) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_UNSAFE_IDENTIFIER,
            message=f"Refusing to quote unsafe SQL identifier {identifier!r}",
            details={"identifier": identifier},
        )
