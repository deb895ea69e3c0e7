"""Core module exports."""

from bucketstore.core.errors import (
    BucketStoreError,
    ConfigError,
    ErrorCode,
    InternalError,
    QueryError,
    RenameError,
    SchemaError,
)
from bucketstore.core.logging import (
    clear_request_id,
    configure_logging,
    get_logger,
    get_request_id,
    request_scope,
    set_request_id,
)

__all__ = [
    # Errors
    "BucketStoreError",
    "ConfigError",
    "ErrorCode",
    "InternalError",
    "QueryError",
    "RenameError",
    "SchemaError",
    # Logging
    "clear_request_id",
    "configure_logging",
    "get_logger",
    "get_request_id",
    "request_scope",
    "set_request_id",
]
