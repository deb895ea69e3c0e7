"""Config module exports."""

from bucketstore.config.loader import load_config
from bucketstore.config.models import (
    BucketStoreConfig,
    DatabaseConfig,
    DebugConfig,
    LimitsConfig,
    LoggingConfig,
)

__all__ = [
    "load_config",
    "BucketStoreConfig",
    "DatabaseConfig",
    "DebugConfig",
    "LimitsConfig",
    "LoggingConfig",
]
