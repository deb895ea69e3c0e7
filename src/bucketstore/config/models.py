"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (BUCKETSTORE__SECTION__KEY)
3. Local YAML (<root>/.bucketstore/config.yaml)
4. Global YAML (~/.config/bucketstore/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    BUCKETSTORE__<SECTION>__<KEY>=<VALUE>

Examples:
    BUCKETSTORE__LOGGING__LEVEL=DEBUG
    BUCKETSTORE__DATABASE__PATH=/var/lib/buckets.db
    BUCKETSTORE__LIMITS__MAX_DATA_PER_PAGE=2000000
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration."""

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        BUCKETSTORE__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG logs every generated statement.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class DatabaseConfig(BaseModel):
    """Database connection configuration.

    Env vars:
        BUCKETSTORE__DATABASE__PATH: SQLite database file
        BUCKETSTORE__DATABASE__BUSY_TIMEOUT_MS: SQLite busy timeout
    """

    path: str | None = Field(
        default=None,
        description="SQLite database file. Default: .bucketstore/buckets.db under the root.",
    )
    busy_timeout_ms: int = Field(
        default=30000,
        description="How long a writer waits for another page's transaction (ms). "
        "Failures after this are terminal, never retried.",
    )

    @field_validator("busy_timeout_ms")
    @classmethod
    def validate_busy_timeout(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"busy_timeout_ms must be >= 0, got {v}")
        return v


class LimitsConfig(BaseModel):
    """Write and query limits.

    Hard query limits (default/max rows) live in constants.py.

    Env vars:
        BUCKETSTORE__LIMITS__MAX_DATA_PER_PAGE: Serialized bytes per write call
        BUCKETSTORE__LIMITS__QUERY_TIMEOUT_MS: Wall-clock cap per query
        BUCKETSTORE__LIMITS__MAX_ISSUES: Issues kept per write call
    """

    max_data_per_page: int = Field(
        default=1_000_000,
        description="Total serialized size of all rows written by one page in one call. "
        "Buckets past the budget are not written and one issue is logged.",
    )
    query_timeout_ms: int = Field(
        default=500,
        description="Queries running longer than this fail with QUERY_TIMEOUT.",
    )
    max_issues: int = Field(
        default=100,
        description="Maximum issues recorded per write call.",
    )

    @field_validator("max_data_per_page", "query_timeout_ms", "max_issues")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Limit must be positive, got {v}")
        return v


class DebugConfig(BaseModel):
    """Debug and development configuration.

    Env vars:
        BUCKETSTORE__DEBUG__ENABLED: Include generated SQL in query results
    """

    enabled: bool = Field(
        default=False,
        description="Return generated SQL alongside query results.",
    )


class BucketStoreConfig(BaseModel):
    """Root configuration for bucketstore.

    All settings can be configured via:
    1. Environment variables: BUCKETSTORE__SECTION__KEY
    2. YAML config files (local or global)
    3. Direct kwargs to load_config()
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    debug: DebugConfig = Field(default_factory=DebugConfig)
