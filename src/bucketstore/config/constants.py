"""Configuration constants.

This module contains truly constant values that should NOT be user-configurable.
These are storage-format constraints and query API limits.

For configurable values, see models.py (LimitsConfig, DatabaseConfig, etc.).
"""

# =============================================================================
# Storage Layout
# =============================================================================

TABLE_PREFIX = "bucket__"
"""Prefix of every generated bucket table (and compatibility view)."""

ISSUES_BUCKET = "bucket_issues"
"""Reserved bucket holding write-time issues, one set of rows per page."""

MIGRATION_SUFFIX = "__migrating"
"""Shadow column suffix used while a column changes type."""

# =============================================================================
# Schema Limits
# =============================================================================

MAX_FIELDS = 64
"""Maximum fields per bucket, system fields included."""

MAX_BUCKET_NAME_LENGTH = 47
"""Maximum bucket name length (table names stay under 64 characters)."""

MAX_FIELD_NAME_LENGTH = 64
"""Maximum field name length."""

# =============================================================================
# Value Limits
# =============================================================================

TEXT_BYTE_LIMIT = 65535
"""Maximum UTF-8 size of a single text value or encoded repeated value."""

REPEATED_CHARACTER_LIMIT = 512
"""Maximum length of one text element inside a repeated field."""

REPEATED_CHARACTER_TOTAL_LIMIT = 5254
"""Maximum combined length of the text elements of one repeated value."""

# =============================================================================
# Query API
# =============================================================================

QUERY_DEFAULT_LIMIT = 500
"""Rows returned when the caller gives no usable limit."""

QUERY_MAX_LIMIT = 5000
"""Hard cap on rows per query, regardless of the requested limit."""

NULL_SENTINEL = "&&NULL&&"
"""Wire value standing for SQL NULL in conditions (scripting hosts cannot store nil)."""

CATEGORY_PREFIX = "category:"
"""Column prefix that selects the category-membership pseudo-join."""

WHERE_OPERATORS = frozenset({"=", "!=", ">=", "<=", ">", "<"})
"""Comparison operators accepted in condition leaves."""
