"""Declared SQL column types for bucket fields.

The declared type is how a live table describes itself:
``TEXT``/``PAGE_TEXT``/``INTEGER``/``DOUBLE``/``BOOLEAN`` for scalars and
``JSON_<TYPE>`` for repeated fields. Both the migration engine (writing
DDL) and introspection (reading it back) go through this module.
"""

from __future__ import annotations

from bucketstore.buckets.models import FieldDefinition, FieldType

_SCALAR_SQL_TYPES: dict[FieldType, str] = {
    FieldType.TEXT: "TEXT",
    FieldType.PAGE: "PAGE_TEXT",
    FieldType.INTEGER: "INTEGER",
    FieldType.DOUBLE: "DOUBLE",
    FieldType.BOOLEAN: "BOOLEAN",
}
_SQL_TYPES_SCALAR = {v: k for k, v in _SCALAR_SQL_TYPES.items()}
_REPEATED_PREFIX = "JSON_"


def sql_type(field: FieldDefinition) -> str:
    """Declared column type for a field."""
    if field.repeated:
        return _REPEATED_PREFIX + field.type.value
    return _SCALAR_SQL_TYPES[field.type]


def parse_sql_type(declared: str) -> tuple[FieldType, bool] | None:
    """Inverse of sql_type: ``(type, repeated)``, or None for a foreign type."""
    declared = declared.strip().upper()
    if declared.startswith(_REPEATED_PREFIX):
        parsed = FieldType.parse(declared[len(_REPEATED_PREFIX) :])
        return (parsed, True) if parsed is not None else None
    scalar = _SQL_TYPES_SCALAR.get(declared)
    return (scalar, False) if scalar is not None else None


def sql_cast_target(field_type: FieldType) -> str:
    """SQLite CAST target used when a column changes scalar type."""
    if field_type in (FieldType.INTEGER, FieldType.BOOLEAN):
        return "INTEGER"
    if field_type is FieldType.DOUBLE:
        return "REAL"
    return "TEXT"
