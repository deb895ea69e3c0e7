"""Value casting between wire values and stored column values."""

from __future__ import annotations

import json
from typing import Any

from bucketstore.buckets.models import FieldDefinition, FieldType
from bucketstore.config.constants import (
    REPEATED_CHARACTER_LIMIT,
    REPEATED_CHARACTER_TOTAL_LIMIT,
    TEXT_BYTE_LIMIT,
)

_TRUE_STRINGS = frozenset({"1", "true", "on", "yes"})


class CastError(ValueError):
    """A value cannot be stored in a field."""


# =============================================================================
# Storage casting
# =============================================================================


def _to_text(value: Any) -> str:
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


def _to_bool(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return int(value != 0)
    if isinstance(value, str):
        return int(value.strip().lower() in _TRUE_STRINGS)
    raise CastError(f"Cannot store {type(value).__name__} as a boolean")


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        pass
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError) as e:
        raise CastError(f"Cannot store {value!r} as an integer") from e


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise CastError(f"Cannot store {value!r} as a double") from e


def cast_scalar(value: Any, field_type: FieldType) -> Any:
    """Cast one non-repeated value. Empty strings become null for every type."""
    if value is None or value == "":
        return None
    if field_type.is_textual:
        text = _to_text(value)
        size = len(text.encode("utf-8"))
        if size > TEXT_BYTE_LIMIT:
            raise CastError(f"Text value is {size} bytes, limit is {TEXT_BYTE_LIMIT}")
        return text
    if field_type is FieldType.INTEGER:
        return _to_int(value)
    if field_type is FieldType.DOUBLE:
        return _to_float(value)
    if field_type is FieldType.BOOLEAN:
        return _to_bool(value)
    raise CastError(f"Cannot cast to {field_type.value}")


def cast_for_storage(value: Any, field: FieldDefinition) -> Any:
    """Wire value -> column value.

    Repeated fields: a scalar is wrapped, null and empty-string elements are
    dropped, each element is cast by the element type, and the array is
    stored as compact JSON. An empty array is stored as null.

    Raises:
        CastError: If the value (or an element) cannot be cast or is too long.
    """
    if not field.repeated:
        return cast_scalar(value, field.type)

    items = value if isinstance(value, (list, tuple)) else [value]
    elements: list[Any] = []
    total = 0
    for item in items:
        cast = cast_scalar(item, field.type)
        if cast is None:
            continue
        if isinstance(cast, str):
            if len(cast) > REPEATED_CHARACTER_LIMIT:
                raise CastError(
                    f"Repeated element is {len(cast)} characters, limit is {REPEATED_CHARACTER_LIMIT}"
                )
            total += len(cast)
        elements.append(cast)
    if total > REPEATED_CHARACTER_TOTAL_LIMIT:
        raise CastError(
            f"Repeated value is {total} characters, limit is {REPEATED_CHARACTER_TOTAL_LIMIT}"
        )
    if not elements:
        return None
    encoded = json.dumps(elements, ensure_ascii=False, separators=(",", ":"))
    if len(encoded.encode("utf-8")) > TEXT_BYTE_LIMIT:
        raise CastError(f"Repeated value exceeds {TEXT_BYTE_LIMIT} bytes")
    return encoded


def cast_query_value(value: Any, field: FieldDefinition) -> Any:
    """Bind value for comparing against a column (or an element of a repeated one).

    Values that cannot be cast are bound unchanged; SQLite's comparison
    rules then decide the outcome.
    """
    try:
        cast = cast_scalar(value, field.type)
    except CastError:
        return value
    return value if cast is None else cast


# =============================================================================
# Result casting
# =============================================================================


def _scalar_result(value: Any, field_type: FieldType) -> Any:
    if value is None:
        return None
    if field_type.is_textual:
        return value if isinstance(value, str) else _to_text(value)
    try:
        if field_type is FieldType.INTEGER:
            return _to_int(value)
        if field_type is FieldType.DOUBLE:
            return _to_float(value)
        if field_type is FieldType.BOOLEAN:
            return bool(_to_bool(value))
    except CastError:
        return value
    return value


def cast_for_result(value: Any, field: FieldDefinition) -> Any:
    """Column value -> caller value.

    A repeated column holding something other than a JSON array (data
    written before the field became repeated) reads as a one-element list.
    """
    if value is None:
        return None
    if not field.repeated:
        return _scalar_result(value, field.type)
    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except ValueError:
            decoded = [value]
    else:
        decoded = value
    if not isinstance(decoded, list):
        decoded = [decoded]
    return [_scalar_result(item, field.type) for item in decoded]
