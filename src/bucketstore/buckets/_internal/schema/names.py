"""Bucket, field and category name rules.

Names are normalized by trimming and replacing spaces with underscores,
then lower-cased. A normalized name must match [a-z0-9_]+, must not be
purely numeric, must not start with an underscore and must not contain a
double underscore (reserved as the table/shadow-column separator).
"""

import re

from bucketstore.config.constants import MAX_BUCKET_NAME_LENGTH, MAX_FIELD_NAME_LENGTH
from bucketstore.core.errors import SchemaError

_NAME_CHARS = re.compile(r"^[A-Za-z0-9_]+$")


def _spaced(name: str) -> str:
    return name.strip().replace(" ", "_")


def is_valid_name(name: object) -> bool:
    """Check a name (case preserved) against the shared naming rules."""
    if not isinstance(name, str):
        return False
    candidate = _spaced(name)
    return (
        bool(_NAME_CHARS.match(candidate))
        and not candidate.isdigit()
        and not candidate.startswith("_")
        and "__" not in candidate
    )


def has_ambiguous_capitalization(name: str) -> bool:
    """True if any letter past the first differs from the lower-cased form."""
    candidate = _spaced(name)
    lowered = candidate.lower()
    return candidate[:1].upper() + candidate[1:] != lowered[:1].upper() + lowered[1:]


def normalize_bucket_name(name: object) -> str | None:
    """Lenient bucket name normalization used on the write path.

    Returns None for an invalid name. Capitalization is not checked; the
    caller compares the result with its input to detect a mismatch.
    """
    if not is_valid_name(name):
        return None
    cleaned = _spaced(name).lower()  # type: ignore[arg-type]
    if len(cleaned) > MAX_BUCKET_NAME_LENGTH:
        return None
    return cleaned


def validate_bucket_name(name: object) -> str:
    """Strict bucket name validation for schema changes and renames.

    Raises:
        SchemaError: If the name is invalid, too long or ambiguously capitalized.
    """
    if isinstance(name, str) and has_ambiguous_capitalization(name):
        raise SchemaError.ambiguous_capitalization(name)
    cleaned = normalize_bucket_name(name)
    if cleaned is None:
        raise SchemaError.invalid_name(name)
    return cleaned


def validate_field_name(name: object) -> str:
    """Normalize a field name.

    Raises:
        SchemaError: If the name is invalid or too long.
    """
    if not is_valid_name(name):
        raise SchemaError.invalid_name(name)
    cleaned = _spaced(name).lower()  # type: ignore[arg-type]
    if len(cleaned) > MAX_FIELD_NAME_LENGTH:
        raise SchemaError.invalid_name(name)
    return cleaned


def normalize_category(name: str) -> str:
    """Category title form: trimmed, spaces to underscores, first letter upper-cased."""
    cleaned = _spaced(name)
    return cleaned[:1].upper() + cleaned[1:]
