"""Identifier quoting for generated SQL.

Every table, view, column and index name that reaches an SQL string goes
through quote_identifier. Values never do; they are always bound.
"""

import re

from bucketstore.core.errors import InternalError

_SAFE_IDENTIFIER = re.compile(r"^[a-z0-9_]+$")


def quote_identifier(identifier: str) -> str:
    """Double-quote an allow-listed identifier.

    Raises:
        InternalError: If the identifier contains anything but [a-z0-9_].
    """
    if not isinstance(identifier, str) or not _SAFE_IDENTIFIER.match(identifier):
        raise InternalError.unsafe_identifier(str(identifier))
    return f'"{identifier}"'


def qualified(table: str, column: str) -> str:
    """``"table"."column"`` with both parts quoted."""
    return f"{quote_identifier(table)}.{quote_identifier(column)}"
