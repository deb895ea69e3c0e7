"""Condition tree AST and its wire-format parser.

Wire forms accepted by parse_condition:

    {"op": "AND" | "OR", "operands": [cond, ...]}
    {"op": "NOT", "operand": cond}
    {"field": value, ...}               implicit AND of equalities
                                        (a key named "op" makes it an operator node)
    [cond, cond, ...]                   implicit AND
    ["category:Name"]                   category membership
    "category:Name"                     same
    [column, value]                     column = value
    [column, operator, value]           operator in = != >= <= > <

The wire value "&&NULL&&" (or null) stands for SQL NULL and may only be
used with = and !=.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from bucketstore.config.constants import CATEGORY_PREFIX, NULL_SENTINEL, WHERE_OPERATORS
from bucketstore.core.errors import QueryError

_RESERVED_OP_REASON = "'op' is reserved for operator nodes; compare a field named op with [\"op\", value]"

_SCALARS = (str, int, float, bool)


@dataclass(frozen=True)
class Compare:
    column: str
    op: str
    value: Any

    @property
    def is_null(self) -> bool:
        return self.value is None or self.value == NULL_SENTINEL


@dataclass(frozen=True)
class CategoryTag:
    column: str


@dataclass(frozen=True)
class And:
    operands: tuple[Condition, ...]


@dataclass(frozen=True)
class Or:
    operands: tuple[Condition, ...]


@dataclass(frozen=True)
class Not:
    operand: Condition


Condition = And | Or | Not | Compare | CategoryTag


def is_category_column(column: Any) -> bool:
    return isinstance(column, str) and column.strip().lower().startswith(CATEGORY_PREFIX)


def parse_condition(raw: Any) -> Condition | None:
    """Build the AST for a where clause. None or an empty tree means no condition.

    Raises:
        QueryError: On any malformed node.
    """
    if raw is None or (isinstance(raw, (list, dict)) and not raw):
        return None
    return _parse(raw)


def _parse(raw: Any) -> Condition:
    if isinstance(raw, str):
        if is_category_column(raw):
            return CategoryTag(raw)
        raise QueryError.invalid_condition(raw)
    if isinstance(raw, Mapping):
        return _parse_mapping(raw)
    if isinstance(raw, (list, tuple)):
        if not raw:
            raise QueryError.invalid_condition(raw, "empty condition")
        if isinstance(raw[0], str):
            return _parse_leaf(raw)
        return And(tuple(_parse(item) for item in raw))
    raise QueryError.invalid_condition(raw)


def _parse_mapping(raw: Mapping[str, Any]) -> Condition:
    if "op" not in raw:
        if not raw:
            raise QueryError.invalid_condition(dict(raw), "empty condition")
        return And(tuple(_compare(column, "=", value) for column, value in raw.items()))

    op = raw["op"]
    op_name = op.upper() if isinstance(op, str) else op
    if op_name in ("AND", "OR"):
        operands = raw.get("operands")
        if not isinstance(operands, (list, tuple)) or not operands:
            raise QueryError.empty_operands(op_name)
        parsed = tuple(_parse(item) for item in operands)
        return And(parsed) if op_name == "AND" else Or(parsed)
    if op_name == "NOT":
        if "operand" not in raw or raw["operand"] in (None, [], {}):
            raise QueryError.empty_operands(op_name)
        return Not(_parse(raw["operand"]))
    if "operands" not in raw and "operand" not in raw:
        raise QueryError.invalid_condition(dict(raw), _RESERVED_OP_REASON)
    raise QueryError.invalid_operator(op)


def _parse_leaf(raw: list[Any] | tuple[Any, ...]) -> Condition:
    column = raw[0]
    if len(raw) == 1:
        if is_category_column(column):
            return CategoryTag(column)
        raise QueryError.invalid_condition(list(raw), "a single-element condition must be a category")
    if len(raw) == 2:
        return _compare(column, "=", raw[1])
    if len(raw) == 3:
        return _compare(column, raw[1], raw[2])
    raise QueryError.invalid_condition(list(raw), "conditions have at most three elements")


def _compare(column: Any, op: Any, value: Any) -> Compare:
    if not isinstance(column, str):
        raise QueryError.invalid_column(column)
    if op not in WHERE_OPERATORS:
        raise QueryError.invalid_operator(op)
    if value is not None and not isinstance(value, _SCALARS):
        raise QueryError.non_scalar_value(column)
    compare = Compare(column, op, value)
    if compare.is_null and op not in ("=", "!="):
        raise QueryError.invalid_condition([column, op, value], "NULL can only be compared with = or !=")
    return compare
