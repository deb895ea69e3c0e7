"""Query request -> parameterized SQL, and execution.

Generated shape:

    SELECT <expr> AS "c0", ...
    FROM "bucket__primary"
    LEFT JOIN "bucket__other" ON <cond>
    LEFT JOIN "category_links" AS "category0" ON ...
    WHERE <condition tree>
    [GROUP BY primary key, plain selects]     only with bucket joins
    ORDER BY [user column,] primary._page_id, primary._index
    LIMIT :limit OFFSET :offset

With bucket joins, columns of joined buckets are aggregated into JSON
arrays per primary row so one-to-many joins never fan out the result.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy import text

from bucketstore.buckets._internal.db.database import query_deadline
from bucketstore.buckets._internal.db.quoting import quote_identifier
from bucketstore.buckets._internal.query.columns import ColumnScope, ResolvedColumn
from bucketstore.buckets._internal.query.conditions import (
    And,
    CategoryTag,
    Compare,
    Condition,
    Not,
    Or,
    parse_condition,
)
from bucketstore.buckets._internal.schema.codec import cast_for_result, cast_query_value
from bucketstore.buckets._internal.schema.names import normalize_bucket_name
from bucketstore.buckets.models import BucketSchema
from bucketstore.config.constants import QUERY_DEFAULT_LIMIT, QUERY_MAX_LIMIT
from bucketstore.config.models import LimitsConfig
from bucketstore.core.errors import QueryError

if TYPE_CHECKING:
    from bucketstore.buckets._internal.db.database import Database
    from bucketstore.buckets._internal.schema.store import SchemaStore

logger = structlog.get_logger()

# column > value  <=>  value < element
_FLIPPED = {">": "<", ">=": "<=", "<": ">", "<=": ">="}


# =============================================================================
# Request / result models
# =============================================================================


class JoinRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    table_name: str = Field(alias="tableName")
    cond: list[Any]


class OrderByRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    field_name: str = Field(alias="fieldName")
    direction: Any = "ASC"


class QueryRequest(BaseModel):
    """Wire query. Invalid limit/offset values are tolerated and ignored."""

    model_config = ConfigDict(populate_by_name=True)

    table_name: str = Field(alias="tableName")
    selects: list[Any] = Field(default_factory=list)
    joins: list[JoinRequest] = Field(default_factory=list)
    wheres: Any = None
    order_by: OrderByRequest | None = Field(default=None, alias="orderBy")
    limit: Any = None
    offset: Any = None
    debug: bool = False


@dataclass
class CompiledQuery:
    sql: str
    params: dict[str, Any]
    columns: list[ResolvedColumn]
    aggregated: list[bool]
    limit: int
    offset: int
    debug: bool = False


@dataclass
class QueryResult:
    rows: list[dict[str, Any]] = field(default_factory=list)
    sql: str | None = None


def effective_limit(limit: Any) -> int:
    if isinstance(limit, int) and not isinstance(limit, bool) and limit > 0:
        return min(limit, QUERY_MAX_LIMIT)
    return QUERY_DEFAULT_LIMIT


def effective_offset(offset: Any) -> int:
    if isinstance(offset, int) and not isinstance(offset, bool) and offset > 0:
        return offset
    return 0


class _Params:
    def __init__(self) -> None:
        self.values: dict[str, Any] = {}

    def bind(self, value: Any) -> str:
        name = f"p{len(self.values)}"
        self.values[name] = value
        return f":{name}"


# =============================================================================
# Compiler
# =============================================================================


class QueryCompiler:
    """Compiles and runs bucket queries."""

    def __init__(
        self,
        db: Database,
        schemas: SchemaStore,
        limits: LimitsConfig | None = None,
        debug: bool = False,
    ) -> None:
        self.db = db
        self.schemas = schemas
        self.limits = limits or LimitsConfig()
        self.debug = debug

    def compile(self, query: QueryRequest | Mapping[str, Any]) -> CompiledQuery:
        """Build SQL and bind parameters for a query.

        Raises:
            QueryError: On any invalid request.
        """
        request = self._coerce(query)
        params = _Params()

        primary = self._schema(request.table_name)
        scope = ColumnScope(primary)

        join_clauses: list[str] = []
        for join in request.joins:
            schema = self._schema(join.table_name)
            if schema.name == primary.name:
                raise QueryError.invalid_join(schema.name, "cannot join the queried bucket to itself")
            if schema.name in scope.buckets:
                raise QueryError.duplicate_join(schema.name)
            if len(join.cond) != 2:
                raise QueryError.invalid_join(schema.name, "a join condition has exactly two columns")
            scope.add(schema)
            join_clauses.append(self._join_clause(scope, schema, join.cond))

        columns = self._select_columns(request, scope)

        where_sql = None
        condition = parse_condition(request.wheres)
        if condition is not None:
            where_sql = self._condition(condition, scope, params)

        grouped = bool(request.joins)
        select_parts: list[str] = []
        aggregated: list[bool] = []
        group_by = [scope.system_column("_page_id"), scope.system_column("_index")]
        for i, column in enumerate(columns):
            expr = self._select_expr(column)
            is_joined = column.bucket is not None and column.bucket != primary.name
            if grouped and is_joined:
                expr = f"json_group_array({column.sql}) FILTER (WHERE {column.sql} IS NOT NULL)"
                aggregated.append(True)
            else:
                if grouped:
                    group_by.append(expr)
                aggregated.append(False)
            select_parts.append(f"{expr} AS {quote_identifier(f'c{i}')}")

        for category, alias in scope.categories.items():
            quoted = quote_identifier(alias)
            join_clauses.append(
                f"LEFT JOIN {quote_identifier('category_links')} AS {quoted} "
                f"ON {quoted}.{quote_identifier('page_id')} = {scope.system_column('_page_id')} "
                f"AND {quoted}.{quote_identifier('category')} = {params.bind(category)}"
            )

        order_by = self._order_by(request, scope, columns)
        limit = effective_limit(request.limit)
        offset = effective_offset(request.offset)

        sql = f"SELECT {', '.join(select_parts)} FROM {quote_identifier(primary.table_name)}"
        if join_clauses:
            sql += " " + " ".join(join_clauses)
        if where_sql:
            sql += f" WHERE {where_sql}"
        if grouped:
            sql += f" GROUP BY {', '.join(group_by)}"
        sql += f" ORDER BY {', '.join(order_by)}"
        sql += f" LIMIT {params.bind(limit)} OFFSET {params.bind(offset)}"

        return CompiledQuery(
            sql=sql,
            params=params.values,
            columns=columns,
            aggregated=aggregated,
            limit=limit,
            offset=offset,
            debug=request.debug or self.debug,
        )

    def execute(self, query: QueryRequest | Mapping[str, Any]) -> QueryResult:
        """Run a query and cast every cell back through the field's type.

        Raises:
            QueryError: On an invalid request or when the query times out.
        """
        compiled = self.compile(query)
        timeout_ms = self.limits.query_timeout_ms
        with self.db.session() as session, query_deadline(session, timeout_ms):
            raw_rows = session.execute(text(compiled.sql), compiled.params).all()

        rows = [self._materialize(compiled, raw) for raw in raw_rows]
        logger.info("bucket_query", rows=len(rows), limit=compiled.limit, offset=compiled.offset)
        if compiled.debug:
            logger.debug("bucket_query_sql", sql=compiled.sql, params=compiled.params)
        return QueryResult(rows=rows, sql=compiled.sql if compiled.debug else None)

    # =========================================================================
    # Pieces
    # =========================================================================

    def _coerce(self, query: QueryRequest | Mapping[str, Any]) -> QueryRequest:
        if isinstance(query, QueryRequest):
            return query
        try:
            return QueryRequest.model_validate(query)
        except ValidationError as e:
            err = e.errors()[0]
            location = ".".join(str(loc) for loc in err["loc"])
            raise QueryError.invalid_request(f"{location}: {err['msg']}") from e

    def _schema(self, name: str) -> BucketSchema:
        normalized = normalize_bucket_name(name)
        schema = self.schemas.get(normalized) if normalized else None
        if schema is None:
            raise QueryError.no_such_bucket(name)
        return schema

    def _select_columns(self, request: QueryRequest, scope: ColumnScope) -> list[ResolvedColumn]:
        if not request.selects:
            raise QueryError.empty_selects()
        if request.selects == ["*"]:
            primary = scope.primary
            return [
                replace(scope.resolve(f"{primary.name}.{name}"), token=name)
                for name in primary.fields
                if not name.startswith("_")
            ]
        return [scope.resolve(token) for token in request.selects]

    def _select_expr(self, column: ResolvedColumn) -> str:
        if column.is_category:
            return f"({column.sql} IS NOT NULL)"
        return column.sql

    def _join_clause(self, scope: ColumnScope, schema: BucketSchema, cond: list[Any]) -> str:
        left, right = scope.resolve(cond[0]), scope.resolve(cond[1])
        if left.is_category or right.is_category:
            raise QueryError.invalid_join(schema.name, "categories cannot be join columns")
        if left.bucket == right.bucket or schema.name not in (left.bucket, right.bucket):
            raise QueryError.invalid_join(
                schema.name, "one side must be the joined bucket and the other a different bucket"
            )
        assert left.field is not None and right.field is not None
        if left.field.repeated and right.field.repeated:
            raise QueryError.repeated_join(left.token, right.token)
        if left.field.repeated:
            on = _member_of(right.sql, left.sql)
        elif right.field.repeated:
            on = _member_of(left.sql, right.sql)
        else:
            on = f"{left.sql} = {right.sql}"
        return f"LEFT JOIN {quote_identifier(schema.table_name)} ON {on}"

    def _condition(self, node: Condition, scope: ColumnScope, params: _Params) -> str:
        if isinstance(node, And):
            return "(" + " AND ".join(self._condition(n, scope, params) for n in node.operands) + ")"
        if isinstance(node, Or):
            return "(" + " OR ".join(self._condition(n, scope, params) for n in node.operands) + ")"
        if isinstance(node, Not):
            return f"(NOT {self._condition(node.operand, scope, params)})"
        if isinstance(node, CategoryTag):
            return f"({scope.resolve(node.column).sql} IS NOT NULL)"
        return self._compare(node, scope, params)

    def _compare(self, node: Compare, scope: ColumnScope, params: _Params) -> str:
        column = scope.resolve(node.column)
        if column.is_category:
            raise QueryError.invalid_condition(
                [node.column, node.op, node.value], "categories cannot be compared with a value"
            )
        assert column.field is not None
        if node.is_null:
            return f"({column.sql} IS NULL)" if node.op == "=" else f"({column.sql} IS NOT NULL)"

        placeholder = params.bind(cast_query_value(node.value, column.field.element()))
        if not column.field.repeated:
            return f"({column.sql} {node.op} {placeholder})"
        if node.op == "=":
            return _member_of(placeholder, column.sql)
        if node.op == "!=":
            return f"(NOT {_member_of(placeholder, column.sql)})"
        return (
            f"EXISTS (SELECT 1 FROM json_each({column.sql}) "
            f"WHERE {placeholder} {_FLIPPED[node.op]} json_each.value)"
        )

    def _order_by(self, request: QueryRequest, scope: ColumnScope, columns: list[ResolvedColumn]) -> list[str]:
        order: list[str] = []
        if request.order_by is not None:
            wanted = scope.resolve(request.order_by.field_name)
            position = next((i for i, c in enumerate(columns) if c.identity == wanted.identity), None)
            if position is None:
                raise QueryError.order_by_not_selected(request.order_by.field_name)
            direction = request.order_by.direction
            if direction not in ("ASC", "DESC"):
                raise QueryError.invalid_direction(direction)
            order.append(f"{quote_identifier(f'c{position}')} {direction}")
        order.append(scope.system_column("_page_id"))
        order.append(scope.system_column("_index"))
        return order

    def _materialize(self, compiled: CompiledQuery, raw: Any) -> dict[str, Any]:
        row: dict[str, Any] = {}
        for i, column in enumerate(compiled.columns):
            value = raw[i]
            if column.is_category:
                row[column.token] = bool(value)
            elif compiled.aggregated[i]:
                assert column.field is not None
                items = json.loads(value) if value else []
                row[column.token] = [cast_for_result(item, column.field) for item in items]
            else:
                assert column.field is not None
                row[column.token] = cast_for_result(value, column.field)
        return row


def _member_of(value_sql: str, array_sql: str) -> str:
    """``value_sql`` is an element of the JSON array in ``array_sql``."""
    return f"EXISTS (SELECT 1 FROM json_each({array_sql}) WHERE json_each.value = {value_sql})"
