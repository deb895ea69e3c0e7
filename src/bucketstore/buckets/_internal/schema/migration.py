"""Schema diff and migration plan rendering.

A migration is computed by diffing the target BucketSchema against the
live table definition and is expressed as an ordered list of operations.
SQLite cannot combine clauses in one ALTER TABLE or change a column type in
place, so each operation renders to one or more statements and the whole
plan is applied inside a single transaction.

Column type changes use a shadow column:

    ADD "f__migrating" <new type>
    UPDATE ... SET "f__migrating" = <converted "f">
    DROP "f"
    RENAME "f__migrating" TO "f"

SQLite refuses to drop an indexed column, so an index on a modified or
removed column is always dropped first and re-added afterwards when the
field stays indexed.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from bucketstore.buckets._internal.db.quoting import quote_identifier
from bucketstore.buckets._internal.db.types import sql_cast_target, sql_type
from bucketstore.buckets.models import BucketSchema, FieldDefinition, FieldType
from bucketstore.config.constants import MIGRATION_SUFFIX


def index_name(table: str, column: str) -> str:
    return f"ix__{table}__{column}"


# =============================================================================
# Operations
# =============================================================================


@dataclass(frozen=True)
class CreateTable:
    table: str
    fields: tuple[FieldDefinition, ...]

    def statements(self) -> list[str]:
        columns = [
            f"{quote_identifier(f.name)} {sql_type(f)}"
            + (" NOT NULL" if f.name in ("_page_id", "_index") else "")
            for f in self.fields
        ]
        columns.append(f"PRIMARY KEY ({quote_identifier('_page_id')}, {quote_identifier('_index')})")
        create = f"CREATE TABLE {quote_identifier(self.table)} ({', '.join(columns)})"
        indexes = [AddIndex(self.table, f.name).statements()[0] for f in self.fields if f.indexed]
        return [create, *indexes]


@dataclass(frozen=True)
class AddColumn:
    table: str
    field: FieldDefinition

    def statements(self) -> list[str]:
        return [
            f"ALTER TABLE {quote_identifier(self.table)} "
            f"ADD COLUMN {quote_identifier(self.field.name)} {sql_type(self.field)}"
        ]


@dataclass(frozen=True)
class DropColumn:
    table: str
    column: str

    def statements(self) -> list[str]:
        return [f"ALTER TABLE {quote_identifier(self.table)} DROP COLUMN {quote_identifier(self.column)}"]


@dataclass(frozen=True)
class AddIndex:
    table: str
    column: str

    def statements(self) -> list[str]:
        return [
            f"CREATE INDEX {quote_identifier(index_name(self.table, self.column))} "
            f"ON {quote_identifier(self.table)} ({quote_identifier(self.column)})"
        ]


@dataclass(frozen=True)
class DropIndex:
    table: str
    column: str
    name: str

    def statements(self) -> list[str]:
        return [f"DROP INDEX {quote_identifier(self.name)}"]


@dataclass(frozen=True)
class WrapInArray:
    """Data migration: wrap every non-array value in a one-element JSON array."""

    table: str
    column: str

    def statements(self) -> list[str]:
        col = quote_identifier(self.column)
        return [
            f"UPDATE {quote_identifier(self.table)} SET {col} = json_array({col}) "
            f"WHERE {col} IS NOT NULL AND (json_valid({col}) = 0 OR json_type({col}) != 'array')"
        ]


@dataclass(frozen=True)
class ModifyColumn:
    table: str
    old: FieldDefinition
    new: FieldDefinition

    def _converted(self) -> str:
        col = quote_identifier(self.old.name)
        if self.new.repeated:
            # Scalar values were wrapped by a preceding WrapInArray
            return col
        source = col
        if self.old.repeated:
            source = (
                f"CASE WHEN json_valid({col}) AND json_type({col}) = 'array' "
                f"THEN json_extract({col}, '$[0]') ELSE {col} END"
            )
        if self.new.type is FieldType.BOOLEAN:
            return f"(CAST({source} AS INTEGER) != 0)"
        return f"CAST({source} AS {sql_cast_target(self.new.type)})"

    def statements(self) -> list[str]:
        table = quote_identifier(self.table)
        shadow_name = self.new.name + MIGRATION_SUFFIX
        shadow = quote_identifier(shadow_name)
        return [
            f"ALTER TABLE {table} ADD COLUMN {shadow} {sql_type(self.new)}",
            f"UPDATE {table} SET {shadow} = {self._converted()}",
            f"ALTER TABLE {table} DROP COLUMN {quote_identifier(self.old.name)}",
            f"ALTER TABLE {table} RENAME COLUMN {shadow} TO {quote_identifier(self.new.name)}",
        ]


Operation = CreateTable | AddColumn | DropColumn | AddIndex | DropIndex | WrapInArray | ModifyColumn


@dataclass
class MigrationPlan:
    """Ordered operations bringing one live table to its target schema."""

    table: str
    operations: list[Operation] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.operations

    def statements(self) -> list[str]:
        return [stmt for op in self.operations for stmt in op.statements()]


# =============================================================================
# Diff
# =============================================================================


def plan_migration(
    target: BucketSchema,
    live: dict[str, FieldDefinition] | None,
    indexes: dict[str, str] | None = None,
) -> MigrationPlan:
    """Diff ``target`` against the live columns of its table.

    Args:
        target: Schema to migrate to, system fields included.
        live: Live column definitions, or None when the table does not exist.
        indexes: Live index names by column (used to drop indexes by name).
    """
    table = target.table_name
    plan = MigrationPlan(table)
    if live is None:
        plan.operations.append(CreateTable(table, tuple(target.fields.values())))
        return plan

    indexes = indexes or {}
    ops = plan.operations

    for name, old in live.items():
        if name in target.fields:
            continue
        if name in indexes:
            ops.append(DropIndex(table, name, indexes[name]))
        ops.append(DropColumn(table, name))

    for name, new in target.fields.items():
        old = live.get(name)
        if old is None:
            ops.append(AddColumn(table, new))
            if new.indexed:
                ops.append(AddIndex(table, name))
            continue

        if sql_type(old) != sql_type(new):
            if name in indexes:
                ops.append(DropIndex(table, name, indexes[name]))
            if new.repeated and not old.repeated:
                ops.append(WrapInArray(table, name))
            ops.append(ModifyColumn(table, old, new))
            if new.indexed:
                ops.append(AddIndex(table, name))
        elif new.indexed and name not in indexes:
            ops.append(AddIndex(table, name))
        elif not new.indexed and name in indexes:
            ops.append(DropIndex(table, name, indexes[name]))

    return plan
