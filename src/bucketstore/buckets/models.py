"""Bucket domain types and SQLModel definitions for the fixed relations.

Single source of truth for:
- FieldType and the field/schema value objects every subsystem consumes
- The persisted relations shared across documents (bucket_schemas,
  bucket_pages, category_links)
- Write-time issue records

Per-bucket tables are not modelled here; their DDL is generated from
BucketSchema by the migration engine.
"""

import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from bucketstore.config.constants import TABLE_PREFIX

# ============================================================================
# ENUMS
# ============================================================================


class FieldType(str, Enum):
    """Declared field types.

    JSON is never declared by a schema author; it is the storage type of
    every repeated field.
    """

    BOOLEAN = "BOOLEAN"
    DOUBLE = "DOUBLE"
    INTEGER = "INTEGER"
    TEXT = "TEXT"
    PAGE = "PAGE"
    JSON = "JSON"

    @classmethod
    def declarable(cls) -> "frozenset[FieldType]":
        """Types a schema author may name."""
        return frozenset({cls.BOOLEAN, cls.DOUBLE, cls.INTEGER, cls.TEXT, cls.PAGE})

    @classmethod
    def parse(cls, value: Any) -> "FieldType | None":
        """Case-insensitive lookup of a declarable type, None if unrecognized."""
        if not isinstance(value, str):
            return None
        try:
            parsed = cls(value.strip().upper())
        except ValueError:
            return None
        return parsed if parsed in cls.declarable() else None

    @property
    def is_textual(self) -> bool:
        return self in (FieldType.TEXT, FieldType.PAGE)


class Severity(str, Enum):
    """Issue severity."""

    WARNING = "warning"
    ERROR = "error"


# ============================================================================
# SCHEMA VALUE OBJECTS
# ============================================================================


@dataclass(frozen=True)
class FieldDefinition:
    """One column of a bucket. Invariant: repeated implies indexed."""

    name: str
    type: FieldType
    indexed: bool = True
    repeated: bool = False

    @property
    def storage_type(self) -> "FieldType":
        """JSON for repeated fields, otherwise the declared type."""
        return FieldType.JSON if self.repeated else self.type

    def element(self) -> "FieldDefinition":
        """The non-repeated definition of a single array element."""
        return replace(self, repeated=False)

    def to_json(self) -> dict[str, Any]:
        return {"type": self.type.value, "index": self.indexed, "repeated": self.repeated}

    @classmethod
    def from_json(cls, name: str, data: dict[str, Any]) -> "FieldDefinition":
        return cls(
            name=name,
            type=FieldType(data["type"]),
            indexed=bool(data.get("index", True)),
            repeated=bool(data.get("repeated", False)),
        )


SYSTEM_FIELDS: dict[str, FieldDefinition] = {
    "_page_id": FieldDefinition("_page_id", FieldType.INTEGER, indexed=False),
    "_index": FieldDefinition("_index", FieldType.INTEGER, indexed=False),
    "page_name": FieldDefinition("page_name", FieldType.PAGE, indexed=True),
    "page_name_sub": FieldDefinition("page_name_sub", FieldType.PAGE, indexed=True),
}
"""Fields present in every bucket, in table order."""


@dataclass(frozen=True)
class AliasOf:
    """Marks a bucket name that only serves reads of another bucket."""

    target: str


@dataclass
class BucketSchema:
    """Authoritative definition of one bucket."""

    name: str
    fields: dict[str, FieldDefinition]
    alias_of: AliasOf | None = None

    @property
    def table_name(self) -> str:
        return bucket_table_name(self.name)

    @property
    def is_alias(self) -> bool:
        return self.alias_of is not None

    def field(self, name: str) -> FieldDefinition:
        return self.fields[name]

    def has_field(self, name: str) -> bool:
        return name in self.fields

    def declared_fields(self) -> list[FieldDefinition]:
        """Author-declared fields in order (system fields excluded)."""
        return [f for name, f in self.fields.items() if name not in SYSTEM_FIELDS]

    def to_json(self) -> dict[str, Any]:
        return {name: f.to_json() for name, f in self.fields.items()}

    def dumps(self) -> str:
        return json.dumps(self.to_json(), separators=(",", ":"))

    @classmethod
    def from_record(cls, record: "BucketSchemaRecord") -> "BucketSchema":
        data = json.loads(record.schema_json)
        fields = {name: FieldDefinition.from_json(name, val) for name, val in data.items()}
        alias = AliasOf(record.backing_bucket_name) if record.backing_bucket_name else None
        return cls(name=record.bucket_name, fields=fields, alias_of=alias)


def bucket_table_name(bucket_name: str) -> str:
    return TABLE_PREFIX + bucket_name


# ============================================================================
# PERSISTED RELATIONS
# ============================================================================


class BucketSchemaRecord(SQLModel, table=True):
    """Last applied schema per bucket, read back from the live table."""

    __tablename__ = "bucket_schemas"

    bucket_name: str = Field(primary_key=True)
    schema_json: str
    backing_bucket_name: str | None = Field(default=None, index=True)  # set on aliases only


class BucketPage(SQLModel, table=True):
    """Write fingerprint: which page wrote which bucket, and the content hash."""

    __tablename__ = "bucket_pages"
    __table_args__ = (UniqueConstraint("page_id", "bucket_name"),)

    id: int | None = Field(default=None, primary_key=True)
    page_id: int = Field(index=True)
    bucket_name: str = Field(index=True)
    put_hash: str


class CategoryLink(SQLModel, table=True):
    """Category membership of a page, maintained by the host."""

    __tablename__ = "category_links"

    page_id: int = Field(primary_key=True)
    category: str = Field(primary_key=True, index=True)


# ============================================================================
# WRITE ISSUES
# ============================================================================


@dataclass(frozen=True)
class Issue:
    """A problem found while writing a page, persisted to the issues bucket."""

    bucket: str
    field: str
    severity: Severity
    message: str

    def to_put(self) -> dict[str, Any]:
        """Record shape accepted by the write path."""
        return {
            "sub": "",
            "data": {
                "bucket": self.bucket,
                "field": self.field,
                "severity": self.severity.value,
                "message": self.message,
            },
        }


@dataclass
class WriteResult:
    """Outcome of one write call."""

    page_id: int
    issues: list[Issue] = field(default_factory=list)
    written: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    orphaned: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not any(i.severity is Severity.ERROR for i in self.issues)
