"""
Table metadata types and the MetadataSource protocol.

Ingestion only sees TableMetadata; where it comes from (a live database,
a data lake listing, a static catalogue) is the source's business. Live
connectors stay outside this package and plug in by implementing
MetadataSource.

Invariants:
    - from_dict accepts both camelCase (as stored in system configuration
      and raw connector output) and snake_case keys
    - to_dict round-trips through from_dict and uses camelCase, since it
      is stored as rawMetadata on synced objects

How to change safely:
    - New optional fields need a default so older configurations still load
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from ..schema.types import System

logger = logging.getLogger(__name__)

HEURISTIC_CONSTRAINT_PREFIX = "heuristic_fk_"


def _pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass(frozen=True)
class ColumnMetadata:
    """A column of an external table."""

    name: str
    type: str | None = None
    nullable: bool = True
    is_primary_key: bool = False
    length: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "nullable": self.nullable,
            "isPrimaryKey": self.is_primary_key,
            "length": self.length,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ColumnMetadata:
        return cls(
            name=data["name"],
            type=_pick(data, "type", "dataType", "data_type"),
            nullable=bool(_pick(data, "nullable", default=True)),
            is_primary_key=bool(_pick(data, "isPrimaryKey", "is_primary_key", default=False)),
            length=_pick(data, "length"),
        )


@dataclass(frozen=True)
class ForeignKeyMetadata:
    """A foreign key, declared by the source or inferred from column names.

    Attributes:
        columns: Columns on the owning table
        referenced_table: Referenced table, optionally schema-qualified
        referenced_columns: Columns on the referenced table
        constraint_name: Constraint name; inferred keys use the
            ``heuristic_fk_`` prefix
        relationship_type: Cardinality seen from the owning table
    """

    columns: tuple[str, ...]
    referenced_table: str
    referenced_columns: tuple[str, ...]
    referenced_schema: str | None = None
    constraint_name: str | None = None
    update_rule: str | None = None
    delete_rule: str | None = None
    relationship_type: str | None = None

    @property
    def is_heuristic(self) -> bool:
        return bool(self.constraint_name) and self.constraint_name.startswith(
            HEURISTIC_CONSTRAINT_PREFIX
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "constraintName": self.constraint_name,
            "columns": list(self.columns),
            "referencedTable": self.referenced_table,
            "referencedSchema": self.referenced_schema,
            "referencedColumns": list(self.referenced_columns),
            "updateRule": self.update_rule,
            "deleteRule": self.delete_rule,
            "relationshipType": self.relationship_type,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ForeignKeyMetadata:
        return cls(
            columns=tuple(_pick(data, "columns", default=[])),
            referenced_table=_pick(data, "referencedTable", "referenced_table", default=""),
            referenced_columns=tuple(
                _pick(data, "referencedColumns", "referenced_columns", default=[])
            ),
            referenced_schema=_pick(data, "referencedSchema", "referenced_schema"),
            constraint_name=_pick(data, "constraintName", "constraint_name"),
            update_rule=_pick(data, "updateRule", "update_rule"),
            delete_rule=_pick(data, "deleteRule", "delete_rule"),
            relationship_type=_pick(data, "relationshipType", "relationship_type"),
        )


@dataclass(frozen=True)
class TableMetadata:
    """An external table (or dataset) with its columns and foreign keys."""

    name: str
    schema: str | None = None
    original_name: str | None = None
    columns: tuple[ColumnMetadata, ...] = ()
    foreign_keys: tuple[ForeignKeyMetadata, ...] = ()
    row_count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "schema": self.schema,
            "originalName": self.original_name,
            "columns": [column.to_dict() for column in self.columns],
            "foreignKeys": [fk.to_dict() for fk in self.foreign_keys],
            "rowCount": self.row_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TableMetadata:
        return cls(
            name=data["name"],
            schema=_pick(data, "schema"),
            original_name=_pick(data, "originalName", "original_name"),
            columns=tuple(
                ColumnMetadata.from_dict(column) for column in _pick(data, "columns", default=[])
            ),
            foreign_keys=tuple(
                ForeignKeyMetadata.from_dict(fk)
                for fk in _pick(data, "foreignKeys", "foreign_keys", default=[])
            ),
            row_count=_pick(data, "rowCount", "row_count"),
        )


@runtime_checkable
class MetadataSource(Protocol):
    """Provider of table metadata for a connected system."""

    @abstractmethod
    async def fetch_tables(self, system: System) -> list[TableMetadata]:
        """Return the tables the system exposes.

        Args:
            system: The system being synced

        Returns:
            Table metadata, in source order
        """
        ...


class ConfiguredMetadataSource:
    """Reads tables declared under ``configuration["tables"]`` of a system."""

    async def fetch_tables(self, system: System) -> list[TableMetadata]:
        declared = system.configuration.get("tables") or []
        if not isinstance(declared, list):
            logger.warning(
                "System configuration 'tables' is not a list, ignoring",
                extra={"system_id": system.id},
            )
            return []
        return [TableMetadata.from_dict(entry) for entry in declared]


@dataclass
class StaticMetadataSource:
    """Serves a fixed list of tables regardless of the system."""

    tables: list[TableMetadata] = field(default_factory=list)

    async def fetch_tables(self, system: System) -> list[TableMetadata]:
        return list(self.tables)
