"""
SQLite entity store for LayerSync.

This module manages the single SQLite database that stores:
- Data models and connected systems
- Canonical objects, attributes and relationships
- Per-model layer projections of objects, attributes and relationships

Invariants:
    - One connection per operation; SQLite handles concurrent readers via WAL
    - Multi-statement writes run inside BEGIN IMMEDIATE ... COMMIT
    - JSON blobs (metadata, layer_specific_config, configuration) are
      read-merge-written so keys owned by other components survive updates
    - Deleting an object removes everything that references it

How to change safely:
    - Schema migrations must be backward compatible (add columns with defaults)
    - Bump SCHEMA_VERSION when the schema changes
    - Keep the get_* methods returning None for unknown ids; handlers
      decide whether absence is an error

Table schema (all ids INTEGER PRIMARY KEY AUTOINCREMENT, times Unix ms):
    models(name, layer, parent_model_id, target_system_id, domain_id, data_area_id)
    systems(name UNIQUE, category, type, configuration_json, can_be_source, can_be_target)
    data_objects(name, model_id, ..., metadata_json, position_json)
    attributes(object_id, name, conceptual/logical/physical/data type, key flags, order_index)
    model_objects(object_id, model_id, ..., metadata_json, layer_config_json)
    model_attributes(attribute_id, model_object_id, model_id, ..., layer_config_json)
    object_relationships(source_object_id, target_object_id, type, level, attrs, metadata_json)
    model_relationships(model_id, layer, source/target model object, type, level, attrs, handles)

Layer relationships deliberately carry no uniqueness constraint: lookups go
through the direction-insensitive matcher, and removals delete every match.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import time
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Any

from ..schema.types import (
    Attribute,
    DataModel,
    DataObject,
    ModelAttribute,
    ModelLayer,
    ModelObject,
    ModelRelationship,
    ObjectRelationship,
    RelationshipLevel,
    RelationshipType,
    System,
)

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _to_db(value: Any) -> Any:
    """Convert a Python value into its column representation."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, dict):
        return json.dumps(value)
    return value


def _load_json(raw: str | None, default: Any = None) -> Any:
    if raw is None:
        return default
    return json.loads(raw)


# Columns that callers may patch, mapped to their storage column.
_OBJECT_COLUMNS = {
    "name": "name",
    "domain_id": "domain_id",
    "data_area_id": "data_area_id",
    "source_system_id": "source_system_id",
    "target_system_id": "target_system_id",
    "system_id": "system_id",
    "object_type": "object_type",
    "description": "description",
    "position": "position_json",
    "is_new": "is_new",
}

_ATTRIBUTE_COLUMNS = {
    name: name
    for name in (
        "name",
        "conceptual_type",
        "logical_type",
        "physical_type",
        "data_type",
        "length",
        "precision",
        "scale",
        "nullable",
        "is_primary_key",
        "is_foreign_key",
        "order_index",
        "description",
    )
}

_MODEL_OBJECT_COLUMNS = {
    "target_system_id": "target_system_id",
    "position": "position_json",
    "is_visible": "is_visible",
}

_OBJECT_RELATIONSHIP_COLUMNS = {
    "source_object_id": "source_object_id",
    "target_object_id": "target_object_id",
    "type": "type",
    "relationship_level": "relationship_level",
    "source_attribute_id": "source_attribute_id",
    "target_attribute_id": "target_attribute_id",
    "name": "name",
    "description": "description",
}

_MODEL_RELATIONSHIP_COLUMNS = {
    "source_model_object_id": "source_model_object_id",
    "target_model_object_id": "target_model_object_id",
    "type": "type",
    "relationship_level": "relationship_level",
    "source_attribute_id": "source_attribute_id",
    "target_attribute_id": "target_attribute_id",
    "source_handle": "source_handle",
    "target_handle": "target_handle",
    "name": "name",
    "description": "description",
}


class ModelStore:
    """SQLite store for models, canonical records and layer projections.

    All public methods are async so handlers can gather independent reads;
    the work itself is a short synchronous SQLite call.

    Thread safety:
        Each database connection is created per-operation.
        SQLite handles concurrent access via WAL mode.

    Example:
        >>> store = ModelStore("/var/lib/layersync")
        >>> await store.initialize()
        >>> model = await store.create_model("Sales", ModelLayer.CONCEPTUAL)
    """

    # SQLite schema version for migrations
    SCHEMA_VERSION = 1

    def __init__(
        self,
        data_dir: str,
        db_name: str = "layersync.db",
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        cache_size_pages: int = -64000,
    ) -> None:
        """Initialize the model store.

        Args:
            data_dir: Directory for the SQLite database file
            db_name: Database file name
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
            cache_size_pages: SQLite cache size (negative = KB)
        """
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / db_name
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self.cache_size_pages = cache_size_pages
        self._lock = asyncio.Lock()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection to the database."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            conn.execute(f"PRAGMA cache_size = {self.cache_size_pages}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")

            yield conn
        finally:
            conn.close()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        """Create database schema."""
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS models (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                layer TEXT NOT NULL,
                parent_model_id INTEGER,
                target_system_id INTEGER,
                domain_id INTEGER,
                data_area_id INTEGER,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_models_parent ON models(parent_model_id);

            CREATE TABLE IF NOT EXISTS systems (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                category TEXT NOT NULL,
                type TEXT NOT NULL,
                configuration_json TEXT NOT NULL DEFAULT '{}',
                can_be_source INTEGER NOT NULL DEFAULT 1,
                can_be_target INTEGER NOT NULL DEFAULT 1,
                created_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS data_objects (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                model_id INTEGER NOT NULL,
                domain_id INTEGER,
                data_area_id INTEGER,
                source_system_id INTEGER,
                target_system_id INTEGER,
                system_id INTEGER,
                object_type TEXT,
                description TEXT,
                position_json TEXT,
                metadata_json TEXT NOT NULL DEFAULT '{}',
                is_new INTEGER NOT NULL DEFAULT 1,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_objects_model ON data_objects(model_id);

            CREATE TABLE IF NOT EXISTS attributes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                object_id INTEGER NOT NULL,
                name TEXT NOT NULL,
                conceptual_type TEXT,
                logical_type TEXT,
                physical_type TEXT,
                data_type TEXT,
                length INTEGER,
                precision INTEGER,
                scale INTEGER,
                nullable INTEGER NOT NULL DEFAULT 1,
                is_primary_key INTEGER NOT NULL DEFAULT 0,
                is_foreign_key INTEGER NOT NULL DEFAULT 0,
                order_index INTEGER NOT NULL DEFAULT 0,
                description TEXT,
                created_at INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_attributes_object ON attributes(object_id);

            CREATE TABLE IF NOT EXISTS model_objects (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                object_id INTEGER NOT NULL,
                model_id INTEGER NOT NULL,
                target_system_id INTEGER,
                position_json TEXT,
                metadata_json TEXT NOT NULL DEFAULT '{}',
                is_visible INTEGER NOT NULL DEFAULT 1,
                layer_config_json TEXT NOT NULL DEFAULT '{}',
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_model_objects_model ON model_objects(model_id);
            CREATE INDEX IF NOT EXISTS idx_model_objects_object ON model_objects(object_id);

            CREATE TABLE IF NOT EXISTS model_attributes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                attribute_id INTEGER NOT NULL,
                model_object_id INTEGER NOT NULL,
                model_id INTEGER NOT NULL,
                conceptual_type TEXT,
                logical_type TEXT,
                physical_type TEXT,
                nullable INTEGER NOT NULL DEFAULT 1,
                is_primary_key INTEGER NOT NULL DEFAULT 0,
                is_foreign_key INTEGER NOT NULL DEFAULT 0,
                order_index INTEGER NOT NULL DEFAULT 0,
                layer_config_json TEXT NOT NULL DEFAULT '{}',
                created_at INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_model_attributes_model ON model_attributes(model_id);
            CREATE INDEX IF NOT EXISTS idx_model_attributes_object
                ON model_attributes(model_object_id);

            CREATE TABLE IF NOT EXISTS object_relationships (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                source_object_id INTEGER NOT NULL,
                target_object_id INTEGER NOT NULL,
                type TEXT NOT NULL,
                relationship_level TEXT NOT NULL DEFAULT 'object',
                source_attribute_id INTEGER,
                target_attribute_id INTEGER,
                name TEXT,
                description TEXT,
                metadata_json TEXT NOT NULL DEFAULT '{}',
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_object_rel_source ON object_relationships(source_object_id);
            CREATE INDEX IF NOT EXISTS idx_object_rel_target ON object_relationships(target_object_id);

            CREATE TABLE IF NOT EXISTS model_relationships (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                model_id INTEGER NOT NULL,
                layer TEXT NOT NULL,
                source_model_object_id INTEGER NOT NULL,
                target_model_object_id INTEGER NOT NULL,
                type TEXT NOT NULL,
                relationship_level TEXT NOT NULL DEFAULT 'object',
                source_attribute_id INTEGER,
                target_attribute_id INTEGER,
                source_handle TEXT,
                target_handle TEXT,
                name TEXT,
                description TEXT,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_model_rel_model ON model_relationships(model_id);

            INSERT OR IGNORE INTO schema_version (version, applied_at)
            VALUES (1, strftime('%s', 'now') * 1000);
        """)

    async def initialize(self) -> None:
        """Create the database file and schema if they don't exist."""
        async with self._lock:
            with self._get_connection() as conn:
                self._create_schema(conn)
        logger.info(f"Initialized model store: {self.db_path}")

    # --- Row conversion ---

    @staticmethod
    def _row_to_model(row: sqlite3.Row) -> DataModel:
        return DataModel(
            id=row["id"],
            name=row["name"],
            layer=ModelLayer.from_str(row["layer"]),
            parent_model_id=row["parent_model_id"],
            target_system_id=row["target_system_id"],
            domain_id=row["domain_id"],
            data_area_id=row["data_area_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_system(row: sqlite3.Row) -> System:
        return System(
            id=row["id"],
            name=row["name"],
            category=row["category"],
            type=row["type"],
            configuration=_load_json(row["configuration_json"], {}),
            can_be_source=bool(row["can_be_source"]),
            can_be_target=bool(row["can_be_target"]),
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_object(row: sqlite3.Row) -> DataObject:
        return DataObject(
            id=row["id"],
            name=row["name"],
            model_id=row["model_id"],
            domain_id=row["domain_id"],
            data_area_id=row["data_area_id"],
            source_system_id=row["source_system_id"],
            target_system_id=row["target_system_id"],
            system_id=row["system_id"],
            object_type=row["object_type"],
            description=row["description"],
            position=_load_json(row["position_json"]),
            metadata=_load_json(row["metadata_json"], {}),
            is_new=bool(row["is_new"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_attribute(row: sqlite3.Row) -> Attribute:
        return Attribute(
            id=row["id"],
            object_id=row["object_id"],
            name=row["name"],
            conceptual_type=row["conceptual_type"],
            logical_type=row["logical_type"],
            physical_type=row["physical_type"],
            data_type=row["data_type"],
            length=row["length"],
            precision=row["precision"],
            scale=row["scale"],
            nullable=bool(row["nullable"]),
            is_primary_key=bool(row["is_primary_key"]),
            is_foreign_key=bool(row["is_foreign_key"]),
            order_index=row["order_index"],
            description=row["description"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_model_object(row: sqlite3.Row) -> ModelObject:
        return ModelObject(
            id=row["id"],
            object_id=row["object_id"],
            model_id=row["model_id"],
            target_system_id=row["target_system_id"],
            position=_load_json(row["position_json"]),
            metadata=_load_json(row["metadata_json"], {}),
            is_visible=bool(row["is_visible"]),
            layer_specific_config=_load_json(row["layer_config_json"], {}),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_model_attribute(row: sqlite3.Row) -> ModelAttribute:
        return ModelAttribute(
            id=row["id"],
            attribute_id=row["attribute_id"],
            model_object_id=row["model_object_id"],
            model_id=row["model_id"],
            conceptual_type=row["conceptual_type"],
            logical_type=row["logical_type"],
            physical_type=row["physical_type"],
            nullable=bool(row["nullable"]),
            is_primary_key=bool(row["is_primary_key"]),
            is_foreign_key=bool(row["is_foreign_key"]),
            order_index=row["order_index"],
            layer_specific_config=_load_json(row["layer_config_json"], {}),
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_object_relationship(row: sqlite3.Row) -> ObjectRelationship:
        return ObjectRelationship(
            id=row["id"],
            source_object_id=row["source_object_id"],
            target_object_id=row["target_object_id"],
            type=RelationshipType(row["type"]),
            relationship_level=RelationshipLevel(row["relationship_level"]),
            source_attribute_id=row["source_attribute_id"],
            target_attribute_id=row["target_attribute_id"],
            name=row["name"],
            description=row["description"],
            metadata=_load_json(row["metadata_json"], {}),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_model_relationship(row: sqlite3.Row) -> ModelRelationship:
        return ModelRelationship(
            id=row["id"],
            model_id=row["model_id"],
            layer=ModelLayer.from_str(row["layer"]),
            source_model_object_id=row["source_model_object_id"],
            target_model_object_id=row["target_model_object_id"],
            type=RelationshipType(row["type"]),
            relationship_level=RelationshipLevel(row["relationship_level"]),
            source_attribute_id=row["source_attribute_id"],
            target_attribute_id=row["target_attribute_id"],
            source_handle=row["source_handle"],
            target_handle=row["target_handle"],
            name=row["name"],
            description=row["description"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    # --- Generic helpers ---

    def _insert(self, table: str, values: dict[str, Any]) -> int:
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        with self._get_connection() as conn:
            cursor = conn.execute(
                f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
                tuple(_to_db(v) for v in values.values()),
            )
            return int(cursor.lastrowid)

    def _fetch_one(self, sql: str, params: tuple[Any, ...]) -> sqlite3.Row | None:
        with self._get_connection() as conn:
            return conn.execute(sql, params).fetchone()

    def _fetch_all(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        with self._get_connection() as conn:
            return conn.execute(sql, params).fetchall()

    def _patch(
        self,
        table: str,
        row_id: int,
        patch: dict[str, Any],
        columns: dict[str, str],
        merge_json: dict[str, str] | None = None,
        touch: bool = True,
    ) -> sqlite3.Row | None:
        """Apply a partial update and return the refreshed row.

        Args:
            table: Table name
            row_id: Row id
            patch: Field values keyed by record field name
            columns: Patchable record fields mapped to storage columns
            merge_json: JSON record fields merged into the stored blob,
                mapped to their storage column
            touch: Whether to bump updated_at

        Returns:
            Updated row or None if not found

        Raises:
            ValueError: If the patch names an unknown field
        """
        merge_json = merge_json or {}
        unknown = set(patch) - set(columns) - set(merge_json)
        if unknown:
            raise ValueError(f"Cannot update fields on {table}: {sorted(unknown)}")

        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (row_id,)).fetchone()
                if not row:
                    conn.execute("ROLLBACK")
                    return None

                assignments: list[str] = []
                params: list[Any] = []
                for field_name, value in patch.items():
                    if field_name in merge_json:
                        column = merge_json[field_name]
                        existing = _load_json(row[column], {})
                        existing.update(value or {})
                        assignments.append(f"{column} = ?")
                        params.append(json.dumps(existing))
                    else:
                        column = columns[field_name]
                        if column.endswith("_json"):
                            value = json.dumps(value) if value is not None else None
                        assignments.append(f"{column} = ?")
                        params.append(_to_db(value))

                if touch:
                    assignments.append("updated_at = ?")
                    params.append(_now_ms())

                if assignments:
                    conn.execute(
                        f"UPDATE {table} SET {', '.join(assignments)} WHERE id = ?",
                        (*params, row_id),
                    )

                updated = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (row_id,)).fetchone()
                conn.execute("COMMIT")
                return updated

            except Exception:
                conn.execute("ROLLBACK")
                raise

    def _delete(self, table: str, row_id: int) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(f"DELETE FROM {table} WHERE id = ?", (row_id,))
            return cursor.rowcount > 0

    # --- Models ---

    async def create_model(
        self,
        name: str,
        layer: ModelLayer,
        parent_model_id: int | None = None,
        target_system_id: int | None = None,
        domain_id: int | None = None,
        data_area_id: int | None = None,
    ) -> DataModel:
        """Create a data model."""
        now = _now_ms()
        model_id = self._insert(
            "models",
            {
                "name": name,
                "layer": layer,
                "parent_model_id": parent_model_id,
                "target_system_id": target_system_id,
                "domain_id": domain_id,
                "data_area_id": data_area_id,
                "created_at": now,
                "updated_at": now,
            },
        )
        return DataModel(
            id=model_id,
            name=name,
            layer=layer,
            parent_model_id=parent_model_id,
            target_system_id=target_system_id,
            domain_id=domain_id,
            data_area_id=data_area_id,
            created_at=now,
            updated_at=now,
        )

    async def get_model(self, model_id: int) -> DataModel | None:
        row = self._fetch_one("SELECT * FROM models WHERE id = ?", (model_id,))
        return self._row_to_model(row) if row else None

    async def list_models(self) -> list[DataModel]:
        rows = self._fetch_all("SELECT * FROM models ORDER BY id")
        return [self._row_to_model(row) for row in rows]

    # --- Systems ---

    async def create_system(
        self,
        name: str,
        category: str,
        type: str,
        configuration: dict[str, Any] | None = None,
        can_be_source: bool = True,
        can_be_target: bool = True,
    ) -> System:
        """Register a connected system.

        Raises:
            sqlite3.IntegrityError: If a system with the same name exists
        """
        now = _now_ms()
        configuration = configuration or {}
        system_id = self._insert(
            "systems",
            {
                "name": name,
                "category": category,
                "type": type,
                "configuration_json": configuration,
                "can_be_source": can_be_source,
                "can_be_target": can_be_target,
                "created_at": now,
            },
        )
        return System(
            id=system_id,
            name=name,
            category=category,
            type=type,
            configuration=configuration,
            can_be_source=can_be_source,
            can_be_target=can_be_target,
            created_at=now,
        )

    async def get_system(self, system_id: int) -> System | None:
        row = self._fetch_one("SELECT * FROM systems WHERE id = ?", (system_id,))
        return self._row_to_system(row) if row else None

    async def get_system_by_name(self, name: str) -> System | None:
        row = self._fetch_one("SELECT * FROM systems WHERE name = ?", (name,))
        return self._row_to_system(row) if row else None

    async def list_systems(self) -> list[System]:
        rows = self._fetch_all("SELECT * FROM systems ORDER BY id")
        return [self._row_to_system(row) for row in rows]

    # --- Canonical objects ---

    async def create_object(
        self,
        name: str,
        model_id: int,
        domain_id: int | None = None,
        data_area_id: int | None = None,
        source_system_id: int | None = None,
        target_system_id: int | None = None,
        system_id: int | None = None,
        object_type: str | None = None,
        description: str | None = None,
        position: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
        is_new: bool = True,
    ) -> DataObject:
        """Create a canonical object in its home model."""
        now = _now_ms()
        metadata = metadata or {}
        object_id = self._insert(
            "data_objects",
            {
                "name": name,
                "model_id": model_id,
                "domain_id": domain_id,
                "data_area_id": data_area_id,
                "source_system_id": source_system_id,
                "target_system_id": target_system_id,
                "system_id": system_id,
                "object_type": object_type,
                "description": description,
                "position_json": json.dumps(position) if position is not None else None,
                "metadata_json": metadata,
                "is_new": is_new,
                "created_at": now,
                "updated_at": now,
            },
        )
        return DataObject(
            id=object_id,
            name=name,
            model_id=model_id,
            domain_id=domain_id,
            data_area_id=data_area_id,
            source_system_id=source_system_id,
            target_system_id=target_system_id,
            system_id=system_id,
            object_type=object_type,
            description=description,
            position=position,
            metadata=metadata,
            is_new=is_new,
            created_at=now,
            updated_at=now,
        )

    async def get_object(self, object_id: int) -> DataObject | None:
        row = self._fetch_one("SELECT * FROM data_objects WHERE id = ?", (object_id,))
        return self._row_to_object(row) if row else None

    async def list_objects_by_model(self, model_id: int) -> list[DataObject]:
        rows = self._fetch_all(
            "SELECT * FROM data_objects WHERE model_id = ? ORDER BY id", (model_id,)
        )
        return [self._row_to_object(row) for row in rows]

    async def update_object(self, object_id: int, patch: dict[str, Any]) -> DataObject | None:
        """Update a canonical object.

        Uses PATCH semantics; ``metadata`` is merged into the stored blob.

        Returns:
            Updated DataObject or None if not found
        """
        row = self._patch(
            "data_objects",
            object_id,
            patch,
            _OBJECT_COLUMNS,
            merge_json={"metadata": "metadata_json"},
        )
        return self._row_to_object(row) if row else None

    async def delete_object(self, object_id: int) -> bool:
        """Delete a canonical object and everything that references it.

        Removes its attributes, its layer projections (object, attribute and
        relationship) and every canonical relationship touching it.

        Returns:
            True if deleted, False if not found
        """
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                model_object_ids = [
                    r["id"]
                    for r in conn.execute(
                        "SELECT id FROM model_objects WHERE object_id = ?", (object_id,)
                    ).fetchall()
                ]
                attribute_ids = [
                    r["id"]
                    for r in conn.execute(
                        "SELECT id FROM attributes WHERE object_id = ?", (object_id,)
                    ).fetchall()
                ]

                for model_object_id in model_object_ids:
                    conn.execute(
                        """
                        DELETE FROM model_relationships
                        WHERE source_model_object_id = ? OR target_model_object_id = ?
                        """,
                        (model_object_id, model_object_id),
                    )
                    conn.execute(
                        "DELETE FROM model_attributes WHERE model_object_id = ?",
                        (model_object_id,),
                    )

                for attribute_id in attribute_ids:
                    conn.execute(
                        "DELETE FROM model_attributes WHERE attribute_id = ?", (attribute_id,)
                    )

                conn.execute("DELETE FROM model_objects WHERE object_id = ?", (object_id,))
                conn.execute(
                    """
                    DELETE FROM object_relationships
                    WHERE source_object_id = ? OR target_object_id = ?
                    """,
                    (object_id, object_id),
                )
                conn.execute("DELETE FROM attributes WHERE object_id = ?", (object_id,))
                cursor = conn.execute("DELETE FROM data_objects WHERE id = ?", (object_id,))

                conn.execute("COMMIT")
                return cursor.rowcount > 0

            except Exception:
                conn.execute("ROLLBACK")
                raise

    # --- Canonical attributes ---

    async def create_attribute(
        self,
        object_id: int,
        name: str,
        conceptual_type: str | None = None,
        logical_type: str | None = None,
        physical_type: str | None = None,
        data_type: str | None = None,
        length: int | None = None,
        precision: int | None = None,
        scale: int | None = None,
        nullable: bool = True,
        is_primary_key: bool = False,
        is_foreign_key: bool = False,
        order_index: int = 0,
        description: str | None = None,
    ) -> Attribute:
        """Create a canonical attribute on an object."""
        now = _now_ms()
        values = {
            "object_id": object_id,
            "name": name,
            "conceptual_type": conceptual_type,
            "logical_type": logical_type,
            "physical_type": physical_type,
            "data_type": data_type,
            "length": length,
            "precision": precision,
            "scale": scale,
            "nullable": nullable,
            "is_primary_key": is_primary_key,
            "is_foreign_key": is_foreign_key,
            "order_index": order_index,
            "description": description,
            "created_at": now,
        }
        attribute_id = self._insert("attributes", values)
        return Attribute(id=attribute_id, **values)

    async def get_attribute(self, attribute_id: int) -> Attribute | None:
        row = self._fetch_one("SELECT * FROM attributes WHERE id = ?", (attribute_id,))
        return self._row_to_attribute(row) if row else None

    async def list_attributes_by_object(self, object_id: int) -> list[Attribute]:
        rows = self._fetch_all(
            "SELECT * FROM attributes WHERE object_id = ? ORDER BY order_index, id",
            (object_id,),
        )
        return [self._row_to_attribute(row) for row in rows]

    async def update_attribute(self, attribute_id: int, patch: dict[str, Any]) -> Attribute | None:
        row = self._patch("attributes", attribute_id, patch, _ATTRIBUTE_COLUMNS, touch=False)
        return self._row_to_attribute(row) if row else None

    async def delete_attribute(self, attribute_id: int) -> bool:
        """Delete a canonical attribute and everything that references it.

        Removes its attribute projections and every canonical or layer
        relationship keyed on it.

        Returns:
            True if deleted, False if not found
        """
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                model_attribute_ids = [
                    r["id"]
                    for r in conn.execute(
                        "SELECT id FROM model_attributes WHERE attribute_id = ?", (attribute_id,)
                    ).fetchall()
                ]
                for model_attribute_id in model_attribute_ids:
                    conn.execute(
                        """
                        DELETE FROM model_relationships
                        WHERE source_attribute_id = ? OR target_attribute_id = ?
                        """,
                        (model_attribute_id, model_attribute_id),
                    )
                conn.execute("DELETE FROM model_attributes WHERE attribute_id = ?", (attribute_id,))
                conn.execute(
                    """
                    DELETE FROM object_relationships
                    WHERE source_attribute_id = ? OR target_attribute_id = ?
                    """,
                    (attribute_id, attribute_id),
                )
                cursor = conn.execute("DELETE FROM attributes WHERE id = ?", (attribute_id,))

                conn.execute("COMMIT")
                return cursor.rowcount > 0

            except Exception:
                conn.execute("ROLLBACK")
                raise

    # --- Layer object projections ---

    async def create_model_object(
        self,
        object_id: int,
        model_id: int,
        target_system_id: int | None = None,
        position: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
        is_visible: bool = True,
        layer_specific_config: dict[str, Any] | None = None,
    ) -> ModelObject:
        """Create the projection of a canonical object inside a model."""
        now = _now_ms()
        metadata = metadata or {}
        layer_specific_config = layer_specific_config or {}
        model_object_id = self._insert(
            "model_objects",
            {
                "object_id": object_id,
                "model_id": model_id,
                "target_system_id": target_system_id,
                "position_json": json.dumps(position) if position is not None else None,
                "metadata_json": metadata,
                "is_visible": is_visible,
                "layer_config_json": layer_specific_config,
                "created_at": now,
                "updated_at": now,
            },
        )
        return ModelObject(
            id=model_object_id,
            object_id=object_id,
            model_id=model_id,
            target_system_id=target_system_id,
            position=position,
            metadata=metadata,
            is_visible=is_visible,
            layer_specific_config=layer_specific_config,
            created_at=now,
            updated_at=now,
        )

    async def get_model_object(self, model_object_id: int) -> ModelObject | None:
        row = self._fetch_one("SELECT * FROM model_objects WHERE id = ?", (model_object_id,))
        return self._row_to_model_object(row) if row else None

    async def list_model_objects_by_model(self, model_id: int) -> list[ModelObject]:
        rows = self._fetch_all(
            "SELECT * FROM model_objects WHERE model_id = ? ORDER BY id", (model_id,)
        )
        return [self._row_to_model_object(row) for row in rows]

    async def list_model_objects(self) -> list[ModelObject]:
        rows = self._fetch_all("SELECT * FROM model_objects ORDER BY id")
        return [self._row_to_model_object(row) for row in rows]

    async def update_model_object(
        self, model_object_id: int, patch: dict[str, Any]
    ) -> ModelObject | None:
        """Update a layer object projection.

        ``metadata`` and ``layer_specific_config`` are merged into the stored
        blobs (read-merge-write); other fields are replaced.

        Returns:
            Updated ModelObject or None if not found
        """
        row = self._patch(
            "model_objects",
            model_object_id,
            patch,
            _MODEL_OBJECT_COLUMNS,
            merge_json={
                "metadata": "metadata_json",
                "layer_specific_config": "layer_config_json",
            },
        )
        return self._row_to_model_object(row) if row else None

    # --- Layer attribute projections ---

    async def create_model_attribute(
        self,
        attribute_id: int,
        model_object_id: int,
        model_id: int,
        conceptual_type: str | None = None,
        logical_type: str | None = None,
        physical_type: str | None = None,
        nullable: bool = True,
        is_primary_key: bool = False,
        is_foreign_key: bool = False,
        order_index: int = 0,
        layer_specific_config: dict[str, Any] | None = None,
    ) -> ModelAttribute:
        """Create the projection of a canonical attribute inside a model."""
        now = _now_ms()
        layer_specific_config = layer_specific_config or {}
        model_attribute_id = self._insert(
            "model_attributes",
            {
                "attribute_id": attribute_id,
                "model_object_id": model_object_id,
                "model_id": model_id,
                "conceptual_type": conceptual_type,
                "logical_type": logical_type,
                "physical_type": physical_type,
                "nullable": nullable,
                "is_primary_key": is_primary_key,
                "is_foreign_key": is_foreign_key,
                "order_index": order_index,
                "layer_config_json": layer_specific_config,
                "created_at": now,
            },
        )
        return ModelAttribute(
            id=model_attribute_id,
            attribute_id=attribute_id,
            model_object_id=model_object_id,
            model_id=model_id,
            conceptual_type=conceptual_type,
            logical_type=logical_type,
            physical_type=physical_type,
            nullable=nullable,
            is_primary_key=is_primary_key,
            is_foreign_key=is_foreign_key,
            order_index=order_index,
            layer_specific_config=layer_specific_config,
            created_at=now,
        )

    async def get_model_attribute(self, model_attribute_id: int) -> ModelAttribute | None:
        row = self._fetch_one(
            "SELECT * FROM model_attributes WHERE id = ?", (model_attribute_id,)
        )
        return self._row_to_model_attribute(row) if row else None

    async def list_model_attributes_by_model(self, model_id: int) -> list[ModelAttribute]:
        rows = self._fetch_all(
            "SELECT * FROM model_attributes WHERE model_id = ? ORDER BY id", (model_id,)
        )
        return [self._row_to_model_attribute(row) for row in rows]

    async def list_model_attributes_by_model_object(
        self, model_object_id: int
    ) -> list[ModelAttribute]:
        rows = self._fetch_all(
            "SELECT * FROM model_attributes WHERE model_object_id = ? ORDER BY order_index, id",
            (model_object_id,),
        )
        return [self._row_to_model_attribute(row) for row in rows]

    # --- Canonical relationships ---

    async def create_object_relationship(
        self,
        source_object_id: int,
        target_object_id: int,
        type: RelationshipType,
        relationship_level: RelationshipLevel = RelationshipLevel.OBJECT,
        source_attribute_id: int | None = None,
        target_attribute_id: int | None = None,
        name: str | None = None,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ObjectRelationship:
        """Create a canonical relationship."""
        now = _now_ms()
        metadata = metadata or {}
        relationship_id = self._insert(
            "object_relationships",
            {
                "source_object_id": source_object_id,
                "target_object_id": target_object_id,
                "type": type,
                "relationship_level": relationship_level,
                "source_attribute_id": source_attribute_id,
                "target_attribute_id": target_attribute_id,
                "name": name,
                "description": description,
                "metadata_json": metadata,
                "created_at": now,
                "updated_at": now,
            },
        )
        return ObjectRelationship(
            id=relationship_id,
            source_object_id=source_object_id,
            target_object_id=target_object_id,
            type=type,
            relationship_level=relationship_level,
            source_attribute_id=source_attribute_id,
            target_attribute_id=target_attribute_id,
            name=name,
            description=description,
            metadata=metadata,
            created_at=now,
            updated_at=now,
        )

    async def get_object_relationship(self, relationship_id: int) -> ObjectRelationship | None:
        row = self._fetch_one(
            "SELECT * FROM object_relationships WHERE id = ?", (relationship_id,)
        )
        return self._row_to_object_relationship(row) if row else None

    async def list_object_relationships(self) -> list[ObjectRelationship]:
        rows = self._fetch_all("SELECT * FROM object_relationships ORDER BY id")
        return [self._row_to_object_relationship(row) for row in rows]

    async def list_object_relationships_by_object(self, object_id: int) -> list[ObjectRelationship]:
        """List canonical relationships where the object is either endpoint."""
        rows = self._fetch_all(
            """
            SELECT * FROM object_relationships
            WHERE source_object_id = ? OR target_object_id = ?
            ORDER BY id
            """,
            (object_id, object_id),
        )
        return [self._row_to_object_relationship(row) for row in rows]

    async def update_object_relationship(
        self, relationship_id: int, patch: dict[str, Any]
    ) -> ObjectRelationship | None:
        row = self._patch(
            "object_relationships",
            relationship_id,
            patch,
            _OBJECT_RELATIONSHIP_COLUMNS,
            merge_json={"metadata": "metadata_json"},
        )
        return self._row_to_object_relationship(row) if row else None

    async def delete_object_relationship(self, relationship_id: int) -> bool:
        return self._delete("object_relationships", relationship_id)

    # --- Layer relationships ---

    async def create_model_relationship(
        self,
        model_id: int,
        layer: ModelLayer,
        source_model_object_id: int,
        target_model_object_id: int,
        type: RelationshipType,
        relationship_level: RelationshipLevel = RelationshipLevel.OBJECT,
        source_attribute_id: int | None = None,
        target_attribute_id: int | None = None,
        source_handle: str | None = None,
        target_handle: str | None = None,
        name: str | None = None,
        description: str | None = None,
    ) -> ModelRelationship:
        """Create a layer relationship projection inside a model."""
        now = _now_ms()
        values = {
            "model_id": model_id,
            "layer": layer,
            "source_model_object_id": source_model_object_id,
            "target_model_object_id": target_model_object_id,
            "type": type,
            "relationship_level": relationship_level,
            "source_attribute_id": source_attribute_id,
            "target_attribute_id": target_attribute_id,
            "source_handle": source_handle,
            "target_handle": target_handle,
            "name": name,
            "description": description,
            "created_at": now,
            "updated_at": now,
        }
        relationship_id = self._insert("model_relationships", values)
        return ModelRelationship(id=relationship_id, **values)

    async def get_model_relationship(self, relationship_id: int) -> ModelRelationship | None:
        row = self._fetch_one(
            "SELECT * FROM model_relationships WHERE id = ?", (relationship_id,)
        )
        return self._row_to_model_relationship(row) if row else None

    async def list_model_relationships_by_model(self, model_id: int) -> list[ModelRelationship]:
        rows = self._fetch_all(
            "SELECT * FROM model_relationships WHERE model_id = ? ORDER BY id", (model_id,)
        )
        return [self._row_to_model_relationship(row) for row in rows]

    async def update_model_relationship(
        self, relationship_id: int, patch: dict[str, Any]
    ) -> ModelRelationship | None:
        row = self._patch(
            "model_relationships", relationship_id, patch, _MODEL_RELATIONSHIP_COLUMNS
        )
        return self._row_to_model_relationship(row) if row else None

    async def delete_model_relationship(self, relationship_id: int) -> bool:
        return self._delete("model_relationships", relationship_id)

    # --- Maintenance ---

    async def get_stats(self) -> dict[str, int]:
        """Get row counts per table."""
        tables = (
            "models",
            "systems",
            "data_objects",
            "attributes",
            "model_objects",
            "model_attributes",
            "object_relationships",
            "model_relationships",
        )
        stats: dict[str, int] = {}
        with self._get_connection() as conn:
            for table in tables:
                stats[table] = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        return stats

    async def find_orphaned_relationships(self) -> list[dict[str, Any]]:
        """Find layer relationships whose endpoints are gone or cross models.

        Returns:
            One entry per problem: relationship id, model id and the issue
        """
        rows = self._fetch_all("""
            SELECT r.id, r.model_id,
                   r.source_model_object_id, r.target_model_object_id,
                   s.model_id AS source_model_id, t.model_id AS target_model_id
            FROM model_relationships r
            LEFT JOIN model_objects s ON s.id = r.source_model_object_id
            LEFT JOIN model_objects t ON t.id = r.target_model_object_id
            ORDER BY r.id
        """)

        issues: list[dict[str, Any]] = []
        for row in rows:
            for side in ("source", "target"):
                endpoint_model = row[f"{side}_model_id"]
                endpoint_id = row[f"{side}_model_object_id"]
                if endpoint_model is None:
                    issue = f"missing {side} model object {endpoint_id}"
                elif endpoint_model != row["model_id"]:
                    issue = f"{side} model object {endpoint_id} belongs to model {endpoint_model}"
                else:
                    continue
                issues.append(
                    {"relationship_id": row["id"], "model_id": row["model_id"], "issue": issue}
                )
        return issues
