"""
External metadata ingestion.

Pulls table metadata from a connected system into a model: tables become
objects, columns become attributes, declared and inferred foreign keys
become relationships. New objects go through the regular object creation
path, so a conceptual model gets its logical and physical replicas, and
every new relationship is pushed through the synchronizer.

Invariants:
    - Objects are matched to tables by case-insensitive name among the
      objects projected into the target model
    - Re-syncing only adds; existing attributes keep their ids so layer
      projections and relationships stay attached
    - The relationship registry is built once per run and checked in both
      orientations, so re-running does not duplicate relationships

How to change safely:
    - Keep multi-column foreign keys out until the matcher can represent
      them; they are skipped, not truncated
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from ..config import SyncConfig
from ..errors import DirectionNotSupportedError
from ..schema.requests import AttributeInput, CreateObjectRequest, SystemSyncRequest
from ..schema.types import (
    Attribute,
    DataModel,
    DataObject,
    RelationshipLevel,
    RelationshipType,
    System,
    SystemDirection,
)
from ..service.models import get_model_or_raise
from ..service.objects import create_object
from ..service.systems import get_system_or_raise
from ..store.model_store import ModelStore
from ..sync.cache import SyncCache
from ..sync.matching import build_relationship_key, relationship_key
from ..sync.projections import resolve_model_object
from ..sync.replicator import create_layer_attributes, first_present
from ..sync.synchronizer import RelationshipSyncInput, synchronize_family_relationships
from .heuristics import generate_heuristic_foreign_keys
from .sources import (
    ColumnMetadata,
    ConfiguredMetadataSource,
    ForeignKeyMetadata,
    MetadataSource,
    TableMetadata,
)

logger = logging.getLogger(__name__)


@dataclass
class SystemSyncResult:
    """Counts and records produced by one ingestion run."""

    metadata_count: int = 0
    created: list[DataObject] = field(default_factory=list)
    updated: list[DataObject] = field(default_factory=list)
    relationships_created: int = 0
    heuristic_relationships_created: int = 0
    attributes: dict[int, int] = field(default_factory=dict)
    metadata: list[TableMetadata] | None = None

    @property
    def created_count(self) -> int:
        return len(self.created)

    @property
    def updated_count(self) -> int:
        return len(self.updated)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "metadata_count": self.metadata_count,
            "created_count": self.created_count,
            "updated_count": self.updated_count,
            "relationships_created": self.relationships_created,
            "heuristic_relationships_created": self.heuristic_relationships_created,
            "created": [obj.to_dict() for obj in self.created],
            "updated": [obj.to_dict() for obj in self.updated],
            "attributes": {str(object_id): count for object_id, count in self.attributes.items()},
        }
        if self.metadata is not None:
            result["metadata"] = [table.to_dict() for table in self.metadata]
        return result


def _config_id(value: Any) -> int | None:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def preferred_domain_id(system: System, override: int | None = None) -> int | None:
    """Request override, else ``domainId`` or the first of ``domainIds`` in the configuration."""
    if override is not None:
        return override
    direct = _config_id(system.configuration.get("domainId"))
    if direct is not None:
        return direct
    for value in system.configuration.get("domainIds") or []:
        candidate = _config_id(value)
        if candidate is not None:
            return candidate
    return None


def preferred_data_area_id(system: System, override: int | None = None) -> int | None:
    if override is not None:
        return override
    for value in system.configuration.get("dataAreaIds") or []:
        candidate = _config_id(value)
        if candidate is not None:
            return candidate
    return None


def column_to_attribute(column: ColumnMetadata, order_index: int) -> AttributeInput:
    """A source column carries one type, used as the hint for every layer."""
    return AttributeInput(
        name=column.name,
        conceptual_type=column.type,
        logical_type=column.type,
        physical_type=column.type,
        data_type=column.type,
        nullable=column.nullable,
        is_primary_key=column.is_primary_key,
        length=column.length,
        order_index=order_index,
    )


async def _object_registry(cache: SyncCache, model_id: int) -> dict[str, DataObject]:
    """Objects projected into the model, keyed by lowercased name (first wins)."""
    entries = await cache.model_objects(model_id)
    objects = await asyncio.gather(*(cache.object(entry.object_id) for entry in entries))
    registry: dict[str, DataObject] = {}
    for obj in objects:
        if obj is not None:
            registry.setdefault(obj.name.lower(), obj)
    return registry


async def _add_missing_attributes(
    cache: SyncCache, model: DataModel, obj: DataObject, columns: tuple[ColumnMetadata, ...]
) -> int:
    """Add columns the object does not have yet; returns the attribute total."""
    existing = await cache.attributes(obj.id)
    known = {attribute.name.lower() for attribute in existing}
    missing = [column for column in columns if column.name.lower() not in known]
    if not missing:
        return len(existing)

    projection = await resolve_model_object(cache, model.id, obj.id)
    if projection is None:
        logger.warning(
            f"Object {obj.id} has no projection in model {model.id}, skipping new columns",
            extra={"column_count": len(missing)},
        )
        return len(existing)

    inputs = [
        column_to_attribute(column, len(existing) + offset) for offset, column in enumerate(missing)
    ]
    await create_layer_attributes(cache, model.layer, model, projection, obj.id, inputs)
    logger.debug(
        f"Added {len(inputs)} attributes to object {obj.id}",
        extra={"attribute_names": [i.name for i in inputs]},
    )
    return len(await cache.attributes(obj.id))


def _find_target(registry: dict[str, DataObject], referenced_table: str) -> DataObject | None:
    key = referenced_table.lower()
    target = registry.get(key)
    if target is None and "." in key:
        target = registry.get(key.split(".")[-1])
    return target


def _find_attribute_id(attributes: list[Attribute], column: str) -> tuple[int, str] | None:
    wanted = column.lower()
    for attribute in attributes:
        if attribute.name.lower() == wanted:
            return attribute.id, attribute.name
    return None


async def _create_relationships(
    cache: SyncCache,
    model: DataModel,
    tables: list[TableMetadata],
    registry: dict[str, DataObject],
    sync_config: SyncConfig,
) -> tuple[int, int]:
    known_keys = {
        relationship_key(relationship)
        for relationship in await cache.store.list_object_relationships()
    }
    created = 0
    heuristic_created = 0

    for table in tables:
        explicit = list(table.foreign_keys)
        inferred = (
            generate_heuristic_foreign_keys(table, tables, explicit)
            if sync_config.heuristic_foreign_keys
            else []
        )
        candidates: list[ForeignKeyMetadata] = explicit + inferred
        if not candidates:
            continue

        source = registry.get(table.name.lower())
        if source is None:
            continue
        source_attributes = await cache.attributes(source.id)

        for fk in candidates:
            if len(fk.columns) != 1 or len(fk.referenced_columns) != 1:
                logger.debug(
                    "Skipping multi-column foreign key",
                    extra={"table": table.name, "constraint_name": fk.constraint_name},
                )
                continue
            target = _find_target(registry, fk.referenced_table)
            if target is None:
                continue

            target_attributes = await cache.attributes(target.id)
            source_attribute = _find_attribute_id(source_attributes, fk.columns[0])
            target_attribute = _find_attribute_id(target_attributes, fk.referenced_columns[0])

            if source_attribute is not None and target_attribute is not None:
                level = RelationshipLevel.ATTRIBUTE
                source_attribute_id, source_attribute_name = source_attribute
                target_attribute_id, target_attribute_name = target_attribute
                name = fk.constraint_name or (
                    f"{source.name}.{source_attribute_name} → {target.name}.{target_attribute_name}"
                )
                description = "Auto-created from system sync metadata"
            else:
                level = RelationshipLevel.OBJECT
                source_attribute_id = target_attribute_id = None
                name = fk.constraint_name or f"{source.name} → {target.name}"
                description = "Auto-created from system sync metadata (object-level fallback)"

            direct_key = build_relationship_key(
                source.id, target.id, level, source_attribute_id, target_attribute_id
            )
            reverse_key = build_relationship_key(
                target.id, source.id, level, target_attribute_id, source_attribute_id
            )
            if direct_key in known_keys or reverse_key in known_keys:
                continue

            try:
                relationship_type = RelationshipType(fk.relationship_type or "N:1")
            except ValueError:
                logger.warning(
                    f"Unknown relationship type '{fk.relationship_type}', using N:1",
                    extra={"constraint_name": fk.constraint_name},
                )
                relationship_type = RelationshipType.MANY_TO_ONE

            await cache.store.create_object_relationship(
                source_object_id=source.id,
                target_object_id=target.id,
                type=relationship_type,
                relationship_level=level,
                source_attribute_id=source_attribute_id,
                target_attribute_id=target_attribute_id,
                name=name,
                description=description,
                metadata={
                    "constraintName": fk.constraint_name,
                    "sourceColumn": fk.columns[0],
                    "targetColumn": fk.referenced_columns[0],
                    "referencedTable": fk.referenced_table,
                    "referencedSchema": fk.referenced_schema,
                    "updateRule": fk.update_rule,
                    "deleteRule": fk.delete_rule,
                    "detectionStrategy": "heuristic" if fk.is_heuristic else "constraint",
                },
            )
            known_keys.add(direct_key)

            await synchronize_family_relationships(
                cache.store,
                RelationshipSyncInput(
                    base_model=model,
                    source_object_id=source.id,
                    target_object_id=target.id,
                    type=relationship_type,
                    relationship_level=level,
                    source_attribute_id=source_attribute_id,
                    target_attribute_id=target_attribute_id,
                    name=name,
                    description=description,
                ),
                cache,
            )
            created += 1
            if fk.is_heuristic:
                heuristic_created += 1

    return created, heuristic_created


async def sync_system_objects(
    store: ModelStore,
    system_id: int,
    request: SystemSyncRequest,
    source: MetadataSource | None = None,
    sync_config: SyncConfig | None = None,
) -> SystemSyncResult:
    """Ingest a system's tables into a model.

    Args:
        store: Model store
        system_id: System to read from
        request: Target model, direction and options
        source: Metadata provider; defaults to the tables declared in the
            system configuration
        sync_config: Synchronization settings

    Returns:
        SystemSyncResult with counts; with ``metadata_only`` nothing is
        written and the fetched metadata is returned instead

    Raises:
        NotFoundError: If the system or model does not exist
        DirectionNotSupportedError: If the system cannot play the role
    """
    sync_config = sync_config or SyncConfig()
    source = source or ConfiguredMetadataSource()

    system = await get_system_or_raise(store, system_id)
    direction = request.direction
    if direction is SystemDirection.SOURCE and not system.can_be_source:
        raise DirectionNotSupportedError(system_id, direction.value)
    if direction is SystemDirection.TARGET and not system.can_be_target:
        raise DirectionNotSupportedError(system_id, direction.value)
    model = await get_model_or_raise(store, request.model_id)

    tables = await source.fetch_tables(system)
    result = SystemSyncResult(metadata_count=len(tables))
    if request.metadata_only:
        result.metadata = tables
        return result

    domain_id = first_present(preferred_domain_id(system, request.domain_id), model.domain_id)
    data_area_id = first_present(
        preferred_data_area_id(system, request.data_area_id), model.data_area_id
    )
    direction_field = (
        "source_system_id" if direction is SystemDirection.SOURCE else "target_system_id"
    )

    cache = SyncCache.for_config(store, sync_config)
    registry = await _object_registry(cache, model.id)

    for table in tables:
        key = table.name.lower()
        existing = registry.get(key)
        metadata_payload = {
            "syncedFromSystemId": system.id,
            "systemDirection": direction.value,
            "rawMetadata": table.to_dict(),
            "syncedAt": datetime.now(timezone.utc).isoformat(),
        }

        if existing is not None:
            updated = await store.update_object(
                existing.id,
                {
                    "metadata": metadata_payload,
                    "domain_id": first_present(domain_id, existing.domain_id),
                    "data_area_id": first_present(data_area_id, existing.data_area_id),
                    "system_id": system.id,
                    direction_field: system.id,
                    "is_new": False,
                },
            )
            if updated is None:
                continue
            cache.add_object(updated)
            registry[key] = updated
            result.updated.append(updated)
            if request.include_attributes:
                result.attributes[updated.id] = await _add_missing_attributes(
                    cache, model, updated, table.columns
                )
            continue

        created = await create_object(
            store,
            CreateObjectRequest(
                name=table.name,
                model_id=model.id,
                domain_id=domain_id,
                data_area_id=data_area_id,
                object_type="table" if table.columns else "entity",
                metadata=metadata_payload,
                attributes=(
                    [column_to_attribute(c, i) for i, c in enumerate(table.columns)]
                    if request.include_attributes
                    else []
                ),
                **{direction_field: system.id},
            ),
            sync_config,
            system_id=system.id,
            cache=cache,
        )
        registry[key] = created.object
        result.created.append(created.object)
        if request.include_attributes:
            result.attributes[created.object.id] = len(created.primary.attributes)

    (
        result.relationships_created,
        result.heuristic_relationships_created,
    ) = await _create_relationships(cache, model, tables, registry, sync_config)

    logger.info(
        f"Synced {len(tables)} tables from system {system.id} into model {model.id}",
        extra={
            "created_count": result.created_count,
            "updated_count": result.updated_count,
            "relationships_created": result.relationships_created,
            "heuristic_relationships_created": result.heuristic_relationships_created,
        },
    )
    return result
