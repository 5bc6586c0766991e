"""
Relationship family synchronizer.

Given a relationship expressed between two canonical objects in one model,
find-or-create its layer projection in every model of the family.

Per family member M:
    1. Resolve the layer object projections of both objects in M; skip M
       if either is missing.
    2. At attribute level, resolve (or create on demand) the attribute
       projections of both sides; if either side cannot be resolved, M
       falls back to object level.
    3. Find an existing layer relationship with the direction-insensitive
       matcher. Update only differing fields, or create a new one tagged
       with M's layer.

The synchronizer never touches canonical relationships; callers upsert the
canonical record first and then hand the result to this module.

Invariants:
    - Re-running with identical input produces no writes
    - A relationship found in the reversed orientation keeps its stored
      orientation; the requested values are flipped before comparing
    - A failure in one member leaves earlier members synchronized
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from ..schema.types import (
    DataModel,
    ModelObject,
    ModelRelationship,
    RelationshipLevel,
    RelationshipType,
)
from ..store.model_store import ModelStore
from .cache import SyncCache
from .family import resolve_family
from .matching import find_matching_relationship, is_reversed_match, reverse_relationship_type
from .projections import ensure_model_attribute, resolve_model_object

logger = logging.getLogger(__name__)


@dataclass
class RelationshipSyncInput:
    """A relationship between two canonical objects, as seen from one model.

    Attribute ids are canonical attribute ids.
    """

    base_model: DataModel
    source_object_id: int
    target_object_id: int
    type: RelationshipType
    relationship_level: RelationshipLevel = RelationshipLevel.OBJECT
    source_attribute_id: int | None = None
    target_attribute_id: int | None = None
    source_handle: str | None = None
    target_handle: str | None = None
    name: str | None = None
    description: str | None = None


@dataclass
class LayerEndpoints:
    """Where a relationship lands inside one model."""

    source: ModelObject
    target: ModelObject
    level: RelationshipLevel
    source_attribute_id: int | None = None
    target_attribute_id: int | None = None


async def resolve_layer_endpoints(
    cache: SyncCache,
    model: DataModel,
    params: RelationshipSyncInput,
    create_attributes: bool = True,
) -> LayerEndpoints | None:
    """Resolve both projections and the effective level inside ``model``.

    Returns:
        LayerEndpoints, or None when either object has no projection in
        the model
    """
    source, target = await asyncio.gather(
        resolve_model_object(cache, model.id, params.source_object_id),
        resolve_model_object(cache, model.id, params.target_object_id),
    )
    if source is None or target is None:
        return None

    if (
        params.relationship_level is not RelationshipLevel.ATTRIBUTE
        or params.source_attribute_id is None
        or params.target_attribute_id is None
    ):
        return LayerEndpoints(source=source, target=target, level=RelationshipLevel.OBJECT)

    source_attribute = await ensure_model_attribute(
        cache, model, source, params.source_attribute_id, create=create_attributes
    )
    target_attribute = await ensure_model_attribute(
        cache, model, target, params.target_attribute_id, create=create_attributes
    )
    if source_attribute is None or target_attribute is None:
        logger.info(
            "Attribute projection unavailable, using object level",
            extra={
                "model_id": model.id,
                "source_attribute_id": params.source_attribute_id,
                "target_attribute_id": params.target_attribute_id,
            },
        )
        return LayerEndpoints(source=source, target=target, level=RelationshipLevel.OBJECT)

    return LayerEndpoints(
        source=source,
        target=target,
        level=RelationshipLevel.ATTRIBUTE,
        source_attribute_id=source_attribute.id,
        target_attribute_id=target_attribute.id,
    )


def _expected_fields(
    endpoints: LayerEndpoints, params: RelationshipSyncInput, reversed_match: bool
) -> dict[str, Any]:
    """Requested values expressed in the stored orientation."""
    if reversed_match:
        return {
            "type": reverse_relationship_type(params.type),
            "relationship_level": endpoints.level,
            "source_attribute_id": endpoints.target_attribute_id,
            "target_attribute_id": endpoints.source_attribute_id,
            "source_handle": params.target_handle,
            "target_handle": params.source_handle,
            "name": params.name,
            "description": params.description,
        }
    return {
        "type": params.type,
        "relationship_level": endpoints.level,
        "source_attribute_id": endpoints.source_attribute_id,
        "target_attribute_id": endpoints.target_attribute_id,
        "source_handle": params.source_handle,
        "target_handle": params.target_handle,
        "name": params.name,
        "description": params.description,
    }


async def _sync_model(
    cache: SyncCache, model: DataModel, params: RelationshipSyncInput
) -> ModelRelationship | None:
    endpoints = await resolve_layer_endpoints(cache, model, params)
    if endpoints is None:
        logger.debug(
            "Object projections missing, skipping model",
            extra={"model_id": model.id},
        )
        return None

    relationships = await cache.relationships(model.id)
    existing = find_matching_relationship(
        relationships,
        endpoints.source.id,
        endpoints.target.id,
        endpoints.level,
        endpoints.source_attribute_id,
        endpoints.target_attribute_id,
    )

    if existing is not None:
        reversed_match = is_reversed_match(
            existing,
            endpoints.source.id,
            endpoints.target.id,
            endpoints.level,
            endpoints.source_attribute_id,
            endpoints.target_attribute_id,
        )
        expected = _expected_fields(endpoints, params, reversed_match)
        patch = {
            name: value for name, value in expected.items() if getattr(existing, name) != value
        }
        if not patch:
            return existing

        updated = await cache.store.update_model_relationship(existing.id, patch)
        if updated is None:
            # Deleted underneath us; fall through and recreate
            cache.drop_relationship(existing)
        else:
            cache.put_relationship(updated)
            logger.debug(
                "Updated layer relationship",
                extra={
                    "model_id": model.id,
                    "relationship_id": updated.id,
                    "fields": sorted(patch),
                },
            )
            return updated

    created = await cache.store.create_model_relationship(
        model_id=model.id,
        layer=model.layer,
        source_model_object_id=endpoints.source.id,
        target_model_object_id=endpoints.target.id,
        type=params.type,
        relationship_level=endpoints.level,
        source_attribute_id=endpoints.source_attribute_id,
        target_attribute_id=endpoints.target_attribute_id,
        source_handle=params.source_handle,
        target_handle=params.target_handle,
        name=params.name,
        description=params.description,
    )
    cache.put_relationship(created)
    logger.debug(
        "Created layer relationship",
        extra={"model_id": model.id, "relationship_id": created.id},
    )
    return created


async def synchronize_family_relationships(
    store: ModelStore,
    params: RelationshipSyncInput,
    cache: SyncCache | None = None,
) -> dict[int, ModelRelationship]:
    """Synchronize one relationship into every model of the base model's family.

    Args:
        store: Model store
        params: Relationship as expressed in the base model
        cache: Request cache; a fresh one is created when omitted

    Returns:
        Layer relationship per synchronized model id, in family order
    """
    cache = cache or SyncCache(store)
    family = await resolve_family(cache, params.base_model)

    await asyncio.gather(
        *(cache.model_objects(member.id) for member in family.members),
        *(cache.relationships(member.id) for member in family.members),
    )

    results: dict[int, ModelRelationship] = {}
    for member in family.members:
        relationship = await _sync_model(cache, member, params)
        if relationship is not None:
            results[member.id] = relationship

    logger.info(
        f"Synchronized relationship {params.source_object_id}->{params.target_object_id} "
        f"across {len(results)}/{len(family.members)} models",
        extra={"base_model_id": params.base_model.id, "synced_model_ids": list(results)},
    )
    return results

