"""
Relationship handlers.

A relationship is authored in one model between two canonical objects.
The handler keeps one canonical record per relationship identity and
pushes the layer representation into every model of the family.

Invariants:
    - The canonical record is found with the direction-insensitive matcher
      before anything is created, so a relationship drawn B->A after A->B
      updates the existing record instead of duplicating it
    - Layer relationships always go through the synchronizer or remover;
      handlers never write them directly except to delete an orphan
    - Only fields present in an update request change

How to change safely:
    - Layer relationships reference attribute projections, canonical
      relationships reference canonical attributes; convert at the
      boundary (see _canonical_attribute_id)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from ..config import SyncConfig
from ..errors import LayerSyncError, NotFoundError, ValidationError
from ..schema.requests import CreateRelationshipRequest, UpdateRelationshipRequest
from ..schema.types import (
    ModelObject,
    ModelRelationship,
    ObjectRelationship,
    RelationshipLevel,
    RelationshipType,
)
from ..store.model_store import ModelStore
from ..sync.cache import SyncCache
from ..sync.matching import (
    determine_relationship_level,
    find_matching_relationship,
    is_reversed_match,
    reverse_relationship_type,
)
from ..sync.projections import resolve_model_object
from ..sync.remover import remove_family_relationships
from ..sync.synchronizer import RelationshipSyncInput, synchronize_family_relationships
from .models import get_model_or_raise

logger = logging.getLogger(__name__)


@dataclass
class RelationshipResult:
    """Layer relationship in the requested model plus family bookkeeping."""

    relationship: ModelRelationship | None
    object_relationship_id: int | None
    synced_model_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            **(self.relationship.to_dict() if self.relationship else {}),
            "object_relationship_id": self.object_relationship_id,
            "synced_model_ids": self.synced_model_ids,
        }


@dataclass
class RelationshipDeletion:
    relationship_id: int
    removed: dict[int, list[int]] = field(default_factory=dict)
    object_relationship_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "relationship_id": self.relationship_id,
            "removed": {str(model_id): ids for model_id, ids in self.removed.items()},
            "object_relationship_id": self.object_relationship_id,
        }


async def upsert_canonical_relationship(
    store: ModelStore,
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
    """Find-or-create the canonical relationship for an identity.

    An existing record keeps its stored orientation; the requested type is
    flipped before comparing when it was found reversed. ``name`` and
    ``description`` are taken as given, so redrawing without them clears
    them like the layer relationships do; ``metadata`` is merged.
    """
    candidates = await store.list_object_relationships_by_object(source_object_id)
    existing = find_matching_relationship(
        candidates,
        source_object_id,
        target_object_id,
        relationship_level,
        source_attribute_id,
        target_attribute_id,
    )
    if existing is None:
        created = await store.create_object_relationship(
            source_object_id=source_object_id,
            target_object_id=target_object_id,
            type=type,
            relationship_level=relationship_level,
            source_attribute_id=source_attribute_id,
            target_attribute_id=target_attribute_id,
            name=name,
            description=description,
            metadata=metadata,
        )
        logger.debug(
            "Created canonical relationship",
            extra={"object_relationship_id": created.id},
        )
        return created

    reversed_match = is_reversed_match(
        existing,
        source_object_id,
        target_object_id,
        relationship_level,
        source_attribute_id,
        target_attribute_id,
    )
    patch: dict[str, Any] = {}
    expected_type = reverse_relationship_type(type) if reversed_match else type
    if existing.type != expected_type:
        patch["type"] = expected_type
    if existing.name != name:
        patch["name"] = name
    if existing.description != description:
        patch["description"] = description
    if metadata and any(existing.metadata.get(k) != v for k, v in metadata.items()):
        patch["metadata"] = metadata

    if not patch:
        return existing
    updated = await store.update_object_relationship(existing.id, patch)
    return updated or existing


async def _map_attribute(cache: SyncCache, attribute_id: int | None, object_id: int) -> int | None:
    """Same attribute on ``object_id``: itself, or the one with the same name."""
    if attribute_id is None:
        return None
    attribute = await cache.attribute(attribute_id)
    if attribute is None:
        return None
    if attribute.object_id == object_id:
        return attribute.id
    wanted = attribute.name.lower()
    for candidate in await cache.attributes(object_id):
        if candidate.name.lower() == wanted:
            return candidate.id
    return None


async def find_canonical_relationship(
    cache: SyncCache,
    source_object_id: int,
    target_object_id: int,
    relationship_level: RelationshipLevel,
    source_attribute_id: int | None = None,
    target_attribute_id: int | None = None,
) -> tuple[ObjectRelationship, bool] | None:
    """Find the canonical record behind a layer relationship.

    Replicated layers point at replica objects, while the canonical record
    was written against the conceptual objects; when the direct lookup
    misses, the origin objects are tried with attributes matched by name.

    Returns:
        (record, reversed) where reversed tells whether the record is
        stored target->source relative to the arguments, or None
    """
    identity = (
        source_object_id,
        target_object_id,
        relationship_level,
        source_attribute_id,
        target_attribute_id,
    )
    candidates = await cache.store.list_object_relationships_by_object(source_object_id)
    found = find_matching_relationship(candidates, *identity)
    if found is not None:
        return found, is_reversed_match(found, *identity)

    source, target = await asyncio.gather(
        cache.object(source_object_id), cache.object(target_object_id)
    )
    if source is None or target is None:
        return None
    source_origin = source.origin_object_id
    target_origin = target.origin_object_id
    if source_origin is None or target_origin is None:
        return None

    origin_source_attr = await _map_attribute(cache, source_attribute_id, source_origin)
    origin_target_attr = await _map_attribute(cache, target_attribute_id, target_origin)
    if relationship_level is RelationshipLevel.ATTRIBUTE and (
        origin_source_attr is None or origin_target_attr is None
    ):
        return None

    identity = (
        source_origin,
        target_origin,
        relationship_level,
        origin_source_attr,
        origin_target_attr,
    )
    candidates = await cache.store.list_object_relationships_by_object(source_origin)
    found = find_matching_relationship(candidates, *identity)
    if found is None:
        return None
    return found, is_reversed_match(found, *identity)


async def _canonical_attribute_id(store: ModelStore, model_attribute_id: int | None) -> int | None:
    """Canonical attribute id behind an attribute projection id."""
    if model_attribute_id is None:
        return None
    model_attribute = await store.get_model_attribute(model_attribute_id)
    return model_attribute.attribute_id if model_attribute else None


async def _resolve_requested_attribute(
    cache: SyncCache, model_id: int, model_object: ModelObject, attribute_id: int | None
) -> int | None:
    """Accept either an attribute projection id of this endpoint or a canonical id."""
    if attribute_id is None:
        return None
    model_attribute = await cache.store.get_model_attribute(attribute_id)
    if (
        model_attribute is not None
        and model_attribute.model_id == model_id
        and model_attribute.model_object_id == model_object.id
    ):
        return model_attribute.attribute_id
    attribute = await cache.attribute(attribute_id)
    if attribute is None:
        raise NotFoundError(f"Attribute not found: {attribute_id}", "attribute", attribute_id)
    return attribute.id


async def _load_endpoints(
    store: ModelStore, relationship: ModelRelationship
) -> tuple[ModelObject | None, ModelObject | None]:
    source, target = await asyncio.gather(
        store.get_model_object(relationship.source_model_object_id),
        store.get_model_object(relationship.target_model_object_id),
    )
    return source, target


async def create_relationship(
    store: ModelStore,
    request: CreateRelationshipRequest,
    sync_config: SyncConfig | None = None,
) -> RelationshipResult:
    """Create a relationship in a model and propagate it to the family.

    Raises:
        ValidationError: If source and target are the same object
        NotFoundError: If the model, either projection or an attribute is missing
    """
    if request.source_object_id == request.target_object_id:
        raise ValidationError(
            "Source and target objects must differ", field_name="target_object_id"
        )

    cache = SyncCache.for_config(store, sync_config)
    model = await get_model_or_raise(store, request.model_id)

    source, target = await asyncio.gather(
        resolve_model_object(cache, model.id, request.source_object_id),
        resolve_model_object(cache, model.id, request.target_object_id),
    )
    for object_id, projection in (
        (request.source_object_id, source),
        (request.target_object_id, target),
    ):
        if projection is None:
            raise NotFoundError(
                f"Object {object_id} is not part of model {model.id}", "model_object", object_id
            )

    source_attribute_id = request.source_attribute_id
    target_attribute_id = request.target_attribute_id
    level = determine_relationship_level(source_attribute_id, target_attribute_id)
    if level is RelationshipLevel.ATTRIBUTE:
        for attribute_id in (source_attribute_id, target_attribute_id):
            if await cache.attribute(attribute_id) is None:
                raise NotFoundError(
                    f"Attribute not found: {attribute_id}", "attribute", attribute_id
                )
    else:
        # A lone attribute id does not make an attribute-level identity
        source_attribute_id = target_attribute_id = None

    canonical = await upsert_canonical_relationship(
        store,
        request.source_object_id,
        request.target_object_id,
        request.type,
        level,
        source_attribute_id,
        target_attribute_id,
        name=request.name,
        description=request.description,
        metadata=request.metadata,
    )

    synced = await synchronize_family_relationships(
        store,
        RelationshipSyncInput(
            base_model=model,
            source_object_id=request.source_object_id,
            target_object_id=request.target_object_id,
            type=request.type,
            relationship_level=level,
            source_attribute_id=source_attribute_id,
            target_attribute_id=target_attribute_id,
            source_handle=request.source_handle,
            target_handle=request.target_handle,
            name=request.name,
            description=request.description,
        ),
        cache,
    )
    if model.id not in synced:
        raise LayerSyncError(
            f"Relationship could not be placed in model {model.id}",
            details={"synced_model_ids": list(synced)},
        )

    return RelationshipResult(
        relationship=synced[model.id],
        object_relationship_id=canonical.id,
        synced_model_ids=list(synced),
    )


async def update_relationship(
    store: ModelStore,
    relationship_id: int,
    request: UpdateRelationshipRequest,
    sync_config: SyncConfig | None = None,
) -> RelationshipResult:
    """Apply a partial update to a layer relationship and its family.

    When the level or attribute pair changes, every layer projection of
    the old identity is removed before the new identity is synchronized,
    so the returned record may carry a new id.

    Raises:
        NotFoundError: If the relationship, its model, an endpoint or a
            named attribute is missing
    """
    existing = await store.get_model_relationship(relationship_id)
    if existing is None:
        raise NotFoundError(
            f"Relationship not found: {relationship_id}", "relationship", relationship_id
        )
    model = await get_model_or_raise(store, existing.model_id)
    source, target = await _load_endpoints(store, existing)
    if source is None or target is None:
        raise NotFoundError(
            f"Relationship {relationship_id} has a missing endpoint",
            "model_object",
            existing.source_model_object_id if source is None else existing.target_model_object_id,
        )

    cache = SyncCache.for_config(store, sync_config)
    provided = request.model_fields_set

    current_source_attr, current_target_attr = await asyncio.gather(
        _canonical_attribute_id(store, existing.source_attribute_id),
        _canonical_attribute_id(store, existing.target_attribute_id),
    )
    old_level = determine_relationship_level(current_source_attr, current_target_attr)

    new_source_attr = current_source_attr
    if "source_attribute_id" in provided:
        new_source_attr = await _resolve_requested_attribute(
            cache, model.id, source, request.source_attribute_id
        )
    new_target_attr = current_target_attr
    if "target_attribute_id" in provided:
        new_target_attr = await _resolve_requested_attribute(
            cache, model.id, target, request.target_attribute_id
        )
    new_level = determine_relationship_level(new_source_attr, new_target_attr)
    if new_level is RelationshipLevel.OBJECT:
        new_source_attr = new_target_attr = None

    def pick(name: str) -> Any:
        return getattr(request, name) if name in provided else getattr(existing, name)

    new_type = request.type if "type" in provided and request.type is not None else existing.type
    new_metadata = request.metadata if "metadata" in provided else None

    source_object_id = source.object_id
    target_object_id = target.object_id
    identity_changed = (old_level, current_source_attr, current_target_attr) != (
        new_level,
        new_source_attr,
        new_target_attr,
    )

    match = await find_canonical_relationship(
        cache,
        source_object_id,
        target_object_id,
        old_level,
        current_source_attr,
        current_target_attr,
    )

    if identity_changed:
        await remove_family_relationships(
            store,
            RelationshipSyncInput(
                base_model=model,
                source_object_id=source_object_id,
                target_object_id=target_object_id,
                type=existing.type,
                relationship_level=old_level,
                source_attribute_id=current_source_attr,
                target_attribute_id=current_target_attr,
            ),
            cache,
        )

    if match is None:
        canonical = await upsert_canonical_relationship(
            store,
            source_object_id,
            target_object_id,
            new_type,
            new_level,
            new_source_attr,
            new_target_attr,
            name=pick("name"),
            description=pick("description"),
            metadata=new_metadata,
        )
    elif identity_changed:
        # Re-key the canonical record in its own object space
        stale, reversed_match = match
        if reversed_match:
            owner_source, owner_target = stale.target_object_id, stale.source_object_id
        else:
            owner_source, owner_target = stale.source_object_id, stale.target_object_id
        mapped_source = await _map_attribute(cache, new_source_attr, owner_source)
        mapped_target = await _map_attribute(cache, new_target_attr, owner_target)
        mapped_level = determine_relationship_level(mapped_source, mapped_target)
        if mapped_level is RelationshipLevel.OBJECT:
            mapped_source = mapped_target = None

        await store.delete_object_relationship(stale.id)
        canonical = await upsert_canonical_relationship(
            store,
            owner_source,
            owner_target,
            new_type,
            mapped_level,
            mapped_source,
            mapped_target,
            name=pick("name"),
            description=pick("description"),
            metadata={**stale.metadata, **(new_metadata or {})},
        )
    else:
        canonical, reversed_match = match
        patch: dict[str, Any] = {}
        expected_type = reverse_relationship_type(new_type) if reversed_match else new_type
        if canonical.type != expected_type:
            patch["type"] = expected_type
        for name in ("name", "description"):
            if name in provided and getattr(canonical, name) != getattr(request, name):
                patch[name] = getattr(request, name)
        if new_metadata:
            patch["metadata"] = new_metadata
        if patch:
            canonical = await store.update_object_relationship(canonical.id, patch) or canonical

    synced = await synchronize_family_relationships(
        store,
        RelationshipSyncInput(
            base_model=model,
            source_object_id=source_object_id,
            target_object_id=target_object_id,
            type=new_type,
            relationship_level=new_level,
            source_attribute_id=new_source_attr,
            target_attribute_id=new_target_attr,
            source_handle=pick("source_handle"),
            target_handle=pick("target_handle"),
            name=pick("name"),
            description=pick("description"),
        ),
        cache,
    )
    if model.id not in synced:
        raise LayerSyncError(
            f"Relationship could not be placed in model {model.id}",
            details={"synced_model_ids": list(synced)},
        )

    logger.info(
        f"Updated relationship {relationship_id}",
        extra={
            "fields": sorted(provided),
            "identity_changed": identity_changed,
            "synced_model_ids": list(synced),
        },
    )
    return RelationshipResult(
        relationship=synced[model.id],
        object_relationship_id=canonical.id,
        synced_model_ids=list(synced),
    )


async def delete_relationship(
    store: ModelStore,
    relationship_id: int,
    sync_config: SyncConfig | None = None,
) -> RelationshipDeletion:
    """Delete a layer relationship, its family projections and its canonical record.

    Raises:
        NotFoundError: If the relationship does not exist
    """
    existing = await store.get_model_relationship(relationship_id)
    if existing is None:
        raise NotFoundError(
            f"Relationship not found: {relationship_id}", "relationship", relationship_id
        )

    result = RelationshipDeletion(relationship_id=relationship_id)
    model = await store.get_model(existing.model_id)
    source, target = await _load_endpoints(store, existing)

    source_attr, target_attr = await asyncio.gather(
        _canonical_attribute_id(store, existing.source_attribute_id),
        _canonical_attribute_id(store, existing.target_attribute_id),
    )
    level = determine_relationship_level(source_attr, target_attr)
    identity_known = level is existing.relationship_level

    if model is not None and source is not None and target is not None and identity_known:
        cache = SyncCache.for_config(store, sync_config)
        result.removed = await remove_family_relationships(
            store,
            RelationshipSyncInput(
                base_model=model,
                source_object_id=source.object_id,
                target_object_id=target.object_id,
                type=existing.type,
                relationship_level=level,
                source_attribute_id=source_attr,
                target_attribute_id=target_attr,
            ),
            cache,
        )
        match = await find_canonical_relationship(
            cache, source.object_id, target.object_id, level, source_attr, target_attr
        )
        if match is not None:
            canonical, _ = match
            await store.delete_object_relationship(canonical.id)
            result.object_relationship_id = canonical.id
    else:
        logger.warning(
            f"Relationship {relationship_id} cannot be resolved against its family, "
            "deleting it alone",
            extra={"model_id": existing.model_id},
        )

    if relationship_id not in result.removed.get(existing.model_id, []):
        await store.delete_model_relationship(relationship_id)
        result.removed.setdefault(existing.model_id, []).append(relationship_id)

    logger.info(
        f"Deleted relationship {relationship_id}",
        extra={
            "model_ids": list(result.removed),
            "object_relationship_id": result.object_relationship_id,
        },
    )
    return result
