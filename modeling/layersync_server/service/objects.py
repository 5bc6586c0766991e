"""
Object handlers.

Creating an object writes the canonical object, its projection and its
attributes in the home model. For a conceptual home model the object is
then replicated into the family's logical and physical models, and any
relationships supplied with the object are upserted and synchronized.

Invariants:
    - The home layer is always written first; replication and relationship
      steps only add to it
    - A sibling layer missing from the family is reported in skipped_layers
    - Relationship inputs whose target object is missing are logged and
      skipped, the object itself is still created

How to change safely:
    - Keep every write inside one request on the same SyncCache, otherwise
      later steps will not see the projections created by earlier ones
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from ..config import SyncConfig
from ..errors import NotFoundError, ValidationError
from ..schema.requests import CreateObjectRequest, ModelObjectConfig, RelationshipInput
from ..schema.types import (
    DataModel,
    DataObject,
    ModelLayer,
    ModelObject,
    RelationshipLevel,
)
from ..store.model_store import ModelStore
from ..sync.cache import SyncCache
from ..sync.family import resolve_family
from ..sync.matching import determine_relationship_level
from ..sync.replicator import (
    LayerCreationResult,
    ObjectPayload,
    create_layer_attributes,
    first_present,
    merge_layer_config,
    replicate_object_to_layer,
)
from ..sync.synchronizer import RelationshipSyncInput, synchronize_family_relationships
from .models import get_model_or_raise
from .relationships import RelationshipResult, upsert_canonical_relationship

logger = logging.getLogger(__name__)

_SIBLING_LAYERS = (ModelLayer.LOGICAL, ModelLayer.PHYSICAL)


@dataclass
class CreateObjectResult:
    """Outcome of creating an object.

    Attributes:
        primary: Records written in the home model
        cascade_performed: Whether at least one sibling layer received a copy
        layers: Records written per sibling layer
        skipped_layers: Sibling layers the family does not have
        relationships: Relationships created from the request
    """

    primary: LayerCreationResult
    cascade_performed: bool = False
    layers: list[LayerCreationResult] = field(default_factory=list)
    skipped_layers: list[str] = field(default_factory=list)
    relationships: list[RelationshipResult] = field(default_factory=list)

    @property
    def object(self) -> DataObject:
        return self.primary.object

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.primary.to_dict(),
            "cascade_performed": self.cascade_performed,
            "layers": {result.layer.value: result.to_dict() for result in self.layers},
            "skipped_layers": self.skipped_layers,
            "relationships": [result.to_dict() for result in self.relationships],
        }


def _object_payload(request: CreateObjectRequest, model: DataModel) -> ObjectPayload:
    return ObjectPayload(
        name=request.name,
        domain_id=first_present(request.domain_id, model.domain_id),
        data_area_id=first_present(request.data_area_id, model.data_area_id),
        source_system_id=request.source_system_id,
        target_system_id=request.target_system_id,
        object_type=request.object_type,
        description=request.description,
        position=request.position.model_dump() if request.position is not None else None,
        metadata=dict(request.metadata or {}),
    )


async def _create_home_object(
    cache: SyncCache,
    model: DataModel,
    payload: ObjectPayload,
    config: ModelObjectConfig,
    request: CreateObjectRequest,
) -> LayerCreationResult:
    obj = await cache.store.create_object(
        name=payload.name,
        model_id=model.id,
        domain_id=payload.domain_id,
        data_area_id=payload.data_area_id,
        source_system_id=payload.source_system_id,
        target_system_id=payload.target_system_id,
        system_id=payload.system_id,
        object_type=payload.object_type,
        description=payload.description,
        position=payload.position,
        metadata=payload.metadata,
    )
    cache.add_object(obj, new=True)

    position = config.position.model_dump() if config.position is not None else None
    model_object = await cache.store.create_model_object(
        object_id=obj.id,
        model_id=model.id,
        target_system_id=first_present(
            config.target_system_id, model.target_system_id, payload.target_system_id
        ),
        position=first_present(position, payload.position),
        metadata={**payload.metadata, **(config.metadata or {}), "layer": model.layer.value},
        is_visible=first_present(config.is_visible, True),
        layer_specific_config={**(config.layer_specific_config or {}), "layer": model.layer.value},
    )
    cache.add_model_object(model_object)

    attributes, model_attributes = await create_layer_attributes(
        cache, model.layer, model, model_object, obj.id, request.attributes
    )
    return LayerCreationResult(
        layer=model.layer,
        model=model,
        object=obj,
        model_object=model_object,
        attributes=attributes,
        model_attributes=model_attributes,
    )


async def _attribute_id_by_name(cache: SyncCache, object_id: int, name: str | None) -> int | None:
    if not name:
        return None
    wanted = name.lower()
    for attribute in await cache.attributes(object_id):
        if attribute.name.lower() == wanted:
            return attribute.id
    logger.warning(
        f"Attribute '{name}' not found on object {object_id}",
        extra={"object_id": object_id},
    )
    return None


async def _create_input_relationship(
    cache: SyncCache,
    model: DataModel,
    source: DataObject,
    relationship: RelationshipInput,
    sync_config: SyncConfig,
) -> RelationshipResult | None:
    target = await cache.object(relationship.target_object_id)
    if target is None:
        logger.warning(
            f"Skipping relationship to missing object {relationship.target_object_id}",
            extra={"object_id": source.id},
        )
        return None

    source_attribute_id = await _attribute_id_by_name(
        cache, source.id, relationship.source_attribute_name
    )
    target_attribute_id = await _attribute_id_by_name(
        cache, target.id, relationship.target_attribute_name
    )
    level = determine_relationship_level(source_attribute_id, target_attribute_id)
    if level is RelationshipLevel.OBJECT:
        source_attribute_id = target_attribute_id = None
    relationship_type = relationship.type or sync_config.default_relationship_type

    canonical = await upsert_canonical_relationship(
        cache.store,
        source.id,
        target.id,
        relationship_type,
        level,
        source_attribute_id,
        target_attribute_id,
        name=relationship.name,
        description=relationship.description,
        metadata={**(relationship.metadata or {}), "createdViaCascade": True},
    )
    synced = await synchronize_family_relationships(
        cache.store,
        RelationshipSyncInput(
            base_model=model,
            source_object_id=source.id,
            target_object_id=target.id,
            type=relationship_type,
            relationship_level=level,
            source_attribute_id=source_attribute_id,
            target_attribute_id=target_attribute_id,
            name=relationship.name,
            description=relationship.description,
        ),
        cache,
    )
    return RelationshipResult(
        relationship=synced.get(model.id),
        object_relationship_id=canonical.id,
        synced_model_ids=list(synced),
    )


async def create_object(
    store: ModelStore,
    request: CreateObjectRequest,
    sync_config: SyncConfig | None = None,
    system_id: int | None = None,
    cache: SyncCache | None = None,
) -> CreateObjectResult:
    """Create an object in its home model and cascade it across layers.

    Args:
        store: Model store
        request: Validated create request
        sync_config: Synchronization settings; defaults when omitted
        system_id: System the object was synced from, if any
        cache: Request cache to share with the caller

    Raises:
        NotFoundError: If the home model does not exist
    """
    sync_config = sync_config or SyncConfig()
    cache = cache or SyncCache.for_config(store, sync_config)
    model = await get_model_or_raise(store, request.model_id)

    payload = _object_payload(request, model)
    payload.system_id = system_id
    base_config = request.model_object_config
    home_config = merge_layer_config(
        base_config, request.layer_model_object_config.for_layer(model.layer)
    )
    primary = await _create_home_object(cache, model, payload, home_config, request)
    result = CreateObjectResult(primary=primary)

    cascade = request.cascade if request.cascade is not None else True
    if cascade and model.layer is ModelLayer.CONCEPTUAL:
        family = await resolve_family(cache, model)
        for layer in _SIBLING_LAYERS:
            target_model = family.for_layer(layer)
            if target_model is None:
                result.skipped_layers.append(layer.value)
                continue
            config = merge_layer_config(
                base_config, request.layer_model_object_config.for_layer(layer)
            )
            result.layers.append(
                await replicate_object_to_layer(
                    cache,
                    layer,
                    model,
                    primary.object,
                    target_model,
                    payload,
                    request.attributes,
                    config,
                )
            )
        result.cascade_performed = bool(result.layers)

    for relationship in request.relationships:
        created = await _create_input_relationship(
            cache, model, primary.object, relationship, sync_config
        )
        if created is not None:
            result.relationships.append(created)

    logger.info(
        f"Created object {primary.object.id} in {model.layer.value} model {model.id}",
        extra={
            "object_name": primary.object.name,
            "attribute_count": len(primary.attributes),
            "cascade_performed": result.cascade_performed,
            "skipped_layers": result.skipped_layers,
            "relationship_count": len(result.relationships),
        },
    )
    return result


async def update_model_object(
    store: ModelStore, model_object_id: int, config: ModelObjectConfig
) -> ModelObject:
    """Patch a layer object projection.

    Only fields set on ``config`` change; ``metadata`` and
    ``layer_specific_config`` are merged into the stored blobs.

    Raises:
        ValidationError: If no field is set
        NotFoundError: If the projection does not exist
    """
    patch = config.model_dump(exclude_unset=True)
    if not patch:
        raise ValidationError("At least one field must be provided")

    updated = await store.update_model_object(model_object_id, patch)
    if updated is None:
        raise NotFoundError(
            f"Model object not found: {model_object_id}", "model_object", model_object_id
        )
    logger.debug(
        "Updated model object",
        extra={"model_object_id": model_object_id, "fields": sorted(patch)},
    )
    return updated


async def delete_object(store: ModelStore, object_id: int) -> None:
    """Delete a canonical object with its attributes, projections and relationships.

    Replicas in sibling layers are separate canonical objects and stay.

    Raises:
        NotFoundError: If the object does not exist
    """
    if not await store.delete_object(object_id):
        raise NotFoundError(f"Object not found: {object_id}", "object", object_id)
    logger.info(f"Deleted object {object_id}")


async def list_objects(store: ModelStore, model_id: int) -> list[DataObject]:
    """Canonical objects whose home is ``model_id``.

    Replicas show up under their own sibling model.

    Raises:
        NotFoundError: If the model does not exist
    """
    await get_model_or_raise(store, model_id)
    return await store.list_objects_by_model(model_id)
