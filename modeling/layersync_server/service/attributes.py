"""
Attribute handlers.

Attributes added to a conceptual object are copied onto its replicas in
the family's logical and physical models. A type change made in a logical
model is pushed down to the matching attribute of the physical sibling,
with the logical type translated to a physical one.

Invariants:
    - Siblings are found through the family and the origin link, never by
      model name
    - A replica that already has an attribute of the same name is left
      alone when an attribute is added
    - Deleting an attribute does not touch the copies on replicas; they
      are separate canonical attributes

How to change safely:
    - Add type mappings to LOGICAL_TO_PHYSICAL_TYPES rather than special
      casing them in update_attribute
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from ..config import SyncConfig
from ..errors import NotFoundError, ValidationError
from ..schema.requests import AttributeInput, CreateAttributeRequest, UpdateAttributeRequest
from ..schema.types import (
    ORIGIN_MODEL_KEY,
    ORIGIN_OBJECT_KEY,
    Attribute,
    ModelAttribute,
    ModelLayer,
)
from ..store.model_store import ModelStore
from ..sync.cache import SyncCache
from ..sync.family import resolve_family
from ..sync.projections import resolve_model_object, resolve_projection_attribute
from ..sync.replicator import create_layer_attributes
from .models import get_model_or_raise

logger = logging.getLogger(__name__)

LOGICAL_TO_PHYSICAL_TYPES: dict[str, str] = {
    "VARCHAR": "VARCHAR",
    "INT": "INTEGER",
    "BIGINT": "BIGINT",
    "DATE": "DATE",
    "TIMESTAMP": "TIMESTAMP",
    "BOOLEAN": "BOOLEAN",
    "DECIMAL": "DECIMAL",
    "TEXT": "TEXT",
    "CHAR": "CHAR",
}

DEFAULT_LENGTHS: dict[str, int] = {
    "VARCHAR": 255,
    "CHAR": 50,
    "INT": 11,
    "BIGINT": 20,
    "DECIMAL": 10,
}

# Columns that cannot be stored as NULL
_REQUIRED_FIELDS = ("name", "nullable", "is_primary_key", "is_foreign_key", "order_index")

_SIBLING_LAYERS = (ModelLayer.LOGICAL, ModelLayer.PHYSICAL)


def map_logical_to_physical_type(logical_type: str) -> str:
    """Physical type for a logical one; unknown types pass through."""
    return LOGICAL_TO_PHYSICAL_TYPES.get(logical_type.upper(), logical_type)


def default_length(data_type: str) -> int | None:
    return DEFAULT_LENGTHS.get(data_type.upper())


@dataclass
class AttributeCreation:
    """Outcome of adding an attribute.

    Attributes:
        attribute: Canonical attribute on the requested object
        model_attribute: Its projection in the object's home model
        replicas: Copies added to replicas, keyed by layer
        skipped_layers: Sibling layers that received no copy
    """

    attribute: Attribute
    model_attribute: ModelAttribute
    replicas: dict[str, Attribute] = field(default_factory=dict)
    skipped_layers: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "attribute": self.attribute.to_dict(),
            "model_attribute": self.model_attribute.to_dict(),
            "replicas": {layer: a.to_dict() for layer, a in self.replicas.items()},
            "skipped_layers": self.skipped_layers,
        }


@dataclass
class AttributeUpdate:
    attribute: Attribute
    physical_attribute: Attribute | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "attribute": self.attribute.to_dict(),
            "physical_attribute": (
                self.physical_attribute.to_dict() if self.physical_attribute else None
            ),
        }


async def create_attribute(
    store: ModelStore,
    request: CreateAttributeRequest,
    sync_config: SyncConfig | None = None,
) -> AttributeCreation:
    """Add an attribute to an object and, for conceptual objects, its replicas.

    Raises:
        NotFoundError: If the object, its model or its home projection is missing
    """
    cache = SyncCache.for_config(store, sync_config)
    obj = await cache.object(request.object_id)
    if obj is None:
        raise NotFoundError(f"Object not found: {request.object_id}", "object", request.object_id)
    model = await get_model_or_raise(store, obj.model_id)
    projection = await resolve_model_object(cache, model.id, obj.id)
    if projection is None:
        raise NotFoundError(
            f"Object {obj.id} has no projection in model {model.id}", "model_object", obj.id
        )

    attribute_input = AttributeInput.model_validate(
        request.model_dump(exclude={"object_id", "cascade"})
    )
    if attribute_input.order_index is None:
        attribute_input.order_index = len(await cache.attributes(obj.id))

    attributes, model_attributes = await create_layer_attributes(
        cache, model.layer, model, projection, obj.id, [attribute_input]
    )
    result = AttributeCreation(attribute=attributes[0], model_attribute=model_attributes[0])

    cascade = request.cascade if request.cascade is not None else True
    if cascade and model.layer is ModelLayer.CONCEPTUAL:
        family = await resolve_family(cache, model)
        origin = {ORIGIN_OBJECT_KEY: obj.id, ORIGIN_MODEL_KEY: model.id}
        wanted = attribute_input.name.lower()
        for layer in _SIBLING_LAYERS:
            target_model = family.for_layer(layer)
            replica = (
                await resolve_model_object(cache, target_model.id, obj.id)
                if target_model is not None
                else None
            )
            if replica is None:
                result.skipped_layers.append(layer.value)
                continue
            existing = await cache.attributes(replica.object_id)
            if any(attribute.name.lower() == wanted for attribute in existing):
                logger.debug(
                    f"Replica {replica.object_id} already has attribute '{attribute_input.name}'",
                    extra={"model_id": target_model.id},
                )
                result.skipped_layers.append(layer.value)
                continue
            copies, _ = await create_layer_attributes(
                cache,
                layer,
                target_model,
                replica,
                replica.object_id,
                [attribute_input],
                origin=origin,
            )
            result.replicas[layer.value] = copies[0]

    logger.info(
        f"Created attribute {result.attribute.id} on object {obj.id}",
        extra={
            "attribute_name": result.attribute.name,
            "replica_layers": sorted(result.replicas),
            "skipped_layers": result.skipped_layers,
        },
    )
    return result


async def update_attribute(
    store: ModelStore,
    attribute_id: int,
    request: UpdateAttributeRequest,
    sync_config: SyncConfig | None = None,
) -> AttributeUpdate:
    """Patch an attribute; logical-layer changes are pushed to the physical sibling.

    The physical copy receives the same fields. When ``logical_type`` is
    set it also gets the mapped physical type and, unless a length was
    given, the default length for that type.

    Raises:
        ValidationError: If no storable field is set
        NotFoundError: If the attribute does not exist
    """
    patch = request.model_dump(exclude_unset=True)
    for name in _REQUIRED_FIELDS:
        if name in patch and patch[name] is None:
            del patch[name]
    if not patch:
        raise ValidationError("At least one field must be provided")

    cache = SyncCache.for_config(store, sync_config)
    # Cached before the write so the sibling is matched by the old name
    before = await cache.attribute(attribute_id)
    if before is None:
        raise NotFoundError(f"Attribute not found: {attribute_id}", "attribute", attribute_id)

    updated = await store.update_attribute(attribute_id, patch)
    if updated is None:
        raise NotFoundError(f"Attribute not found: {attribute_id}", "attribute", attribute_id)
    result = AttributeUpdate(attribute=updated)

    obj = await cache.object(updated.object_id)
    model = await store.get_model(obj.model_id) if obj else None
    if model is None or model.layer is not ModelLayer.LOGICAL:
        return result

    family = await resolve_family(cache, model)
    if family.physical is None:
        logger.debug("No physical sibling to cascade to", extra={"model_id": model.id})
        return result
    projection = await resolve_model_object(cache, family.physical.id, obj.id)
    if projection is None:
        return result
    sibling = await resolve_projection_attribute(cache, attribute_id, projection)
    if sibling is None:
        return result

    physical_patch = dict(patch)
    logical_type = patch.get("logical_type")
    if logical_type:
        physical_patch["physical_type"] = map_logical_to_physical_type(logical_type)
        physical_patch["length"] = patch.get("length") or default_length(logical_type)

    result.physical_attribute = await store.update_attribute(sibling.id, physical_patch)
    logger.info(
        f"Cascaded attribute {attribute_id} update to physical attribute {sibling.id}",
        extra={"model_id": family.physical.id, "fields": sorted(physical_patch)},
    )
    return result


async def delete_attribute(store: ModelStore, attribute_id: int) -> None:
    """Delete an attribute with its projections and the relationships keyed on it.

    Raises:
        NotFoundError: If the attribute does not exist
    """
    if not await store.delete_attribute(attribute_id):
        raise NotFoundError(f"Attribute not found: {attribute_id}", "attribute", attribute_id)
    logger.info(f"Deleted attribute {attribute_id}")
