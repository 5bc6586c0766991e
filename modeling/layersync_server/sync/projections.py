"""
Lookup of layer projections for canonical records.

Every place that needs "the projection of canonical object X in model M"
goes through resolve_model_object, so the at-most-one-projection rule is
enforced by a single set of matching rules:

1. A projection of X itself (direct object id)
2. A projection linked to X by the origin link, in either direction
   (the projection was replicated from X, or X was replicated from the
   projection's object, or both share the same origin)
3. A projection whose canonical object has the same name as X,
   only when X lives in the model's family and exactly one such
   projection exists

Rule 3 is a heuristic for data written before origin links existed.
"""

from __future__ import annotations

import asyncio
import logging

from ..schema.types import Attribute, DataModel, ModelAttribute, ModelObject
from .cache import SyncCache
from .family import build_family

logger = logging.getLogger(__name__)


async def _in_family(cache: SyncCache, model_id: int, home_model_id: int) -> bool:
    models = await cache.models()
    model = next((m for m in models if m.id == model_id), None)
    if model is None:
        return False
    return home_model_id in build_family(model, models).member_ids()


async def resolve_model_object(
    cache: SyncCache, model_id: int, object_id: int
) -> ModelObject | None:
    """Find the projection of a canonical object inside a model."""
    entries = await cache.model_objects(model_id)

    for entry in entries:
        if entry.object_id == object_id:
            return entry

    obj = await cache.object(object_id)
    origin = obj.origin_object_id if obj else None

    linked = [
        entry
        for entry in entries
        if entry.origin_object_id == object_id
        or (origin is not None and (entry.object_id == origin or entry.origin_object_id == origin))
    ]
    if linked:
        if len(linked) > 1:
            logger.warning(
                "Several projections share one origin link, using the oldest",
                extra={"model_id": model_id, "object_id": object_id, "count": len(linked)},
            )
        return linked[0]

    if obj is None or not cache.name_fallback:
        return None
    if not await _in_family(cache, model_id, obj.model_id):
        return None

    projected = await asyncio.gather(*(cache.object(entry.object_id) for entry in entries))
    wanted = obj.name.lower()
    named = [
        entry
        for entry, candidate in zip(entries, projected)
        if candidate is not None and candidate.name.lower() == wanted
    ]
    if len(named) == 1:
        return named[0]
    return None


async def resolve_projection_attribute(
    cache: SyncCache, attribute_id: int, model_object: ModelObject
) -> Attribute | None:
    """Map a canonical attribute onto the canonical object behind a projection.

    Replicated layers keep their own canonical copy of each attribute, so an
    attribute of the conceptual object is matched by name on the copy.
    """
    attribute = await cache.attribute(attribute_id)
    if attribute is None:
        return None
    if attribute.object_id == model_object.object_id:
        return attribute

    wanted = attribute.name.lower()
    for candidate in await cache.attributes(model_object.object_id):
        if candidate.name.lower() == wanted:
            return candidate
    return None


async def find_model_attribute(
    cache: SyncCache, model_id: int, model_object_id: int, attribute_id: int
) -> ModelAttribute | None:
    for entry in await cache.model_attributes(model_id):
        if entry.model_object_id == model_object_id and entry.attribute_id == attribute_id:
            return entry
    return None


async def ensure_model_attribute(
    cache: SyncCache,
    model: DataModel,
    model_object: ModelObject,
    attribute_id: int,
    create: bool = True,
) -> ModelAttribute | None:
    """Resolve the attribute projection for a canonical attribute in a model.

    Args:
        cache: Request cache
        model: Model to look in
        model_object: Projection the attribute must belong to
        attribute_id: Canonical attribute id as named by the caller
        create: Create the projection from the canonical attribute if missing

    Returns:
        The attribute projection, or None if it cannot be resolved
    """
    attribute = await resolve_projection_attribute(cache, attribute_id, model_object)
    if attribute is None:
        return None

    existing = await find_model_attribute(cache, model.id, model_object.id, attribute.id)
    if existing is not None or not create:
        return existing

    created = await cache.store.create_model_attribute(
        attribute_id=attribute.id,
        model_object_id=model_object.id,
        model_id=model.id,
        conceptual_type=attribute.conceptual_type,
        logical_type=attribute.logical_type,
        physical_type=attribute.physical_type,
        nullable=attribute.nullable,
        is_primary_key=attribute.is_primary_key,
        is_foreign_key=attribute.is_foreign_key,
        order_index=attribute.order_index,
        layer_specific_config={"layer": model.layer.value},
    )
    cache.add_model_attribute(created)
    logger.debug(
        "Created attribute projection on demand",
        extra={
            "model_id": model.id,
            "attribute_id": attribute.id,
            "model_attribute_id": created.id,
        },
    )
    return created
