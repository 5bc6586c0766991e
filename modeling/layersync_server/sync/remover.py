"""
Relationship family remover.

Mirror of the synchronizer for deletions. Per family member, the expected
level is recomputed without creating attribute projections (a missing one
just means the relationship was stored at object level there), and every
layer relationship matching the endpoints, level and attribute pair in
either orientation is deleted.

Deleting all matches, not just the first, removes duplicates left behind
by concurrent creates. The canonical relationship is left to the caller.
"""

from __future__ import annotations

import logging

from ..store.model_store import ModelStore
from .cache import SyncCache
from .family import resolve_family
from .matching import find_all_matching_relationships
from .synchronizer import RelationshipSyncInput, resolve_layer_endpoints

logger = logging.getLogger(__name__)


async def remove_family_relationships(
    store: ModelStore,
    params: RelationshipSyncInput,
    cache: SyncCache | None = None,
) -> dict[int, list[int]]:
    """Delete the layer projections of a relationship across the family.

    Args:
        store: Model store
        params: Relationship as expressed in the base model
        cache: Request cache; a fresh one is created when omitted

    Returns:
        Deleted layer relationship ids per model id (models with no
        matches are omitted)
    """
    cache = cache or SyncCache(store)
    family = await resolve_family(cache, params.base_model)

    removed: dict[int, list[int]] = {}
    for member in family.members:
        endpoints = await resolve_layer_endpoints(cache, member, params, create_attributes=False)
        if endpoints is None:
            continue

        matches = find_all_matching_relationships(
            await cache.relationships(member.id),
            endpoints.source.id,
            endpoints.target.id,
            endpoints.level,
            endpoints.source_attribute_id,
            endpoints.target_attribute_id,
        )
        for relationship in matches:
            await cache.store.delete_model_relationship(relationship.id)
            cache.drop_relationship(relationship)

        if matches:
            removed[member.id] = [relationship.id for relationship in matches]

    if removed:
        logger.info(
            f"Removed {sum(len(ids) for ids in removed.values())} layer relationships",
            extra={"base_model_id": params.base_model.id, "model_ids": list(removed)},
        )
    return removed
