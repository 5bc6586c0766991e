"""
Sync module for LayerSync - the multi-layer synchronization engine.

This module handles:
- Model family resolution (family.py)
- Direction-insensitive relationship matching (matching.py)
- Projection lookup across layers (projections.py)
- Object/attribute replication into sibling layers (replicator.py)
- Relationship propagation and removal (synchronizer.py, remover.py)

All entry points take an optional SyncCache so one request can share
reads across several operations.

Invariants:
    - Family membership is recomputed per request
    - Synchronization is idempotent and safe to re-run after partial failure
    - Removal deletes every matching projection, including duplicates
"""

from .cache import SyncCache
from .family import ModelFamily, build_family, find_conceptual_root, resolve_family
from .matching import (
    build_relationship_key,
    determine_relationship_level,
    find_all_matching_relationships,
    find_matching_relationship,
    find_model_attribute_id,
    relationship_key,
    reverse_relationship_type,
)
from .remover import remove_family_relationships
from .replicator import (
    LayerCreationResult,
    ObjectPayload,
    create_layer_attributes,
    first_present,
    merge_layer_config,
    replicate_object_to_layer,
    resolve_type_hint,
)
from .synchronizer import RelationshipSyncInput, synchronize_family_relationships

__all__ = [
    "LayerCreationResult",
    "ModelFamily",
    "ObjectPayload",
    "RelationshipSyncInput",
    "SyncCache",
    "build_family",
    "build_relationship_key",
    "create_layer_attributes",
    "determine_relationship_level",
    "find_all_matching_relationships",
    "find_conceptual_root",
    "find_matching_relationship",
    "find_model_attribute_id",
    "first_present",
    "merge_layer_config",
    "relationship_key",
    "remove_family_relationships",
    "replicate_object_to_layer",
    "resolve_family",
    "resolve_type_hint",
    "reverse_relationship_type",
    "synchronize_family_relationships",
]
