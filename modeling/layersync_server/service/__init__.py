"""
Request handlers for LayerSync.

Each handler validates one request, raises LayerSyncError subclasses for
rejected input and delegates cross-layer work to the sync package. The
HTTP routes and the ingestion pipeline both call into these functions.
"""

from .attributes import (
    AttributeCreation,
    AttributeUpdate,
    create_attribute,
    default_length,
    delete_attribute,
    map_logical_to_physical_type,
    update_attribute,
)
from .models import ModelTriple, create_model, create_model_family, get_model_family
from .objects import (
    CreateObjectResult,
    create_object,
    delete_object,
    list_objects,
    update_model_object,
)
from .relationships import (
    RelationshipDeletion,
    RelationshipResult,
    create_relationship,
    delete_relationship,
    find_canonical_relationship,
    update_relationship,
    upsert_canonical_relationship,
)
from .systems import create_system, get_system_or_raise, list_systems

__all__ = [
    "AttributeCreation",
    "AttributeUpdate",
    "CreateObjectResult",
    "ModelTriple",
    "RelationshipDeletion",
    "RelationshipResult",
    "create_attribute",
    "create_model",
    "create_model_family",
    "create_object",
    "create_relationship",
    "create_system",
    "default_length",
    "delete_attribute",
    "delete_object",
    "delete_relationship",
    "find_canonical_relationship",
    "get_model_family",
    "get_system_or_raise",
    "list_objects",
    "list_systems",
    "map_logical_to_physical_type",
    "update_attribute",
    "update_model_object",
    "update_relationship",
    "upsert_canonical_relationship",
]
