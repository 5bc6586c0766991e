"""
Schema module for LayerSync - record types and request payloads.

This module provides:
- Enums for layers, relationship levels, cardinalities and directions
- Dataclass records returned by the ModelStore
- Pydantic request models validated at the handler boundary
"""

from .requests import (
    AttributeInput,
    CreateAttributeRequest,
    CreateModelFamilyRequest,
    CreateModelRequest,
    CreateObjectRequest,
    CreateRelationshipRequest,
    CreateSystemRequest,
    ModelObjectConfig,
    PerLayerConfig,
    Position,
    RelationshipInput,
    SystemSyncRequest,
    UpdateAttributeRequest,
    UpdateRelationshipRequest,
)
from .types import (
    ORIGIN_MODEL_KEY,
    ORIGIN_OBJECT_KEY,
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
    SystemDirection,
)

__all__ = [
    "ORIGIN_MODEL_KEY",
    "ORIGIN_OBJECT_KEY",
    "Attribute",
    "AttributeInput",
    "CreateAttributeRequest",
    "CreateModelFamilyRequest",
    "CreateModelRequest",
    "CreateObjectRequest",
    "CreateRelationshipRequest",
    "CreateSystemRequest",
    "DataModel",
    "DataObject",
    "ModelAttribute",
    "ModelLayer",
    "ModelObject",
    "ModelObjectConfig",
    "ModelRelationship",
    "ObjectRelationship",
    "PerLayerConfig",
    "Position",
    "RelationshipInput",
    "RelationshipLevel",
    "RelationshipType",
    "System",
    "SystemDirection",
    "SystemSyncRequest",
    "UpdateAttributeRequest",
    "UpdateRelationshipRequest",
]
