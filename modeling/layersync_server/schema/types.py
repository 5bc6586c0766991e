"""
Core record types for the LayerSync data model.

This module defines the records persisted by the ModelStore:
- DataModel: A named container at exactly one layer
- System: A connected external system
- DataObject / Attribute: Canonical objects and their fields
- ModelObject / ModelAttribute: Per-model layer projections
- ObjectRelationship: Canonical relationship between two objects
- ModelRelationship: Layer projection of a relationship inside one model

Invariants:
    - Ids are assigned by the store and never reused
    - Timestamps are Unix milliseconds
    - Layer projections of a replicated object carry the origin link
      (originConceptualObjectId, originConceptualModelId) in both
      metadata and layer_specific_config
    - Relationship records are stored positionally (source/target) but
      are matched without regard to direction

How to change safely:
    - Add new fields with defaults so existing rows still load
    - Never rename enum values; they are persisted as text
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from dataclasses import field as dataclass_field
from enum import Enum
from typing import Any

ORIGIN_OBJECT_KEY = "originConceptualObjectId"
ORIGIN_MODEL_KEY = "originConceptualModelId"


class ModelLayer(Enum):
    """Abstraction layer of a data model.

    Ordering matters: family members are always reported
    conceptual first, then logical, then physical.
    """

    CONCEPTUAL = "conceptual"
    LOGICAL = "logical"
    PHYSICAL = "physical"

    @classmethod
    def from_str(cls, s: str) -> ModelLayer:
        """Parse a layer name."""
        for layer in cls:
            if layer.value == s:
                return layer
        raise ValueError(f"Unknown model layer: {s}")

    @property
    def rank(self) -> int:
        return _LAYER_ORDER.index(self)


_LAYER_ORDER = (ModelLayer.CONCEPTUAL, ModelLayer.LOGICAL, ModelLayer.PHYSICAL)


class RelationshipLevel(Enum):
    """Granularity of a relationship."""

    OBJECT = "object"
    ATTRIBUTE = "attribute"


class RelationshipType(Enum):
    """Cardinality of a relationship."""

    ONE_TO_ONE = "1:1"
    ONE_TO_MANY = "1:N"
    MANY_TO_ONE = "N:1"
    MANY_TO_MANY = "N:M"
    MANY_TO_MANY_ALT = "M:N"

    def reversed(self) -> RelationshipType:
        """Cardinality seen from the other end of the relationship."""
        if self is RelationshipType.ONE_TO_MANY:
            return RelationshipType.MANY_TO_ONE
        if self is RelationshipType.MANY_TO_ONE:
            return RelationshipType.ONE_TO_MANY
        return self


class SystemDirection(Enum):
    """Role of a connected system relative to a model."""

    SOURCE = "source"
    TARGET = "target"


class _Record:
    """Serialization shared by all stored records."""

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        result: dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            value = getattr(self, f.name)
            result[f.name] = value.value if isinstance(value, Enum) else value
        return result


@dataclass
class DataModel(_Record):
    """A data model at one layer.

    Attributes:
        id: Model id
        name: Display name
        layer: Abstraction layer
        parent_model_id: Parent model (None for conceptual roots)
        target_system_id: Default target system for objects in this model
        domain_id: Optional business domain
        data_area_id: Optional data area within the domain
        created_at: Creation timestamp (Unix ms)
        updated_at: Last update timestamp (Unix ms)
    """

    id: int
    name: str
    layer: ModelLayer
    parent_model_id: int | None = None
    target_system_id: int | None = None
    domain_id: int | None = None
    data_area_id: int | None = None
    created_at: int = 0
    updated_at: int = 0


@dataclass
class System(_Record):
    """A connected external system (database, warehouse, API)."""

    id: int
    name: str
    category: str
    type: str
    configuration: dict[str, Any] = dataclass_field(default_factory=dict)
    can_be_source: bool = True
    can_be_target: bool = True
    created_at: int = 0


@dataclass
class DataObject(_Record):
    """A canonical business object.

    Replicas created by cascading carry the origin link in metadata.
    """

    id: int
    name: str
    model_id: int
    domain_id: int | None = None
    data_area_id: int | None = None
    source_system_id: int | None = None
    target_system_id: int | None = None
    system_id: int | None = None
    object_type: str | None = None
    description: str | None = None
    position: dict[str, Any] | None = None
    metadata: dict[str, Any] = dataclass_field(default_factory=dict)
    is_new: bool = True
    created_at: int = 0
    updated_at: int = 0

    @property
    def origin_object_id(self) -> int | None:
        return self.metadata.get(ORIGIN_OBJECT_KEY)


@dataclass
class Attribute(_Record):
    """A field on a canonical object, with a type hint per layer."""

    id: int
    object_id: int
    name: str
    conceptual_type: str | None = None
    logical_type: str | None = None
    physical_type: str | None = None
    data_type: str | None = None
    length: int | None = None
    precision: int | None = None
    scale: int | None = None
    nullable: bool = True
    is_primary_key: bool = False
    is_foreign_key: bool = False
    order_index: int = 0
    description: str | None = None
    created_at: int = 0


@dataclass
class ModelObject(_Record):
    """Projection of a canonical object inside one model.

    Attributes:
        id: Projection id
        object_id: Canonical object id
        model_id: Owning model
        target_system_id: Layer-specific target system
        position: Canvas position ({"x": .., "y": ..})
        metadata: Free-form metadata (carries the origin link)
        is_visible: Whether the projection is shown
        layer_specific_config: Free-form layer configuration blob.
            Other components store their own keys here, so updates
            must read-merge-write.
    """

    id: int
    object_id: int
    model_id: int
    target_system_id: int | None = None
    position: dict[str, Any] | None = None
    metadata: dict[str, Any] = dataclass_field(default_factory=dict)
    is_visible: bool = True
    layer_specific_config: dict[str, Any] = dataclass_field(default_factory=dict)
    created_at: int = 0
    updated_at: int = 0

    @property
    def origin_object_id(self) -> int | None:
        """Conceptual object this projection was replicated from."""
        origin = self.layer_specific_config.get(ORIGIN_OBJECT_KEY)
        if origin is None:
            origin = self.metadata.get(ORIGIN_OBJECT_KEY)
        return origin


@dataclass
class ModelAttribute(_Record):
    """Projection of a canonical attribute inside one layer object projection."""

    id: int
    attribute_id: int
    model_object_id: int
    model_id: int
    conceptual_type: str | None = None
    logical_type: str | None = None
    physical_type: str | None = None
    nullable: bool = True
    is_primary_key: bool = False
    is_foreign_key: bool = False
    order_index: int = 0
    layer_specific_config: dict[str, Any] = dataclass_field(default_factory=dict)
    created_at: int = 0


RelationshipKeyParts = tuple[int, int, RelationshipLevel, int | None, int | None]


@dataclass
class ObjectRelationship(_Record):
    """Canonical relationship between two canonical objects."""

    id: int
    source_object_id: int
    target_object_id: int
    type: RelationshipType
    relationship_level: RelationshipLevel = RelationshipLevel.OBJECT
    source_attribute_id: int | None = None
    target_attribute_id: int | None = None
    name: str | None = None
    description: str | None = None
    metadata: dict[str, Any] = dataclass_field(default_factory=dict)
    created_at: int = 0
    updated_at: int = 0

    def key_parts(self) -> RelationshipKeyParts:
        return (
            self.source_object_id,
            self.target_object_id,
            self.relationship_level,
            self.source_attribute_id,
            self.target_attribute_id,
        )


@dataclass
class ModelRelationship(_Record):
    """Layer projection of a relationship inside one model.

    Endpoints are layer object projection ids; attribute ids are
    layer attribute projection ids.
    """

    id: int
    model_id: int
    layer: ModelLayer
    source_model_object_id: int
    target_model_object_id: int
    type: RelationshipType
    relationship_level: RelationshipLevel = RelationshipLevel.OBJECT
    source_attribute_id: int | None = None
    target_attribute_id: int | None = None
    source_handle: str | None = None
    target_handle: str | None = None
    name: str | None = None
    description: str | None = None
    created_at: int = 0
    updated_at: int = 0

    def key_parts(self) -> RelationshipKeyParts:
        return (
            self.source_model_object_id,
            self.target_model_object_id,
            self.relationship_level,
            self.source_attribute_id,
            self.target_attribute_id,
        )
