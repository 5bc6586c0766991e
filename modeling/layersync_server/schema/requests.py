"""
Validated request payloads for LayerSync handlers.

These pydantic models are shared by the HTTP routes and the handlers in
service/, so a request rejected here never reaches the store.

Fields left out of an update request are distinguished from fields set
to null through ``model_fields_set``: only provided fields change.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, model_validator

from .types import ModelLayer, RelationshipType, SystemDirection


class _Request(BaseModel):
    """Base for request payloads; several fields are named model_*."""

    model_config = {"protected_namespaces": ()}


class Position(_Request):
    """Canvas position."""

    x: float
    y: float


class ModelObjectConfig(_Request):
    """Layer configuration for a layer object projection."""

    position: Position | None = None
    target_system_id: int | None = Field(None, gt=0)
    metadata: dict[str, Any] | None = None
    is_visible: bool | None = None
    layer_specific_config: dict[str, Any] | None = None


class PerLayerConfig(_Request):
    """Optional override of the base configuration per layer."""

    conceptual: ModelObjectConfig | None = None
    logical: ModelObjectConfig | None = None
    physical: ModelObjectConfig | None = None

    def for_layer(self, layer: ModelLayer) -> ModelObjectConfig | None:
        return getattr(self, layer.value)


class AttributeInput(_Request):
    """An attribute supplied while creating an object."""

    name: str = Field(..., min_length=1)
    conceptual_type: str | None = None
    logical_type: str | None = None
    physical_type: str | None = None
    data_type: str | None = None
    description: str | None = None
    nullable: bool | None = None
    is_primary_key: bool | None = None
    is_foreign_key: bool | None = None
    length: int | None = None
    precision: int | None = None
    scale: int | None = None
    order_index: int | None = None
    metadata: dict[str, Any] | None = None


class CreateAttributeRequest(AttributeInput):
    """Request to add an attribute to an existing object.

    On a conceptual object the attribute is also added to the object's
    replicas unless ``cascade`` is false.
    """

    object_id: int = Field(..., gt=0)
    cascade: bool | None = None


class UpdateAttributeRequest(_Request):
    """Partial update of a canonical attribute."""

    name: str | None = Field(None, min_length=1)
    conceptual_type: str | None = None
    logical_type: str | None = None
    physical_type: str | None = None
    data_type: str | None = None
    description: str | None = None
    nullable: bool | None = None
    is_primary_key: bool | None = None
    is_foreign_key: bool | None = None
    length: int | None = None
    precision: int | None = None
    scale: int | None = None
    order_index: int | None = None

    @model_validator(mode="after")
    def require_one_field(self) -> UpdateAttributeRequest:
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class RelationshipInput(_Request):
    """A relationship supplied while creating an object.

    The new object is the source; attribute names are resolved against
    the canonical attributes of each side.
    """

    target_object_id: int = Field(..., gt=0)
    type: RelationshipType | None = None
    source_attribute_name: str | None = None
    target_attribute_name: str | None = None
    name: str | None = None
    description: str | None = None
    metadata: dict[str, Any] | None = None


class CreateModelRequest(_Request):
    """Request to create a single model."""

    name: str = Field(..., min_length=1)
    layer: ModelLayer = ModelLayer.CONCEPTUAL
    parent_model_id: int | None = Field(None, gt=0)
    target_system_id: int | None = Field(None, gt=0)
    domain_id: int | None = Field(None, gt=0)
    data_area_id: int | None = Field(None, gt=0)


class CreateModelFamilyRequest(_Request):
    """Request to create a conceptual + logical + physical triple."""

    name: str = Field(..., min_length=1)
    target_system_id: int | None = Field(None, gt=0)
    domain_id: int | None = Field(None, gt=0)
    data_area_id: int | None = Field(None, gt=0)


class CreateObjectRequest(_Request):
    """Request to create an object in its home model."""

    name: str = Field(..., min_length=1)
    model_id: int = Field(..., gt=0)
    domain_id: int | None = Field(None, gt=0)
    data_area_id: int | None = Field(None, gt=0)
    source_system_id: int | None = Field(None, gt=0)
    target_system_id: int | None = Field(None, gt=0)
    object_type: str | None = None
    description: str | None = None
    position: Position | None = None
    metadata: dict[str, Any] | None = None
    attributes: list[AttributeInput] = Field(default_factory=list)
    relationships: list[RelationshipInput] = Field(default_factory=list)
    cascade: bool | None = None
    model_object_config: ModelObjectConfig = Field(default_factory=ModelObjectConfig)
    layer_model_object_config: PerLayerConfig = Field(default_factory=PerLayerConfig)


class CreateRelationshipRequest(_Request):
    """Request to create a relationship between two canonical objects."""

    model_id: int = Field(..., gt=0)
    source_object_id: int = Field(..., gt=0)
    target_object_id: int = Field(..., gt=0)
    type: RelationshipType
    source_attribute_id: int | None = Field(None, gt=0)
    target_attribute_id: int | None = Field(None, gt=0)
    source_handle: str | None = None
    target_handle: str | None = None
    name: str | None = None
    description: str | None = None
    metadata: dict[str, Any] | None = None


class UpdateRelationshipRequest(_Request):
    """Partial update of a layer relationship.

    Attribute ids may be canonical attribute ids or layer attribute
    projection ids of the relationship's model.
    """

    type: RelationshipType | None = None
    source_attribute_id: int | None = Field(None, gt=0)
    target_attribute_id: int | None = Field(None, gt=0)
    source_handle: str | None = None
    target_handle: str | None = None
    name: str | None = None
    description: str | None = None
    metadata: dict[str, Any] | None = None

    @model_validator(mode="after")
    def require_one_field(self) -> UpdateRelationshipRequest:
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class CreateSystemRequest(_Request):
    """Request to register a connected system."""

    name: str = Field(..., min_length=1)
    category: str = "database"
    type: str = "sqlite"
    configuration: dict[str, Any] = Field(default_factory=dict)
    can_be_source: bool = True
    can_be_target: bool = True


class SystemSyncRequest(_Request):
    """Request to pull table metadata from a system into a model."""

    model_id: int = Field(..., gt=0)
    direction: SystemDirection = SystemDirection.SOURCE
    include_attributes: bool = True
    domain_id: int | None = Field(None, gt=0)
    data_area_id: int | None = Field(None, gt=0)
    metadata_only: bool = False
