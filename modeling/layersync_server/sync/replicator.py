"""
Replication of canonical objects into sibling layers.

When an object is created in a conceptual model, each sibling layer gets
its own canonical copy (not an alias) stamped with the origin link, a
layer object projection built from the merged layer configuration, and a
copy of every attribute with its attribute projection.

Invariants:
    - Per-layer replication is independent; a missing sibling layer is
      skipped by the caller, not treated as an error
    - Type hints are inherited through an explicit ordered lookup
      (see TYPE_HINT_ORDER)
    - Every write is mirrored into the request's SyncCache

How to change safely:
    - Keep the origin link keys in both metadata and layer_specific_config;
      older projections only carry one of them
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from ..schema.requests import AttributeInput, ModelObjectConfig
from ..schema.types import (
    ORIGIN_MODEL_KEY,
    ORIGIN_OBJECT_KEY,
    Attribute,
    DataModel,
    DataObject,
    ModelAttribute,
    ModelLayer,
    ModelObject,
)
from .cache import SyncCache

logger = logging.getLogger(__name__)

# Lookup order for the type hint of an attribute in each layer.
TYPE_HINT_ORDER: dict[ModelLayer, tuple[str, ...]] = {
    ModelLayer.CONCEPTUAL: ("conceptual_type", "logical_type", "physical_type", "data_type"),
    ModelLayer.LOGICAL: ("logical_type", "conceptual_type", "physical_type", "data_type"),
    ModelLayer.PHYSICAL: ("physical_type", "logical_type", "conceptual_type", "data_type"),
}


@dataclass
class ObjectPayload:
    """Object fields shared by the home object and its replicas."""

    name: str
    domain_id: int | None = None
    data_area_id: int | None = None
    source_system_id: int | None = None
    target_system_id: int | None = None
    system_id: int | None = None
    object_type: str | None = None
    description: str | None = None
    position: dict[str, Any] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class LayerCreationResult:
    """Everything created for one object in one layer."""

    layer: ModelLayer
    model: DataModel
    object: DataObject
    model_object: ModelObject
    attributes: list[Attribute] = field(default_factory=list)
    model_attributes: list[ModelAttribute] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "layer": self.layer.value,
            "model_id": self.model.id,
            "object": self.object.to_dict(),
            "model_object": self.model_object.to_dict(),
            "attributes": [a.to_dict() for a in self.attributes],
            "model_attributes": [a.to_dict() for a in self.model_attributes],
        }


def first_present(*values: Any) -> Any:
    """Return the first value that is not None."""
    for value in values:
        if value is not None:
            return value
    return None


def resolve_type_hint(attribute: AttributeInput, layer: ModelLayer) -> str | None:
    """Type hint for ``layer``, falling back through the other layers."""
    return first_present(*(getattr(attribute, name) for name in TYPE_HINT_ORDER[layer]))


def merge_layer_config(
    base: ModelObjectConfig, override: ModelObjectConfig | None = None
) -> ModelObjectConfig:
    """Merge a per-layer override onto the base configuration.

    Fields set on the override win; fields it leaves out are inherited.
    """
    if override is None:
        return base
    merged = {**base.model_dump(exclude_unset=True), **override.model_dump(exclude_unset=True)}
    return ModelObjectConfig.model_validate(merged)


def _position_dict(config: ModelObjectConfig) -> dict[str, Any] | None:
    return config.position.model_dump() if config.position is not None else None


async def create_layer_attributes(
    cache: SyncCache,
    layer: ModelLayer,
    model: DataModel,
    model_object: ModelObject,
    object_id: int,
    attribute_inputs: list[AttributeInput],
    origin: dict[str, Any] | None = None,
) -> tuple[list[Attribute], list[ModelAttribute]]:
    """Create canonical attributes on ``object_id`` and project them into ``model``.

    Args:
        cache: Request cache
        layer: Layer the attributes are created for
        model: Model holding the projection
        model_object: Projection the attribute projections belong to
        object_id: Canonical object owning the attributes
        attribute_inputs: Attributes to create, in order
        origin: Origin link stamped into each attribute projection

    Returns:
        Created canonical attributes and attribute projections
    """
    attributes: list[Attribute] = []
    model_attributes: list[ModelAttribute] = []

    for index, attribute_input in enumerate(attribute_inputs):
        order_index = first_present(attribute_input.order_index, index)
        if origin is None:
            # Home-layer attributes keep the author's hints as given
            conceptual_type = resolve_type_hint(attribute_input, ModelLayer.CONCEPTUAL)
            logical_type = attribute_input.logical_type
            physical_type = attribute_input.physical_type
        else:
            conceptual_type = resolve_type_hint(attribute_input, ModelLayer.CONCEPTUAL)
            logical_type = resolve_type_hint(attribute_input, ModelLayer.LOGICAL)
            physical_type = resolve_type_hint(attribute_input, ModelLayer.PHYSICAL)

        attribute = await cache.store.create_attribute(
            object_id=object_id,
            name=attribute_input.name,
            conceptual_type=conceptual_type,
            logical_type=logical_type,
            physical_type=physical_type,
            data_type=attribute_input.data_type,
            length=attribute_input.length,
            precision=attribute_input.precision,
            scale=attribute_input.scale,
            nullable=first_present(attribute_input.nullable, True),
            is_primary_key=first_present(attribute_input.is_primary_key, False),
            is_foreign_key=first_present(attribute_input.is_foreign_key, False),
            order_index=order_index,
            description=attribute_input.description,
        )
        cache.add_attribute(attribute)
        attributes.append(attribute)

        layer_config: dict[str, Any] = {**(attribute_input.metadata or {}), "layer": layer.value}
        if origin:
            layer_config.update(origin)
            layer_config["originConceptualAttributeName"] = attribute_input.name

        model_attribute = await cache.store.create_model_attribute(
            attribute_id=attribute.id,
            model_object_id=model_object.id,
            model_id=model.id,
            conceptual_type=first_present(
                attribute_input.conceptual_type, attribute.conceptual_type
            ),
            logical_type=first_present(attribute_input.logical_type, attribute.logical_type),
            physical_type=first_present(attribute_input.physical_type, attribute.physical_type),
            nullable=attribute.nullable,
            is_primary_key=attribute.is_primary_key,
            is_foreign_key=attribute.is_foreign_key,
            order_index=order_index,
            layer_specific_config=layer_config,
        )
        cache.add_model_attribute(model_attribute)
        model_attributes.append(model_attribute)

    return attributes, model_attributes


async def replicate_object_to_layer(
    cache: SyncCache,
    layer: ModelLayer,
    conceptual_model: DataModel,
    conceptual_object: DataObject,
    target_model: DataModel,
    object_payload: ObjectPayload,
    attribute_inputs: list[AttributeInput],
    config: ModelObjectConfig,
) -> LayerCreationResult:
    """Clone a conceptual object and its attributes into ``target_model``.

    Args:
        cache: Request cache
        layer: Layer of the target model
        conceptual_model: Home model of the conceptual object
        conceptual_object: Object being replicated
        target_model: Sibling model receiving the copy
        object_payload: Fields of the object as authored
        attribute_inputs: Attributes as authored
        config: Layer configuration, already merged with any override

    Returns:
        LayerCreationResult for the target layer
    """
    origin = {
        ORIGIN_OBJECT_KEY: conceptual_object.id,
        ORIGIN_MODEL_KEY: conceptual_model.id,
    }

    target_system_id = first_present(
        config.target_system_id,
        target_model.target_system_id,
        object_payload.target_system_id,
    )
    position = first_present(_position_dict(config), object_payload.position)

    cloned = await cache.store.create_object(
        name=object_payload.name,
        model_id=target_model.id,
        domain_id=object_payload.domain_id,
        data_area_id=object_payload.data_area_id,
        source_system_id=object_payload.source_system_id,
        target_system_id=target_system_id,
        system_id=object_payload.system_id,
        object_type=object_payload.object_type,
        description=object_payload.description,
        position=position,
        metadata={**object_payload.metadata, **origin},
    )
    cache.add_object(cloned, new=True)

    model_object = await cache.store.create_model_object(
        object_id=cloned.id,
        model_id=target_model.id,
        target_system_id=target_system_id,
        position=position,
        metadata={**(config.metadata or {}), **origin, "layer": layer.value},
        is_visible=first_present(config.is_visible, True),
        layer_specific_config={
            **(config.layer_specific_config or {}),
            "layer": layer.value,
            **origin,
        },
    )
    cache.add_model_object(model_object)

    attributes, model_attributes = await create_layer_attributes(
        cache,
        layer,
        target_model,
        model_object,
        cloned.id,
        attribute_inputs,
        origin=origin,
    )

    logger.info(
        f"Replicated object {conceptual_object.id} into {layer.value} model {target_model.id}",
        extra={
            "object_id": cloned.id,
            "model_object_id": model_object.id,
            "attribute_count": len(attributes),
        },
    )

    return LayerCreationResult(
        layer=layer,
        model=target_model,
        object=cloned,
        model_object=model_object,
        attributes=attributes,
        model_attributes=model_attributes,
    )
