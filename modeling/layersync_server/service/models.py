"""
Model handlers.

Models are created one at a time or as a conceptual + logical + physical
triple sharing target system, domain and data area. Logical and physical
models must hang off an existing parent so their family can be resolved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..errors import NotFoundError, ValidationError
from ..schema.requests import CreateModelFamilyRequest, CreateModelRequest
from ..schema.types import DataModel, ModelLayer
from ..store.model_store import ModelStore
from ..sync.cache import SyncCache
from ..sync.family import ModelFamily, resolve_family

logger = logging.getLogger(__name__)


@dataclass
class ModelTriple:
    conceptual: DataModel
    logical: DataModel
    physical: DataModel

    def to_dict(self) -> dict:
        return {
            "conceptual": self.conceptual.to_dict(),
            "logical": self.logical.to_dict(),
            "physical": self.physical.to_dict(),
        }


async def get_model_or_raise(store: ModelStore, model_id: int) -> DataModel:
    model = await store.get_model(model_id)
    if model is None:
        raise NotFoundError(f"Model not found: {model_id}", "model", model_id)
    return model


async def create_model(store: ModelStore, request: CreateModelRequest) -> DataModel:
    """Create a single model.

    Raises:
        ValidationError: If a logical/physical model has no parent
        NotFoundError: If the parent model does not exist
    """
    if request.layer is not ModelLayer.CONCEPTUAL and request.parent_model_id is None:
        raise ValidationError(
            f"A {request.layer.value} model requires a parent model",
            field_name="parent_model_id",
        )
    if request.parent_model_id is not None:
        await get_model_or_raise(store, request.parent_model_id)

    model = await store.create_model(
        name=request.name,
        layer=request.layer,
        parent_model_id=request.parent_model_id,
        target_system_id=request.target_system_id,
        domain_id=request.domain_id,
        data_area_id=request.data_area_id,
    )
    logger.info(f"Created {model.layer.value} model {model.id}", extra={"model_name": model.name})
    return model


async def create_model_family(store: ModelStore, request: CreateModelFamilyRequest) -> ModelTriple:
    """Create a conceptual model with logical and physical children."""
    shared = {
        "target_system_id": request.target_system_id,
        "domain_id": request.domain_id,
        "data_area_id": request.data_area_id,
    }
    conceptual = await store.create_model(name=request.name, layer=ModelLayer.CONCEPTUAL, **shared)
    logical = await store.create_model(
        name=request.name, layer=ModelLayer.LOGICAL, parent_model_id=conceptual.id, **shared
    )
    physical = await store.create_model(
        name=request.name, layer=ModelLayer.PHYSICAL, parent_model_id=conceptual.id, **shared
    )
    logger.info(
        f"Created model family {request.name}",
        extra={"model_ids": [conceptual.id, logical.id, physical.id]},
    )
    return ModelTriple(conceptual=conceptual, logical=logical, physical=physical)


async def get_model_family(store: ModelStore, model_id: int) -> ModelFamily:
    model = await get_model_or_raise(store, model_id)
    return await resolve_family(SyncCache(store), model)
