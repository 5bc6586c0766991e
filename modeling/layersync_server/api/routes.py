"""
API routes for LayerSync.

Routes are thin: they validate the body with the request models from
schema.requests, call one handler and serialize its result. Errors raised
by handlers are mapped to responses in http_server.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request

from ..config import SyncConfig
from ..ingest import sync_system_objects
from ..schema.requests import (
    CreateAttributeRequest,
    CreateModelFamilyRequest,
    CreateModelRequest,
    CreateObjectRequest,
    CreateRelationshipRequest,
    CreateSystemRequest,
    ModelObjectConfig,
    SystemSyncRequest,
    UpdateAttributeRequest,
    UpdateRelationshipRequest,
)
from ..service import (
    create_attribute,
    create_model,
    create_model_family,
    create_object,
    create_relationship,
    create_system,
    delete_attribute,
    delete_object,
    delete_relationship,
    get_model_family,
    list_objects,
    list_systems,
    update_attribute,
    update_model_object,
    update_relationship,
)
from ..store.model_store import ModelStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["LayerSync"])


# --- Dependencies ---


def get_store(request: Request) -> ModelStore:
    """Get the model store from app state."""
    return request.app.state.store


def get_sync_config(request: Request) -> SyncConfig:
    return request.app.state.config.sync


# --- Models ---


@router.post("/models", status_code=201)
async def post_model(
    body: CreateModelRequest,
    store: ModelStore = Depends(get_store),
) -> dict[str, Any]:
    """Create a single model. Logical and physical models need a parent."""
    model = await create_model(store, body)
    return model.to_dict()


@router.post("/models/family", status_code=201)
async def post_model_family(
    body: CreateModelFamilyRequest,
    store: ModelStore = Depends(get_store),
) -> dict[str, Any]:
    """Create a conceptual model with its logical and physical children."""
    triple = await create_model_family(store, body)
    return triple.to_dict()


@router.get("/models/{model_id}/family")
async def get_family(
    model_id: int,
    store: ModelStore = Depends(get_store),
) -> dict[str, Any]:
    """Resolve the family a model belongs to."""
    family = await get_model_family(store, model_id)
    return family.to_dict()


@router.get("/models/{model_id}/objects")
async def get_model_objects(
    model_id: int,
    store: ModelStore = Depends(get_store),
) -> list[dict[str, Any]]:
    """List the canonical objects whose home is this model."""
    objects = await list_objects(store, model_id)
    return [obj.to_dict() for obj in objects]


# --- Objects ---


@router.post("/objects", status_code=201)
async def post_object(
    body: CreateObjectRequest,
    store: ModelStore = Depends(get_store),
    sync_config: SyncConfig = Depends(get_sync_config),
) -> dict[str, Any]:
    """
    Create an object in its home model.

    For a conceptual home model the object is replicated into the logical
    and physical models of its family unless ``cascade`` is false.
    """
    result = await create_object(store, body, sync_config)
    return result.to_dict()


@router.delete("/objects/{object_id}")
async def remove_object(
    object_id: int,
    store: ModelStore = Depends(get_store),
) -> dict[str, Any]:
    await delete_object(store, object_id)
    return {"deleted": True, "object_id": object_id}


@router.patch("/model-objects/{model_object_id}")
async def patch_model_object(
    model_object_id: int,
    body: ModelObjectConfig,
    store: ModelStore = Depends(get_store),
) -> dict[str, Any]:
    """Patch a layer object projection; JSON blobs are merged, not replaced."""
    updated = await update_model_object(store, model_object_id, body)
    return updated.to_dict()


# --- Attributes ---


@router.post("/attributes", status_code=201)
async def post_attribute(
    body: CreateAttributeRequest,
    store: ModelStore = Depends(get_store),
    sync_config: SyncConfig = Depends(get_sync_config),
) -> dict[str, Any]:
    """
    Add an attribute to an object.

    On a conceptual object the attribute is copied to its logical and
    physical replicas unless ``cascade`` is false.
    """
    result = await create_attribute(store, body, sync_config)
    return result.to_dict()


@router.patch("/attributes/{attribute_id}")
async def patch_attribute(
    attribute_id: int,
    body: UpdateAttributeRequest,
    store: ModelStore = Depends(get_store),
    sync_config: SyncConfig = Depends(get_sync_config),
) -> dict[str, Any]:
    """Patch an attribute; logical changes are pushed to the physical sibling."""
    result = await update_attribute(store, attribute_id, body, sync_config)
    return result.to_dict()


@router.delete("/attributes/{attribute_id}")
async def remove_attribute(
    attribute_id: int,
    store: ModelStore = Depends(get_store),
) -> dict[str, Any]:
    await delete_attribute(store, attribute_id)
    return {"deleted": True, "attribute_id": attribute_id}


# --- Relationships ---


@router.post("/relationships", status_code=201)
async def post_relationship(
    body: CreateRelationshipRequest,
    store: ModelStore = Depends(get_store),
    sync_config: SyncConfig = Depends(get_sync_config),
) -> dict[str, Any]:
    """
    Create a relationship and propagate it across the model family.

    Drawing the same relationship again, in either direction, updates the
    existing one.
    """
    result = await create_relationship(store, body, sync_config)
    return result.to_dict()


@router.patch("/relationships/{relationship_id}")
async def patch_relationship(
    relationship_id: int,
    body: UpdateRelationshipRequest,
    store: ModelStore = Depends(get_store),
    sync_config: SyncConfig = Depends(get_sync_config),
) -> dict[str, Any]:
    result = await update_relationship(store, relationship_id, body, sync_config)
    return result.to_dict()


@router.delete("/relationships/{relationship_id}")
async def remove_relationship(
    relationship_id: int,
    store: ModelStore = Depends(get_store),
    sync_config: SyncConfig = Depends(get_sync_config),
) -> dict[str, Any]:
    """Delete a relationship from every model of the family."""
    result = await delete_relationship(store, relationship_id, sync_config)
    return result.to_dict()


# --- Systems ---


@router.get("/systems")
async def get_systems(store: ModelStore = Depends(get_store)) -> list[dict[str, Any]]:
    return [system.to_dict() for system in await list_systems(store)]


@router.post("/systems", status_code=201)
async def post_system(
    body: CreateSystemRequest,
    store: ModelStore = Depends(get_store),
) -> dict[str, Any]:
    system = await create_system(store, body)
    return system.to_dict()


@router.post("/systems/{system_id}/sync")
async def post_system_sync(
    system_id: int,
    body: SystemSyncRequest,
    store: ModelStore = Depends(get_store),
    sync_config: SyncConfig = Depends(get_sync_config),
) -> dict[str, Any]:
    """
    Pull table metadata from a system into a model.

    With ``metadata_only`` the fetched metadata is returned and nothing is
    written.
    """
    result = await sync_system_objects(store, system_id, body, sync_config=sync_config)
    return result.to_dict()
