"""
Connected system handlers.
"""

from __future__ import annotations

import logging

from ..errors import NotFoundError, ValidationError
from ..schema.requests import CreateSystemRequest
from ..schema.types import System
from ..store.model_store import ModelStore

logger = logging.getLogger(__name__)


async def create_system(store: ModelStore, request: CreateSystemRequest) -> System:
    """Register a connected system.

    Raises:
        ValidationError: If a system with the same name exists
    """
    if await store.get_system_by_name(request.name) is not None:
        raise ValidationError(f"System already exists: {request.name}", field_name="name")

    system = await store.create_system(
        name=request.name,
        category=request.category,
        type=request.type,
        configuration=request.configuration,
        can_be_source=request.can_be_source,
        can_be_target=request.can_be_target,
    )
    logger.info(
        f"Registered system {system.id}",
        extra={"system_name": system.name, "system_type": system.type},
    )
    return system


async def get_system_or_raise(store: ModelStore, system_id: int) -> System:
    system = await store.get_system(system_id)
    if system is None:
        raise NotFoundError(f"System not found: {system_id}", "system", system_id)
    return system


async def list_systems(store: ModelStore) -> list[System]:
    return await store.list_systems()
