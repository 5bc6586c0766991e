"""
Request-scoped read cache for synchronization.

A SyncCache is created per inbound request and threaded explicitly through
the replicator, synchronizer and remover. It is never shared between
requests, so each request works on its own consistent snapshot.

Invariants:
    - Lists are loaded from the store on first access, then kept current
      by mirroring this request's own writes into them
    - A write for a key that was never loaded is not mirrored; the next
      read loads it from the store, which already includes the write
"""

from __future__ import annotations

from ..config import SyncConfig
from ..schema.types import (
    Attribute,
    DataModel,
    DataObject,
    ModelAttribute,
    ModelObject,
    ModelRelationship,
)
from ..store.model_store import ModelStore


class SyncCache:
    """Per-request cache keyed by model id and canonical object id."""

    def __init__(self, store: ModelStore, name_fallback: bool = True) -> None:
        self.store = store
        self.name_fallback = name_fallback
        self._models: list[DataModel] | None = None
        self._model_objects: dict[int, list[ModelObject]] = {}
        self._model_attributes: dict[int, list[ModelAttribute]] = {}
        self._relationships: dict[int, list[ModelRelationship]] = {}
        self._attributes: dict[int, list[Attribute]] = {}
        self._objects: dict[int, DataObject | None] = {}
        self._attribute_by_id: dict[int, Attribute | None] = {}

    @classmethod
    def for_config(cls, store: ModelStore, sync_config: SyncConfig | None = None) -> SyncCache:
        sync_config = sync_config or SyncConfig()
        return cls(store, name_fallback=sync_config.name_fallback_matching)

    # --- Reads ---

    async def models(self) -> list[DataModel]:
        if self._models is None:
            self._models = await self.store.list_models()
        return self._models

    async def model_objects(self, model_id: int) -> list[ModelObject]:
        if model_id not in self._model_objects:
            self._model_objects[model_id] = await self.store.list_model_objects_by_model(model_id)
        return self._model_objects[model_id]

    async def model_attributes(self, model_id: int) -> list[ModelAttribute]:
        if model_id not in self._model_attributes:
            self._model_attributes[model_id] = await self.store.list_model_attributes_by_model(
                model_id
            )
        return self._model_attributes[model_id]

    async def relationships(self, model_id: int) -> list[ModelRelationship]:
        if model_id not in self._relationships:
            self._relationships[model_id] = await self.store.list_model_relationships_by_model(
                model_id
            )
        return self._relationships[model_id]

    async def attributes(self, object_id: int) -> list[Attribute]:
        if object_id not in self._attributes:
            self._attributes[object_id] = await self.store.list_attributes_by_object(object_id)
        return self._attributes[object_id]

    async def attribute(self, attribute_id: int) -> Attribute | None:
        if attribute_id not in self._attribute_by_id:
            self._attribute_by_id[attribute_id] = await self.store.get_attribute(attribute_id)
        return self._attribute_by_id[attribute_id]

    async def object(self, object_id: int) -> DataObject | None:
        if object_id not in self._objects:
            self._objects[object_id] = await self.store.get_object(object_id)
        return self._objects[object_id]

    # --- Write mirroring ---

    def add_model(self, model: DataModel) -> None:
        if self._models is not None:
            self._models.append(model)

    def add_object(self, obj: DataObject, new: bool = False) -> None:
        """Remember an object; ``new`` marks it as having no attributes yet."""
        self._objects[obj.id] = obj
        if new:
            self._attributes.setdefault(obj.id, [])

    def add_model_object(self, model_object: ModelObject) -> None:
        entries = self._model_objects.get(model_object.model_id)
        if entries is not None:
            entries.append(model_object)

    def add_attribute(self, attribute: Attribute) -> None:
        self._attribute_by_id[attribute.id] = attribute
        entries = self._attributes.get(attribute.object_id)
        if entries is not None:
            entries.append(attribute)

    def add_model_attribute(self, model_attribute: ModelAttribute) -> None:
        entries = self._model_attributes.get(model_attribute.model_id)
        if entries is not None:
            entries.append(model_attribute)

    def put_relationship(self, relationship: ModelRelationship) -> None:
        """Insert or replace a layer relationship by id."""
        entries = self._relationships.get(relationship.model_id)
        if entries is None:
            return
        for index, existing in enumerate(entries):
            if existing.id == relationship.id:
                entries[index] = relationship
                return
        entries.append(relationship)

    def drop_relationship(self, relationship: ModelRelationship) -> None:
        entries = self._relationships.get(relationship.model_id)
        if entries is not None:
            entries[:] = [entry for entry in entries if entry.id != relationship.id]
