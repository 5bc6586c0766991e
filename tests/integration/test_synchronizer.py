"""
Integration tests for relationship synchronization and removal.

Tests cover:
- Propagation to every model of a family (object and attribute level)
- Attribute projections created on demand
- Object-level fallback where attributes cannot be resolved
- Idempotence and direction insensitivity
- Removal of every matching projection, duplicates included
"""

import tempfile
from types import SimpleNamespace

import pytest

from modeling.layersync_server.schema.types import (
    ORIGIN_OBJECT_KEY,
    ModelLayer,
    RelationshipLevel,
    RelationshipType,
)
from modeling.layersync_server.store.model_store import ModelStore
from modeling.layersync_server.sync import (
    RelationshipSyncInput,
    find_matching_relationship,
    remove_family_relationships,
    synchronize_family_relationships,
)


async def _family_with_objects(store, replicate_physical=False):
    """Conceptual model with Order and Customer projected into L and P.

    With ``replicate_physical`` the physical model holds origin-linked
    replicas that carry no attributes instead of the objects themselves.
    """
    await store.initialize()
    conceptual = await store.create_model("Sales", ModelLayer.CONCEPTUAL)
    logical = await store.create_model("Sales", ModelLayer.LOGICAL, parent_model_id=conceptual.id)
    physical = await store.create_model(
        "Sales", ModelLayer.PHYSICAL, parent_model_id=conceptual.id
    )
    order = await store.create_object("Order", conceptual.id)
    customer = await store.create_object("Customer", conceptual.id)

    projections = {}
    for model in (conceptual, logical, physical):
        if model is physical and replicate_physical:
            pairs = []
            for obj in (order, customer):
                replica = await store.create_object(
                    obj.name, model.id, metadata={ORIGIN_OBJECT_KEY: obj.id}
                )
                pairs.append(
                    await store.create_model_object(
                        replica.id, model.id, layer_specific_config={ORIGIN_OBJECT_KEY: obj.id}
                    )
                )
            projections[model.id] = tuple(pairs)
        else:
            projections[model.id] = (
                await store.create_model_object(order.id, model.id),
                await store.create_model_object(customer.id, model.id),
            )

    return SimpleNamespace(
        conceptual=conceptual,
        logical=logical,
        physical=physical,
        order=order,
        customer=customer,
        projections=projections,
    )


class TestSynchronizeFamilyRelationships:
    """Tests for synchronize_family_relationships."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    def store(self, data_dir):
        """Create store."""
        return ModelStore(data_dir, wal_mode=False)

    @pytest.mark.asyncio
    async def test_object_level_reaches_every_member(self, store):
        """One relationship projection per family member, in family order."""
        f = await _family_with_objects(store)

        synced = await synchronize_family_relationships(
            store,
            RelationshipSyncInput(
                base_model=f.conceptual,
                source_object_id=f.order.id,
                target_object_id=f.customer.id,
                type=RelationshipType.MANY_TO_ONE,
            ),
        )

        assert list(synced) == [f.conceptual.id, f.logical.id, f.physical.id]
        for model in (f.conceptual, f.logical, f.physical):
            relationships = await store.list_model_relationships_by_model(model.id)
            assert len(relationships) == 1
            order_mo, customer_mo = f.projections[model.id]
            assert relationships[0].source_model_object_id == order_mo.id
            assert relationships[0].target_model_object_id == customer_mo.id
            assert relationships[0].layer is model.layer
            assert relationships[0].relationship_level is RelationshipLevel.OBJECT

    @pytest.mark.asyncio
    async def test_attribute_level_with_fallback(self, store):
        """Missing attribute projections are created; unresolvable ones degrade."""
        f = await _family_with_objects(store, replicate_physical=True)
        customer_ref = await store.create_attribute(f.order.id, "customer_id")
        customer_id = await store.create_attribute(f.customer.id, "id", is_primary_key=True)
        order_mo, customer_mo = f.projections[f.conceptual.id]
        await store.create_model_attribute(customer_ref.id, order_mo.id, f.conceptual.id)
        await store.create_model_attribute(customer_id.id, customer_mo.id, f.conceptual.id)
        assert await store.list_model_attributes_by_model(f.logical.id) == []

        synced = await synchronize_family_relationships(
            store,
            RelationshipSyncInput(
                base_model=f.conceptual,
                source_object_id=f.order.id,
                target_object_id=f.customer.id,
                type=RelationshipType.MANY_TO_ONE,
                relationship_level=RelationshipLevel.ATTRIBUTE,
                source_attribute_id=customer_ref.id,
                target_attribute_id=customer_id.id,
            ),
        )

        assert list(synced) == [f.conceptual.id, f.logical.id, f.physical.id]
        assert synced[f.conceptual.id].relationship_level is RelationshipLevel.ATTRIBUTE
        assert synced[f.logical.id].relationship_level is RelationshipLevel.ATTRIBUTE
        assert synced[f.physical.id].relationship_level is RelationshipLevel.OBJECT
        assert synced[f.physical.id].source_attribute_id is None

        logical_attributes = await store.list_model_attributes_by_model(f.logical.id)
        assert sorted(a.attribute_id for a in logical_attributes) == sorted(
            [customer_ref.id, customer_id.id]
        )
        by_attribute = {a.attribute_id: a.id for a in logical_attributes}
        assert synced[f.logical.id].source_attribute_id == by_attribute[customer_ref.id]
        assert synced[f.logical.id].target_attribute_id == by_attribute[customer_id.id]

    @pytest.mark.asyncio
    async def test_unresolvable_attributes_degrade_to_object_level(self, store):
        """Attribute ids that resolve nowhere still synchronize at object level."""
        f = await _family_with_objects(store)

        synced = await synchronize_family_relationships(
            store,
            RelationshipSyncInput(
                base_model=f.conceptual,
                source_object_id=f.order.id,
                target_object_id=f.customer.id,
                type=RelationshipType.MANY_TO_ONE,
                relationship_level=RelationshipLevel.ATTRIBUTE,
                source_attribute_id=9001,
                target_attribute_id=9002,
            ),
        )

        assert len(synced) == 3
        for relationship in synced.values():
            assert relationship.relationship_level is RelationshipLevel.OBJECT

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, store):
        """Synchronizing the same input twice changes nothing."""
        f = await _family_with_objects(store)
        params = RelationshipSyncInput(
            base_model=f.logical,
            source_object_id=f.order.id,
            target_object_id=f.customer.id,
            type=RelationshipType.MANY_TO_ONE,
            name="places",
        )

        first = await synchronize_family_relationships(store, params)
        second = await synchronize_family_relationships(store, params)

        assert {k: v.id for k, v in first.items()} == {k: v.id for k, v in second.items()}
        for model_id, relationship in second.items():
            assert relationship.updated_at == first[model_id].updated_at
        stats = await store.get_stats()
        assert stats["model_relationships"] == 3

    @pytest.mark.asyncio
    async def test_reversed_request_updates_in_place(self, store):
        """B->A after A->B keeps the stored orientation and does not duplicate."""
        f = await _family_with_objects(store)
        await synchronize_family_relationships(
            store,
            RelationshipSyncInput(
                base_model=f.conceptual,
                source_object_id=f.order.id,
                target_object_id=f.customer.id,
                type=RelationshipType.MANY_TO_ONE,
                source_handle="right",
                target_handle="left",
            ),
        )

        synced = await synchronize_family_relationships(
            store,
            RelationshipSyncInput(
                base_model=f.conceptual,
                source_object_id=f.customer.id,
                target_object_id=f.order.id,
                type=RelationshipType.ONE_TO_ONE,
                source_handle="left",
                target_handle="right",
            ),
        )

        for model in (f.conceptual, f.logical, f.physical):
            relationships = await store.list_model_relationships_by_model(model.id)
            assert len(relationships) == 1
            order_mo, _ = f.projections[model.id]
            assert relationships[0].source_model_object_id == order_mo.id
            assert relationships[0].type is RelationshipType.ONE_TO_ONE
            assert relationships[0].source_handle == "right"
        assert synced[f.conceptual.id].type is RelationshipType.ONE_TO_ONE

    @pytest.mark.asyncio
    async def test_reversed_cardinality_is_flipped(self, store):
        """1:N seen from the other end matches a stored N:1 without a write."""
        f = await _family_with_objects(store)
        first = await synchronize_family_relationships(
            store,
            RelationshipSyncInput(
                base_model=f.conceptual,
                source_object_id=f.order.id,
                target_object_id=f.customer.id,
                type=RelationshipType.MANY_TO_ONE,
            ),
        )

        second = await synchronize_family_relationships(
            store,
            RelationshipSyncInput(
                base_model=f.conceptual,
                source_object_id=f.customer.id,
                target_object_id=f.order.id,
                type=RelationshipType.ONE_TO_MANY,
            ),
        )

        for model_id, relationship in second.items():
            assert relationship.type is RelationshipType.MANY_TO_ONE
            assert relationship.updated_at == first[model_id].updated_at

    @pytest.mark.asyncio
    async def test_member_without_projections_is_skipped(self, store):
        """A member lacking either object is left out, not an error."""
        await store.initialize()
        conceptual = await store.create_model("Sales", ModelLayer.CONCEPTUAL)
        logical = await store.create_model(
            "Sales", ModelLayer.LOGICAL, parent_model_id=conceptual.id
        )
        order = await store.create_object("Order", conceptual.id)
        customer = await store.create_object("Customer", conceptual.id)
        for obj in (order, customer):
            await store.create_model_object(obj.id, conceptual.id)
        await store.create_model_object(order.id, logical.id)

        synced = await synchronize_family_relationships(
            store,
            RelationshipSyncInput(
                base_model=conceptual,
                source_object_id=order.id,
                target_object_id=customer.id,
                type=RelationshipType.ONE_TO_MANY,
            ),
        )

        assert list(synced) == [conceptual.id]
        assert await store.list_model_relationships_by_model(logical.id) == []


class TestRemoveFamilyRelationships:
    """Tests for remove_family_relationships."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    def store(self, data_dir):
        """Create store."""
        return ModelStore(data_dir, wal_mode=False)

    @pytest.mark.asyncio
    async def test_removes_from_every_member(self, store):
        """Removal mirrors synchronization across the family."""
        f = await _family_with_objects(store)
        params = RelationshipSyncInput(
            base_model=f.physical,
            source_object_id=f.order.id,
            target_object_id=f.customer.id,
            type=RelationshipType.MANY_TO_ONE,
        )
        synced = await synchronize_family_relationships(store, params)

        removed = await remove_family_relationships(store, params)

        assert removed == {model_id: [r.id] for model_id, r in synced.items()}
        assert (await store.get_stats())["model_relationships"] == 0

    @pytest.mark.asyncio
    async def test_removes_duplicates_in_both_orientations(self, store):
        """Every match is deleted, including duplicates left by races."""
        f = await _family_with_objects(store)
        order_mo, customer_mo = f.projections[f.conceptual.id]
        pairs = ((order_mo, customer_mo), (order_mo, customer_mo), (customer_mo, order_mo))
        for source, target in pairs:
            await store.create_model_relationship(
                f.conceptual.id,
                ModelLayer.CONCEPTUAL,
                source.id,
                target.id,
                RelationshipType.MANY_TO_ONE,
            )

        removed = await remove_family_relationships(
            store,
            RelationshipSyncInput(
                base_model=f.conceptual,
                source_object_id=f.customer.id,
                target_object_id=f.order.id,
                type=RelationshipType.ONE_TO_MANY,
            ),
        )

        assert len(removed[f.conceptual.id]) == 3
        remaining = await store.list_model_relationships_by_model(f.conceptual.id)
        assert (
            find_matching_relationship(
                remaining, order_mo.id, customer_mo.id, RelationshipLevel.OBJECT
            )
            is None
        )

    @pytest.mark.asyncio
    async def test_other_identities_survive(self, store):
        """Only the named level and attribute pair is removed."""
        f = await _family_with_objects(store)
        attribute = await store.create_attribute(f.order.id, "customer_id")
        key = await store.create_attribute(f.customer.id, "id")
        object_level = RelationshipSyncInput(
            base_model=f.conceptual,
            source_object_id=f.order.id,
            target_object_id=f.customer.id,
            type=RelationshipType.MANY_TO_ONE,
        )
        attribute_level = RelationshipSyncInput(
            base_model=f.conceptual,
            source_object_id=f.order.id,
            target_object_id=f.customer.id,
            type=RelationshipType.MANY_TO_ONE,
            relationship_level=RelationshipLevel.ATTRIBUTE,
            source_attribute_id=attribute.id,
            target_attribute_id=key.id,
        )
        await synchronize_family_relationships(store, object_level)
        await synchronize_family_relationships(store, attribute_level)

        await remove_family_relationships(store, object_level)

        for model in (f.conceptual, f.logical, f.physical):
            relationships = await store.list_model_relationships_by_model(model.id)
            assert [r.relationship_level for r in relationships] == [RelationshipLevel.ATTRIBUTE]

    @pytest.mark.asyncio
    async def test_nothing_to_remove(self, store):
        """Removing an unknown relationship reports nothing."""
        f = await _family_with_objects(store)
        removed = await remove_family_relationships(
            store,
            RelationshipSyncInput(
                base_model=f.conceptual,
                source_object_id=f.order.id,
                target_object_id=f.customer.id,
                type=RelationshipType.MANY_TO_ONE,
            ),
        )
        assert removed == {}
