"""
Integration tests for relationship handlers.

Tests cover:
- Create with family propagation and canonical upsert
- Duplicate prevention for relationships drawn in either direction
- Projection lookups limited to the base model's family
- Partial updates, including identity changes
- Family-wide deletion
"""

import tempfile
from types import SimpleNamespace

import pytest

from modeling.layersync_server.errors import NotFoundError, ValidationError
from modeling.layersync_server.schema.requests import (
    AttributeInput,
    CreateModelFamilyRequest,
    CreateModelRequest,
    CreateObjectRequest,
    CreateRelationshipRequest,
    UpdateRelationshipRequest,
)
from modeling.layersync_server.schema.types import (
    ModelLayer,
    RelationshipLevel,
    RelationshipType,
)
from modeling.layersync_server.service import (
    create_model,
    create_model_family,
    create_object,
    create_relationship,
    delete_relationship,
    update_relationship,
)
from modeling.layersync_server.store.model_store import ModelStore


async def _sales_family(store):
    """Family with Customer(id, name) and Order(id, customer_id) cascaded to every layer."""
    await store.initialize()
    triple = await create_model_family(store, CreateModelFamilyRequest(name="Sales"))
    customer = await create_object(
        store,
        CreateObjectRequest(
            name="Customer",
            model_id=triple.conceptual.id,
            attributes=[
                AttributeInput(name="id", is_primary_key=True),
                AttributeInput(name="name"),
            ],
        ),
    )
    order = await create_object(
        store,
        CreateObjectRequest(
            name="Order",
            model_id=triple.conceptual.id,
            attributes=[
                AttributeInput(name="id", is_primary_key=True),
                AttributeInput(name="customer_id"),
            ],
        ),
    )
    return SimpleNamespace(
        conceptual=triple.conceptual,
        logical=triple.logical,
        physical=triple.physical,
        customer=customer,
        order=order,
    )


def _order_to_customer(f, **kwargs):
    return CreateRelationshipRequest(
        model_id=f.conceptual.id,
        source_object_id=f.order.object.id,
        target_object_id=f.customer.object.id,
        type=RelationshipType.MANY_TO_ONE,
        **kwargs,
    )


class TestCreateRelationship:
    """Tests for create_relationship."""

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
    async def test_propagates_to_family(self, store):
        """An object-level relationship lands in every layer."""
        f = await _sales_family(store)

        result = await create_relationship(store, _order_to_customer(f, name="places"))

        assert result.synced_model_ids == [f.conceptual.id, f.logical.id, f.physical.id]
        assert result.relationship.model_id == f.conceptual.id
        assert result.relationship.name == "places"
        canonical = await store.list_object_relationships()
        assert [r.id for r in canonical] == [result.object_relationship_id]
        assert canonical[0].type is RelationshipType.MANY_TO_ONE

        logical = await store.list_model_relationships_by_model(f.logical.id)
        assert len(logical) == 1
        assert logical[0].source_model_object_id == f.order.layers[0].model_object.id
        assert logical[0].target_model_object_id == f.customer.layers[0].model_object.id

    @pytest.mark.asyncio
    async def test_attribute_level_maps_replica_attributes(self, store):
        """Attribute ids are translated to each layer's attribute projections."""
        f = await _sales_family(store)

        result = await create_relationship(
            store,
            _order_to_customer(
                f,
                source_attribute_id=f.order.primary.attributes[1].id,
                target_attribute_id=f.customer.primary.attributes[0].id,
            ),
        )

        assert result.relationship.relationship_level is RelationshipLevel.ATTRIBUTE
        assert result.relationship.source_attribute_id == f.order.primary.model_attributes[1].id
        for index, model in enumerate((f.logical, f.physical)):
            relationships = await store.list_model_relationships_by_model(model.id)
            assert len(relationships) == 1
            assert relationships[0].relationship_level is RelationshipLevel.ATTRIBUTE
            assert (
                relationships[0].source_attribute_id
                == f.order.layers[index].model_attributes[1].id
            )
            assert (
                relationships[0].target_attribute_id
                == f.customer.layers[index].model_attributes[0].id
            )

    @pytest.mark.asyncio
    async def test_reverse_direction_does_not_duplicate(self, store):
        """Drawing B->A after A->B updates the existing records."""
        f = await _sales_family(store)
        first = await create_relationship(store, _order_to_customer(f))

        second = await create_relationship(
            store,
            CreateRelationshipRequest(
                model_id=f.conceptual.id,
                source_object_id=f.customer.object.id,
                target_object_id=f.order.object.id,
                type=RelationshipType.ONE_TO_MANY,
            ),
        )

        assert second.object_relationship_id == first.object_relationship_id
        assert second.relationship.id == first.relationship.id
        assert len(await store.list_object_relationships()) == 1
        stats = await store.get_stats()
        assert stats["model_relationships"] == 3

    @pytest.mark.asyncio
    async def test_single_attribute_id_is_object_level(self, store):
        """One attribute id alone keys the canonical record at object level."""
        f = await _sales_family(store)

        result = await create_relationship(
            store, _order_to_customer(f, source_attribute_id=f.order.primary.attributes[1].id)
        )

        assert result.relationship.relationship_level is RelationshipLevel.OBJECT
        canonical = await store.list_object_relationships()
        assert len(canonical) == 1
        assert canonical[0].relationship_level is RelationshipLevel.OBJECT
        assert canonical[0].source_attribute_id is None
        assert canonical[0].target_attribute_id is None

        redrawn = await create_relationship(store, _order_to_customer(f))

        assert redrawn.object_relationship_id == result.object_relationship_id
        assert len(await store.list_object_relationships()) == 1

        await delete_relationship(store, result.relationship.id)

        assert await store.list_object_relationships() == []

    @pytest.mark.asyncio
    async def test_redraw_without_name_clears_everywhere(self, store):
        """Canonical and layer relationships agree after a redraw without a name."""
        f = await _sales_family(store)
        created = await create_relationship(
            store, _order_to_customer(f, name="places", description="Orders per customer")
        )

        await create_relationship(store, _order_to_customer(f))

        canonical = await store.get_object_relationship(created.object_relationship_id)
        assert canonical.name is None
        assert canonical.description is None
        for model in (f.conceptual, f.logical, f.physical):
            relationships = await store.list_model_relationships_by_model(model.id)
            assert [(r.name, r.description) for r in relationships] == [(None, None)]

    @pytest.mark.asyncio
    async def test_same_source_and_target_rejected(self, store):
        """A relationship needs two different objects."""
        f = await _sales_family(store)

        with pytest.raises(ValidationError):
            await create_relationship(
                store,
                CreateRelationshipRequest(
                    model_id=f.conceptual.id,
                    source_object_id=f.order.object.id,
                    target_object_id=f.order.object.id,
                    type=RelationshipType.ONE_TO_ONE,
                ),
            )
        assert await store.list_object_relationships() == []

    @pytest.mark.asyncio
    async def test_unknown_model(self, store):
        """Unknown base model is a not-found error."""
        f = await _sales_family(store)
        request = _order_to_customer(f)
        request.model_id = 999

        with pytest.raises(NotFoundError):
            await create_relationship(store, request)

    @pytest.mark.asyncio
    async def test_object_outside_model(self, store):
        """Both objects must be projected into the base model."""
        f = await _sales_family(store)
        billing = await create_model(store, CreateModelRequest(name="Billing"))
        invoice = await create_object(
            store, CreateObjectRequest(name="Invoice", model_id=billing.id)
        )

        with pytest.raises(NotFoundError) as exc_info:
            await create_relationship(
                store,
                CreateRelationshipRequest(
                    model_id=f.conceptual.id,
                    source_object_id=f.order.object.id,
                    target_object_id=invoice.object.id,
                    type=RelationshipType.MANY_TO_ONE,
                ),
            )
        assert exc_info.value.resource_type == "model_object"

    @pytest.mark.asyncio
    async def test_same_name_in_other_model_not_matched(self, store):
        """An object of an unrelated model is not matched by name."""
        f = await _sales_family(store)
        billing = await create_model(store, CreateModelRequest(name="Billing"))
        billing_customer = await create_object(
            store, CreateObjectRequest(name="customer", model_id=billing.id)
        )

        with pytest.raises(NotFoundError) as exc_info:
            await create_relationship(
                store,
                CreateRelationshipRequest(
                    model_id=f.conceptual.id,
                    source_object_id=f.order.object.id,
                    target_object_id=billing_customer.object.id,
                    type=RelationshipType.MANY_TO_ONE,
                ),
            )
        assert exc_info.value.resource_type == "model_object"
        assert exc_info.value.resource_id == billing_customer.object.id
        assert await store.list_object_relationships() == []

    @pytest.mark.asyncio
    async def test_unknown_attribute(self, store):
        """Attribute-level requests need both attributes to exist."""
        f = await _sales_family(store)

        with pytest.raises(NotFoundError):
            await create_relationship(
                store,
                _order_to_customer(
                    f,
                    source_attribute_id=9999,
                    target_attribute_id=f.customer.primary.attributes[0].id,
                ),
            )


class TestUpdateRelationship:
    """Tests for update_relationship."""

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
    async def test_type_change_propagates(self, store):
        """Changing the cardinality updates canonical and every layer."""
        f = await _sales_family(store)
        created = await create_relationship(store, _order_to_customer(f))

        result = await update_relationship(
            store,
            created.relationship.id,
            UpdateRelationshipRequest(type=RelationshipType.ONE_TO_ONE),
        )

        assert result.relationship.id == created.relationship.id
        assert result.relationship.type is RelationshipType.ONE_TO_ONE
        for model in (f.conceptual, f.logical, f.physical):
            relationships = await store.list_model_relationships_by_model(model.id)
            assert [r.type for r in relationships] == [RelationshipType.ONE_TO_ONE]
        canonical = await store.get_object_relationship(created.object_relationship_id)
        assert canonical.type is RelationshipType.ONE_TO_ONE

    @pytest.mark.asyncio
    async def test_omitted_fields_are_kept(self, store):
        """Only provided fields change."""
        f = await _sales_family(store)
        created = await create_relationship(
            store, _order_to_customer(f, name="places", description="Orders per customer")
        )

        result = await update_relationship(
            store, created.relationship.id, UpdateRelationshipRequest(source_handle="right")
        )

        assert result.relationship.name == "places"
        assert result.relationship.description == "Orders per customer"
        assert result.relationship.source_handle == "right"
        assert result.relationship.type is RelationshipType.MANY_TO_ONE

    @pytest.mark.asyncio
    async def test_update_from_replica_layer(self, store):
        """An update made in the logical model reaches the conceptual record."""
        f = await _sales_family(store)
        created = await create_relationship(store, _order_to_customer(f))
        logical = (await store.list_model_relationships_by_model(f.logical.id))[0]

        result = await update_relationship(
            store, logical.id, UpdateRelationshipRequest(name="belongs to")
        )

        assert result.object_relationship_id == created.object_relationship_id
        for model in (f.conceptual, f.logical, f.physical):
            relationships = await store.list_model_relationships_by_model(model.id)
            assert [r.name for r in relationships] == ["belongs to"]
        canonical = await store.get_object_relationship(created.object_relationship_id)
        assert canonical.name == "belongs to"

    @pytest.mark.asyncio
    async def test_identity_change_replaces_projections(self, store):
        """Moving to attribute level removes the object-level projections."""
        f = await _sales_family(store)
        created = await create_relationship(store, _order_to_customer(f))

        result = await update_relationship(
            store,
            created.relationship.id,
            UpdateRelationshipRequest(
                source_attribute_id=f.order.primary.model_attributes[1].id,
                target_attribute_id=f.customer.primary.model_attributes[0].id,
            ),
        )

        assert result.relationship.relationship_level is RelationshipLevel.ATTRIBUTE
        assert result.synced_model_ids == [f.conceptual.id, f.logical.id, f.physical.id]
        for model in (f.conceptual, f.logical, f.physical):
            relationships = await store.list_model_relationships_by_model(model.id)
            assert [r.relationship_level for r in relationships] == [RelationshipLevel.ATTRIBUTE]
        canonical = await store.list_object_relationships()
        assert len(canonical) == 1
        assert canonical[0].relationship_level is RelationshipLevel.ATTRIBUTE
        assert canonical[0].source_attribute_id == f.order.primary.attributes[1].id

    @pytest.mark.asyncio
    async def test_unknown_relationship(self, store):
        """Updating an unknown relationship is a not-found error."""
        await store.initialize()
        with pytest.raises(NotFoundError):
            await update_relationship(store, 42, UpdateRelationshipRequest(name="x"))


class TestDeleteRelationship:
    """Tests for delete_relationship."""

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
    async def test_deletes_family_and_canonical(self, store):
        """Deleting in one model removes the relationship everywhere."""
        f = await _sales_family(store)
        created = await create_relationship(store, _order_to_customer(f))

        result = await delete_relationship(store, created.relationship.id)

        assert sorted(result.removed) == sorted([f.conceptual.id, f.logical.id, f.physical.id])
        assert result.object_relationship_id == created.object_relationship_id
        stats = await store.get_stats()
        assert stats["model_relationships"] == 0
        assert stats["object_relationships"] == 0

    @pytest.mark.asyncio
    async def test_deletes_from_physical_layer(self, store):
        """Deleting from a replica layer also finds the canonical record."""
        f = await _sales_family(store)
        created = await create_relationship(
            store,
            _order_to_customer(
                f,
                source_attribute_id=f.order.primary.attributes[1].id,
                target_attribute_id=f.customer.primary.attributes[0].id,
            ),
        )
        physical = (await store.list_model_relationships_by_model(f.physical.id))[0]

        result = await delete_relationship(store, physical.id)

        assert result.object_relationship_id == created.object_relationship_id
        assert (await store.get_stats())["model_relationships"] == 0

    @pytest.mark.asyncio
    async def test_broken_relationship_deleted_alone(self, store):
        """A relationship with a missing endpoint is still removed."""
        f = await _sales_family(store)
        broken = await store.create_model_relationship(
            f.conceptual.id,
            ModelLayer.CONCEPTUAL,
            f.order.primary.model_object.id,
            999,
            RelationshipType.ONE_TO_ONE,
        )

        result = await delete_relationship(store, broken.id)

        assert result.removed == {f.conceptual.id: [broken.id]}
        assert result.object_relationship_id is None
        assert await store.get_model_relationship(broken.id) is None

    @pytest.mark.asyncio
    async def test_unknown_relationship(self, store):
        """Deleting an unknown relationship is a not-found error."""
        await store.initialize()
        with pytest.raises(NotFoundError):
            await delete_relationship(store, 42)
