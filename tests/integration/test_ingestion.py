"""
Integration tests for external metadata ingestion.

Tests cover:
- Tables become objects replicated across the family
- Declared and inferred foreign keys become synchronized relationships
- Re-syncing updates in place and only adds missing attributes
- metadata_only, direction checks and configuration defaults
"""

import tempfile

import pytest

from modeling.layersync_server.config import SyncConfig
from modeling.layersync_server.errors import DirectionNotSupportedError, NotFoundError
from modeling.layersync_server.ingest import (
    ColumnMetadata,
    StaticMetadataSource,
    TableMetadata,
    sync_system_objects,
)
from modeling.layersync_server.schema.requests import (
    CreateModelFamilyRequest,
    CreateSystemRequest,
    SystemSyncRequest,
)
from modeling.layersync_server.schema.types import RelationshipLevel
from modeling.layersync_server.service import create_model_family, create_system
from modeling.layersync_server.store.model_store import ModelStore

TABLES = [
    {
        "name": "customers",
        "columns": [
            {"name": "id", "dataType": "integer", "isPrimaryKey": True, "nullable": False},
            {"name": "name", "dataType": "varchar", "length": 120},
        ],
    },
    {
        "name": "orders",
        "columns": [
            {"name": "id", "dataType": "integer", "isPrimaryKey": True, "nullable": False},
            {"name": "customer_id", "dataType": "integer"},
        ],
        "foreignKeys": [
            {
                "constraintName": "fk_orders_customer",
                "columns": ["customer_id"],
                "referencedTable": "customers",
                "referencedColumns": ["id"],
                "deleteRule": "CASCADE",
            }
        ],
    },
    {
        "name": "order_items",
        "columns": [
            {"name": "id", "dataType": "integer", "isPrimaryKey": True},
            {"name": "order_id", "dataType": "integer"},
            {"name": "product_id", "dataType": "integer"},
        ],
    },
]


async def _warehouse(store, **system_fields):
    """Initialized store with a Sales family and a system declaring TABLES."""
    await store.initialize()
    triple = await create_model_family(store, CreateModelFamilyRequest(name="Sales"))
    fields = {"name": "warehouse", "configuration": {"tables": TABLES}}
    fields.update(system_fields)
    system = await create_system(store, CreateSystemRequest(**fields))
    return triple, system


class TestSystemSync:
    """Tests for sync_system_objects."""

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
    async def test_first_sync(self, store):
        """Tables, columns and foreign keys are created and synchronized."""
        triple, system = await _warehouse(store)

        result = await sync_system_objects(
            store, system.id, SystemSyncRequest(model_id=triple.conceptual.id)
        )

        assert result.metadata_count == 3
        assert result.created_count == 3
        assert result.updated_count == 0
        assert result.relationships_created == 2
        assert result.heuristic_relationships_created == 1
        assert sorted(result.attributes.values()) == [2, 2, 3]

        orders = next(obj for obj in result.created if obj.name == "orders")
        assert orders.source_system_id == system.id
        assert orders.system_id == system.id
        assert orders.object_type == "table"
        assert orders.metadata["syncedFromSystemId"] == system.id
        assert orders.metadata["rawMetadata"]["foreignKeys"][0]["constraintName"] == (
            "fk_orders_customer"
        )

        canonical = await store.list_object_relationships()
        strategies = sorted(r.metadata["detectionStrategy"] for r in canonical)
        assert strategies == ["constraint", "heuristic"]
        assert all(r.relationship_level is RelationshipLevel.ATTRIBUTE for r in canonical)

        # Replicated objects carry every relationship in each layer
        for model in (triple.conceptual, triple.logical, triple.physical):
            assert len(await store.list_model_objects_by_model(model.id)) == 3
            assert len(await store.list_model_relationships_by_model(model.id)) == 2

    @pytest.mark.asyncio
    async def test_resync_is_idempotent(self, store):
        """Running the same sync twice updates objects and adds nothing."""
        triple, system = await _warehouse(store)
        request = SystemSyncRequest(model_id=triple.conceptual.id)
        first = await sync_system_objects(store, system.id, request)
        stats = await store.get_stats()

        second = await sync_system_objects(store, system.id, request)

        assert second.created_count == 0
        assert second.updated_count == 3
        assert second.relationships_created == 0
        assert {obj.id for obj in second.updated} == {obj.id for obj in first.created}
        assert all(obj.is_new is False for obj in second.updated)
        assert await store.get_stats() == stats

    @pytest.mark.asyncio
    async def test_resync_adds_new_columns(self, store):
        """A new column is added; existing attribute ids stay the same."""
        triple, system = await _warehouse(store)
        request = SystemSyncRequest(model_id=triple.conceptual.id)
        first = await sync_system_objects(store, system.id, request)
        customers = next(obj for obj in first.created if obj.name == "customers")
        before = [a.id for a in await store.list_attributes_by_object(customers.id)]

        tables = [TableMetadata.from_dict(table) for table in TABLES]
        tables[0] = TableMetadata(
            name="customers",
            columns=tables[0].columns + (ColumnMetadata(name="email", type="varchar"),),
        )
        result = await sync_system_objects(
            store, system.id, request, source=StaticMetadataSource(tables)
        )

        assert result.attributes[customers.id] == 3
        after = await store.list_attributes_by_object(customers.id)
        assert [a.id for a in after][:2] == before
        assert after[2].name == "email"
        projections = await store.list_model_attributes_by_model(triple.conceptual.id)
        assert after[2].id in {p.attribute_id for p in projections}

    @pytest.mark.asyncio
    async def test_metadata_only(self, store):
        """metadata_only returns the tables and writes nothing."""
        triple, system = await _warehouse(store)

        result = await sync_system_objects(
            store,
            system.id,
            SystemSyncRequest(model_id=triple.conceptual.id, metadata_only=True),
        )

        assert [table.name for table in result.metadata] == ["customers", "orders", "order_items"]
        assert result.to_dict()["metadata"][1]["foreignKeys"][0]["referencedTable"] == "customers"
        stats = await store.get_stats()
        assert stats["data_objects"] == 0
        assert stats["object_relationships"] == 0

    @pytest.mark.asyncio
    async def test_direction_not_supported(self, store):
        """A system that cannot be a source is rejected."""
        triple, system = await _warehouse(store, can_be_source=False)

        with pytest.raises(DirectionNotSupportedError) as exc_info:
            await sync_system_objects(
                store, system.id, SystemSyncRequest(model_id=triple.conceptual.id)
            )
        assert exc_info.value.direction == "source"

    @pytest.mark.asyncio
    async def test_heuristics_disabled(self, store):
        """Only declared foreign keys are used when inference is off."""
        triple, system = await _warehouse(store)

        result = await sync_system_objects(
            store,
            system.id,
            SystemSyncRequest(model_id=triple.conceptual.id),
            sync_config=SyncConfig(heuristic_foreign_keys=False),
        )

        assert result.relationships_created == 1
        assert result.heuristic_relationships_created == 0

    @pytest.mark.asyncio
    async def test_domain_from_configuration(self, store):
        """domainIds in the system configuration apply to created objects."""
        triple, system = await _warehouse(
            store, configuration={"tables": TABLES[:1], "domainIds": ["4"]}
        )

        result = await sync_system_objects(
            store, system.id, SystemSyncRequest(model_id=triple.conceptual.id)
        )

        assert result.created[0].domain_id == 4

    @pytest.mark.asyncio
    async def test_unknown_system(self, store):
        """Syncing from an unknown system is a not-found error."""
        await store.initialize()
        with pytest.raises(NotFoundError):
            await sync_system_objects(store, 9, SystemSyncRequest(model_id=1))
