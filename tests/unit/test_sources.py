"""
Unit tests for table metadata types and metadata sources.

Tests cover:
- camelCase and snake_case parsing
- Serialization for rawMetadata
- Configured and static sources
"""

import pytest

from modeling.layersync_server.ingest.sources import (
    ColumnMetadata,
    ConfiguredMetadataSource,
    ForeignKeyMetadata,
    MetadataSource,
    StaticMetadataSource,
    TableMetadata,
)
from modeling.layersync_server.schema.types import System

ORDERS = {
    "name": "orders",
    "schema": "public",
    "originalName": "ORDERS",
    "rowCount": 3,
    "columns": [
        {"name": "id", "dataType": "integer", "isPrimaryKey": True, "nullable": False},
        {"name": "customer_id", "type": "integer"},
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
}


def _system(configuration):
    return System(
        id=1, name="warehouse", category="database", type="postgres", configuration=configuration
    )


class TestTableMetadata:
    """Tests for TableMetadata parsing."""

    def test_from_camel_case(self):
        table = TableMetadata.from_dict(ORDERS)

        assert table.name == "orders"
        assert table.schema == "public"
        assert table.original_name == "ORDERS"
        assert table.row_count == 3
        assert table.columns[0] == ColumnMetadata(
            name="id", type="integer", nullable=False, is_primary_key=True
        )
        assert table.columns[1].nullable is True
        fk = table.foreign_keys[0]
        assert fk.columns == ("customer_id",)
        assert fk.referenced_table == "customers"
        assert fk.delete_rule == "CASCADE"
        assert not fk.is_heuristic

    def test_from_snake_case(self):
        table = TableMetadata.from_dict(
            {
                "name": "orders",
                "original_name": "ORDERS",
                "columns": [{"name": "id", "data_type": "int", "is_primary_key": True}],
                "foreign_keys": [
                    {
                        "constraint_name": "heuristic_fk_orders_customer_id",
                        "columns": ["customer_id"],
                        "referenced_table": "customers",
                        "referenced_columns": ["id"],
                    }
                ],
            }
        )

        assert table.original_name == "ORDERS"
        assert table.columns[0].type == "int"
        assert table.columns[0].is_primary_key is True
        assert table.foreign_keys[0].is_heuristic

    def test_to_dict_uses_camel_case(self):
        data = TableMetadata.from_dict(ORDERS).to_dict()
        assert data["originalName"] == "ORDERS"
        assert data["columns"][0]["isPrimaryKey"] is True
        assert data["foreignKeys"][0]["referencedColumns"] == ["id"]

    def test_to_dict_round_trip(self):
        table = TableMetadata.from_dict(ORDERS)
        assert TableMetadata.from_dict(table.to_dict()) == table

    def test_foreign_key_without_constraint_name(self):
        fk = ForeignKeyMetadata(columns=("a",), referenced_table="t", referenced_columns=("id",))
        assert fk.is_heuristic is False


class TestMetadataSources:
    """Tests for the bundled metadata sources."""

    @pytest.mark.asyncio
    async def test_configured_source_reads_tables(self):
        source = ConfiguredMetadataSource()
        tables = await source.fetch_tables(_system({"tables": [ORDERS]}))
        assert [table.name for table in tables] == ["orders"]

    @pytest.mark.asyncio
    async def test_configured_source_without_tables(self):
        assert await ConfiguredMetadataSource().fetch_tables(_system({})) == []

    @pytest.mark.asyncio
    async def test_configured_source_ignores_malformed_tables(self):
        tables = await ConfiguredMetadataSource().fetch_tables(_system({"tables": "orders"}))
        assert tables == []

    @pytest.mark.asyncio
    async def test_static_source(self):
        table = TableMetadata(name="customers")
        source = StaticMetadataSource([table])
        assert await source.fetch_tables(_system({})) == [table]

    def test_sources_satisfy_protocol(self):
        assert isinstance(ConfiguredMetadataSource(), MetadataSource)
        assert isinstance(StaticMetadataSource(), MetadataSource)
