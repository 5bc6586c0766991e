"""
External metadata ingestion for LayerSync.

This module handles:
- Table, column and foreign key metadata types (sources.py)
- The MetadataSource boundary to live connectors (sources.py)
- Foreign key inference from column names (heuristics.py)
- Turning metadata into objects, attributes and relationships (ingestion.py)
"""

from .heuristics import generate_heuristic_foreign_keys
from .ingestion import SystemSyncResult, sync_system_objects
from .sources import (
    ColumnMetadata,
    ConfiguredMetadataSource,
    ForeignKeyMetadata,
    MetadataSource,
    StaticMetadataSource,
    TableMetadata,
)

__all__ = [
    "ColumnMetadata",
    "ConfiguredMetadataSource",
    "ForeignKeyMetadata",
    "MetadataSource",
    "StaticMetadataSource",
    "SystemSyncResult",
    "TableMetadata",
    "generate_heuristic_foreign_keys",
    "sync_system_objects",
]
