"""
LayerSync Server - multi-layer data model synchronization.

This package keeps a business data model consistent across three
abstraction layers (conceptual, logical, physical):
- Canonical objects, attributes and relationships are stored once
- Each model holds per-layer projections of those canonical records
- Writes in one model are propagated to every model in its family

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │   Client    │────▶│  HTTP API   │────▶│    Handlers     │
    │             │     │  (FastAPI)  │     │ (service/*.py)  │
    └─────────────┘     └─────────────┘     └────────┬────────┘
                                                     │
                        ┌────────────────────────────┼──────────────┐
                        │                            │              │
                        ▼                            ▼              ▼
                  ┌───────────┐             ┌──────────────┐  ┌──────────┐
                  │ Replicator│             │ Synchronizer │  │ Remover  │
                  └─────┬─────┘             └──────┬───────┘  └────┬─────┘
                        │     Family Resolver + Matcher            │
                        └──────────────────┬───────────────────────┘
                                           ▼
                                    ┌─────────────┐
                                    │ ModelStore  │
                                    │  (SQLite)   │
                                    └─────────────┘

    External systems feed table metadata through the ingest package,
    which drives the same creation and synchronization paths.

Invariants:
    - A model family is derived on every call, never stored
    - Projection lookups try the canonical object id before origin links
    - Relationship matching is direction-insensitive
    - Every synchronization step is safe to re-run

How to change safely:
    - Route every projection lookup through sync.projections
    - Route every relationship lookup through sync.matching
    - Keep layer configuration updates read-merge-write
"""

from ._version import __version__

__all__ = ["__version__"]
