"""
CLI tools for LayerSync administration.

This module provides command-line tools for:
- family: Inspect how a model's family resolves
- backfill-attributes: Create missing attribute projections
- orphans: Report layer relationships with broken endpoints
- stats: Row counts per table

Invariants:
    - Tools work offline against the database file (no running server required)
    - Repairs are idempotent
"""

from .maintenance_cli import MaintenanceCLI

__all__ = ["MaintenanceCLI"]
