"""
LayerSync Test Suite.

This package contains:
- unit/: Unit tests (pure sync logic, store, configuration)
- integration/: Integration tests (SQLite handlers, ingestion, CLI, HTTP app)
"""
