"""
Store module for LayerSync - persistence of models and projections.

The ModelStore is the only component that talks to SQLite. Everything
above it works with the dataclass records from schema.types.
"""

from .model_store import ModelStore

__all__ = ["ModelStore"]
