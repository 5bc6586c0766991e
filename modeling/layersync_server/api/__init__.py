"""
API module for LayerSync server.

This module provides the external HTTP interface:
- FastAPI application factory (http_server.py)
- Versioned REST routes over the request handlers (routes.py)
- HTTP layer settings (settings.py)

Invariants:
    - Routes call handlers in service/ and never touch the store directly
    - Error responses share one JSON shape

How to change safely:
    - Add new endpoints, don't change the meaning of existing ones
    - Keep request bodies defined in schema.requests so handlers and
      routes validate the same way
"""

from .http_server import create_app
from .settings import Settings

__all__ = [
    "Settings",
    "create_app",
]
