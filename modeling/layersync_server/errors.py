"""
Error types for LayerSync.

This module defines the exceptions raised by handlers and the store:
- LayerSyncError: Base exception
- NotFoundError: Referenced model/object/attribute/relationship is absent
- ValidationError: Request rejected before any write
- DirectionNotSupportedError: System cannot act in the requested direction

Invariants:
    - All errors inherit from LayerSyncError
    - Errors carry a stable code and a details dict for the HTTP layer
    - A missing projection inside a family operation is a skip, not an error

How to change safely:
    - Add new codes rather than changing existing ones
    - Keep details JSON-serializable
"""

from __future__ import annotations

from typing import Any


class LayerSyncError(Exception):
    """Base exception for all LayerSync errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "LAYERSYNC_ERROR"
        self.details = details or {}


class NotFoundError(LayerSyncError):
    """A referenced record does not exist.

    Raised when:
    - A model, object, attribute or relationship id is unknown
    - A layer object projection is missing in the request's base model
    """

    def __init__(
        self,
        message: str,
        resource_type: str | None = None,
        resource_id: Any = None,
    ) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ValidationError(LayerSyncError):
    """Request validation failed.

    Raised when:
    - A relationship names the same object as source and target
    - A non-conceptual model has no parent
    - An attribute does not belong to the named object
    """

    def __init__(
        self,
        message: str,
        field_name: str | None = None,
        errors: list[str] | None = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name, "errors": errors or []},
        )
        self.field_name = field_name
        self.errors = errors or []


class DirectionNotSupportedError(LayerSyncError):
    """A connected system cannot be used in the requested direction."""

    def __init__(self, system_id: int, direction: str) -> None:
        super().__init__(
            f"System {system_id} cannot be used as a {direction}",
            code="DIRECTION_NOT_SUPPORTED",
            details={"system_id": system_id, "direction": direction},
        )
        self.system_id = system_id
        self.direction = direction
