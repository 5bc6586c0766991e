"""
FastAPI application factory for LayerSync.

This module creates the FastAPI app with:
- ModelStore lifecycle management
- Error mapping from LayerSyncError to JSON responses
- CORS configuration for the modeling canvas
- Versioned API routes

Invariants:
    - Every error response has the shape {"error", "error_code", "details"}
    - The store is initialized before the first request is served

How to change safely:
    - Register handlers for new error types here, not in routes
    - Version the API prefix if breaking changes are needed
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import replace

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .._version import __version__
from ..config import ServerConfig
from ..errors import (
    DirectionNotSupportedError,
    LayerSyncError,
    NotFoundError,
    ValidationError,
)
from ..store.model_store import ModelStore
from .routes import router
from .settings import Settings

logger = logging.getLogger(__name__)


def _error_response(status_code: int, error: LayerSyncError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error.message, "error_code": error.code, "details": error.details},
    )


def create_app(settings: Settings | None = None, config: ServerConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: HTTP layer settings; loaded from the environment when omitted
        config: Server configuration; loaded from the environment when omitted

    Returns:
        FastAPI application
    """
    settings = settings or Settings()
    config = config or ServerConfig.from_env()
    if settings.data_dir:
        config.storage = replace(config.storage, data_dir=settings.data_dir)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage ModelStore lifecycle."""
        store = ModelStore(
            config.storage.data_dir,
            db_name=config.storage.db_name,
            wal_mode=config.storage.wal_mode,
            busy_timeout_ms=config.storage.busy_timeout_ms,
            cache_size_pages=config.storage.cache_size_pages,
        )
        await store.initialize()
        app.state.store = store
        app.state.config = config
        app.state.settings = settings
        logger.info("HTTP app ready", extra={"db_path": str(store.db_path)})

        yield

    app = FastAPI(
        title=settings.title,
        description="Multi-layer data model synchronization",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error_response(404, exc)

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return _error_response(400, exc)

    @app.exception_handler(DirectionNotSupportedError)
    async def direction_handler(
        request: Request, exc: DirectionNotSupportedError
    ) -> JSONResponse:
        return _error_response(400, exc)

    @app.exception_handler(LayerSyncError)
    async def layersync_handler(request: Request, exc: LayerSyncError) -> JSONResponse:
        logger.error(f"Request failed: {exc.message}", extra={"error_code": exc.code})
        return _error_response(500, exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={
                "error": "Request validation failed",
                "error_code": "REQUEST_INVALID",
                "details": {"errors": jsonable_errors(exc)},
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"HTTP handler error: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": str(exc), "error_code": "INTERNAL", "details": {}},
        )

    app.include_router(router, prefix="/api/v1")

    @app.get("/health")
    async def health():
        return {"status": "healthy", "service": "layersync", "version": __version__}

    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Field-level errors without the raw input, which may not serialize."""
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
