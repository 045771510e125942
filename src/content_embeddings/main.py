"""
Content Embeddings Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures global exception handling, and provides a test-friendly application
factory.

Design Goals
------------
- Deterministic startup: configuration and both stores are validated before
  the first request is served
- Explicit store lifecycle (init at startup, close at shutdown)
- Centralized router registration
- Global exception safety net
"""

from __future__ import annotations

import logging
from fastapi import FastAPI

from .config import get_settings
from .core.errors import (
    ChunkingError,
    RecordNotFoundError,
    chunking_exception_handler,
    not_found_exception_handler,
    unhandled_exception_handler,
)
from .db import Database, create_mirror_schema, create_vector_schema

from .api import (
    embedding_routes,
    health_routes,
    sync_routes,
)


logger = logging.getLogger("embeddings.app")


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Nothing touches the environment or the database until the startup hook
    runs, so tests can build an app and override its dependencies freely.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    app = FastAPI(
        title="content-embeddings",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # --------------------------------------------------------------
    # Global Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(RecordNotFoundError, not_found_exception_handler)
    app.add_exception_handler(ChunkingError, chunking_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(embedding_routes.router)
    app.include_router(sync_routes.router)

    # --------------------------------------------------------------
    # Startup Hook
    # --------------------------------------------------------------

    @app.on_event("startup")
    async def _startup() -> None:
        """
        Fail-fast validation and store initialization.

        Raises ConfigurationError on a missing key/URL or an unknown
        embedding model, and propagates connection errors.
        """
        logger.info("Starting content-embeddings")
        settings = get_settings()

        # Touch critical settings to force validation now (not at first use)
        _ = settings.openai_api_key.get_secret_value()
        dimensions = settings.embedding_dimensions

        vector_db = Database(settings.database_url)
        await vector_db.init()
        await create_vector_schema(vector_db, dimensions)

        mirror_url = settings.effective_mirror_database_url
        if mirror_url == settings.database_url:
            mirror_db = vector_db
        else:
            mirror_db = Database(mirror_url)
            await mirror_db.init()
        await create_mirror_schema(mirror_db)

        app.state.vector_db = vector_db
        app.state.mirror_db = mirror_db

        logger.info(
            "Configuration validated (model: %s, dimensions: %d)",
            settings.embedding_model,
            dimensions,
        )

    # --------------------------------------------------------------
    # Shutdown Hook
    # --------------------------------------------------------------

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        logger.info("Shutting down content-embeddings")
        for name in ("mirror_db", "vector_db"):
            db = getattr(app.state, name, None)
            if db is not None:
                await db.close()

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()
