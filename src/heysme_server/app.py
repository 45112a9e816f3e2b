"""Application factory and CLI entry point.

``create_app()`` builds the FastAPI application with:
  - Lifespan handler that builds the model gateway, session store and
    orchestrator once
  - CORS middleware
  - Global exception handlers (OrchestratorError → 404/409/400/5xx)
  - All API routes mounted under ``/api/v1``
  - A ``/health`` endpoint for readiness checks

The ``cli()`` function is the ``heysme-server`` console-script entry point.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from heysme_agent.errors import OrchestratorError
from heysme_agent.gateway import OllamaGateway
from heysme_agent.interfaces import SessionStore
from heysme_agent.orchestrator import Orchestrator
from heysme_agent.stores import InMemorySessionStore, SqlSessionStore
from heysme_db import Database, load_database_settings

from heysme_server.config import ServerSettings, load_settings
from heysme_server.errors import (
    generic_error_handler,
    orchestrator_error_handler,
    value_error_handler,
)
from heysme_server.routes import register_routes

logger = logging.getLogger(__name__)


def _build_store(settings: ServerSettings) -> tuple[SessionStore, Database | None]:
    """The configured store, plus the ``Database`` it runs on (sql only)."""
    if settings.session_store == "sql":
        database = Database(load_database_settings(settings.database_url))
        return SqlSessionStore(database.session_factory), database
    return InMemorySessionStore(), None


# ------------------------------------------------------------------
# Lifespan — runs once at startup/shutdown
# ------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialise shared resources at startup, tear down on shutdown.

    Startup:
      1. Build the Ollama gateway and the configured session store
      2. Wire them into an ``Orchestrator``
      3. Stash it on ``app.state`` for dependency injection

    An orchestrator injected through ``create_app`` is used as-is.

    Shutdown:
      1. Close the gateway's HTTP client
      2. Dispose the database engine's connection pool (sql store only)
    """
    settings: ServerSettings = app.state.settings

    gateway = None
    database = None
    if getattr(app.state, "orchestrator", None) is None:
        gateway = OllamaGateway(
            settings.model_base_url,
            settings.model_name,
            timeout=settings.model_timeout,
        )
        store, database = _build_store(settings)
        app.state.orchestrator = Orchestrator.build(
            store,
            gateway,
            timeout=settings.model_timeout,
            max_retries=settings.model_max_retries,
        )
        app.state.database = database
        logger.info(
            "Orchestrator ready (store=%s, model=%s at %s)",
            settings.session_store, settings.model_name, settings.model_base_url,
        )

    yield

    # --- Shutdown ---
    if gateway is not None:
        await gateway.aclose()
    if database is not None:
        await database.dispose()


# ------------------------------------------------------------------
# Factory
# ------------------------------------------------------------------

def create_app(
    settings: ServerSettings | None = None,
    orchestrator: Orchestrator | None = None,
) -> FastAPI:
    """Build and return the configured FastAPI application."""
    if settings is None:
        settings = load_settings()

    # --- Configure logging ---
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = FastAPI(
        title="Heysme Orchestrator API",
        description="Staged, model-backed conversation sessions with streaming replies",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Store settings so the lifespan handler can read them
    app.state.settings = settings
    app.state.orchestrator = orchestrator
    app.state.database = None

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Exception handlers ---
    app.add_exception_handler(OrchestratorError, orchestrator_error_handler)
    app.add_exception_handler(ValueError, value_error_handler)
    app.add_exception_handler(Exception, generic_error_handler)

    # --- Health check (outside /api/v1 prefix) ---
    @app.get("/health")
    async def health() -> dict:
        """Readiness check: verifies DB connectivity when the app owns a database."""
        database: Database | None = app.state.database
        if database is None:
            return {"status": "ok", "store": settings.session_store}
        try:
            await database.ping()
            return {"status": "ok", "store": settings.session_store}
        except Exception as exc:
            logger.error("Health check failed: %s", exc)
            return {"status": "error", "detail": str(exc)}

    # --- Mount all API routes ---
    register_routes(app)

    return app


# ------------------------------------------------------------------
# CLI entry point
# ------------------------------------------------------------------

def cli() -> None:
    """Console-script entry point: ``heysme-server``."""
    import uvicorn

    settings = load_settings()
    uvicorn.run(
        "heysme_server.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=False,
    )
