"""Route registration — mounts all routers under ``/api/v1``."""

from fastapi import FastAPI

from heysme_server.routes.interactions import router as interactions_router
from heysme_server.routes.sessions import router as sessions_router
from heysme_server.routes.stream import router as stream_router

API_PREFIX = "/api/v1"


def register_routes(app: FastAPI) -> None:
    """Include all sub-routers under the versioned API prefix."""
    app.include_router(sessions_router, prefix=API_PREFIX)
    app.include_router(interactions_router, prefix=API_PREFIX)
    app.include_router(stream_router, prefix=API_PREFIX)
