"""FastAPI dependency injection — provides the orchestrator.

The orchestrator is built once in the lifespan handler (or injected by
``create_app`` in tests) and stashed on ``app.state``.
"""

from fastapi import Request

from heysme_agent.orchestrator import Orchestrator


def get_orchestrator(request: Request) -> Orchestrator:
    """Return the orchestrator singleton from ``app.state``."""
    return request.app.state.orchestrator
