"""Global exception handlers — map orchestrator errors to HTTP status codes.

Routes either let an :class:`OrchestratorError` propagate or turn a failed
outcome model into one with :func:`raise_for_outcome`.  The handlers below
pick the status code from the error's stable ``code``.

The raw exception message is logged server-side but never sent to the
client, since it may contain session ids or provider details.  Clients receive
``{"detail": <safe message>, "code": <stable code>}``.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from heysme_agent.errors import OrchestratorError, error_from_code
from heysme_agent.models.interaction import InteractionOutcome, SessionOutcome

logger = logging.getLogger(__name__)

# --- Stable error code → HTTP status ---
_STATUS_BY_CODE: dict[str, int] = {
    "not_found": 404,
    "conflict": 409,
    "no_pending_interaction": 409,
    "interaction_pending": 409,
    "invalid_target": 400,
    "provider_transient": 503,
    "provider_fatal": 502,
}


async def orchestrator_error_handler(
    request: Request, exc: OrchestratorError
) -> JSONResponse:
    """Map an :class:`OrchestratorError` to its HTTP status."""
    status = _STATUS_BY_CODE.get(exc.code, 500)
    if status >= 500:
        logger.error("%s [%d] at %s: %s", exc.code, status, request.url, exc)
    else:
        logger.warning("%s [%d] at %s: %s", exc.code, status, request.url, exc)
    return JSONResponse(
        status_code=status,
        content={"detail": exc.client_message, "code": exc.code},
    )


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    """Unexpected ``ValueError`` from a route → 400 with a generic message."""
    logger.warning("ValueError [400] at %s: %s", request.url, exc)
    return JSONResponse(status_code=400, content={"detail": "Invalid request"})


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions — log full traceback, return 500."""
    logger.exception("Unhandled exception at %s", request.url)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


def raise_for_outcome(outcome: InteractionOutcome | SessionOutcome) -> None:
    """Re-raise a failed outcome so the global handler can map it."""
    if not outcome.ok:
        raise error_from_code(outcome.error or "internal_error", outcome.detail)
