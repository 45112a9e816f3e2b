"""Session management endpoints — create, inspect, reset, abandon."""

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from heysme_agent.errors import SessionNotFound
from heysme_agent.models.interaction import SessionOutcome
from heysme_agent.models.session import SessionStatusView, Turn
from heysme_agent.orchestrator import Orchestrator

from heysme_server.config import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from heysme_server.dependencies import get_orchestrator
from heysme_server.errors import raise_for_outcome

router = APIRouter(tags=["sessions"])


# ------------------------------------------------------------------
# Request / response models
# ------------------------------------------------------------------

class CreateSessionRequest(BaseModel):
    """Body for POST /sessions.  ``seed`` pre-fills collectedData."""
    seed: dict[str, Any] = Field(default_factory=dict)


class CreateSessionResponse(BaseModel):
    sessionId: str


class ResetRequest(BaseModel):
    """Body for POST /sessions/{session_id}/reset."""
    stage: str


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------

@router.post("/sessions", status_code=201)
async def create_session(
    body: CreateSessionRequest | None = None,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> CreateSessionResponse:
    """Create a session in the ``collecting`` stage."""
    seed = body.seed if body is not None else None
    session_id = await orchestrator.create_session(seed or None)
    return CreateSessionResponse(sessionId=session_id)


@router.get("/sessions")
async def list_sessions(
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    offset: int = Query(0, ge=0),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> list[SessionStatusView]:
    """List sessions, most recently updated first."""
    return await orchestrator.list_sessions(limit=limit, offset=offset)


@router.get("/sessions/{session_id}")
async def get_session_status(
    session_id: str,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> SessionStatusView:
    """Stage, progress and collected-data summary.  404 if unknown."""
    status = await orchestrator.get_session_status(session_id)
    if status is None:
        raise SessionNotFound(session_id)
    return status


@router.get("/sessions/{session_id}/history")
async def get_history(
    session_id: str,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> list[Turn]:
    """Full conversation history in insertion order."""
    history = await orchestrator.get_history(session_id)
    if history is None:
        raise SessionNotFound(session_id)
    return history


@router.post("/sessions/{session_id}/reset")
async def reset_session(
    session_id: str,
    body: ResetRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> SessionOutcome:
    """Move the session back to an earlier (or the current) stage."""
    outcome = await orchestrator.reset_to_stage(session_id, body.stage)
    raise_for_outcome(outcome)
    return outcome


@router.post("/sessions/{session_id}/abandon")
async def abandon_session(
    session_id: str,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> SessionOutcome:
    """Mark the session abandoned; further messages are rejected."""
    outcome = await orchestrator.abandon_session(session_id)
    raise_for_outcome(outcome)
    return outcome
