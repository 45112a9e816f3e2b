"""Interaction endpoint — structured responses (confirm, select, ...).

A successful ``confirm`` returns ``action="advance"`` with
``nextStageId``; the client then opens the stream endpoint with an empty
message to start that stage.
"""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from heysme_agent.models.interaction import InteractionOutcome
from heysme_agent.orchestrator import Orchestrator

from heysme_server.dependencies import get_orchestrator
from heysme_server.errors import raise_for_outcome

router = APIRouter(tags=["interactions"])


class InteractionRequest(BaseModel):
    """Body for POST /sessions/{session_id}/interactions."""
    type: str
    data: dict[str, Any] = Field(default_factory=dict)


@router.post("/sessions/{session_id}/interactions")
async def submit_interaction(
    session_id: str,
    body: InteractionRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> InteractionOutcome:
    """Merge the interaction; 409 if it answers no open prompt."""
    outcome = await orchestrator.handle_user_interaction(
        session_id, body.type, body.data,
    )
    raise_for_outcome(outcome)
    return outcome
