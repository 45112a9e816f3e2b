"""Stream events emitted by ``Orchestrator.stream_stage``.

The orchestrator only knows "emit event"; wire framing belongs to the
transport (see ``heysme_server.sse``).  Every stream ends with exactly one
``done`` event, preceded by an ``error`` event on failure.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field

from heysme_db.models.enums import Stage

from heysme_agent.errors import OrchestratorError
from heysme_agent.models.session import PendingInteraction

EventKind = Literal["fragment", "proposal", "stageComplete", "error", "done"]


class StreamEvent(BaseModel):
    """Discriminated stream event: ``{kind, payload}``."""

    kind: EventKind
    payload: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def fragment(cls, text: str) -> "StreamEvent":
        return cls(kind="fragment", payload={"text": text})

    @classmethod
    def proposal(cls, interaction: PendingInteraction) -> "StreamEvent":
        return cls(
            kind="proposal",
            payload={
                "pendingInteraction": interaction.model_dump(
                    mode="json", by_alias=True,
                ),
            },
        )

    @classmethod
    def stage_complete(
        cls,
        stage: Stage,
        progress: int,
        *,
        pending: PendingInteraction | None = None,
        already_advanced: bool = False,
    ) -> "StreamEvent":
        return cls(
            kind="stageComplete",
            payload={
                "stage": stage.value,
                "progress": progress,
                "pendingInteraction": (
                    pending.model_dump(mode="json", by_alias=True)
                    if pending is not None
                    else None
                ),
                "alreadyAdvanced": already_advanced,
            },
        )

    @classmethod
    def error(cls, exc: OrchestratorError) -> "StreamEvent":
        return cls(
            kind="error",
            payload={
                "code": exc.code,
                "message": exc.client_message,
                "retryable": exc.retryable,
            },
        )

    @classmethod
    def done(cls, session_id: str) -> "StreamEvent":
        return cls(kind="done", payload={"sessionId": session_id})
