"""Session models — the orchestrator's view of one staged conversation.

These models are decoupled from the ORM row in ``heysme_db`` so store
adapters can be swapped without the orchestrator noticing.  Field names
serialise to camelCase (``collectedData``, ``pendingInteraction``,
``createdAt`` ...) which is the stable persisted/wire shape.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from heysme_db.models.enums import SessionStatus, Stage


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model that reads snake_case or camelCase and dumps camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Turn(CamelModel):
    """One entry of the append-only conversation history."""

    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    # Stage the turn was produced in; useful when replaying after a reset
    stage: Stage | None = None


class InteractionOption(CamelModel):
    """One choice of a multiple-choice prompt."""

    id: str
    label: str
    description: str | None = None


class PendingInteraction(CamelModel):
    """A structured prompt awaiting a client response.

    ``accepts`` lists the interaction types that answer it.  For a
    confirmation, ``proposal`` is what the user is shown and ``changes``
    holds the field values the confirmation will write over
    ``collectedData``.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    kind: Literal["choice", "confirmation"]
    stage: Stage
    prompt: str
    accepts: list[str]
    # collectedData field a choice answers
    field: str | None = None
    options: list[InteractionOption] = Field(default_factory=list)
    proposal: dict[str, Any] = Field(default_factory=dict)
    changes: dict[str, Any] = Field(default_factory=dict)


class SessionMetrics(CamelModel):
    """Counters updated inside transitions."""

    user_interactions: int = 0
    stage_transitions: int = 0


class AuditEntry(CamelModel):
    """One stage movement (advance, confirmation, reset) or abandonment."""

    action: Literal["advance", "confirm", "reset", "abandon"]
    from_stage: Stage
    to_stage: Stage | None = None
    at: datetime = Field(default_factory=utcnow)


class Session(CamelModel):
    """Full session state as held by a :class:`SessionStore`."""

    id: str
    stage: Stage = Stage.COLLECTING
    status: SessionStatus = SessionStatus.ACTIVE
    history: list[Turn] = Field(default_factory=list)
    collected_data: dict[str, Any] = Field(default_factory=dict)
    progress: int = 0
    pending_interaction: PendingInteraction | None = None
    metrics: SessionMetrics = Field(default_factory=SessionMetrics)
    audit: list[AuditEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class SessionStatusView(CamelModel):
    """Public status of a session for API consumers."""

    session_id: str
    stage: Stage
    status: SessionStatus
    progress: int
    collected_data_summary: dict[str, str]
    pending_interaction: PendingInteraction | None = None
    created_at: datetime
    updated_at: datetime


# Longest preview kept per field in the status summary.
_SUMMARY_PREVIEW_CHARS = 80


def summarize_collected(data: dict[str, Any]) -> dict[str, str]:
    """Short string preview of every collected field."""
    summary: dict[str, str] = {}
    for key, value in data.items():
        if isinstance(value, list):
            text = ", ".join(str(v) for v in value)
        else:
            text = str(value)
        if len(text) > _SUMMARY_PREVIEW_CHARS:
            text = text[: _SUMMARY_PREVIEW_CHARS - 1] + "…"
        summary[key] = text
    return summary


def status_view(session: Session) -> SessionStatusView:
    """Project a full :class:`Session` onto its public status."""
    return SessionStatusView(
        session_id=session.id,
        stage=session.stage,
        status=session.status,
        progress=session.progress,
        collected_data_summary=summarize_collected(session.collected_data),
        pending_interaction=session.pending_interaction,
        created_at=session.created_at,
        updated_at=session.updated_at,
    )
