"""Stage runner output models.

A runner yields any number of :class:`StageFragment` objects followed by
exactly one :class:`StageResult`.  Neither is persisted directly; the
orchestrator folds the result into the session inside a transition.
"""

from typing import Any

from pydantic import BaseModel, Field

from heysme_db.models.enums import Stage

from heysme_agent.models.session import PendingInteraction


class StageFragment(BaseModel):
    """One increment of model output, forwarded to the client verbatim."""

    text: str


class StageResult(BaseModel):
    """Outcome of one stage run."""

    reply_text: str = ""
    structured_proposal: dict[str, Any] | None = None
    is_complete: bool = False
    # Overrides the default successor when set; must be a later stage
    next_stage_hint: Stage | None = None
    # Field updates merged additively into collectedData
    collected: dict[str, Any] = Field(default_factory=dict)
    # Fields of ``collected`` that overwrite existing values
    superseded: list[str] = Field(default_factory=list)
    # Set instead of completing when the runner needs a structured answer
    pending_interaction: PendingInteraction | None = None
