"""Interaction declarations and synchronous outcome models.

Interactions are out-of-band structured responses (a confirmation, a
choice, a form) submitted through ``Orchestrator.handle_user_interaction``.
Each type declares whether it must answer an open prompt, how its data is
merged into ``collectedData``, and whether it confirms a proposal.

Synchronous orchestrator calls never raise across the boundary; they
return one of the outcome models below with ``ok`` and a stable error
``code``.
"""

import enum
from typing import Literal

from pydantic import BaseModel

from heysme_db.models.enums import Stage

from heysme_agent.errors import OrchestratorError
from heysme_agent.models.session import CamelModel


class MergePolicy(str, enum.Enum):
    """How interaction data is folded into ``collectedData``."""

    REPLACE = "replace"
    APPEND = "append"
    CONFIRM_NO_OP = "confirm-no-op"


class InteractionSpec(BaseModel):
    """Declared behaviour of one interaction type."""

    type: str
    requires_pending: bool
    merge_policy: MergePolicy
    confirms: bool = False


INTERACTION_SPECS: dict[str, InteractionSpec] = {
    spec.type: spec
    for spec in (
        InteractionSpec(
            type="confirm",
            requires_pending=True,
            merge_policy=MergePolicy.CONFIRM_NO_OP,
            confirms=True,
        ),
        InteractionSpec(
            type="select",
            requires_pending=True,
            merge_policy=MergePolicy.REPLACE,
        ),
        InteractionSpec(
            type="form_submit",
            requires_pending=False,
            merge_policy=MergePolicy.REPLACE,
        ),
        InteractionSpec(
            type="append",
            requires_pending=False,
            merge_policy=MergePolicy.APPEND,
        ),
    )
}


class InteractionOutcome(CamelModel):
    """Result of ``handle_user_interaction``.

    ``action == "advance"`` means the stage transition is committed and the
    caller should start streaming ``next_stage_id`` with an empty message.
    """

    ok: bool
    action: Literal["continue", "advance"] | None = None
    next_stage_id: Stage | None = None
    stage: Stage | None = None
    progress: int | None = None
    # A concurrent call advanced the session first; state is authoritative
    already_advanced: bool = False
    error: str | None = None
    detail: str | None = None

    @classmethod
    def failure(cls, exc: OrchestratorError) -> "InteractionOutcome":
        return cls(ok=False, error=exc.code, detail=str(exc))


class SessionOutcome(CamelModel):
    """Result of ``reset_to_stage`` and ``abandon_session``."""

    ok: bool
    stage: Stage | None = None
    progress: int | None = None
    error: str | None = None
    detail: str | None = None

    @classmethod
    def failure(cls, exc: OrchestratorError) -> "SessionOutcome":
        return cls(ok=False, error=exc.code, detail=str(exc))
