"""Confirming stage: present the proposal and revise it on request."""

import contextlib
from typing import Any, AsyncIterator

from heysme_db.models.enums import Stage

from heysme_agent.constants import ARTIFACT_FIELD
from heysme_agent.models.gateway import ChatMessage
from heysme_agent.models.session import PendingInteraction, Session
from heysme_agent.models.stage import StageResult
from heysme_agent.runners.base import RunnerOutput, StageRunner

REVISION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {"changes": {"type": "object"}},
    "required": ["changes"],
}

CONFIRMATION_PROMPT = "Does this summary look right? Confirm to generate your profile."


def base_proposal(collected_data: dict[str, Any]) -> dict[str, Any]:
    """The confirmable view of collected data."""
    return {k: v for k, v in collected_data.items() if k != ARTIFACT_FIELD}


def confirmation(
    collected_data: dict[str, Any],
    changes: dict[str, Any] | None = None,
) -> PendingInteraction:
    changes = dict(changes or {})
    return PendingInteraction(
        kind="confirmation",
        stage=Stage.CONFIRMING,
        prompt=CONFIRMATION_PROMPT,
        accepts=["confirm"],
        proposal={**base_proposal(collected_data), **changes},
        changes=changes,
    )


class ConfirmingRunner(StageRunner):
    """Never completes on its own; only a ``confirm`` interaction advances.

    A plain message is a revision request: the runner asks the model which
    fields should change and re-issues the proposal with those changes.
    Changes accumulate across revisions and are written over
    ``collectedData`` when the user confirms.  An empty message re-issues
    the proposal as it stands.
    """

    stage = Stage.CONFIRMING

    def on_enter(self, session: Session) -> PendingInteraction | None:
        return confirmation(session.collected_data)

    def refresh_pending(
        self, session: Session, pending: PendingInteraction
    ) -> PendingInteraction:
        # Proposal mirrors collected data with pending revisions on top
        if pending.kind != "confirmation":
            return pending
        refreshed = confirmation(session.collected_data, pending.changes)
        return refreshed.model_copy(update={"id": pending.id})

    async def run(
        self,
        session: Session,
        message: str,
        *,
        answered: PendingInteraction | None = None,
    ) -> AsyncIterator[RunnerOutput]:
        prior_changes: dict[str, Any] = {}
        if answered is not None and answered.kind == "confirmation":
            prior_changes = dict(answered.changes)
        current = confirmation(session.collected_data, prior_changes)

        system_prompt = self._prompts.render_stage(
            Stage.CONFIRMING,
            collected_data=session.collected_data,
            proposal=current.proposal,
        )
        messages = self._conversation(session, system_prompt)

        parts: list[str] = []
        async with contextlib.aclosing(self._stream_reply(messages, parts)) as fragments:
            async for fragment in fragments:
                yield fragment
        reply = "".join(parts)

        pending = current
        if message:
            revise_prompt = self._prompts.render(
                "confirming_revise.jinja2", proposal=current.proposal,
            )
            revision = await self._caller.generate(
                messages[1:] + [
                    ChatMessage(role="assistant", content=reply),
                    ChatMessage(role="system", content=revise_prompt),
                ],
                schema=REVISION_SCHEMA,
            )
            changes = (revision.data or {}).get("changes")
            if isinstance(changes, dict) and changes:
                pending = confirmation(
                    session.collected_data, {**prior_changes, **changes},
                )

        yield StageResult(
            reply_text=reply,
            structured_proposal=pending.proposal,
            pending_interaction=pending,
        )
