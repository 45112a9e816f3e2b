"""Collecting stage: converse with the user and extract profile fields."""

import contextlib
import logging
from typing import Any, AsyncIterator

from heysme_db.models.enums import Stage

from heysme_agent.constants import COLLECTING_REQUIRED_FIELDS
from heysme_agent.gateway import GatewayCaller
from heysme_agent.merge import merge_additive
from heysme_agent.models.gateway import ChatMessage
from heysme_agent.models.session import (
    InteractionOption,
    PendingInteraction,
    Session,
)
from heysme_agent.models.stage import StageResult
from heysme_agent.prompt import PromptManager
from heysme_agent.runners.base import RunnerOutput, StageRunner

logger = logging.getLogger(__name__)

# JSON schema for the extraction call
EXTRACTION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "fields": {"type": "object"},
        "sufficient": {"type": "boolean"},
        "clarification": {
            "type": ["object", "null"],
            "properties": {
                "field": {"type": "string"},
                "question": {"type": "string"},
                "options": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "id": {"type": "string"},
                            "label": {"type": "string"},
                        },
                        "required": ["id", "label"],
                    },
                },
            },
        },
    },
    "required": ["fields", "sufficient"],
}


def _has_value(data: dict[str, Any], key: str) -> bool:
    value = data.get(key)
    return value not in (None, "", [], {})


class CollectingRunner(StageRunner):
    """Gathers raw information about the user.

    The stage completes when the model declares the information sufficient
    or when every required field has a value.  Otherwise, if the model
    suggests a multiple-choice clarification, the stage opens a ``choice``
    prompt answered by a ``select`` interaction.

    Args:
        required_fields: fields that complete the stage once all present.
    """

    stage = Stage.COLLECTING

    def __init__(
        self,
        caller: GatewayCaller,
        prompts: PromptManager,
        *,
        required_fields: list[str] | None = None,
    ) -> None:
        super().__init__(caller, prompts)
        self._required = (
            list(required_fields) if required_fields is not None
            else list(COLLECTING_REQUIRED_FIELDS)
        )

    async def run(
        self,
        session: Session,
        message: str,
        *,
        answered: PendingInteraction | None = None,
    ) -> AsyncIterator[RunnerOutput]:
        collected = session.collected_data
        missing = [f for f in self._required if not _has_value(collected, f)]
        system_prompt = self._prompts.render_stage(
            Stage.COLLECTING, collected_data=collected, missing_fields=missing,
        )
        messages = self._conversation(session, system_prompt)

        parts: list[str] = []
        async with contextlib.aclosing(self._stream_reply(messages, parts)) as fragments:
            async for fragment in fragments:
                yield fragment
        reply = "".join(parts)

        extract_prompt = self._prompts.render(
            "collecting_extract.jinja2",
            collected_data=collected,
            required_fields=self._required,
        )
        extraction = await self._caller.generate(
            messages[1:] + [
                ChatMessage(role="assistant", content=reply),
                ChatMessage(role="system", content=extract_prompt),
            ],
            schema=EXTRACTION_SCHEMA,
        )
        data = extraction.data or {}
        fields = data.get("fields")
        if not isinstance(fields, dict):
            fields = {}

        merged = merge_additive(collected, fields)
        complete = data.get("sufficient") is True or (
            bool(self._required)
            and all(_has_value(merged, f) for f in self._required)
        )
        logger.debug(
            "Collecting extraction: %d field(s), sufficient=%s, complete=%s",
            len(fields), data.get("sufficient"), complete,
        )

        pending = None
        if not complete:
            pending = self._clarification(data.get("clarification"))

        yield StageResult(
            reply_text=reply,
            collected=fields,
            is_complete=complete,
            pending_interaction=pending,
        )

    def _clarification(self, raw: Any) -> PendingInteraction | None:
        """Build a choice prompt from the model's suggestion, if usable."""
        if not isinstance(raw, dict):
            return None
        options = [
            InteractionOption(id=str(o["id"]), label=str(o["label"]))
            for o in raw.get("options") or []
            if isinstance(o, dict) and "id" in o and "label" in o
        ]
        if not options or not raw.get("question"):
            return None
        return PendingInteraction(
            kind="choice",
            stage=Stage.COLLECTING,
            prompt=str(raw["question"]),
            field=raw.get("field") or None,
            options=options,
            accepts=["select"],
        )
