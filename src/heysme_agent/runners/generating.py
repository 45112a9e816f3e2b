"""Generating stage: produce the final artifact."""

import contextlib
from typing import AsyncIterator

from heysme_db.models.enums import Stage

from heysme_agent.constants import ARTIFACT_FIELD
from heysme_agent.errors import ProviderTransient
from heysme_agent.models.gateway import ChatMessage
from heysme_agent.models.session import PendingInteraction, Session
from heysme_agent.models.stage import StageResult
from heysme_agent.runners.base import RunnerOutput, StageRunner


class GeneratingRunner(StageRunner):
    """Streams the profile; completes once it is fully produced.

    The history is not replayed: the artifact is written from the
    confirmed ``collectedData`` only.  A regenerated artifact supersedes
    the previous one.
    """

    stage = Stage.GENERATING

    async def run(
        self,
        session: Session,
        message: str,
        *,
        answered: PendingInteraction | None = None,
    ) -> AsyncIterator[RunnerOutput]:
        system_prompt = self._prompts.render_stage(
            Stage.GENERATING, collected_data=session.collected_data,
        )
        messages = [ChatMessage(role="system", content=system_prompt)]
        if message:
            messages.append(ChatMessage(role="user", content=message))

        parts: list[str] = []
        async with contextlib.aclosing(self._stream_reply(messages, parts)) as fragments:
            async for fragment in fragments:
                yield fragment

        artifact = "".join(parts).strip()
        if not artifact:
            raise ProviderTransient("model produced an empty artifact")

        yield StageResult(
            reply_text=artifact,
            collected={ARTIFACT_FIELD: artifact},
            superseded=[ARTIFACT_FIELD],
            is_complete=True,
        )
