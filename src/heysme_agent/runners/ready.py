"""Ready stage: terminal, informational replies only."""

import contextlib
from typing import AsyncIterator

from heysme_db.models.enums import Stage

from heysme_agent.constants import ARTIFACT_FIELD
from heysme_agent.models.session import PendingInteraction, Session
from heysme_agent.models.stage import StageResult
from heysme_agent.runners.base import RunnerOutput, StageRunner


class ReadyRunner(StageRunner):
    stage = Stage.READY

    async def run(
        self,
        session: Session,
        message: str,
        *,
        answered: PendingInteraction | None = None,
    ) -> AsyncIterator[RunnerOutput]:
        system_prompt = self._prompts.render_stage(
            Stage.READY,
            collected_data=session.collected_data,
            artifact=session.collected_data.get(ARTIFACT_FIELD, ""),
        )
        parts: list[str] = []
        messages = self._conversation(session, system_prompt)
        async with contextlib.aclosing(self._stream_reply(messages, parts)) as fragments:
            async for fragment in fragments:
                yield fragment
        yield StageResult(reply_text="".join(parts))
