"""StageRunner — the per-stage policy behind the orchestrator.

A runner builds the stage's model request, forwards the streamed reply as
:class:`StageFragment` objects and finishes with exactly one
:class:`StageResult`.  Runners never touch the store; everything they
decide flows back to the orchestrator through the result.
"""

import contextlib
from abc import ABC, abstractmethod
from typing import AsyncIterator

from heysme_db.models.enums import Stage

from heysme_agent.gateway import GatewayCaller
from heysme_agent.models.gateway import ChatMessage
from heysme_agent.models.session import PendingInteraction, Session
from heysme_agent.models.stage import StageFragment, StageResult
from heysme_agent.prompt import PromptManager

RunnerOutput = StageFragment | StageResult


class StageRunner(ABC):
    """Base class for stage runners.

    Args:
        caller: model gateway wrapped with timeout/retry policy.
        prompts: system prompt renderer.
    """

    stage: Stage

    def __init__(self, caller: GatewayCaller, prompts: PromptManager) -> None:
        self._caller = caller
        self._prompts = prompts

    @abstractmethod
    def run(
        self,
        session: Session,
        message: str,
        *,
        answered: PendingInteraction | None = None,
    ) -> AsyncIterator[RunnerOutput]:
        """Run the stage once.

        Args:
            session: snapshot taken after the user's message was appended
                to the history.
            message: the user's message; empty when the stage is
                auto-started.
            answered: the open prompt this message answers, if any.  It is
                still stored on the session; the result's
                ``pending_interaction`` replaces it.

        Yields fragments as they arrive, then one :class:`StageResult`.
        """
        ...

    def on_enter(self, session: Session) -> PendingInteraction | None:
        """Prompt to open when a session advances into this stage."""
        return None

    def refresh_pending(
        self, session: Session, pending: PendingInteraction
    ) -> PendingInteraction:
        """Rebuild an open prompt after an interaction changed ``collected_data``.

        Called inside the merging transition.  The default keeps the prompt
        as it is.
        """
        return pending

    # --- Shared helpers ---

    def _conversation(self, session: Session, system_prompt: str) -> list[ChatMessage]:
        """System prompt followed by the full turn history."""
        messages = [ChatMessage(role="system", content=system_prompt)]
        messages.extend(
            ChatMessage(role=turn.role, content=turn.content)
            for turn in session.history
        )
        return messages

    async def _stream_reply(
        self,
        messages: list[ChatMessage],
        parts: list[str],
    ) -> AsyncIterator[StageFragment]:
        """Forward each increment and collect it into ``parts``."""
        async with contextlib.aclosing(self._caller.stream(messages)) as chunks:
            async for text in chunks:
                parts.append(text)
                yield StageFragment(text=text)
