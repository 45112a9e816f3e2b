"""Orchestrator — drives sessions through the staged conversation.

Stateless: all session state lives in the :class:`SessionStore`, and
every mutation goes through ``SessionStore.transition`` so concurrent
calls on one session cannot both advance it.

Synchronous operations return outcome models instead of raising;
``stream_stage`` converts every failure into an ``error`` event and
always ends with ``done``.

Typical usage::

    orchestrator = Orchestrator.build(InMemorySessionStore(), gateway)
    session_id = await orchestrator.create_session()

    async for event in orchestrator.stream_stage(session_id, "Hi!"):
        ...  # fragment / proposal / stageComplete / error / done

    outcome = await orchestrator.handle_user_interaction(session_id, "confirm")
    if outcome.action == "advance":
        async for event in orchestrator.stream_stage(session_id, ""):
            ...
"""

import asyncio
import contextlib
import logging
from typing import Any, AsyncIterator

from heysme_db.models.enums import SessionStatus, Stage

from heysme_agent.constants import (
    MODEL_MAX_RETRIES,
    MODEL_RETRY_BACKOFF_SECONDS,
    MODEL_TIMEOUT_SECONDS,
    STAGE_ORDER,
    TERMINAL_STAGE,
)
from heysme_agent.errors import (
    InteractionPending,
    InvalidTarget,
    NoPendingInteraction,
    OrchestratorError,
    ProviderFatal,
    ProviderTransient,
    SessionNotFound,
    StageConflict,
)
from heysme_agent.gateway import GatewayCaller
from heysme_agent.interfaces import ModelGateway, SessionStore
from heysme_agent.merge import merge_additive, merge_append, merge_replace
from heysme_agent.models.events import StreamEvent
from heysme_agent.models.interaction import (
    INTERACTION_SPECS,
    InteractionOutcome,
    InteractionSpec,
    MergePolicy,
    SessionOutcome,
)
from heysme_agent.models.session import (
    AuditEntry,
    PendingInteraction,
    Session,
    SessionStatusView,
    Turn,
    status_view,
)
from heysme_agent.models.stage import StageFragment, StageResult
from heysme_agent.prompt import PromptManager
from heysme_agent.runners import StageRunner, build_runners
from heysme_agent.stages import default_successor, is_forward, parse_stage, progress_for

logger = logging.getLogger(__name__)

# Read-then-transition attempts before a lost race is reported as conflict.
_CAS_ATTEMPTS = 3


class Orchestrator:
    """Stage state machine over a :class:`SessionStore`.

    Args:
        store: session storage backend.
        runners: one :class:`StageRunner` per stage.
    """

    def __init__(self, store: SessionStore, runners: dict[Stage, StageRunner]) -> None:
        missing = [s.value for s in STAGE_ORDER if s not in runners]
        if missing:
            raise ValueError(f"No stage runner for: {', '.join(missing)}")
        self._store = store
        self._runners = dict(runners)

    @classmethod
    def build(
        cls,
        store: SessionStore,
        gateway: ModelGateway,
        *,
        prompts: PromptManager | None = None,
        timeout: float = MODEL_TIMEOUT_SECONDS,
        max_retries: int = MODEL_MAX_RETRIES,
        backoff: float = MODEL_RETRY_BACKOFF_SECONDS,
        required_fields: list[str] | None = None,
    ) -> "Orchestrator":
        """Wire the default runners around ``gateway``."""
        caller = GatewayCaller(
            gateway, timeout=timeout, max_retries=max_retries, backoff=backoff,
        )
        return cls(
            store, build_runners(caller, prompts, required_fields=required_fields),
        )

    @property
    def store(self) -> SessionStore:
        return self._store

    # ------------------------------------------------------------------
    # Session operations
    # ------------------------------------------------------------------

    async def create_session(self, seed: dict[str, Any] | None = None) -> str:
        """Create a session in the initial stage and return its id."""
        session = await self._store.create(seed)
        logger.info(
            "Created session %s (%d seed field(s))", session.id, len(session.collected_data),
        )
        return session.id

    async def get_session(self, session_id: str) -> Session | None:
        try:
            return await self._store.get(session_id)
        except SessionNotFound:
            return None

    async def get_session_status(self, session_id: str) -> SessionStatusView | None:
        """Public status view, or ``None`` if the session does not exist."""
        session = await self.get_session(session_id)
        return status_view(session) if session is not None else None

    async def get_history(self, session_id: str) -> list[Turn] | None:
        session = await self.get_session(session_id)
        return session.history if session is not None else None

    async def list_sessions(
        self, *, limit: int = 50, offset: int = 0
    ) -> list[SessionStatusView]:
        sessions = await self._store.list_sessions(limit=limit, offset=offset)
        return [status_view(s) for s in sessions]

    async def reset_to_stage(self, session_id: str, target: str | Stage) -> SessionOutcome:
        """Move a session back to ``target`` (earlier or equal stage only).

        Clears any open prompt, sets progress to the target's weight and
        records the move in the audit trail.  A completed session becomes
        active again.
        """
        stage = parse_stage(target)
        if stage is None:
            return SessionOutcome.failure(InvalidTarget(f"unknown stage {target!r}"))

        for _ in range(_CAS_ATTEMPTS):
            try:
                session = await self._store.get(session_id)
            except SessionNotFound as exc:
                return SessionOutcome.failure(exc)
            if session.status == SessionStatus.ABANDONED:
                return SessionOutcome.failure(InvalidTarget("session is abandoned"))
            if is_forward(session.stage, stage):
                return SessionOutcome.failure(InvalidTarget(
                    f"cannot reset forward from {session.stage.value} to {stage.value}"
                ))

            previous = session.stage

            def mutate(s: Session) -> None:
                s.stage = stage
                s.progress = progress_for(stage)
                s.pending_interaction = None
                if s.status == SessionStatus.COMPLETED:
                    s.status = SessionStatus.ACTIVE
                s.audit.append(
                    AuditEntry(action="reset", from_stage=previous, to_stage=stage)
                )

            try:
                updated = await self._store.transition(session_id, previous, mutate)
            except StageConflict:
                continue
            except SessionNotFound as exc:
                return SessionOutcome.failure(exc)

            logger.info(
                "Session %s reset from %s to %s", session_id, previous.value, stage.value,
            )
            return SessionOutcome(ok=True, stage=updated.stage, progress=updated.progress)

        return SessionOutcome.failure(StageConflict(f"session {session_id}: reset kept losing races"))

    async def abandon_session(self, session_id: str) -> SessionOutcome:
        """Mark a session abandoned.  Idempotent."""
        for _ in range(_CAS_ATTEMPTS):
            try:
                session = await self._store.get(session_id)
            except SessionNotFound as exc:
                return SessionOutcome.failure(exc)
            if session.status == SessionStatus.ABANDONED:
                return SessionOutcome(ok=True, stage=session.stage, progress=session.progress)

            def mutate(s: Session) -> None:
                s.status = SessionStatus.ABANDONED
                s.pending_interaction = None
                s.audit.append(AuditEntry(action="abandon", from_stage=s.stage))

            try:
                updated = await self._store.transition(session_id, session.stage, mutate)
            except StageConflict:
                continue
            except SessionNotFound as exc:
                return SessionOutcome.failure(exc)

            logger.info("Session %s abandoned at %s", session_id, updated.stage.value)
            return SessionOutcome(ok=True, stage=updated.stage, progress=updated.progress)

        return SessionOutcome.failure(StageConflict(f"session {session_id}: abandon kept losing races"))

    # ------------------------------------------------------------------
    # Interactions
    # ------------------------------------------------------------------

    async def handle_user_interaction(
        self,
        session_id: str,
        interaction_type: str,
        data: dict[str, Any] | None = None,
    ) -> InteractionOutcome:
        """Merge a structured user response into the session.

        A ``confirm`` answering the confirming stage's proposal advances
        the session synchronously and returns ``action="advance"``; the
        caller then streams the next stage with an empty message.  Every
        other interaction returns ``action="continue"``.
        """
        spec = INTERACTION_SPECS.get(interaction_type)
        if spec is None:
            return InteractionOutcome.failure(
                InvalidTarget(f"unknown interaction type {interaction_type!r}")
            )
        data = dict(data or {})

        for _ in range(_CAS_ATTEMPTS):
            try:
                session = await self._store.get(session_id)
            except SessionNotFound as exc:
                return InteractionOutcome.failure(exc)
            if session.status == SessionStatus.ABANDONED:
                return InteractionOutcome.failure(InvalidTarget("session is abandoned"))

            pending = session.pending_interaction
            answers = pending is not None and interaction_type in pending.accepts
            if spec.requires_pending and not answers:
                return InteractionOutcome.failure(NoPendingInteraction(
                    f"session {session_id}: no open prompt accepts {interaction_type!r}"
                ))

            try:
                updates = self._interaction_updates(spec, pending if answers else None, data)
            except InvalidTarget as exc:
                return InteractionOutcome.failure(exc)

            stage = session.stage
            expected_pending_id = pending.id if answers else None
            advance_to = (
                default_successor(stage)
                if spec.confirms and stage == Stage.CONFIRMING
                else None
            )

            def mutate(s: Session) -> None:
                current = s.pending_interaction
                if spec.requires_pending and (
                    current is None or current.id != expected_pending_id
                ):
                    raise NoPendingInteraction(
                        f"session {session_id}: prompt was answered concurrently"
                    )
                s.collected_data = _apply_policy(spec.merge_policy, s.collected_data, updates)
                if current is not None and current.id == expected_pending_id:
                    s.pending_interaction = None
                elif current is not None:
                    s.pending_interaction = self._runners[s.stage].refresh_pending(s, current)
                s.metrics.user_interactions += 1
                if advance_to is not None:
                    self._advance(s, advance_to, action="confirm")

            try:
                updated = await self._store.transition(session_id, stage, mutate)
            except NoPendingInteraction as exc:
                return InteractionOutcome.failure(exc)
            except SessionNotFound as exc:
                return InteractionOutcome.failure(exc)
            except StageConflict:
                if advance_to is None:
                    continue
                return await self._already_advanced(session_id)

            if advance_to is not None:
                logger.info(
                    "Session %s confirmed, advanced %s -> %s",
                    session_id, stage.value, updated.stage.value,
                )
                return InteractionOutcome(
                    ok=True,
                    action="advance",
                    next_stage_id=updated.stage,
                    stage=updated.stage,
                    progress=updated.progress,
                )
            logger.debug("Session %s: %s interaction merged", session_id, interaction_type)
            return InteractionOutcome(
                ok=True, action="continue", stage=updated.stage, progress=updated.progress,
            )

        return InteractionOutcome.failure(
            StageConflict(f"session {session_id}: interaction kept losing races")
        )

    async def _already_advanced(self, session_id: str) -> InteractionOutcome:
        """Benign outcome after a concurrent call advanced the session first."""
        try:
            current = await self._store.get(session_id)
        except SessionNotFound as exc:
            return InteractionOutcome.failure(exc)
        logger.info(
            "Session %s already advanced to %s by a concurrent call",
            session_id, current.stage.value,
        )
        return InteractionOutcome(
            ok=True,
            action="continue",
            stage=current.stage,
            progress=current.progress,
            already_advanced=True,
        )

    @staticmethod
    def _interaction_updates(
        spec: InteractionSpec,
        answered: PendingInteraction | None,
        data: dict[str, Any],
    ) -> dict[str, Any]:
        """Field updates an interaction writes into ``collectedData``."""
        if spec.merge_policy == MergePolicy.CONFIRM_NO_OP:
            # Confirmation writes the proposal's revisions, never client data
            return dict(answered.changes) if answered is not None else {}

        if answered is None or answered.kind != "choice" or not answered.field:
            return data

        if "value" in data:
            return {answered.field: data["value"]}
        if "optionId" in data:
            for option in answered.options:
                if option.id == data["optionId"]:
                    return {answered.field: option.label}
            raise InvalidTarget(f"unknown option {data['optionId']!r}")
        return data

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def stream_stage(
        self, session_id: str, message: str = ""
    ) -> AsyncIterator[StreamEvent]:
        """Run the current stage and yield its events.

        Always ends with a ``done`` event, preceded by one ``error`` event
        on failure.  Closing the iterator early releases the in-flight
        model call; no stage transition is applied and an open prompt stays
        open.  The user's message stays in the history.
        """
        try:
            async with contextlib.aclosing(self._drive(session_id, message)) as events:
                async for event in events:
                    yield event
        except (GeneratorExit, asyncio.CancelledError):
            logger.info("Stream for session %s cancelled by consumer", session_id)
            raise
        except OrchestratorError as exc:
            if isinstance(exc, ProviderFatal):
                logger.error("Model rejected request for session %s: %s", session_id, exc)
            elif isinstance(exc, ProviderTransient):
                logger.warning("Model call failed for session %s: %s", session_id, exc)
            else:
                logger.info("Stream for session %s rejected (%s): %s", session_id, exc.code, exc)
            yield StreamEvent.error(exc)
        except Exception:
            logger.exception("Unexpected failure while streaming session %s", session_id)
            yield StreamEvent.error(OrchestratorError("unexpected stream failure"))
        yield StreamEvent.done(session_id)

    async def _drive(self, session_id: str, message: str) -> AsyncIterator[StreamEvent]:
        session = await self._store.get(session_id)
        if session.status == SessionStatus.ABANDONED:
            raise InvalidTarget("session is abandoned")
        if session.pending_interaction is not None and not message:
            raise InteractionPending(
                f"session {session_id}: {session.pending_interaction.kind} prompt is open"
            )
        if message:
            session = await self._append_user_turn(session_id, message)
        answered = session.pending_interaction if message else None

        stage = session.stage
        runner = self._runners[stage]
        logger.debug("Session %s: running %s stage", session_id, stage.value)

        result: StageResult | None = None
        async with contextlib.aclosing(
            runner.run(session, message, answered=answered)
        ) as outputs:
            async for item in outputs:
                if isinstance(item, StageFragment):
                    yield StreamEvent.fragment(item.text)
                else:
                    result = item
        if result is None:
            raise OrchestratorError(f"{stage.value} runner finished without a result")

        if result.is_complete:
            target = result.next_stage_hint or default_successor(stage)
            if target is None or not is_forward(stage, target):
                raise InvalidTarget(
                    f"{stage.value} runner asked to advance to "
                    f"{target.value if target else 'nothing'}"
                )

            def complete(s: Session) -> None:
                self._fold_result(s, stage, result)
                self._advance(s, target, action="advance")

            try:
                updated = await self._store.transition(session_id, stage, complete)
            except StageConflict:
                yield await self._already_advanced_event(session_id)
                return
            logger.info(
                "Session %s advanced %s -> %s (progress %d%%)",
                session_id, stage.value, updated.stage.value, updated.progress,
            )
            yield StreamEvent.stage_complete(
                updated.stage, updated.progress, pending=updated.pending_interaction,
            )
            return

        def keep(s: Session) -> None:
            # Replaces the prompt this message answered (None clears it)
            self._fold_result(s, stage, result)
            s.pending_interaction = result.pending_interaction

        try:
            updated = await self._store.transition(session_id, stage, keep)
        except StageConflict:
            yield await self._already_advanced_event(session_id)
            return
        if updated.pending_interaction is not None:
            yield StreamEvent.proposal(updated.pending_interaction)

    async def _append_user_turn(self, session_id: str, message: str) -> Session:
        """Append the user's message to the history.

        The open prompt, if any, is left in place: only the transition that
        folds the stage result replaces it, so a failed or cancelled run
        keeps it answerable.
        """
        for _ in range(_CAS_ATTEMPTS):
            session = await self._store.get(session_id)

            def mutate(s: Session) -> None:
                s.history.append(Turn(role="user", content=message, stage=s.stage))

            try:
                return await self._store.transition(session_id, session.stage, mutate)
            except StageConflict:
                continue
        raise StageConflict(f"session {session_id}: message append kept losing races")

    async def _already_advanced_event(self, session_id: str) -> StreamEvent:
        current = await self._store.get(session_id)
        logger.info(
            "Session %s moved to %s concurrently; stage result dropped",
            session_id, current.stage.value,
        )
        return StreamEvent.stage_complete(
            current.stage,
            current.progress,
            pending=current.pending_interaction,
            already_advanced=True,
        )

    # ------------------------------------------------------------------
    # Mutation helpers (run inside SessionStore.transition)
    # ------------------------------------------------------------------

    @staticmethod
    def _fold_result(s: Session, stage: Stage, result: StageResult) -> None:
        s.collected_data = merge_additive(
            s.collected_data, result.collected, result.superseded,
        )
        if result.reply_text:
            s.history.append(Turn(role="assistant", content=result.reply_text, stage=stage))

    def _advance(self, s: Session, target: Stage, *, action: str) -> None:
        previous = s.stage
        s.stage = target
        s.progress = max(s.progress, progress_for(target))
        s.pending_interaction = self._runners[target].on_enter(s)
        s.metrics.stage_transitions += 1
        if target == TERMINAL_STAGE:
            s.status = SessionStatus.COMPLETED
        s.audit.append(AuditEntry(action=action, from_stage=previous, to_stage=target))


def _apply_policy(
    policy: MergePolicy, current: dict[str, Any], updates: dict[str, Any]
) -> dict[str, Any]:
    if policy == MergePolicy.APPEND:
        return merge_append(current, updates)
    # replace and confirm-no-op both overwrite the named fields
    return merge_replace(current, updates)
