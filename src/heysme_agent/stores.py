"""SessionStore implementations.

``InMemorySessionStore`` keeps sessions in a dict guarded by an
``asyncio.Lock``; it is the default for tests and single-process use.

``SqlSessionStore`` persists to PostgreSQL through ``heysme_db``.  Each
transition runs in its own database transaction and takes a row lock
(``SELECT ... FOR UPDATE``), so compare-and-swap holds across processes.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from heysme_db.models.enums import Stage
from heysme_db.models.session import AgentSession
from heysme_db.repository import SessionRepository

from heysme_agent.constants import INITIAL_STAGE
from heysme_agent.errors import SessionNotFound, StageConflict
from heysme_agent.interfaces import SessionMutator, SessionStore
from heysme_agent.models.session import Session
from heysme_agent.stages import progress_for

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemorySessionStore(SessionStore):
    """Process-local store.  Sessions are lost on restart."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = asyncio.Lock()

    async def create(self, seed: dict[str, Any] | None = None) -> Session:
        session = Session(
            id=str(uuid.uuid4()),
            stage=INITIAL_STAGE,
            progress=progress_for(INITIAL_STAGE),
            collected_data=dict(seed or {}),
        )
        async with self._lock:
            self._sessions[session.id] = session
        return session.model_copy(deep=True)

    async def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session.model_copy(deep=True)

    async def transition(
        self,
        session_id: str,
        expected_stage: Stage,
        mutator: SessionMutator,
    ) -> Session:
        async with self._lock:
            current = self._sessions.get(session_id)
            if current is None:
                raise SessionNotFound(session_id)
            if current.stage != expected_stage:
                raise StageConflict(
                    f"session {session_id}: expected {expected_stage.value}, "
                    f"found {current.stage.value}"
                )
            draft = current.model_copy(deep=True)
            mutator(draft)
            draft.updated_at = _now()
            self._sessions[session_id] = draft
            return draft.model_copy(deep=True)

    async def list_sessions(self, *, limit: int = 50, offset: int = 0) -> list[Session]:
        ordered = sorted(
            self._sessions.values(), key=lambda s: s.updated_at, reverse=True,
        )
        return [s.model_copy(deep=True) for s in ordered[offset:offset + limit]]


class SqlSessionStore(SessionStore):
    """PostgreSQL-backed store.

    Args:
        session_factory: async session factory, usually
            ``heysme_db.Database.session_factory``.  The store does not own
            the engine; whoever built the ``Database`` disposes it.
        repo: repository instance; a fresh one is created when omitted.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        repo: SessionRepository | None = None,
    ) -> None:
        self._factory = session_factory
        self._repo = repo or SessionRepository()

    async def create(self, seed: dict[str, Any] | None = None) -> Session:
        async with self._factory() as db:
            row = await self._repo.create_session(db, collected_data=seed)
            await db.commit()
            logger.debug("Created session row %s", row.id)
            return _row_to_session(row)

    async def get(self, session_id: str) -> Session:
        pk = _parse_pk(session_id)
        async with self._factory() as db:
            row = await self._repo.get_by_id(db, pk)
            if row is None:
                raise SessionNotFound(session_id)
            return _row_to_session(row)

    async def transition(
        self,
        session_id: str,
        expected_stage: Stage,
        mutator: SessionMutator,
    ) -> Session:
        pk = _parse_pk(session_id)
        async with self._factory() as db:
            row = await self._repo.get_for_update(db, pk)
            if row is None:
                raise SessionNotFound(session_id)
            if row.stage != expected_stage.value:
                # Leaving the block without commit releases the row lock
                raise StageConflict(
                    f"session {session_id}: expected {expected_stage.value}, "
                    f"found {row.stage}"
                )
            draft = _row_to_session(row)
            mutator(draft)
            await self._repo.save_state(db, row, _session_to_values(draft))
            await db.commit()
            return _row_to_session(row)

    async def list_sessions(self, *, limit: int = 50, offset: int = 0) -> list[Session]:
        async with self._factory() as db:
            rows = await self._repo.list_sessions(db, limit=limit, offset=offset)
            return [_row_to_session(r) for r in rows]


# ------------------------------------------------------------------
# Row <-> model conversion
# ------------------------------------------------------------------

def _parse_pk(session_id: str) -> uuid.UUID:
    """Session ids are UUIDs in the SQL store; anything else cannot exist."""
    try:
        return uuid.UUID(str(session_id))
    except ValueError:
        raise SessionNotFound(session_id)


def _row_to_session(row: AgentSession) -> Session:
    return Session.model_validate({
        "id": str(row.id),
        "stage": row.stage,
        "status": row.status,
        "progress": row.progress,
        "history": row.history or [],
        "collectedData": row.collected_data or {},
        "pendingInteraction": row.pending_interaction,
        "metrics": row.metrics or {},
        "audit": row.audit or [],
        "createdAt": row.created_at,
        "updatedAt": row.updated_at,
    })


def _session_to_values(session: Session) -> dict[str, Any]:
    """Column values for ``SessionRepository.save_state``.

    JSONB columns receive JSON-mode dumps (ISO timestamps, plain strings).
    """
    dumped = session.model_dump(mode="json", by_alias=True)
    return {
        "stage": session.stage.value,
        "status": session.status.value,
        "progress": session.progress,
        "history": dumped["history"],
        "collected_data": dumped["collectedData"],
        "pending_interaction": dumped["pendingInteraction"],
        "metrics": dumped["metrics"],
        "audit": dumped["audit"],
    }
