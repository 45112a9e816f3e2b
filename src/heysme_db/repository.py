"""Async CRUD repository for AgentSession.

All public methods accept an ``AsyncSession`` so the caller controls
transaction boundaries.  The repository calls ``flush()`` but never
``commit()``.

The repository has no stage logic: compare-and-swap and
merge rules belong to the store adapter in the SDK.  It only provides the
row-locking read that makes those rules atomic.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from heysme_db.models.enums import SessionStatus, Stage
from heysme_db.models.session import AgentSession

# Columns the store adapter is allowed to write back after a mutation.
WRITABLE_FIELDS: tuple[str, ...] = (
    "stage",
    "status",
    "progress",
    "history",
    "collected_data",
    "pending_interaction",
    "metrics",
    "audit",
)


class SessionRepository:
    """Async read/write operations on the ``agent_sessions`` table."""

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_session(
        self,
        db: AsyncSession,
        *,
        collected_data: dict[str, Any] | None = None,
    ) -> AgentSession:
        """Insert a new session row at the initial stage and return it.

        The caller must ``await db.commit()`` to persist.
        """
        now = datetime.now(timezone.utc)
        row = AgentSession(
            id=uuid.uuid4(),
            stage=Stage.COLLECTING.value,
            status=SessionStatus.ACTIVE.value,
            progress=0,
            history=[],
            collected_data=dict(collected_data or {}),
            pending_interaction=None,
            metrics={},
            audit=[],
            created_at=now,
            updated_at=now,
        )
        db.add(row)
        await db.flush()
        return row

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get_by_id(
        self, db: AsyncSession, session_pk: uuid.UUID
    ) -> AgentSession | None:
        """Fetch a session by its primary-key UUID."""
        return await db.get(AgentSession, session_pk)

    async def get_for_update(
        self, db: AsyncSession, session_pk: uuid.UUID
    ) -> AgentSession | None:
        """Fetch a session and take a row lock until the transaction ends.

        Two concurrent transitions on the same row serialise here; the
        second one observes the stage written by the first.
        """
        stmt = (
            select(AgentSession)
            .where(AgentSession.id == session_pk)
            .with_for_update()
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_sessions(
        self,
        db: AsyncSession,
        *,
        limit: int = 20,
        offset: int = 0,
    ) -> list[AgentSession]:
        """List sessions, most recently updated first."""
        stmt = (
            select(AgentSession)
            .order_by(AgentSession.updated_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    async def save_state(
        self,
        db: AsyncSession,
        row: AgentSession,
        values: dict[str, Any],
    ) -> AgentSession:
        """Write the given column values onto a (locked) row.

        Unknown keys are rejected so a typo cannot silently drop state.
        """
        unknown = set(values) - set(WRITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown session fields: {sorted(unknown)}")
        for key, value in values.items():
            setattr(row, key, value)
        row.updated_at = datetime.now(timezone.utc)
        await db.flush()
        return row

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    async def purge_old_sessions(
        self,
        db: AsyncSession,
        *,
        older_than_days: int,
        status_filter: list[str] | None = None,
    ) -> int:
        """Permanently delete sessions not updated for ``older_than_days``.

        ``older_than_days=0`` disables the age filter.  Returns the number
        of deleted rows.
        """
        stmt = delete(AgentSession)
        if older_than_days > 0:
            cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
            stmt = stmt.where(AgentSession.updated_at < cutoff)
        if status_filter:
            stmt = stmt.where(AgentSession.status.in_(status_filter))
        result = await db.execute(stmt)
        await db.flush()
        return result.rowcount or 0
