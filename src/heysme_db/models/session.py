"""AgentSession ORM model — single row per orchestrated conversation.

The whole session (history, collected data, pending prompt, audit trail)
lives in one row of JSONB columns so the orchestrator can load, mutate and
write it back inside a single row-locked transaction.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Index, SmallInteger, String, text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from heysme_db.models.base import Base
from heysme_db.models.enums import SessionStatus, Stage


class AgentSession(Base):
    """One row per orchestrator session."""

    __tablename__ = "agent_sessions"

    # --- Primary key (also the opaque session id handed to clients) ---
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # --- State machine ---
    stage: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=Stage.COLLECTING,
        server_default=text("'collecting'"),
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SessionStatus.ACTIVE,
        server_default=text("'active'"),
        index=True,
    )
    # Derived from the stage weight table, stored for cheap status reads
    progress: Mapped[int] = mapped_column(
        SmallInteger, nullable=False, default=0, server_default=text("0")
    )

    # --- Conversation ---
    # Ordered turns: [{"role": ..., "content": ..., "timestamp": "ISO8601"}]
    history: Mapped[list] = mapped_column(
        JSONB,
        nullable=False,
        server_default=text("'[]'::jsonb"),
    )
    # Accumulated field values, merged across stages
    collected_data: Mapped[dict] = mapped_column(
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )
    # At most one outstanding structured prompt; null when none is open
    pending_interaction: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    # --- Bookkeeping ---
    metrics: Mapped[dict] = mapped_column(
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )
    # Append-only advance/reset trail
    audit: Mapped[list] = mapped_column(
        JSONB,
        nullable=False,
        server_default=text("'[]'::jsonb"),
    )

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint(
            "stage IN ('collecting', 'confirming', 'generating', 'ready')",
            name="ck_stage_value",
        ),
        CheckConstraint(
            "progress BETWEEN 0 AND 100",
            name="ck_progress_range",
        ),
        Index("ix_agent_sessions_stage", "stage"),
        Index("ix_agent_sessions_updated_at", "updated_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<AgentSession(id={self.id!s}, stage={self.stage!r}, "
            f"status={self.status!r}, progress={self.progress})>"
        )
