"""Create the agent_sessions table.

One row per orchestrated conversation.  History, collected data, the
pending interaction, metrics and the audit trail are JSONB columns so the
store can lock, mutate and rewrite a session in one statement pair.

Revision ID: 20261018_agent_sessions
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID

# revision identifiers, used by Alembic.
revision = "20261018_agent_sessions"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "agent_sessions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "stage", sa.String(20), nullable=False,
            server_default=sa.text("'collecting'"),
        ),
        sa.Column(
            "status", sa.String(20), nullable=False,
            server_default=sa.text("'active'"),
        ),
        sa.Column(
            "progress", sa.SmallInteger(), nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column(
            "history", JSONB, nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column(
            "collected_data", JSONB, nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("pending_interaction", JSONB, nullable=True),
        sa.Column(
            "metrics", JSONB, nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column(
            "audit", JSONB, nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", TIMESTAMP(timezone=True), nullable=False),
        sa.CheckConstraint(
            "stage IN ('collecting', 'confirming', 'generating', 'ready')",
            name="ck_stage_value",
        ),
        sa.CheckConstraint(
            "progress BETWEEN 0 AND 100",
            name="ck_progress_range",
        ),
    )
    op.create_index("ix_agent_sessions_status", "agent_sessions", ["status"])
    op.create_index("ix_agent_sessions_stage", "agent_sessions", ["stage"])
    op.create_index("ix_agent_sessions_updated_at", "agent_sessions", ["updated_at"])


def downgrade() -> None:
    op.drop_index("ix_agent_sessions_updated_at", table_name="agent_sessions")
    op.drop_index("ix_agent_sessions_stage", table_name="agent_sessions")
    op.drop_index("ix_agent_sessions_status", table_name="agent_sessions")
    op.drop_table("agent_sessions")
