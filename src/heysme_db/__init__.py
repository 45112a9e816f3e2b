"""heysme_db — PostgreSQL persistence layer for orchestrator sessions.

This package provides the ORM model, the :class:`Database` engine owner,
and the repository backing the durable ``SqlSessionStore``.  It knows
nothing about stage semantics; the orchestrator SDK owns those.
"""

from heysme_db.models.session import AgentSession
from heysme_db.models.enums import SessionStatus, Stage
from heysme_db.config import DatabaseSettings, load_database_settings
from heysme_db.engine import Database
from heysme_db.repository import SessionRepository

__all__ = [
    "AgentSession",
    "Database",
    "DatabaseSettings",
    "SessionStatus",
    "Stage",
    "SessionRepository",
    "load_database_settings",
]
