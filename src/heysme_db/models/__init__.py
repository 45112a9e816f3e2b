"""ORM models for heysme_db."""

from heysme_db.models.base import Base
from heysme_db.models.enums import SessionStatus, Stage
from heysme_db.models.session import AgentSession

__all__ = ["Base", "SessionStatus", "Stage", "AgentSession"]
