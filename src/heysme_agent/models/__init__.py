"""Public model re-exports for heysme_agent.

Consumers should import from ``heysme_agent.models`` rather than reaching
into sub-modules directly.
"""

from heysme_agent.models.events import EventKind, StreamEvent
from heysme_agent.models.gateway import ChatMessage, GenerationResult
from heysme_agent.models.interaction import (
    INTERACTION_SPECS,
    InteractionOutcome,
    InteractionSpec,
    MergePolicy,
    SessionOutcome,
)
from heysme_agent.models.session import (
    AuditEntry,
    InteractionOption,
    PendingInteraction,
    Session,
    SessionMetrics,
    SessionStatusView,
    Turn,
    status_view,
    summarize_collected,
)
from heysme_agent.models.stage import StageFragment, StageResult

__all__ = [
    # Session
    "AuditEntry",
    "InteractionOption",
    "PendingInteraction",
    "Session",
    "SessionMetrics",
    "SessionStatusView",
    "Turn",
    "status_view",
    "summarize_collected",
    # Stage runner output
    "StageFragment",
    "StageResult",
    # Events
    "EventKind",
    "StreamEvent",
    # Interactions
    "INTERACTION_SPECS",
    "InteractionOutcome",
    "InteractionSpec",
    "MergePolicy",
    "SessionOutcome",
    # Gateway
    "ChatMessage",
    "GenerationResult",
]
