"""Database-level enumerations for orchestrator sessions."""

import enum


class Stage(str, enum.Enum):
    """Position of a session in the staged conversation.

    Transitions are strictly forward:
        collecting -> confirming -> generating -> ready

    ``ready`` is terminal.  The only backward move is an explicit reset.
    """

    COLLECTING = "collecting"
    CONFIRMING = "confirming"
    GENERATING = "generating"
    READY = "ready"


class SessionStatus(str, enum.Enum):
    """Lifecycle states for a session.

    Transitions:
        active -> completed  (stage reached ready)
        active -> abandoned  (explicit client abandonment)
        completed -> active  (reset to an earlier stage)
    """

    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
