"""heysme_agent — staged, model-backed conversation orchestrator SDK.

Public API::

    from heysme_agent import Orchestrator, InMemorySessionStore, OllamaGateway

    orchestrator = Orchestrator.build(InMemorySessionStore(), OllamaGateway())
"""

from heysme_agent.errors import (
    InteractionPending,
    InvalidRequestError,
    InvalidTarget,
    NoPendingInteraction,
    OrchestratorError,
    ProviderError,
    ProviderFatal,
    ProviderTransient,
    SessionNotFound,
    StageConflict,
)
from heysme_agent.gateway import GatewayCaller, OllamaGateway
from heysme_agent.interfaces import ModelGateway, SessionStore
from heysme_agent.orchestrator import Orchestrator
from heysme_agent.stores import InMemorySessionStore, SqlSessionStore

__all__ = [
    "Orchestrator",
    # Collaborators
    "GatewayCaller",
    "InMemorySessionStore",
    "ModelGateway",
    "OllamaGateway",
    "SessionStore",
    "SqlSessionStore",
    # Errors
    "InteractionPending",
    "InvalidRequestError",
    "InvalidTarget",
    "NoPendingInteraction",
    "OrchestratorError",
    "ProviderError",
    "ProviderFatal",
    "ProviderTransient",
    "SessionNotFound",
    "StageConflict",
]
