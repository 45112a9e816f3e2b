import pytest

from heysme_agent.orchestrator import Orchestrator
from heysme_agent.stores import InMemorySessionStore

from helpers.gateway import ScriptedGateway


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def gateway():
    return ScriptedGateway()


@pytest.fixture
def orchestrator(store, gateway):
    """Orchestrator with fast, non-retrying model calls."""
    return Orchestrator.build(
        store,
        gateway,
        timeout=1.0,
        max_retries=0,
        backoff=0.0,
        required_fields=["role"],
    )
