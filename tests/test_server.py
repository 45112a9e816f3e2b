"""HTTP API tests over an in-memory orchestrator.

Uses FastAPI's TestClient; the lifespan keeps the injected orchestrator,
so no model server or database is needed.
"""

import json

import pytest
from fastapi.testclient import TestClient

from heysme_agent.orchestrator import Orchestrator
from heysme_agent.stores import InMemorySessionStore, SqlSessionStore
from heysme_server.app import _build_store, create_app
from heysme_server.config import ServerSettings
from heysme_server.sse import DONE_SENTINEL

from helpers.gateway import ScriptedGateway

API = "/api/v1"


@pytest.fixture
def gateway():
    return ScriptedGateway()


@pytest.fixture
def client(gateway):
    orchestrator = Orchestrator.build(
        InMemorySessionStore(), gateway, timeout=1.0, max_retries=0, required_fields=["role"],
    )
    with TestClient(create_app(settings=ServerSettings(), orchestrator=orchestrator)) as c:
        yield c


def _parse_sse(body: str) -> list[dict]:
    """Decode SSE frames into ``{kind, payload}`` dicts; checks the sentinel."""
    assert body.endswith(DONE_SENTINEL), "Stream must end with [DONE]"
    events = []
    for frame in body[: -len(DONE_SENTINEL)].split("\n\n"):
        for line in frame.split("\n"):
            if line.startswith("data: "):
                events.append(json.loads(line[len("data: "):]))
    return events


def _create(client) -> str:
    resp = client.post(f"{API}/sessions")
    assert resp.status_code == 201
    return resp.json()["sessionId"]


# =====================================================================
# Sessions
# =====================================================================

class TestSessionEndpoints:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok", "store": "memory"}

    def test_create_and_status(self, client):
        session_id = _create(client)
        body = client.get(f"{API}/sessions/{session_id}").json()
        assert body["sessionId"] == session_id
        assert body["stage"] == "collecting"
        assert body["progress"] == 0
        assert body["pendingInteraction"] is None

    def test_create_with_seed(self, client):
        resp = client.post(f"{API}/sessions", json={"seed": {"role": "designer"}})
        body = client.get(f"{API}/sessions/{resp.json()['sessionId']}").json()
        assert body["collectedDataSummary"] == {"role": "designer"}

    def test_unknown_session_is_404(self, client):
        resp = client.get(f"{API}/sessions/nope")
        assert resp.status_code == 404
        assert resp.json()["code"] == "not_found"
        assert "nope" not in resp.json()["detail"]

    def test_list(self, client):
        _create(client)
        _create(client)
        assert len(client.get(f"{API}/sessions", params={"limit": 1}).json()) == 1
        assert len(client.get(f"{API}/sessions").json()) == 2

    def test_reset_forward_is_400(self, client):
        session_id = _create(client)
        resp = client.post(f"{API}/sessions/{session_id}/reset", json={"stage": "ready"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid_target"

    def test_abandon(self, client):
        session_id = _create(client)
        resp = client.post(f"{API}/sessions/{session_id}/abandon")
        assert resp.status_code == 200
        assert client.get(f"{API}/sessions/{session_id}").json()["status"] == "abandoned"


# =====================================================================
# Interactions and streaming
# =====================================================================

class TestConversationEndpoints:

    def test_confirm_without_prompt_is_409(self, client):
        session_id = _create(client)
        resp = client.post(
            f"{API}/sessions/{session_id}/interactions", json={"type": "confirm"},
        )
        assert resp.status_code == 409
        assert resp.json()["code"] == "no_pending_interaction"

    def test_stream_unknown_session_reports_in_band(self, client):
        resp = client.post(f"{API}/sessions/nope/stream", json={"message": "hi"})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/event-stream")
        events = _parse_sse(resp.text)
        assert [e["kind"] for e in events] == ["error", "done"]
        assert events[0]["payload"]["code"] == "not_found"

    def test_full_flow(self, client, gateway):
        session_id = _create(client)
        gateway.generations.append({"fields": {"role": "backend engineer"}, "sufficient": True})

        events = _parse_sse(client.post(
            f"{API}/sessions/{session_id}/stream", json={"message": "I'm a backend engineer"},
        ).text)
        assert [e["kind"] for e in events] == ["fragment", "fragment", "stageComplete", "done"]
        assert events[2]["payload"]["stage"] == "confirming"

        resp = client.post(
            f"{API}/sessions/{session_id}/interactions", json={"type": "confirm", "data": {}},
        )
        assert resp.status_code == 200
        assert resp.json()["action"] == "advance"
        assert resp.json()["nextStageId"] == "generating"

        duplicate = client.post(
            f"{API}/sessions/{session_id}/interactions", json={"type": "confirm"},
        )
        assert duplicate.status_code == 409

        events = _parse_sse(client.post(
            f"{API}/sessions/{session_id}/stream", json={"message": ""},
        ).text)
        assert events[-2]["kind"] == "stageComplete"
        assert events[-2]["payload"]["progress"] == 100

        status = client.get(f"{API}/sessions/{session_id}").json()
        assert status["stage"] == "ready"
        assert status["status"] == "completed"
        history = client.get(f"{API}/sessions/{session_id}/history").json()
        assert history[0]["role"] == "user"
        assert history[0]["content"] == "I'm a backend engineer"


# =====================================================================
# Store wiring
# =====================================================================

class TestStoreWiring:

    def test_memory_store_owns_no_database(self):
        store, database = _build_store(ServerSettings())
        assert isinstance(store, InMemorySessionStore)
        assert database is None

    def test_sql_store_gets_its_own_database(self):
        settings = ServerSettings(session_store="sql", database_url="postgresql://u:p@pg:5432/heysme")
        store, database = _build_store(settings)
        assert isinstance(store, SqlSessionStore)
        assert database.settings.url.host == "pg"
        assert store._factory is database.session_factory
