"""Tests for API routes."""
import asyncio
import json
import time
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app.agents.orchestrator import ResearchOrchestrator
from app.api.deps import get_orchestrator, get_store
from app.config import settings
from app.main import app, serve
from app.services.session_store import InMemorySessionStore
from app.tools.serper_search import SearchResult

REQUIREMENTS = {"requirements": "Research cold chain risk", "searchQueries": ["food logistics 2025"]}
REPORT = {
    "overallRiskScore": 48,
    "topRisks": [
        {"factor": "Port congestion in Chittagong", "score": 7, "source": "reuters.com", "sourceUrl": "https://reuters.com/1"}
    ],
    "keyInsights": [{"title": "Ports", "description": "Dwell times up", "source": "reuters.com"}],
}

START_BODY = {
    "companyName": "Gher",
    "industry": "food",
    "region": "south_asia",
    "supplyChainConcern": "",
    "generationApiKey": "gen-key",
    "searchApiKey": "serper-key",
}


class ScriptedGeneration:
    def __init__(self, *responses: str):
        self.responses = list(responses)

    def factory(self, api_key: str) -> "ScriptedGeneration":
        return self

    async def generate(self, prompt: str, *, caller: str) -> str:
        return self.responses.pop(0)


async def _search(query: str, *, api_key: str):
    return [
        SearchResult(
            title="Ports",
            link="https://www.reuters.com/1",
            snippet="Port congestion",
            position=1,
            source="reuters.com",
            published_date="2025-05-01",
        )
    ]


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def client(store):
    generation = ScriptedGeneration(json.dumps(REQUIREMENTS), json.dumps(REPORT))
    orchestrator = ResearchOrchestrator(
        store, generation_client_factory=generation.factory, search_fn=_search
    )
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _wait_until_terminal(client: TestClient, session_id: int) -> dict:
    for _ in range(200):
        data = client.get(f"/api/sessions/{session_id}").json()
        if data["status"] in ("completed", "error"):
            return data
        time.sleep(0.01)
    raise AssertionError("session did not finish")


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "arcscan"}


def test_create_session_returns_increasing_ids(client):
    first = client.post("/api/sessions").json()["sessionId"]
    second = client.post("/api/sessions").json()["sessionId"]
    assert second > first


def test_get_session_snapshot(client):
    session_id = client.post("/api/sessions").json()["sessionId"]

    response = client.get(f"/api/sessions/{session_id}")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "created"
    assert data["researchProgress"] == 0
    assert data["results"] is None


def test_unknown_session_is_404(client):
    assert client.get("/api/sessions/999").status_code == 404
    assert client.get("/api/sessions/999/view").status_code == 404
    assert client.get("/api/sessions/999/report").status_code == 404
    assert client.get("/api/sessions/999/stream").status_code == 404
    assert client.post("/api/sessions/999/cancel").status_code == 404
    assert client.post("/api/sessions/999/research", json=START_BODY).status_code == 404


def test_start_research_validates_body(client):
    session_id = client.post("/api/sessions").json()["sessionId"]
    body = {**START_BODY, "generationApiKey": ""}

    response = client.post(f"/api/sessions/{session_id}/research", json=body)

    assert response.status_code == 422


def test_research_flow_completes_and_serves_report(client):
    session_id = client.post("/api/sessions").json()["sessionId"]

    started = client.post(f"/api/sessions/{session_id}/research", json=START_BODY)
    assert started.status_code == 202
    assert started.json()["status"] == "processing"
    assert "gen-key" not in started.text

    final = _wait_until_terminal(client, session_id)
    assert final["status"] == "completed"
    assert final["sources"] == ["reuters.com"]
    assert final["compilationProgress"] == 100
    assert "serper-key" not in json.dumps(final)

    report = client.get(f"/api/sessions/{session_id}/report")
    assert report.status_code == 200
    assert report.json()["riskLevel"] == "Medium"
    assert report.json()["topRisks"][0]["category"] == "Shipping & Logistics Bottlenecks"

    view = client.get(f"/api/sessions/{session_id}/view").json()
    assert view["currentStep"] == 5
    assert view["hasDisplayableReport"] is True
    assert view["sources"][0]["url"] == "https://www.reuters.com/1"

    again = client.post(f"/api/sessions/{session_id}/research", json=START_BODY)
    assert again.status_code == 409


def test_report_before_completion_is_409(client):
    session_id = client.post("/api/sessions").json()["sessionId"]
    assert client.get(f"/api/sessions/{session_id}/report").status_code == 409


def test_cancel_without_running_task(client):
    session_id = client.post("/api/sessions").json()["sessionId"]

    response = client.post(f"/api/sessions/{session_id}/cancel")

    assert response.status_code == 200
    assert response.json() == {"cancelled": False}


def test_stream_emits_status_events_until_terminal(client):
    session_id = client.post("/api/sessions").json()["sessionId"]
    client.post(f"/api/sessions/{session_id}/research", json=START_BODY)

    with client.stream("GET", f"/api/sessions/{session_id}/stream") as response:
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = []
        for line in response.iter_lines():
            if line.startswith("event:"):
                events.append({"event": line.split(":", 1)[1].strip()})
            elif line.startswith("data:"):
                events[-1]["data"] = json.loads(line.split(":", 1)[1])

    assert events
    assert {e["event"] for e in events} == {"status"}
    last = events[-1]["data"]
    assert last["session"]["status"] == "completed"
    assert last["view"]["hasDisplayableReport"] is True
    assert all(e["data"]["session"]["status"] != "completed" for e in events[:-1])


def test_cancel_running_research_records_cancellation(store):
    class HangingGeneration:
        def factory(self, api_key: str) -> "HangingGeneration":
            return self

        async def generate(self, prompt: str, *, caller: str) -> str:
            await asyncio.Event().wait()
            return ""

    orchestrator = ResearchOrchestrator(
        store, generation_client_factory=HangingGeneration().factory, search_fn=_search
    )
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    with TestClient(app) as test_client:
        session_id = test_client.post("/api/sessions").json()["sessionId"]
        test_client.post(f"/api/sessions/{session_id}/research", json=START_BODY)

        response = test_client.post(f"/api/sessions/{session_id}/cancel")

        assert response.json() == {"cancelled": True}
        data = test_client.get(f"/api/sessions/{session_id}").json()
        assert data["status"] == "error"
        assert data["errorMessage"] == "Research was cancelled."
    app.dependency_overrides.clear()


def test_serve_runs_app_under_uvicorn():
    with patch("app.main.uvicorn.run") as run:
        serve()

    run.assert_called_once_with("app.main:app", host=settings.api_host, port=settings.api_port)
