import httpx
import pytest

from agentic_browser.api import deps, entry
from agentic_browser.api.deps import get_browser_agent
from agentic_browser.core.config import settings
from agentic_browser.core.database import get_db
from agentic_browser.main import app
from agentic_browser.services.agent_service import AgentRunResult
from agentic_browser.services.job_service import JobService


class FakeAgent:
    def __init__(self, result):
        self.result = result
        self.calls = []

    async def run(self, goal=None, base_url=None):
        self.calls.append((goal, base_url))
        return self.result


@pytest.fixture
def agent():
    return FakeAgent(AgentRunResult(success=True, job_id=1, output="Pricing: $10/mo", turns=2))


@pytest.fixture
async def client(db_session, agent):
    async def _db():
        yield db_session

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_browser_agent] = lambda: agent
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


async def test_get_asks_for_post(client, agent):
    resp = await client.get("/")
    assert resp.status_code == 200
    assert resp.text == "Please use POST request instead"
    assert resp.headers["content-type"].startswith("text/plain")
    assert agent.calls == []


async def test_post_returns_final_answer_as_text(client, agent):
    resp = await client.post("/", json={"goal": "Extract pricing", "baseUrl": "https://example.com"})
    assert resp.status_code == 200
    assert resp.text == "Pricing: $10/mo"
    assert agent.calls == [("Extract pricing", "https://example.com")]
    assert "X-Request-ID" in resp.headers


async def test_post_without_body_uses_defaults(client, agent):
    resp = await client.post("/")
    assert resp.status_code == 200
    assert agent.calls == [(None, None)]


async def test_post_with_invalid_json(client, agent):
    resp = await client.post("/", content=b"{nope", headers={"content-type": "application/json"})
    assert resp.status_code == 400
    assert agent.calls == []


async def test_json_wrapped_response(client, monkeypatch):
    monkeypatch.setattr(settings, "RESPONSE_JSON_WRAPPED", True)
    resp = await client.post("/", json={})
    assert resp.json() == "Pricing: $10/mo"


async def test_failed_run_returns_500(client, agent):
    agent.result = AgentRunResult(success=False, job_id=7, error="turn limit exceeded", turns=30)
    resp = await client.post("/", json={})
    assert resp.status_code == 500
    assert resp.json() == {"detail": "turn limit exceeded", "job_id": 7}


async def test_rate_limited_entry(client, agent, monkeypatch):
    monkeypatch.setattr(entry, "check_and_incr_agent", lambda key="/": (False, 11, 10))
    resp = await client.post("/", json={})
    assert resp.status_code == 429
    assert resp.text == "429 Failure – rate limit exceeded"
    assert agent.calls == []


async def test_run_job_endpoint(client, agent):
    resp = await client.post("/api/v1/jobs/run", json={"goal": "g", "base_url": "https://example.com"})
    assert resp.status_code == 200
    assert resp.json() == {
        "job_id": 1,
        "status": "success",
        "output": "Pricing: $10/mo",
        "error": None,
        "turns": 2,
    }


async def test_run_job_endpoint_rate_limited(client, monkeypatch):
    monkeypatch.setattr(deps, "check_and_incr_agent", lambda key="/": (False, 11, 10))
    resp = await client.post("/api/v1/jobs/run", json={})
    assert resp.status_code == 429
    assert "request_id" in resp.json()


async def test_job_detail_and_list(client, db_session):
    svc = JobService(db_session)
    job = await svc.create_job("Extract pricing", "https://example.com")
    await svc.finalize_job(job.id, "Pricing: $10/mo", [], ["[5ms]: Final Answer: Pricing: $10/mo"])

    resp = await client.get(f"/api/v1/jobs/{job.id}")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "success"
    assert body["output"] == "Pricing: $10/mo"
    assert body["messages"] == []

    resp = await client.get("/api/v1/jobs", params={"status": "success"})
    assert resp.status_code == 200
    assert resp.json()["total"] == 1
    assert resp.json()["jobs"][0]["id"] == job.id


async def test_job_not_found(client):
    resp = await client.get("/api/v1/jobs/999")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "任务不存在"


async def test_errors_carry_request_id(client):
    resp = await client.get("/api/v1/jobs/999", headers={"X-Request-ID": "req-42"})
    assert resp.status_code == 404
    assert resp.headers["X-Request-ID"] == "req-42"
    assert resp.json() == {"detail": "任务不存在", "request_id": "req-42"}
