"""Integration tests for API endpoints."""

from unittest.mock import patch

import pytest
from httpx import ASGITransport, AsyncClient

from src.services.assessment_service import AssessmentService

from tests.helpers import COMPETITION_ANSWER, NO_SIGNAL_ANSWER


@pytest.fixture
def app(test_db, store, ledger, pool, generator, cost_repo):
    """Application with components wired on app.state.

    ASGITransport does not run the lifespan, so the tests install the same
    components the lifespan would, backed by the test database.
    """
    from src.main import app

    app.state.session_store = store
    app.state.cost_ledger = ledger
    app.state.assessment_service = AssessmentService(
        store=store,
        ledger=ledger,
        pool=pool,
        generator=generator,
        cost_repo=cost_repo,
        cost_environment="test",
    )
    return app


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def _start(client, **body):
    response = await client.post("/assessment/start", json=body)
    assert response.status_code == 201
    return response.json()


async def test_root_endpoint(client):
    response = await client.get("/")

    assert response.status_code == 200
    assert response.json()["status"] == "running"


class TestAssessmentRoutes:
    async def test_start(self, client):
        data = await _start(client, persona="product-business")

        assert data["first_question"]["id"] == "company-overview"
        assert data["session_status"]["persona"] == "product-business"
        assert data["session_status"]["current_block"] == "discovery"

    async def test_start_invalid_persona(self, client):
        response = await client.post("/assessment/start", json={"persona": "astronaut"})

        assert response.status_code == 400
        assert response.json()["error"]["type"] == "ValidationError"

    async def test_answer_with_follow_up(self, client, ledger):
        started = await _start(client)

        response = await client.post(
            "/assessment/answer",
            json={
                "session_id": started["session_id"],
                "question_id": "company-overview",
                "answer": COMPETITION_ANSWER,
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["action"] == "ask_next"
        assert data["turn_action"] == "ask_follow_up"
        assert data["next_question"]["id"] == "followup-company-overview-1"
        assert data["next_question"]["source"] == "dynamic"
        assert data["signal"]["category"] == "competition"

        # Cost is tagged with the request's correlation id
        assert ledger.entries()[0].request_id == response.headers["X-Request-ID"]

    async def test_answer_unknown_session(self, client):
        response = await client.post(
            "/assessment/answer",
            json={"session_id": "missing", "question_id": "company-overview", "answer": "x"},
        )

        assert response.status_code == 404
        error = response.json()["error"]
        assert error["type"] == "SessionNotFoundError"
        assert "missing" in error["message"]

    async def test_answer_missing_question_id(self, client):
        started = await _start(client)

        response = await client.post(
            "/assessment/answer",
            json={"session_id": started["session_id"], "answer": NO_SIGNAL_ANSWER},
        )

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "question_id is required"

    async def test_answer_unknown_question(self, client):
        started = await _start(client)

        response = await client.post(
            "/assessment/answer",
            json={
                "session_id": started["session_id"],
                "question_id": "nope",
                "answer": NO_SIGNAL_ANSWER,
            },
        )

        assert response.status_code == 400

    async def test_status(self, client):
        started = await _start(client)

        response = await client.get(f"/assessment/{started['session_id']}/status")

        assert response.status_code == 200
        assert response.json()["questions_asked"] == 1

    async def test_status_unknown(self, client):
        response = await client.get("/assessment/missing/status")

        assert response.status_code == 404

    async def test_complete(self, client):
        started = await _start(client, seed_data={"company_name": "Acme"})
        sid = started["session_id"]
        await client.post(
            "/assessment/answer",
            json={"session_id": sid, "question_id": "company-overview", "answer": NO_SIGNAL_ANSWER},
        )

        response = await client.post("/assessment/complete", json={"session_id": sid})

        assert response.status_code == 200
        data = response.json()
        assert data["final_data"] == {
            "company_name": "Acme",
            "company_overview": NO_SIGNAL_ANSWER,
        }
        assert data["summary"]["questions_answered"] == 1
        assert data["summary"]["topic_coverage"]["covered"] == ["team"]

        gone = await client.get(f"/assessment/{sid}/status")
        assert gone.status_code == 404


class TestCostRoutes:
    async def test_summary(self, client, ledger):
        ledger.record("followup", 1000, 100)

        response = await client.get("/costs/summary")

        assert response.status_code == 200
        data = response.json()
        assert data["summary"]["today"] == 0.03
        assert data["summary"]["entry_count"] == 1
        assert data["daily_limit"] == 5.0
        assert data["monthly_limit"] == 127.0
        assert data["currency"] == "R$"

    async def test_export_csv(self, client, ledger):
        ledger.record("followup", 1000, 100, environment="test", request_id="req-1")

        response = await client.get("/costs/export")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        lines = response.text.splitlines()
        assert lines[0].startswith("Timestamp,Service,Environment")
        assert lines[1].endswith(",followup,test,1000,100,0.03,req-1")


class TestHealthRoutes:
    async def test_health(self, client):
        await _start(client)

        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["components"]["database"]["status"] == "healthy"
        assert data["components"]["sessions"]["active"] == 1
        assert data["components"]["follow_up_generation"]["enabled"] is True

    async def test_liveness(self, client):
        response = await client.get("/health/live")

        assert response.json()["status"] == "alive"

    async def test_readiness(self, client):
        response = await client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"


async def test_lifespan_wires_components(test_db):
    """Startup builds the components; shutdown stops the sweeper and drains sessions."""
    from src.core.config import settings
    from src.main import app, lifespan

    with patch.object(settings, "anthropic_api_key", None):
        async with lifespan(app):
            service = app.state.assessment_service
            assert service.generator is None
            assert app.state.cost_ledger.summarize().entry_count == 0

            started = await service.start()
            assert app.state.session_store.count() == 1

    assert app.state.session_store.get(started.session_id) is None
