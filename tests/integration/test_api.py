"""
Integration tests for the HTTP API.

Demonstrates:
- Testing the critical path (submit a query, get one terminal result)
- Testing contracts (response shapes, status codes)
- Overriding the dispatch service with in-memory collaborators
"""

import pytest
from fastapi.testclient import TestClient

from agentdispatch.api.deps import get_dispatch_service
from agentdispatch.domain.catalog import ToolCatalog
from agentdispatch.domain.domain_type import Domain
from agentdispatch.domain.domain_value import ToolIntent
from agentdispatch.domain.pipeline import QueryPipeline
from agentdispatch.service import DispatchService
from tests.fakes import FakeToolProvider, ScriptedInterpreter


@pytest.fixture
def interpreter():
    return ScriptedInterpreter(ToolIntent())


@pytest.fixture
def service(pm_tools, config, interpreter):
    catalog = ToolCatalog()
    catalog.register(FakeToolProvider(Domain.PROJECT_MANAGEMENT, pm_tools))
    pipeline = QueryPipeline.assemble(catalog=catalog, interpreter=interpreter, config=config)
    return DispatchService(pipeline=pipeline)


@pytest.fixture
def client(service):
    """FastAPI test client with the dispatch service overridden."""
    from agentdispatch.main import app

    app.dependency_overrides[get_dispatch_service] = lambda: service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# =============================================================================
# Health
# =============================================================================


def test_health_reports_configured_domains(client: TestClient):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "healthy",
        "service": "agent-dispatch",
        "domains": ["project-management"],
    }


# =============================================================================
# Queries
# =============================================================================


class TestQueries:
    """Test the query endpoints."""

    def test_submit_and_wait_returns_result_and_events(self, client: TestClient):
        response = client.post(
            "/queries/",
            json={"text": "create an issue in backend", "domain_hint": "project-management"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["result"]["kind"] == "tool_succeeded"
        assert data["result"]["tool"] == "createIssue"
        assert data["result"]["success"] is True
        assert data["result"]["query_id"] == data["query_id"]
        assert [e["kind"] for e in data["events"]][:2] == ["routed", "discovered"]

    def test_ambiguous_query(self, client: TestClient):
        response = client.post("/queries/", json={"text": "show me the latest"})

        assert response.status_code == 200
        result = response.json()["result"]
        assert result["kind"] == "ambiguous"
        assert result["success"] is False

    def test_empty_text_rejected(self, client: TestClient):
        response = client.post("/queries/", json={"text": ""})

        assert response.status_code == 422

    def test_unknown_domain_hint_rejected(self, client: TestClient):
        response = client.post("/queries/", json={"text": "hello", "domain_hint": "email"})

        assert response.status_code == 422

    def test_background_query_streams_events(self, client: TestClient):
        submitted = client.post("/queries/", json={"text": "list my issues", "wait": False})
        assert submitted.status_code == 200
        query_id = submitted.json()["query_id"]

        stream = client.get(f"/queries/{query_id}/events")

        assert stream.status_code == 200
        assert stream.headers["content-type"].startswith("text/event-stream")
        assert stream.text.startswith("event: status\n")
        assert "event: result\n" in stream.text

        status = client.get(f"/queries/{query_id}")
        assert status.status_code == 200
        assert status.json()["done"] is True
        assert status.json()["result"]["kind"] == "tool_succeeded"

    def test_events_of_finished_query_can_be_streamed_again(self, client: TestClient):
        query_id = client.post("/queries/", json={"text": "list my issues"}).json()["query_id"]

        first = client.get(f"/queries/{query_id}/events")
        second = client.get(f"/queries/{query_id}/events")

        assert first.status_code == 200
        assert "event: result\n" in first.text
        assert second.text == first.text

    def test_unknown_query_is_404(self, client: TestClient):
        missing = "00000000-0000-0000-0000-000000000000"

        assert client.get(f"/queries/{missing}").status_code == 404
        assert client.post(f"/queries/{missing}/cancel").status_code == 404


class TestCancel:
    """Test cancellation over HTTP."""

    @pytest.fixture
    def interpreter(self):
        return ScriptedInterpreter(ToolIntent(), delay=0.3)

    def test_cancel_running_query(self, client: TestClient):
        query_id = client.post("/queries/", json={"text": "list my issues", "wait": False}).json()["query_id"]

        response = client.post(f"/queries/{query_id}/cancel")

        assert response.status_code == 202
        assert response.json() == {"query_id": query_id, "canceled": True}
        stream = client.get(f"/queries/{query_id}/events")
        assert '"kind":"canceled"' in stream.text


# =============================================================================
# Catalog
# =============================================================================


class TestCatalog:
    """Test catalog inspection endpoints."""

    def test_catalog_lists_tools(self, client: TestClient):
        response = client.get("/catalog/project-management")

        assert response.status_code == 200
        data = response.json()
        assert data["stale"] is False
        assert [t["name"] for t in data["tools"]] == ["listIssues", "createIssue", "listProjects"]
        assert data["tools"][1]["parameters"]["title"]["required"] is True

    def test_unknown_domain_is_404(self, client: TestClient):
        assert client.get("/catalog/email").status_code == 404

    def test_domain_without_registry_is_503(self, client: TestClient):
        assert client.get("/catalog/code-hosting").status_code == 503

    def test_invalidate(self, client: TestClient, service: DispatchService):
        client.get("/catalog/project-management")

        response = client.post("/catalog/project-management/invalidate")

        assert response.status_code == 204
        assert service.catalog.is_fresh(Domain.PROJECT_MANAGEMENT) is False
