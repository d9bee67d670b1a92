"""Tests for the FastAPI wrapper."""

import pytest
from fastapi.testclient import TestClient

from conftest import KEYWORD, PERFECT_META, PERFECT_TITLE, FakeProvider, json_response

from api.index import app
from seo_multipass_optimizer import __version__
from seo_multipass_optimizer.optimizer import create_optimizer


@pytest.fixture
def client():
    app.state.optimizer_factory = None
    yield TestClient(app)
    app.state.optimizer_factory = None


@pytest.fixture
def fixable_payload(fixable_content):
    return fixable_content.to_dict()


class TestHealthAndInfo:
    """Tests for the informational endpoints."""

    def test_health(self, client):
        """Test the health check."""
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "version": __version__}

    def test_info_lists_endpoints(self, client):
        """Test the API info endpoint."""
        data = client.get("/api/info").json()

        assert "POST /api/optimize" in data["endpoints"]


class TestDetectEndpoint:
    """Tests for POST /api/detect."""

    def test_detects_issues(self, client, fixable_payload):
        """Test detection of a short meta description."""
        response = client.post("/api/detect", json={"content": fixable_payload, "focus_keyword": KEYWORD})

        assert response.status_code == 200
        data = response.json()
        assert data["compliance_score"] == 28.0
        assert data["critical_issues"] == 1
        assert data["issues"][0]["type"] == "meta_description_short"

    def test_existing_titles(self, client, perfect_content):
        """Test that existing titles enable the uniqueness check."""
        response = client.post(
            "/api/detect",
            json={"content": perfect_content.to_dict(), "existing_titles": [PERFECT_TITLE]},
        )

        assert [issue["type"] for issue in response.json()["issues"]] == ["title_not_unique"]

    def test_invalid_payload(self, client):
        """Test that malformed requests are rejected by validation."""
        response = client.post("/api/detect", json={"content": {"tags": "not-a-list"}})

        assert response.status_code == 422


class TestOptimizeEndpoint:
    """Tests for POST /api/optimize."""

    def test_bypass(self, client, fixable_payload):
        """Test that bypass mode echoes the content."""
        response = client.post("/api/optimize", json={"content": fixable_payload, "mode": "bypass"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["status"] == "bypassed"
        assert data["content"]["meta_description"] == fixable_payload["meta_description"]

    def test_manual(self, client, fixable_payload):
        """Test that manual mode returns issues and prompts without a key."""
        response = client.post(
            "/api/optimize",
            json={"content": fixable_payload, "mode": "manual", "focus_keyword": KEYWORD},
        )

        data = response.json()
        assert data["status"] == "manual_review"
        assert data["message"] == "Corrections proposed for manual review"
        assert data["prompts"][0]["field"] == "meta_description"
        assert data["optimization"] is None

    def test_seamless_with_factory(self, client, fixable_payload):
        """Test a seamless run using an injected optimizer factory."""
        provider = FakeProvider([json_response(meta_description=PERFECT_META)])
        app.state.optimizer_factory = lambda cfg: create_optimizer([provider], config=cfg.optimizer_config())

        response = client.post(
            "/api/optimize",
            json={"content": fixable_payload, "focus_keyword": KEYWORD, "max_iterations": 2},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "optimized"
        assert data["content"]["meta_description"] == PERFECT_META
        assert data["metadata"]["passes"] == 1
        assert data["optimization"]["termination_reason"] == "compliance_achieved"
        assert data["message"].startswith("Optimized in 1 passes")

    def test_seamless_without_key(self, client, fixable_payload, monkeypatch):
        """Test that seamless mode needs credentials or a factory."""
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

        response = client.post("/api/optimize", json={"content": fixable_payload})

        assert response.status_code == 500
        assert "ANTHROPIC_API_KEY" in response.json()["detail"]

    def test_failure_without_fallback(self, client):
        """Test that errors surface as 500 when fallback is disabled."""
        response = client.post(
            "/api/optimize",
            json={"content": {"title": "Only a title"}, "mode": "manual", "fallback_to_original": False},
        )

        assert response.status_code == 500
        assert "missing content" in response.json()["detail"]

    def test_failure_with_fallback(self, client):
        """Test that fallback returns the original content with success false."""
        response = client.post(
            "/api/optimize",
            json={"content": {"title": "Only a title"}, "mode": "manual"},
        )

        data = response.json()
        assert response.status_code == 200
        assert data["success"] is False
        assert data["status"] == "failed"
        assert data["message"].startswith("Optimization failed: Invalid content structure")

    @pytest.mark.parametrize("max_iterations", [0, 11])
    def test_iteration_bounds(self, client, fixable_payload, max_iterations):
        """Test that max_iterations is validated."""
        response = client.post(
            "/api/optimize",
            json={"content": fixable_payload, "mode": "manual", "max_iterations": max_iterations},
        )

        assert response.status_code == 422
