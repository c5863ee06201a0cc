"""
Tests for health check endpoints.
"""

from fastapi.testclient import TestClient

from estimator.core.config import settings
from fakes import FakeGenaiClient, model_not_found, model_response


def test_health_check(client: TestClient) -> None:
    """Test basic health check."""
    response = client.get(f"{settings.API_V1_PREFIX}/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == settings.PROJECT_NAME
    assert data["version"] == settings.VERSION
    assert data["extraction_configured"] == bool(settings.GEMINI_API_KEY)


def test_model_diagnostics(client: TestClient, fake_genai: FakeGenaiClient) -> None:
    """Test probing the candidate models."""
    candidates = settings.GEMINI_MODEL_CANDIDATES
    fake_genai.script(model_not_found(), *[model_response("Hi") for _ in candidates[1:]])

    response = client.get(f"{settings.API_V1_PREFIX}/diagnostics/models")
    assert response.status_code == 200
    data = response.json()
    assert [probe["model"] for probe in data] == candidates
    assert data[0]["ok"] is False
    assert data[0]["error"]
    assert all(probe["ok"] for probe in data[1:])
