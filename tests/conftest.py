"""
Pytest configuration and fixtures.
Provides a test client, a scripted fake Gemini client and common test utilities.
"""

from typing import Generator, List

import pytest
from fastapi.testclient import TestClient

from estimator.api.deps import get_extraction_service
from estimator.core.config import settings
from estimator.main import app
from estimator.services.extraction_service import ExtractionService
from estimator.ui import state as quote_state
from fakes import FakeGenaiClient


@pytest.fixture(name="fake_genai")
def fake_genai_fixture() -> FakeGenaiClient:
    return FakeGenaiClient()


@pytest.fixture(name="sleeps")
def sleeps_fixture() -> List[float]:
    """Delays the retry loop asked for, in order. Nothing really sleeps."""
    return []


@pytest.fixture(name="extraction_service")
def extraction_service_fixture(fake_genai: FakeGenaiClient, sleeps: List[float]) -> ExtractionService:
    config = settings.model_copy(update={"EXTRACTION_MAX_ATTEMPTS": 3, "EXTRACTION_BASE_DELAY_SECONDS": 2.0})
    return ExtractionService(client=fake_genai, config=config, sleep=sleeps.append)


@pytest.fixture(name="client")
def client_fixture(extraction_service: ExtractionService) -> Generator[TestClient, None, None]:
    """
    Create a test client with the fake extraction service and a clean
    quote store.
    """
    quote_state.clear_state()
    app.dependency_overrides[get_extraction_service] = lambda: extraction_service

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    quote_state.clear_state()


@pytest.fixture(name="session_id")
def session_id_fixture(client: TestClient) -> str:
    """The quote session id the client's cookie points to."""
    response = client.get(f"{settings.API_V1_PREFIX}/quote")
    assert response.status_code == 200
    return client.cookies[settings.SESSION_COOKIE_NAME]
