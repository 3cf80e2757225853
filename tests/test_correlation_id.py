from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from bizdesk.api.deps import get_column_storage, get_registry
from bizdesk.configuration.registry import ModuleRegistry
from bizdesk.context import get_correlation_id, get_current_module
from bizdesk.core.auth import CurrentUser, get_current_user
from bizdesk.core.config import get_settings
from bizdesk.main import app
from bizdesk.storage.documents import InMemoryDocumentStore


@pytest.fixture(autouse=True)
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("DOCUMENT_BACKEND", "memory")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def client() -> Generator[TestClient, None, None]:
    registry = ModuleRegistry(InMemoryDocumentStore())
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_column_storage] = lambda: {}
    app.dependency_overrides[get_current_user] = lambda: CurrentUser(id="user-1", role="user")
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_generated_correlation_id_returned_in_header_and_error_envelope(client: TestClient) -> None:
    response = client.get("/api/modules/clients/records/missing")
    assert response.status_code == 404
    header_value = response.headers.get("x-correlation-id")
    assert header_value
    body = response.json()
    assert body["correlation_id"] == header_value
    assert body["code"] == "record_not_found"


def test_correlation_id_respected_when_provided(client: TestClient) -> None:
    response = client.get("/api/modules/clients/records/missing", headers={"X-Correlation-Id": "abc-123"})
    assert response.status_code == 404
    assert response.headers.get("x-correlation-id") == "abc-123"
    assert response.json()["correlation_id"] == "abc-123"


def test_forbidden_mutation_envelope_carries_correlation_id(client: TestClient) -> None:
    response = client.post(
        "/api/modules/clients/config/fields",
        json={"name": "region", "label": "Region"},
        headers={"X-Correlation-Id": "corr-forbidden-1"},
    )
    assert response.status_code == 403
    payload = response.json()
    assert payload["correlation_id"] == "corr-forbidden-1"
    assert payload["details"] == "Missing role: admin"


def test_request_context_is_reset_after_response(client: TestClient) -> None:
    response = client.get("/api/modules/clients/config", headers={"X-Correlation-Id": "corr-reset-1"})
    assert response.status_code == 200
    assert get_correlation_id() is None
    assert get_current_module() is None
