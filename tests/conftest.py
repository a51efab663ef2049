from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from objgw.api.v1.deps import get_storage_client, reset_storage_client
from objgw.common.config import MIN_PART_SIZE_BYTES, get_settings
from objgw.main import create_app
from tests.services.mock_storage import TEST_BUCKET, MockStorageClient

_GATEWAY_ENV = {
    "S3_BUCKET": TEST_BUCKET,
    "S3_ACCESS_KEY_ID": "test-key",
    "S3_SECRET_ACCESS_KEY": "test-secret",
    "STORAGE_PART_SIZE_BYTES": str(MIN_PART_SIZE_BYTES),
    "STORAGE_MAX_UPLOAD_BYTES": str(4 * MIN_PART_SIZE_BYTES),
    "API_KEY_ENABLED": "false",
    "TRACE_HTTP": "false",
    "ENABLE_METRICS": "true",
}


@pytest.fixture(autouse=True)
def gateway_env(monkeypatch):
    for name, value in _GATEWAY_ENV.items():
        monkeypatch.setenv(name, value)
    get_settings.cache_clear()  # type: ignore[attr-defined]
    reset_storage_client()
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]
    reset_storage_client()


@pytest.fixture
def mock_storage() -> MockStorageClient:
    storage = MockStorageClient()
    storage.create_bucket(bucket=TEST_BUCKET)
    return storage


@pytest.fixture
def client(mock_storage: MockStorageClient):
    app = create_app()
    app.dependency_overrides[get_storage_client] = lambda: mock_storage
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
