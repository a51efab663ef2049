from __future__ import annotations

import time

from objgw.common.config import MIN_PART_SIZE_BYTES, get_settings
from tests.services.mock_storage import TEST_BUCKET

PART = MIN_PART_SIZE_BYTES


def _payload(size: int) -> bytes:
    return (b"0123456789abcdef" * (size // 16 + 1))[:size]


def test_multipart_upload_success(client, mock_storage):
    payload = _payload(2 * PART + 100)

    r = client.post(
        "/api/v1/multipart/videos/clip.mp4",
        content=payload,
        headers={"Content-Type": "video/mp4"},
    )

    assert r.status_code == 201
    body = r.json()
    assert body["key"] == "videos/clip.mp4"
    assert body["state"] == "completed"
    assert body["size_bytes"] == len(payload)
    assert body["part_size_bytes"] == PART
    assert [p["part_number"] for p in body["parts"]] == [1, 2, 3]
    assert [p["size"] for p in body["parts"]] == [PART, PART, 100]
    assert body["message"] == "Multipart upload complete"
    assert mock_storage.get_object(bucket=TEST_BUCKET, object_key="videos/clip.mp4") == payload


def test_multipart_empty_body(client, mock_storage):
    r = client.post("/api/v1/multipart/empty.bin", content=b"")

    assert r.status_code == 201
    assert r.json()["parts"] == []
    assert r.json()["upload_id"] is None
    assert mock_storage.uploads == {}


def test_multipart_part_failure(client, mock_storage):
    mock_storage.fail_parts = {2: 99}

    r = client.post("/api/v1/multipart/videos/clip.mp4", content=_payload(3 * PART))

    assert r.status_code == 502
    body = r.json()
    assert body["error_code"] == "part_upload_failed"
    assert body["detail"]["part_number"] == 2
    assert body["detail"]["state"] == "aborted"
    assert "abort_error" not in body["detail"]
    assert mock_storage.aborts == [body["detail"]["upload_id"]]
    assert mock_storage.completions == []


def test_multipart_reports_abort_failure(client, mock_storage):
    mock_storage.fail_complete = True
    mock_storage.fail_abort = True

    r = client.post("/api/v1/multipart/videos/clip.mp4", content=_payload(PART))

    assert r.status_code == 502
    body = r.json()
    assert body["error_code"] == "completion_failed"
    assert "Failed to abort upload" in body["detail"]["abort_error"]


def test_multipart_initiation_failure(client, mock_storage):
    mock_storage.fail_initiate = True

    r = client.post("/api/v1/multipart/videos/clip.mp4", content=_payload(10))

    assert r.status_code == 502
    body = r.json()
    assert body["error_code"] == "initiation_failed"
    assert body["detail"]["upload_id"] is None
    assert body["detail"]["state"] is None
    assert mock_storage.aborts == []


def test_multipart_deadline_is_gateway_timeout(client, mock_storage, monkeypatch):
    monkeypatch.setenv("MULTIPART_UPLOAD_TIMEOUT_SECONDS", "0.05")
    get_settings.cache_clear()  # type: ignore[attr-defined]
    mock_storage.on_upload_part = lambda part_number: time.sleep(0.2)

    r = client.post("/api/v1/multipart/slow.bin", content=_payload(2 * PART))

    assert r.status_code == 504
    assert r.json()["error_code"] == "upload_cancelled"
    assert len(mock_storage.aborts) == 1


def test_multipart_over_limit(client, mock_storage, monkeypatch):
    monkeypatch.setenv("STORAGE_MAX_UPLOAD_BYTES", "10")
    get_settings.cache_clear()  # type: ignore[attr-defined]

    r = client.post("/api/v1/multipart/big.bin", content=_payload(11))

    assert r.status_code == 413
    assert mock_storage.uploads == {}
