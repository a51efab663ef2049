from fastapi.testclient import TestClient

from objgw.main import create_app


def test_http_exception_problem_json():
    client = TestClient(create_app())
    # unknown route -> 404 with RFC7807 body
    r = client.get("/api/v1/nothing-here")
    assert r.status_code == 404
    assert r.headers.get("content-type", "").startswith("application/problem+json")
    body = r.json()
    for key in ("type", "title", "status", "detail", "instance", "error_code"):
        assert key in body
    assert body["status"] == 404
    assert body["error_code"] == "not_found"


def test_validation_error_problem_json(client):
    # tag value must be a string
    r = client.post("/api/v1/tags/a.txt", json={"key": "env", "value": {"x": 1}})
    assert r.status_code == 422
    assert r.headers.get("content-type", "").startswith("application/problem+json")
    body = r.json()
    assert body.get("status") == 422
    assert body.get("error_code") == "validation_error"
    assert isinstance(body.get("detail"), list)


def test_request_id_is_echoed_in_problem(client):
    r = client.get("/api/v1/objects/missing", headers={"X-Request-Id": "req-42"})
    assert r.status_code == 502
    body = r.json()
    assert body["request_id"] == "req-42"
    assert body["title"] == "HTTP Error"
    assert r.headers["X-Request-Id"] == "req-42"
