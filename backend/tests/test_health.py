from __future__ import annotations


def test_health_endpoint_returns_ok(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_request_id_generated_and_returned(client) -> None:
    response = client.get("/health")

    assert response.headers.get("X-Request-Id")


def test_request_id_echoed_from_header(client) -> None:
    req_id = "test-request-id-123"
    response = client.get("/health", headers={"X-Request-Id": req_id})

    assert response.headers.get("X-Request-Id") == req_id


def test_request_id_included_in_task_payload(client) -> None:
    response = client.post("/tasks", json={"title": "Stretch"}, headers={"X-Request-Id": "abc"})

    assert response.json()["request_id"] == "abc"
