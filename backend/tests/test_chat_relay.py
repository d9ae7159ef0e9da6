from __future__ import annotations

import json

import httpx
import pytest

from habit.services import chat_relay
from habit.services.chat_relay import ChatModelNotAllowed, ChatRelayError, ChatTimeout, relay_chat


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_relay_returns_model_text():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"response": "Drink some water."})

    reply = relay_chat("hi", client=_client(handler), sleep=lambda _: None)

    assert reply.response == "Drink some water."
    assert reply.model == "tinyllama"
    assert reply.attempts == 1
    assert json.loads(seen[0].content)["options"]["num_predict"] == 100


def test_larger_models_get_longer_answers():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["body"] = request.content
        return httpx.Response(200, json={"text": "ok"})

    reply = relay_chat("hi", "llama3:latest", client=_client(handler), sleep=lambda _: None)

    assert reply.response == "ok"
    assert json.loads(captured["body"])["options"]["num_predict"] == 200


def test_unknown_model_is_rejected_before_any_request():
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - must not be called
        raise AssertionError("upstream should not be called")

    with pytest.raises(ChatModelNotAllowed):
        relay_chat("hi", "gpt-x", client=_client(handler))


def test_retries_on_server_errors_then_succeeds():
    responses = iter([httpx.Response(503), httpx.Response(429), httpx.Response(200, json={"response": "done"})])
    delays = []

    reply = relay_chat("hi", client=_client(lambda request: next(responses)), sleep=delays.append)

    assert reply.attempts == 3
    assert delays == [1.0, 2.0]


def test_gives_up_after_max_retries():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ChatRelayError):
        relay_chat("hi", client=_client(handler), sleep=lambda _: None)

    assert len(calls) == 3


def test_timeout_is_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(ChatTimeout):
        relay_chat("hi", client=_client(handler), sleep=lambda _: None)

    assert len(calls) == 1


def test_client_error_is_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(404)

    with pytest.raises(ChatRelayError):
        relay_chat("hi", client=_client(handler), sleep=lambda _: None)

    assert len(calls) == 1


def test_chat_route_success(client, monkeypatch):
    monkeypatch.setattr(
        "habit.api.routes.chat.relay_chat",
        lambda message, model=None: chat_relay.ChatReply(response=f"echo {message}", model="tinyllama", attempts=1),
    )

    response = client.post("/chat", json={"message": "hello"})

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["response"] == "echo hello"


def test_chat_route_rejects_unknown_model(client):
    response = client.post("/chat", json={"message": "hello", "model": "gpt-x"})

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "Invalid model specified"
    assert "tinyllama" in response.json()["detail"]["availableModels"]


def test_chat_route_maps_timeout(client, monkeypatch):
    def slow(message, model=None):
        raise ChatTimeout("upstream request timed out")

    monkeypatch.setattr("habit.api.routes.chat.relay_chat", slow)

    response = client.post("/chat", json={"message": "hello"})

    assert response.status_code == 504


def test_chat_route_maps_upstream_failure(client, monkeypatch):
    def broken(message, model=None):
        raise ChatRelayError("upstream returned 500")

    monkeypatch.setattr("habit.api.routes.chat.relay_chat", broken)

    response = client.post("/chat", json={"message": "hello"})

    assert response.status_code == 502
    assert response.json()["detail"] == "Failed to process your request"


def test_chat_route_requires_message(client):
    assert client.post("/chat", json={"message": ""}).status_code == 422
