"""Relay between the app's chat screen and a local Ollama server."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from habit.core.config import settings

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503}


class ChatRelayError(Exception):
    pass


class ChatTimeout(ChatRelayError):
    pass


class ChatModelNotAllowed(ChatRelayError):
    pass


@dataclass
class ChatReply:
    response: str
    model: str
    attempts: int


def _num_predict(model: str) -> int:
    return 100 if model == "tinyllama" else 200


def relay_chat(
    message: str,
    model: Optional[str] = None,
    *,
    client: Optional[httpx.Client] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ChatReply:
    """Send ``message`` to the upstream generate endpoint and return its text.

    Transport errors and 429/5xx answers are retried up to
    ``chat_max_retries`` times with a linearly growing delay; a timeout is
    not retried.
    """
    model = model or settings.chat_default_model
    if model not in settings.chat_allowed_models:
        raise ChatModelNotAllowed(model)

    payload = {
        "model": model,
        "prompt": message,
        "stream": False,
        "options": {"temperature": 0.7, "top_p": 0.9, "num_predict": _num_predict(model)},
    }
    owns_client = client is None
    http = client or httpx.Client(timeout=settings.chat_timeout_seconds)
    attempt = 0
    try:
        while True:
            attempt += 1
            try:
                response = http.post(settings.chat_upstream_url, json=payload)
                if response.status_code in RETRYABLE_STATUS:
                    raise ChatRelayError(f"upstream returned {response.status_code}")
                response.raise_for_status()
                data = response.json()
                text = data.get("response") or data.get("text") or "No response from model"
                return ChatReply(response=text, model=model, attempts=attempt)
            except httpx.TimeoutException as exc:
                logger.warning("Chat upstream timed out after %.0fs", settings.chat_timeout_seconds)
                raise ChatTimeout("upstream request timed out") from exc
            except (httpx.TransportError, ChatRelayError) as exc:
                if attempt > settings.chat_max_retries:
                    logger.error("Chat upstream failed after %s attempts: %s", attempt, exc)
                    raise ChatRelayError(str(exc)) from exc
                logger.info("Chat upstream attempt %s failed (%s); retrying", attempt, exc)
                sleep(settings.chat_retry_delay_seconds * attempt)
            except (httpx.HTTPStatusError, ValueError) as exc:
                logger.error("Chat upstream returned an unusable answer: %s", exc)
                raise ChatRelayError(str(exc)) from exc
    finally:
        if owns_client:
            http.close()
