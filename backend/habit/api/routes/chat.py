"""Chat relay route."""
from __future__ import annotations

from time import perf_counter

from fastapi import APIRouter, HTTPException, Request, status

from habit.api.schemas.chat import ChatRequest, ChatResponse
from habit.core.config import settings
from habit.core.telemetry import log_metric, trace
from habit.services.chat_relay import ChatModelNotAllowed, ChatRelayError, ChatTimeout, relay_chat

router = APIRouter()


@router.post("/chat", response_model=ChatResponse, tags=["chat"])
def chat(payload: ChatRequest, request: Request) -> ChatResponse:
    request_id = getattr(request.state, "request_id", None)
    start = perf_counter()
    with trace("chat.relay", metadata={"model": payload.model}, request_id=request_id):
        try:
            reply = relay_chat(payload.message, payload.model)
        except ChatModelNotAllowed:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"error": "Invalid model specified", "availableModels": settings.chat_allowed_models},
            )
        except ChatTimeout:
            raise HTTPException(
                status_code=status.HTTP_504_GATEWAY_TIMEOUT,
                detail="Request to the language model timed out. The model might be loading or busy.",
            )
        except ChatRelayError:
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to process your request")

    log_metric("chat.relay.latency_ms", (perf_counter() - start) * 1000, metadata={"model": reply.model})
    return ChatResponse(success=True, response=reply.response, model=reply.model, request_id=request_id or "")
