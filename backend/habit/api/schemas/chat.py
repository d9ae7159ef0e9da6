"""Schemas for the chat relay."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)
    model: Optional[str] = None


class ChatResponse(BaseModel):
    success: bool
    response: str
    model: str
    request_id: str
