"""Pydantic models for the chat endpoint."""

from typing import Literal

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """One earlier turn of the conversation."""

    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    """Chat request payload."""

    message: str = Field(min_length=1)
    session_id: str | None = None
    timezone: str = "UTC"
    history: list[ChatMessage] = Field(default_factory=list)
