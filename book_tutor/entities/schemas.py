"""Request and response schemas for the API endpoints."""

from typing import Any

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    """Schema for chat messages."""

    student_id: int
    book_id: int
    message: str = Field(min_length=1)


class ChatResponse(BaseModel):
    """Schema for non-streaming chat responses."""

    content: str
    events: list[dict[str, Any]]
