"""Chat — Pydantic Request/Response Schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    message:         str         = Field(..., min_length=1, description="The user's message")
    conversation_id: UUID | None = Field(None, description="Continue this conversation; omit to start one")
    use_rag:         bool        = Field(True, description="Ground the answer in the user's documents")


class RetrievedChunk(BaseModel):
    """Reference to a passage used for the answer. The passage text is never returned."""
    model_config = ConfigDict(from_attributes=True)

    chunk_id:    str
    document_id: str
    score:       float


class ChatResponse(BaseModel):
    conversation_id:  UUID
    response:         str
    retrieved_chunks: list[RetrievedChunk] = Field(default_factory=list)


class ChatMessage(BaseModel):
    role:    str
    content: str


class ConversationSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id:         UUID
    title:      str
    created_at: datetime
    updated_at: datetime


class ConversationDetail(ConversationSummary):
    messages: list[ChatMessage]
