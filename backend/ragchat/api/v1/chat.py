"""
Chat API Router

  POST   /api/v1/chat          one turn; starts a conversation when no id is given
  GET    /api/v1/chat          conversations, most recently updated first
  GET    /api/v1/chat/{id}     conversation with its messages
  DELETE /api/v1/chat/{id}

Generation failures map to 502 (503 when the provider is overloaded);
a concurrent turn on the same conversation maps to 409.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter

from ragchat.auth.dependencies import Conversations
from ragchat.schemas.chat import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ConversationDetail,
    ConversationSummary,
    RetrievedChunk,
)
from ragchat.schemas.documents import DeleteResponse, ErrorResponse

router = APIRouter(prefix="/chat", tags=["Chat"])


@router.post(
    "",
    response_model=ChatResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Conversation not found"},
        409: {"model": ErrorResponse, "description": "Conversation modified concurrently"},
        502: {"model": ErrorResponse, "description": "Model or vector store failure"},
        503: {"model": ErrorResponse, "description": "Model provider overloaded; retry later"},
    },
)
async def chat(body: ChatRequest, service: Conversations) -> ChatResponse:
    result = await service.chat(
        message=body.message,
        conversation_id=body.conversation_id,
        use_rag=body.use_rag,
    )
    return ChatResponse(
        conversation_id=result.conversation_id,
        response=result.response,
        retrieved_chunks=[RetrievedChunk.model_validate(c) for c in result.retrieved_chunks],
    )


@router.get("", response_model=list[ConversationSummary])
async def list_conversations(service: Conversations) -> list[ConversationSummary]:
    return [ConversationSummary.model_validate(c) for c in await service.list_conversations()]


@router.get("/{conversation_id}", response_model=ConversationDetail)
async def get_conversation(conversation_id: UUID, service: Conversations) -> ConversationDetail:
    conversation = await service.get_conversation(conversation_id)
    return ConversationDetail(
        id=conversation.id,
        title=conversation.title,
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
        messages=[ChatMessage(**m) for m in conversation.messages],
    )


@router.delete("/{conversation_id}", response_model=DeleteResponse)
async def delete_conversation(conversation_id: UUID, service: Conversations) -> DeleteResponse:
    await service.delete_conversation(conversation_id)
    return DeleteResponse()
