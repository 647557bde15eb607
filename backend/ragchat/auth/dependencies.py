"""
Composed FastAPI Dependencies

Combines auth + DB session + vector index + providers into the service
objects route handlers use. Route handlers import from here, never from
db/session, vectorstore/factory or the service modules directly.

This is the single wiring point for the entire request context; tests
override the leaf providers (repositories, index, LLM, blob store,
publisher) with in-memory fakes.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ragchat.auth.token import TokenPayload, get_current_user
from ragchat.db.repositories import ConversationRepository, DocumentRepository
from ragchat.db.session import get_db
from ragchat.llm.gateway import LLMGateway
from ragchat.rag.composer import ResponseComposer
from ragchat.services.conversations import ConversationService
from ragchat.services.documents import DocumentService
from ragchat.services.ingestion import IngestionService, TaskPublisher
from ragchat.storage.s3 import S3BlobStore
from ragchat.vectorstore.base import VectorIndexBase
from ragchat.vectorstore.factory import get_vector_index


# ---------------------------------------------------------------------------
# 1. Leaf providers
# ---------------------------------------------------------------------------

def get_document_repository(db: Annotated[AsyncSession, Depends(get_db)]) -> DocumentRepository:
    return DocumentRepository(db)


def get_conversation_repository(db: Annotated[AsyncSession, Depends(get_db)]) -> ConversationRepository:
    return ConversationRepository(db)


@lru_cache(maxsize=1)
def get_llm_gateway() -> LLMGateway:
    return LLMGateway()


@lru_cache(maxsize=1)
def get_blob_store() -> S3BlobStore:
    return S3BlobStore()


def get_task_publisher() -> TaskPublisher:
    return TaskPublisher()


CurrentUser   = Annotated[TokenPayload,           Depends(get_current_user)]
DocumentRepo  = Annotated[DocumentRepository,     Depends(get_document_repository)]
ConvRepo      = Annotated[ConversationRepository, Depends(get_conversation_repository)]
VectorIndex   = Annotated[VectorIndexBase,        Depends(get_vector_index)]
Gateway       = Annotated[LLMGateway,             Depends(get_llm_gateway)]
BlobStore     = Annotated[S3BlobStore,            Depends(get_blob_store)]
Publisher     = Annotated[TaskPublisher,          Depends(get_task_publisher)]


# ---------------------------------------------------------------------------
# 2. Tenant-scoped services
# ---------------------------------------------------------------------------

def get_ingestion_service(
    user:      CurrentUser,
    repo:      DocumentRepo,
    index:     VectorIndex,
    blobs:     BlobStore,
    publisher: Publisher,
) -> IngestionService:
    return IngestionService(
        repo=repo,
        index=index,
        blob_store=blobs,
        task_publisher=publisher,
        tenant_id=user.tenant_id,
    )


def get_document_service(
    user:  CurrentUser,
    repo:  DocumentRepo,
    index: VectorIndex,
) -> DocumentService:
    return DocumentService(repo=repo, index=index, tenant_id=user.tenant_id)


def get_conversation_service(
    user:  CurrentUser,
    repo:  ConvRepo,
    index: VectorIndex,
    llm:   Gateway,
) -> ConversationService:
    return ConversationService(
        repo=repo,
        composer=ResponseComposer(index=index, llm=llm),
        tenant_id=user.tenant_id,
    )


# ---------------------------------------------------------------------------
# Type aliases for cleaner route signatures
# ---------------------------------------------------------------------------

Ingestion     = Annotated[IngestionService,    Depends(get_ingestion_service)]
Documents     = Annotated[DocumentService,     Depends(get_document_service)]
Conversations = Annotated[ConversationService, Depends(get_conversation_service)]
