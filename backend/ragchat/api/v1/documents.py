"""
Documents API Router

  GET    /api/v1/documents                 newest first, with chunk counts
  GET    /api/v1/documents/{id}            detail with ordered chunks
  DELETE /api/v1/documents/{id}            vector points first, then rows
  GET    /api/v1/documents/{id}/events     detected events, highest confidence first
  DELETE /api/v1/documents                 purge every point and document of the tenant

All lookups are scoped to the token's tenant; another tenant's id is a 404.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter

from ragchat.auth.dependencies import Documents
from ragchat.schemas.documents import (
    ChunkResponse,
    DeleteResponse,
    DetectedEventResponse,
    DocumentDetailResponse,
    DocumentSummaryResponse,
    ErrorResponse,
    PurgeResponse,
)

router = APIRouter(prefix="/documents", tags=["Documents"])

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Document not found for this tenant"}}


@router.get("", response_model=list[DocumentSummaryResponse])
async def list_documents(service: Documents) -> list[DocumentSummaryResponse]:
    summaries = await service.list_documents()
    return [
        DocumentSummaryResponse(
            document_id=s.document.id,
            filename=s.document.filename,
            source_type=s.document.source_type,
            status=s.document.status,
            error_message=s.document.error_message,
            chunk_count=s.chunk_count,
            uploaded_at=s.document.uploaded_at,
        )
        for s in summaries
    ]


@router.get("/{document_id}", response_model=DocumentDetailResponse, responses=_NOT_FOUND)
async def get_document(document_id: UUID, service: Documents) -> DocumentDetailResponse:
    detail = await service.get_document(document_id)
    doc    = detail.document
    return DocumentDetailResponse(
        document_id=doc.id,
        filename=doc.filename,
        source_type=doc.source_type,
        status=doc.status,
        error_message=doc.error_message,
        content=doc.content,
        blob_url=doc.blob_url,
        uploaded_at=doc.uploaded_at,
        updated_at=doc.updated_at,
        chunks=[ChunkResponse.model_validate(c) for c in detail.chunks],
    )


@router.delete("/{document_id}", response_model=DeleteResponse, responses=_NOT_FOUND)
async def delete_document(document_id: UUID, service: Documents) -> DeleteResponse:
    await service.delete_document(document_id)
    return DeleteResponse()


@router.get(
    "/{document_id}/events",
    response_model=list[DetectedEventResponse],
    responses=_NOT_FOUND,
)
async def list_document_events(document_id: UUID, service: Documents) -> list[DetectedEventResponse]:
    events = await service.list_events(document_id)
    return [DetectedEventResponse.model_validate(e) for e in events]


@router.delete(
    "",
    response_model=PurgeResponse,
    responses={502: {"model": ErrorResponse, "description": "Vector store unavailable, documents kept"}},
)
async def purge_documents(service: Documents) -> PurgeResponse:
    result = await service.purge_tenant()
    return PurgeResponse(
        points_deleted=result.points_deleted,
        documents_deleted=result.documents_deleted,
    )
