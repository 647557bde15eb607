"""
Ingestion API Router

  POST /api/v1/ingest/text   JSON {text, filename}  → 201, indexed synchronously
  POST /api/v1/ingest/pdf    multipart file         → 202, processed by the worker

Request lifecycle (PDF):
  ┌─────────────────────────────────────────────────────────┐
  │ 1. JWT verification → tenant_id (never client-supplied) │
  │ 2. Size guard on Content-Length before reading the body │
  │ 3. Magic-byte check (%PDF) + 10 MB limit                │
  │ 4. S3 put under <prefix>/<tenant_id>/<uuid>.pdf         │
  │ 5. DB insert (status=processing)                        │
  │ 6. Celery task published → returns 202                  │
  └─────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, File, Request, UploadFile, status

from ragchat.auth.dependencies import Ingestion
from ragchat.core.config import settings
from ragchat.core.exceptions import InvalidUpload
from ragchat.schemas.documents import (
    ErrorResponse,
    PdfUploadResponse,
    TextIngestRequest,
    TextIngestResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ingest", tags=["Ingestion"])

_MULTIPART_OVERHEAD = 4096


@router.post(
    "/text",
    response_model=TextIngestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Index raw text",
    responses={
        400: {"model": ErrorResponse, "description": "Text missing or blank"},
        401: {"model": ErrorResponse, "description": "Missing or invalid JWT"},
        502: {"model": ErrorResponse, "description": "Embedding or vector store failure"},
    },
)
async def ingest_text(body: TextIngestRequest, service: Ingestion) -> TextIngestResponse:
    result = await service.ingest_text(body.text, body.filename)
    return TextIngestResponse(document_id=result.document_id, chunks_stored=result.chunks_stored)


@router.post(
    "/pdf",
    response_model=PdfUploadResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Upload a PDF for asynchronous ingestion",
    description=(
        "Accepts a single PDF up to 10 MB. Returns 202 immediately; "
        "poll GET /documents/{id} until status is ready or failed."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Missing file or not a PDF"},
        401: {"model": ErrorResponse, "description": "Missing or invalid JWT"},
        413: {"model": ErrorResponse, "description": "File exceeds the size limit"},
        502: {"model": ErrorResponse, "description": "Blob store unavailable"},
    },
)
async def ingest_pdf(
    request: Request,
    service: Ingestion,
    file:    UploadFile = File(..., description="PDF file (max 10 MB)"),
) -> PdfUploadResponse:
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() \
            and int(content_length) > settings.max_pdf_bytes + _MULTIPART_OVERHEAD:
        raise InvalidUpload("File exceeds the 10 MB limit", status_code=413)

    data   = await file.read()
    result = await service.upload_pdf(data, file.filename)
    return PdfUploadResponse(document_id=result.document_id, status=result.status)
