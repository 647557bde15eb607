"""
Documents & Ingestion — Pydantic Request/Response Schemas

Covers:
  - POST /ingest/text, POST /ingest/pdf
  - GET/DELETE /documents, GET /documents/{id}, GET /documents/{id}/events
  - The uniform ErrorResponse envelope used by every 4xx/5xx

document_id is always server-generated (UUID4); never client-supplied.
All timestamps are timezone-aware UTC datetimes.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------

class TextIngestRequest(BaseModel):
    text:     str = Field(..., description="Raw text to index")
    filename: str = Field("text-input", max_length=255)


class TextIngestResponse(BaseModel):
    """HTTP 201 — the text is chunked and indexed before this returns."""
    document_id:   UUID
    chunks_stored: int


class PdfUploadResponse(BaseModel):
    """
    HTTP 202 — the PDF is stored but processing is async.
    Poll GET /documents/{id} until status is ready or failed.
    """
    document_id: UUID
    status:      str = Field(..., description="processing | failed")


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

class DocumentSummaryResponse(BaseModel):
    document_id:   UUID
    filename:      str
    source_type:   str
    status:        str
    error_message: str | None = None
    chunk_count:   int
    uploaded_at:   datetime


class ChunkResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id:          UUID
    chunk_index: int
    content:     str


class DocumentDetailResponse(BaseModel):
    document_id:   UUID
    filename:      str
    source_type:   str
    status:        str
    error_message: str | None = None
    content:       str
    blob_url:      str | None = None
    uploaded_at:   datetime
    updated_at:    datetime
    chunks:        list[ChunkResponse]


class DetectedEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id:          UUID
    title:       str
    start_time:  datetime | None = None
    end_time:    datetime | None = None
    recurrence:  str | None = None
    confidence:  float
    source_text: str
    created_at:  datetime


class DeleteResponse(BaseModel):
    deleted: bool = True


class PurgeResponse(BaseModel):
    """Everything the tenant owned is gone (account deletion)."""
    points_deleted:    int
    documents_deleted: int


# ---------------------------------------------------------------------------
# Structured error bodies
# ---------------------------------------------------------------------------

class ErrorDetail(BaseModel):
    """Single structured error — may appear in a list."""
    field:   str | None = Field(None, description="Request field that caused the error, if applicable")
    message: str
    code:    str = Field(..., description="Machine-readable error code for client handling")


class ErrorResponse(BaseModel):
    """
    Uniform error envelope for all 4xx/5xx responses.
    Clients should check `error_code` for programmatic handling.
    """
    error_code: str               = Field(..., description="Stable machine-readable code")
    message:    str               = Field(..., description="Human-readable summary")
    details:    list[ErrorDetail] = Field(default_factory=list)
    request_id: str | None        = Field(None, description="Trace ID for log correlation")
