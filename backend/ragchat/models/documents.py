"""
SQLAlchemy ORM Models — Documents, Chunks & Detected Events

Mapped classes in SQLAlchemy 2.x style for full async support.

Tenant scoping: tokens are issued by an external account service, so there
is no tenants table here. tenant_id is a plain indexed UUID column and every
repository query filters on it explicitly (see db/repositories.py).

Schema: ragchat (set via __table_args__)
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Declarative base: shared across all models
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    pass


SOURCE_TEXT = "text"
SOURCE_PDF  = "pdf"

STATUS_PROCESSING = "processing"
STATUS_READY      = "ready"
STATUS_FAILED     = "failed"

FAILURE_PREFIX = "Processing failed: "


# ---------------------------------------------------------------------------
# Document model: ragchat.documents
# ---------------------------------------------------------------------------

class Document(Base):
    """
    One ingested source: pasted text or an uploaded PDF.

    State machine (status column):
        processing — PDF stored in the blob store, worker not finished yet
        ready      — chunks persisted and vectors acknowledged by the index
        failed     — unrecoverable pipeline error (see error_message)

    Text documents are created directly in `ready`. On failure the content
    column is also overwritten with "Processing failed: <message>" so that
    clients reading content alone can still tell a failed upload apart.
    """

    __tablename__ = "documents"
    __table_args__ = (
        CheckConstraint("source_type IN ('text', 'pdf')", name="documents_source_type_check"),
        CheckConstraint(
            "status IN ('processing', 'ready', 'failed')",
            name="documents_status_check",
        ),
        Index("idx_documents_tenant_uploaded", "tenant_id", "uploaded_at"),
        {"schema": "ragchat"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )

    # Tenant scope: never supplied by the client; always taken from JWT
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)

    source_type: Mapped[str] = mapped_column(Text, nullable=False)
    filename:    Mapped[str] = mapped_column(Text, nullable=False)
    content:     Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        server_default="",
        comment="Raw text, or the text extracted from the PDF once processed",
    )

    # Blob reference: set only while a PDF waits for the worker
    blob_key: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    blob_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=STATUS_READY,
        server_default=STATUS_READY,
    )
    error_message: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Populated only when status='failed'",
    )

    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    chunks: Mapped[list["Chunk"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Chunk.chunk_index",
    )
    events: Mapped[list["DetectedEvent"]] = relationship(
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return (
            f"<Document id={self.id} tenant={self.tenant_id} "
            f"status={self.status} file={self.filename!r}>"
        )


def derive_status(source_type: str, content: str | None) -> str:
    """
    Status as inferred from content alone.

    The stored `status` column is authoritative inside this service; this
    rule is kept for external consumers that only see `content` (exports,
    older clients) and must agree with the column for every document.

    text                        → ready
    pdf, empty/whitespace       → processing
    pdf, "Processing failed: …" → failed
    pdf, anything else          → ready
    """
    if source_type != SOURCE_PDF:
        return STATUS_READY
    if not content or not content.strip():
        return STATUS_PROCESSING
    if content.startswith(FAILURE_PREFIX):
        return STATUS_FAILED
    return STATUS_READY


# ---------------------------------------------------------------------------
# Chunk model: ragchat.chunks
# ---------------------------------------------------------------------------

class Chunk(Base):
    """
    One word-window of a Document. Immutable once written.
    vector_id references the point in the vector index.
    """

    __tablename__ = "chunks"
    __table_args__ = (
        UniqueConstraint("document_id", "chunk_index", name="uq_chunks_position"),
        Index("idx_chunks_document_id", "document_id"),
        Index("idx_chunks_tenant_id",   "tenant_id"),
        {"schema": "ragchat"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("ragchat.documents.id", ondelete="CASCADE"),
        nullable=False,
    )
    chunk_index: Mapped[int]           = mapped_column(Integer, nullable=False)
    content:     Mapped[str]           = mapped_column(Text, nullable=False)
    vector_id:   Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    document: Mapped[Document] = relationship(back_populates="chunks")


# ---------------------------------------------------------------------------
# DetectedEvent model: ragchat.detected_events
# ---------------------------------------------------------------------------

class DetectedEvent(Base):
    """A time-based event mined from a document's text by the LLM."""

    __tablename__ = "detected_events"
    __table_args__ = (
        CheckConstraint(
            "confidence >= 0 AND confidence <= 1",
            name="detected_events_confidence_check",
        ),
        Index("idx_detected_events_document", "document_id"),
        Index("idx_detected_events_tenant",   "tenant_id"),
        {"schema": "ragchat"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("ragchat.documents.id", ondelete="CASCADE"),
        nullable=False,
    )

    title:       Mapped[str]                = mapped_column(Text, nullable=False)
    start_time:  Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    end_time:    Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    recurrence:  Mapped[Optional[str]]      = mapped_column(Text, nullable=True)
    confidence:  Mapped[float]              = mapped_column(Float, nullable=False)
    source_text: Mapped[str]                = mapped_column(Text, nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<DetectedEvent id={self.id} doc={self.document_id} "
            f"title={self.title!r} confidence={self.confidence}>"
        )
