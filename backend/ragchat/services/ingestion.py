"""
Document Ingestion Service

Two entry points, both scoped to the tenant from the verified token:

  ingest_text(text, filename)          — synchronous, returns once indexed
    1. Reject empty / whitespace-only text (400)
    2. Insert Document (status=ready, content=text)
    3. Chunk → insert Chunk rows (relational rows first)
    4. Embed + upsert one vector point per chunk (acknowledged write)
    5. Record point ids on the chunks, commit; on failure the points
       written for the document are deleted before the error propagates
    6. Enqueue event detection (failure logged only)

  upload_pdf(data, filename)           — asynchronous, returns 202
    1. Validate: non-empty, %PDF magic bytes, ≤ max_pdf_bytes
    2. Store bytes in S3 under a server-built key
    3. Insert Document (status=processing, content="", blob_key), commit
    4. Publish process_pdf_document(document_id, tenant_id, blob_key)
       — ids and key only, never the bytes
    5. Broker unreachable → document marked failed and blob removed,
       so the upload never sits in `processing` forever

Security invariants enforced here:
  - tenant_id is ALWAYS taken from the verified JWT, never the request body.
  - The S3 key is constructed server-side; the filename is sanitized and
    stored for display only.
  - File type comes from magic bytes, not the client's Content-Type header.
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from dataclasses import dataclass

from kombu.exceptions import KombuError

from ragchat.core.config import settings
from ragchat.core.exceptions import BlobStoreUnavailable, EmptyDocumentText, InvalidUpload, RagChatError
from ragchat.db.repositories import DocumentRepository
from ragchat.models.documents import (
    FAILURE_PREFIX,
    SOURCE_PDF,
    SOURCE_TEXT,
    STATUS_FAILED,
    STATUS_PROCESSING,
    STATUS_READY,
    Chunk,
    Document,
)
from ragchat.processing.chunking import chunk_text
from ragchat.processing.extractor import looks_like_pdf
from ragchat.storage.s3 import S3BlobStore
from ragchat.vectorstore.base import ChunkPayload, VectorIndexBase

logger = logging.getLogger(__name__)

DEFAULT_TEXT_FILENAME = "text-input"
ENQUEUE_FAILED_MESSAGE = "Could not queue the document for processing"


def sanitize_filename(filename: str | None, default: str = "upload.pdf") -> str:
    """
    Strip path components and replace unsafe characters.
    Returns only the basename with OS-safe characters.
    """
    if not filename:
        return default
    basename = filename.replace("\\", "/").rsplit("/", 1)[-1]
    safe = re.sub(r"[^a-zA-Z0-9._\- ]", "_", basename).strip()
    return safe[:200] or default


@dataclass
class TextIngestResult:
    document_id:   uuid.UUID
    chunks_stored: int


@dataclass
class PdfUploadResult:
    document_id: uuid.UUID
    status:      str


# ---------------------------------------------------------------------------
# Core ingestion orchestrator
# ---------------------------------------------------------------------------

class IngestionService:
    """
    One instance per request. All dependencies are injected
    (testable, no hidden globals).
    """

    def __init__(
        self,
        repo:           DocumentRepository,
        index:          VectorIndexBase,
        blob_store:     S3BlobStore,
        task_publisher: "TaskPublisher",
        tenant_id:      uuid.UUID,
    ) -> None:
        self._repo      = repo
        self._index     = index
        self._blobs     = blob_store
        self._publisher = task_publisher
        self._tenant_id = tenant_id

    # ------------------------------------------------------------------
    # Text path
    # ------------------------------------------------------------------

    async def ingest_text(self, text: str, filename: str | None = None) -> TextIngestResult:
        if not isinstance(text, str) or not text.strip():
            raise EmptyDocumentText()

        filename = (filename or "").strip() or DEFAULT_TEXT_FILENAME
        doc = await self._repo.add(Document(
            id=uuid.uuid4(),
            tenant_id=self._tenant_id,
            source_type=SOURCE_TEXT,
            filename=filename,
            content=text,
            status=STATUS_READY,
        ))

        logger.info(
            "Ingest start | tenant=%s doc=%s source=text chars=%d",
            self._tenant_id, doc.id, len(text),
        )

        chunks = await self._repo.add_chunks([
            Chunk(
                id=uuid.uuid4(),
                tenant_id=self._tenant_id,
                document_id=doc.id,
                chunk_index=i,
                content=piece,
            )
            for i, piece in enumerate(chunk_text(text, settings.chunk_size))
        ])

        try:
            point_ids = await self._index.upsert_chunks(
                tenant_id=self._tenant_id,
                document_id=doc.id,
                chunks=[ChunkPayload(chunk_id=c.id, text=c.content) for c in chunks],
                source_type=SOURCE_TEXT,
            )
            for chunk, point_id in zip(chunks, point_ids):
                chunk.vector_id = point_id

            await self._repo.commit()
        except Exception:
            # the rows roll back with the request; their points must go too
            await self._discard_points(doc.id)
            raise

        logger.info(
            "Ingest complete | tenant=%s doc=%s chunks=%d points=%d",
            self._tenant_id, doc.id, len(chunks), len(point_ids),
        )

        await self._publisher.publish_event_detection(doc.id)
        return TextIngestResult(document_id=doc.id, chunks_stored=len(chunks))

    async def _discard_points(self, document_id: uuid.UUID) -> None:
        try:
            await self._index.delete_by_document(self._tenant_id, document_id)
        except RagChatError as exc:
            logger.warning(
                "Vector cleanup failed | tenant=%s doc=%s error=%s", self._tenant_id, document_id, exc,
            )

    # ------------------------------------------------------------------
    # PDF path
    # ------------------------------------------------------------------

    async def upload_pdf(self, data: bytes, filename: str | None) -> PdfUploadResult:
        self._validate_pdf(data)

        safe_filename = sanitize_filename(filename)
        document_id   = uuid.uuid4()

        logger.info(
            "Ingest start | tenant=%s doc=%s source=pdf file=%s size=%d",
            self._tenant_id, document_id, safe_filename, len(data),
        )

        blob = await self._blobs.put(self._tenant_id, safe_filename, data)

        doc = await self._repo.add(Document(
            id=document_id,
            tenant_id=self._tenant_id,
            source_type=SOURCE_PDF,
            filename=safe_filename,
            content="",
            blob_key=blob.key,
            blob_url=blob.url,
            status=STATUS_PROCESSING,
        ))
        await self._repo.commit()

        try:
            await self._publisher.publish_pdf_processing(
                document_id=doc.id,
                tenant_id=self._tenant_id,
                blob_key=blob.key,
            )
        except (KombuError, OSError) as exc:
            logger.error(
                "Failed to publish processing task | doc=%s error=%s", doc.id, exc,
            )
            await self._mark_enqueue_failed(doc)
            return PdfUploadResult(document_id=doc.id, status=STATUS_FAILED)

        return PdfUploadResult(document_id=doc.id, status=STATUS_PROCESSING)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_pdf(data: bytes | None) -> None:
        if not data:
            raise InvalidUpload("No file uploaded")
        if not looks_like_pdf(data):
            raise InvalidUpload("Only PDF files are allowed")
        if len(data) > settings.max_pdf_bytes:
            raise InvalidUpload(
                f"File exceeds the {settings.max_pdf_bytes // (1024 * 1024)} MB limit",
                status_code=413,
            )

    async def _mark_enqueue_failed(self, doc: Document) -> None:
        blob_key = doc.blob_key
        doc.status        = STATUS_FAILED
        doc.error_message = ENQUEUE_FAILED_MESSAGE
        doc.content       = f"{FAILURE_PREFIX}{ENQUEUE_FAILED_MESSAGE}"
        doc.blob_key      = None
        await self._repo.commit()

        if blob_key:
            try:
                await self._blobs.delete(blob_key)
            except BlobStoreUnavailable as exc:
                logger.warning("Blob cleanup failed | doc=%s key=%s error=%s", doc.id, blob_key, exc)


# ---------------------------------------------------------------------------
# Task publisher: thin abstraction over Celery .apply_async()
# Injected into services so it can be mocked in tests.
# ---------------------------------------------------------------------------

class TaskPublisher:
    """
    Sends background jobs to the Celery broker.
    Import is deferred so the broker connection is not required at module load time.
    """

    async def publish_pdf_processing(
        self,
        document_id: uuid.UUID,
        tenant_id:   uuid.UUID,
        blob_key:    str,
    ) -> None:
        """
        Dispatch process_pdf_document to the worker. Broker errors propagate.
        Runs in a thread to avoid blocking the event loop.
        """
        from ragchat.workers.tasks import process_pdf_document

        await asyncio.to_thread(
            process_pdf_document.apply_async,
            kwargs={
                "document_id": str(document_id),
                "tenant_id":   str(tenant_id),
                "blob_key":    blob_key,
            },
        )
        logger.info("Processing task published | doc=%s tenant=%s", document_id, tenant_id)

    async def publish_event_detection(self, document_id: uuid.UUID) -> None:
        """Fire-and-forget: a broker error is logged, never raised."""
        from ragchat.workers.tasks import detect_document_events

        try:
            await asyncio.to_thread(
                detect_document_events.apply_async,
                kwargs={"document_id": str(document_id)},
            )
        except (KombuError, OSError) as exc:
            logger.warning("Event detection not queued | doc=%s error=%s", document_id, exc)
            return
        logger.info("Event detection task published | doc=%s", document_id)
