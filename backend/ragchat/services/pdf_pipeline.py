"""
PDF Ingestion Pipeline — runs inside the Celery worker

State machine:

    UPLOADED ─► EXTRACTING ─► CHUNKING ─► EMBEDDING ─► CLEANUP ─► DONE
        │            │            │            │
        └────────────┴────────────┴────────────┴──────► FAILED

  EXTRACTING  download blob, pypdf text layer, persist text on Document
              empty / whitespace-only text      → NoExtractableText
  CHUNKING    word-window chunker
              zero chunks                       → NoChunksProduced
  EMBEDDING   insert Chunk rows, upsert vectors (acknowledged), then mark
              the Document ready and drop the blob reference, commit
  CLEANUP     hard-delete the blob (failure logged only), enqueue event
              detection (failure logged only)

Failure policy (any exception before CLEANUP):
  - once an upsert was attempted, remove the document's vector points
    (best effort; a failed batch can leave some points written)
  - delete the blob (best effort, attempted exactly once)
  - roll back uncommitted rows, then Document.status = failed,
    error_message = <msg>, content = "Processing failed: <msg>"
    (an error while recording this is logged, not raised)
  - log with traceback and re-raise; the task does not retry
"""

from __future__ import annotations

import enum
import logging
import time
import uuid
from dataclasses import dataclass
from uuid import UUID

from ragchat.core.config import settings
from ragchat.core.exceptions import (
    BlobStoreUnavailable,
    DocumentNotFound,
    NoChunksProduced,
    NoExtractableText,
    RagChatError,
)
from ragchat.db.repositories import DocumentRepository
from ragchat.models.documents import (
    FAILURE_PREFIX,
    SOURCE_PDF,
    STATUS_FAILED,
    STATUS_READY,
    Chunk,
)
from ragchat.processing.chunking import chunk_text
from ragchat.processing.extractor import extract_pdf_text
from ragchat.services.ingestion import TaskPublisher
from ragchat.storage.s3 import S3BlobStore
from ragchat.vectorstore.base import ChunkPayload, VectorIndexBase

logger = logging.getLogger(__name__)


class PipelineStage(str, enum.Enum):
    UPLOADED   = "uploaded"
    EXTRACTING = "extracting"
    CHUNKING   = "chunking"
    EMBEDDING  = "embedding"
    CLEANUP    = "cleanup"
    DONE       = "done"
    FAILED     = "failed"


@dataclass
class PipelineResult:
    stage:       PipelineStage
    chunk_count: int = 0
    point_count: int = 0
    elapsed_ms:  float = 0.0


class PdfIngestionPipeline:
    """
    Drives one uploaded PDF from blob to indexed chunks.

    Usage (inside a Celery task)::

        pipeline = PdfIngestionPipeline(repo, index, blob_store, publisher)
        result   = await pipeline.run(document_id, tenant_id, blob_key)
    """

    def __init__(
        self,
        repo:           DocumentRepository,
        index:          VectorIndexBase,
        blob_store:     S3BlobStore,
        task_publisher: TaskPublisher,
    ) -> None:
        self._repo      = repo
        self._index     = index
        self._blobs     = blob_store
        self._publisher = task_publisher

    async def run(self, document_id: UUID, tenant_id: UUID, blob_key: str) -> PipelineResult:
        t0       = time.monotonic()
        stage    = PipelineStage.UPLOADED
        points   = 0
        upserted = False

        logger.info("PDF pipeline start | tenant=%s doc=%s key=%s", tenant_id, document_id, blob_key)

        try:
            # ── EXTRACTING ─────────────────────────────────────────────
            stage = PipelineStage.EXTRACTING
            doc = await self._repo.get(tenant_id, document_id)
            if doc is None:
                raise DocumentNotFound(document_id)

            data      = await self._blobs.get(blob_key)
            extracted = await extract_pdf_text(data)
            if extracted.is_empty:
                raise NoExtractableText()

            doc.content = extracted.text
            await self._repo.commit()

            # ── CHUNKING ───────────────────────────────────────────────
            stage  = PipelineStage.CHUNKING
            pieces = chunk_text(extracted.text, settings.chunk_size)
            if not pieces:
                raise NoChunksProduced()

            # ── EMBEDDING ──────────────────────────────────────────────
            stage  = PipelineStage.EMBEDDING
            chunks = await self._repo.add_chunks([
                Chunk(
                    id=uuid.uuid4(),
                    tenant_id=tenant_id,
                    document_id=document_id,
                    chunk_index=i,
                    content=piece,
                )
                for i, piece in enumerate(pieces)
            ])
            # a failed batch may still have stored some points
            upserted  = True
            point_ids = await self._index.upsert_chunks(
                tenant_id=tenant_id,
                document_id=document_id,
                chunks=[ChunkPayload(chunk_id=c.id, text=c.content) for c in chunks],
                source_type=SOURCE_PDF,
            )
            points = len(point_ids)
            for chunk, point_id in zip(chunks, point_ids):
                chunk.vector_id = point_id

            doc.status        = STATUS_READY
            doc.error_message = None
            doc.blob_key      = None
            await self._repo.commit()

        except Exception as exc:
            logger.exception(
                "PDF pipeline failed | tenant=%s doc=%s stage=%s error=%s",
                tenant_id, document_id, stage.value, exc,
            )
            await self._fail(document_id, tenant_id, blob_key, exc, upsert_attempted=upserted)
            raise

        # ── CLEANUP ────────────────────────────────────────────────────
        await self._delete_blob(document_id, blob_key)
        await self._publisher.publish_event_detection(document_id)

        result = PipelineResult(
            stage=PipelineStage.DONE,
            chunk_count=len(chunks),
            point_count=points,
            elapsed_ms=(time.monotonic() - t0) * 1000,
        )
        logger.info(
            "PDF pipeline complete | tenant=%s doc=%s chunks=%d points=%d elapsed_ms=%.0f",
            tenant_id, document_id, result.chunk_count, result.point_count, result.elapsed_ms,
        )
        return result

    # ------------------------------------------------------------------
    # Failure path
    # ------------------------------------------------------------------

    async def _fail(
        self,
        document_id:      UUID,
        tenant_id:        UUID,
        blob_key:         str,
        exc:              Exception,
        upsert_attempted: bool,
    ) -> None:
        message = exc.message if isinstance(exc, RagChatError) else str(exc)

        if upsert_attempted:
            try:
                await self._index.delete_by_document(tenant_id, document_id)
            except RagChatError as cleanup_exc:
                logger.warning(
                    "Vector cleanup failed | doc=%s error=%s", document_id, cleanup_exc,
                )

        await self._delete_blob(document_id, blob_key)

        # the pipeline error is what the task reports, not a second DB failure
        try:
            await self._record_failure(document_id, tenant_id, message)
        except Exception:
            logger.exception("Failure marker not recorded | doc=%s", document_id)

    async def _record_failure(self, document_id: UUID, tenant_id: UUID, message: str) -> None:
        await self._repo.rollback()

        doc = await self._repo.get(tenant_id, document_id)
        if doc is None:
            logger.warning("Document vanished before failure could be recorded | doc=%s", document_id)
            return

        doc.status        = STATUS_FAILED
        doc.error_message = message
        doc.content       = f"{FAILURE_PREFIX}{message}"
        doc.blob_key      = None
        await self._repo.commit()

    async def _delete_blob(self, document_id: UUID, blob_key: str) -> None:
        try:
            await self._blobs.delete(blob_key)
        except (BlobStoreUnavailable, OSError) as exc:
            logger.warning("Blob cleanup failed | doc=%s key=%s error=%s", document_id, blob_key, exc)
