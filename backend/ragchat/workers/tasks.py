"""
Celery Tasks — Background Document Work

Task: process_pdf_document(document_id, tenant_id, blob_key)
  Runs PdfIngestionPipeline: download → extract → chunk → embed → cleanup.
  Pipeline errors are recorded on the Document by the pipeline itself and
  re-raised so Celery marks the task FAILURE. No automatic retry.

Task: detect_document_events(document_id)
  Runs EventExtractor. Best effort: a missing document is logged and the
  task returns normally; model and parse errors never reach this level.

Security:
  - document_id and tenant_id are re-validated against the DB.
  - Only ids and the blob key travel through the broker.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any

from celery import Task

from ragchat.core.exceptions import DocumentNotFound
from ragchat.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Async task helper
# Run async coroutines inside Celery's synchronous task context.
# ---------------------------------------------------------------------------

def run_async(coro):
    """Execute an async coroutine from a synchronous Celery task."""
    try:
        loop = asyncio.get_event_loop()
        if loop.is_running():
            import concurrent.futures
            with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
                future = pool.submit(asyncio.run, coro)
                return future.result()
        return loop.run_until_complete(coro)
    except RuntimeError:
        return asyncio.run(coro)


def ensure_vector_collection() -> None:
    """Worker start hook: provision the vector collection once per process."""
    from ragchat.vectorstore.factory import get_vector_index
    run_async(get_vector_index().ensure_collection())


# ---------------------------------------------------------------------------
# PDF processing task
# ---------------------------------------------------------------------------

@celery_app.task(
    name="ragchat.workers.tasks.process_pdf_document",
    bind=True,
    max_retries=0,
    acks_late=True,
    reject_on_worker_lost=True,
    soft_time_limit=270,
    time_limit=330,
)
def process_pdf_document(
    self: Task,
    *,
    document_id: str,
    tenant_id:   str,
    blob_key:    str,
) -> dict[str, Any]:
    return run_async(
        _process_pdf_document_async(
            document_id=uuid.UUID(document_id),
            tenant_id=uuid.UUID(tenant_id),
            blob_key=blob_key,
        )
    )


async def _process_pdf_document_async(
    document_id: uuid.UUID,
    tenant_id:   uuid.UUID,
    blob_key:    str,
) -> dict[str, Any]:
    from ragchat.db.repositories import DocumentRepository
    from ragchat.db.session import engine, session_scope
    from ragchat.services.ingestion import TaskPublisher
    from ragchat.services.pdf_pipeline import PdfIngestionPipeline
    from ragchat.storage.s3 import S3BlobStore
    from ragchat.vectorstore.factory import get_vector_index

    try:
        async with session_scope() as db:
            pipeline = PdfIngestionPipeline(
                repo=DocumentRepository(db),
                index=get_vector_index(),
                blob_store=S3BlobStore(),
                task_publisher=TaskPublisher(),
            )
            result = await pipeline.run(document_id, tenant_id, blob_key)
    finally:
        # pooled asyncpg connections are bound to this task's event loop
        await engine.dispose()

    return {
        "status":      result.stage.value,
        "document_id": str(document_id),
        "chunk_count": result.chunk_count,
        "point_count": result.point_count,
    }


# ---------------------------------------------------------------------------
# Event detection task
# ---------------------------------------------------------------------------

@celery_app.task(
    name="ragchat.workers.tasks.detect_document_events",
    max_retries=0,
    acks_late=True,
    soft_time_limit=120,
    time_limit=150,
)
def detect_document_events(*, document_id: str) -> dict[str, Any]:
    return run_async(_detect_document_events_async(uuid.UUID(document_id)))


async def _detect_document_events_async(document_id: uuid.UUID) -> dict[str, Any]:
    from ragchat.db.repositories import DocumentRepository
    from ragchat.db.session import engine, session_scope
    from ragchat.llm.gateway import LLMGateway
    from ragchat.services.events import EventExtractor

    try:
        async with session_scope() as db:
            extractor = EventExtractor(repo=DocumentRepository(db), llm=LLMGateway())
            outcome   = await extractor.extract_events(document_id)
    except DocumentNotFound:
        logger.error("Event detection: document not found | doc=%s", document_id)
        return {"status": "not_found", "document_id": str(document_id)}
    finally:
        await engine.dispose()

    return {
        "status":      "skipped" if outcome.skipped else "done",
        "document_id": str(document_id),
        "detected":    outcome.detected_count,
        "raw":         outcome.raw_count,
        "sanitized":   outcome.sanitized_count,
        "rejected":    outcome.rejected_count,
    }
