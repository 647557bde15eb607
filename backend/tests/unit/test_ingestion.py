"""
Unit Tests — IngestionService
══════════════════════════════
Tests for both entry points.

All tests:
  • Use doc_repo, fake_index, mock_blob_store, mock_publisher from conftest.py
  • Never touch real PostgreSQL, Weaviate, S3 or Celery

Coverage targets:
  ✅ Text       → ready document, one chunk row and one point per chunk
  ✅ Text       → vector_id recorded on every chunk, event detection enqueued
  ✅ Empty text → 400, nothing written
  ✅ Index down → error propagates, no event detection
  ✅ Partial write or failed commit → the document's points removed
  ✅ PDF        → stored, processing row, task published with ids + key only
  ✅ Empty file → 400 "No file uploaded"
  ✅ Not a PDF  → 400 "Only PDF files are allowed"
  ✅ Oversized  → 413
  ✅ Broker down → document failed, blob removed, status "failed" returned
  ✅ Filename sanitization → path components stripped
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from kombu.exceptions import OperationalError

from ragchat.core.exceptions import EmptyDocumentText, InvalidUpload, VectorStoreUnavailable
from ragchat.models.documents import FAILURE_PREFIX, derive_status
from ragchat.services.ingestion import (
    ENQUEUE_FAILED_MESSAGE,
    IngestionService,
    TaskPublisher,
    sanitize_filename,
)


@pytest.fixture
def make_service(doc_repo, fake_index, mock_blob_store, mock_publisher, test_tenant_id):
    def _build(tenant_id=None) -> IngestionService:
        return IngestionService(
            repo=doc_repo,
            index=fake_index,
            blob_store=mock_blob_store,
            task_publisher=mock_publisher,
            tenant_id=tenant_id or test_tenant_id,
        )
    return _build


@pytest.mark.unit
class TestTextIngestion:

    async def test_text_is_chunked_and_indexed(self, make_service, doc_repo, fake_index, test_tenant_id):
        text = " ".join(f"word{i}" for i in range(650))

        result = await make_service().ingest_text(text, "notes.txt")

        assert result.chunks_stored == 3
        doc = doc_repo.documents[0]
        assert doc.id == result.document_id
        assert doc.status == "ready"
        assert doc.source_type == "text"
        assert doc.content == text
        assert await fake_index.count(test_tenant_id, doc.id) == 3

    async def test_vector_ids_recorded_on_chunks(self, make_service, doc_repo, fake_index):
        await make_service().ingest_text("alpha beta gamma")
        chunk = doc_repo.chunks[0]
        assert chunk.vector_id in fake_index.points
        assert fake_index.points[chunk.vector_id]["chunk_id"] == str(chunk.id)

    async def test_event_detection_enqueued(self, make_service, mock_publisher):
        result = await make_service().ingest_text("Team sync every Monday at 10am")
        mock_publisher.publish_event_detection.assert_awaited_once_with(result.document_id)

    async def test_default_filename(self, make_service, doc_repo):
        await make_service().ingest_text("some text", None)
        assert doc_repo.documents[0].filename == "text-input"

    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    async def test_empty_text_rejected(self, make_service, doc_repo, text):
        with pytest.raises(EmptyDocumentText) as exc_info:
            await make_service().ingest_text(text)
        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "Text is required"
        assert doc_repo.documents == []

    async def test_index_failure_propagates(self, make_service, fake_index, mock_publisher):
        fake_index.fail_upsert_with = VectorStoreUnavailable("write rejected")
        with pytest.raises(VectorStoreUnavailable):
            await make_service().ingest_text("some text worth indexing")
        mock_publisher.publish_event_detection.assert_not_awaited()

    async def test_partial_index_write_leaves_no_points(self, make_service, fake_index, test_tenant_id):
        fake_index.fail_upsert_with  = VectorStoreUnavailable("write rejected")
        fake_index.fail_upsert_after = 1
        text = " ".join(f"w{i}" for i in range(450))
        with pytest.raises(VectorStoreUnavailable):
            await make_service().ingest_text(text)
        assert await fake_index.count(test_tenant_id) == 0

    async def test_commit_failure_removes_points(self, make_service, doc_repo, fake_index, test_tenant_id):
        doc_repo.commit = AsyncMock(side_effect=RuntimeError("db gone"))
        with pytest.raises(RuntimeError, match="db gone"):
            await make_service().ingest_text("Dentist appointment Friday at 3pm")
        assert await fake_index.count(test_tenant_id) == 0


@pytest.mark.unit
class TestPdfUpload:

    async def test_valid_pdf_is_stored_and_queued(
        self, make_service, doc_repo, mock_blob_store, mock_publisher, sample_pdf_bytes, test_tenant_id,
    ):
        result = await make_service().upload_pdf(sample_pdf_bytes, "report.pdf")

        assert result.status == "processing"
        doc = doc_repo.documents[0]
        assert doc.status == "processing"
        assert doc.content == ""
        assert derive_status(doc.source_type, doc.content) == "processing"
        assert doc.filename == "report.pdf"

        mock_blob_store.put.assert_awaited_once()
        assert mock_blob_store.put.await_args.args[0] == test_tenant_id
        mock_publisher.publish_pdf_processing.assert_awaited_once_with(
            document_id=doc.id,
            tenant_id=test_tenant_id,
            blob_key=doc.blob_key,
        )

    async def test_client_filename_is_sanitized(self, make_service, doc_repo, mock_blob_store, sample_pdf_bytes):
        await make_service().upload_pdf(sample_pdf_bytes, "../../etc/passwd.pdf")
        assert doc_repo.documents[0].filename == "passwd.pdf"
        assert mock_blob_store.put.await_args.args[1] == "passwd.pdf"

    async def test_empty_file_rejected(self, make_service):
        with pytest.raises(InvalidUpload) as exc_info:
            await make_service().upload_pdf(b"", "empty.pdf")
        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "No file uploaded"

    async def test_non_pdf_rejected(self, make_service, sample_txt_bytes, mock_blob_store):
        with pytest.raises(InvalidUpload) as exc_info:
            await make_service().upload_pdf(sample_txt_bytes, "notes.pdf")
        assert exc_info.value.message == "Only PDF files are allowed"
        mock_blob_store.put.assert_not_awaited()

    async def test_oversized_pdf_rejected_with_413(self, make_service, sample_pdf_bytes):
        with patch("ragchat.services.ingestion.settings.max_pdf_bytes", 64):
            with pytest.raises(InvalidUpload) as exc_info:
                await make_service().upload_pdf(sample_pdf_bytes, "big.pdf")
        assert exc_info.value.status_code == 413

    async def test_broker_down_marks_document_failed(
        self, make_service, doc_repo, mock_blob_store, mock_publisher, sample_pdf_bytes,
    ):
        mock_publisher.publish_pdf_processing.side_effect = OperationalError("broker unreachable")

        result = await make_service().upload_pdf(sample_pdf_bytes, "report.pdf")

        assert result.status == "failed"
        doc = doc_repo.documents[0]
        assert doc.status == "failed"
        assert doc.error_message == ENQUEUE_FAILED_MESSAGE
        assert doc.content.startswith(FAILURE_PREFIX)
        assert derive_status(doc.source_type, doc.content) == "failed"
        assert doc.blob_key is None
        mock_blob_store.delete.assert_awaited_once()


@pytest.mark.unit
class TestTaskPublisher:

    async def test_event_detection_broker_error_is_swallowed_and_logged(self, caplog):
        with patch("ragchat.services.ingestion.asyncio.to_thread", side_effect=OperationalError("down")):
            await TaskPublisher().publish_event_detection("doc-1")
        assert "Event detection not queued" in caplog.text

    async def test_processing_broker_error_propagates(self):
        with patch("ragchat.services.ingestion.asyncio.to_thread", side_effect=OperationalError("down")):
            with pytest.raises(OperationalError):
                await TaskPublisher().publish_pdf_processing("doc-1", "tenant-1", "pdfs/t/x.pdf")


@pytest.mark.unit
class TestSanitizeFilename:

    @pytest.mark.parametrize("raw,expected", [
        ("report.pdf",             "report.pdf"),
        ("../../secret.pdf",       "secret.pdf"),
        ("C:\\Users\\me\\cv.pdf",  "cv.pdf"),
        ("weird<name>.pdf",        "weird_name_.pdf"),
        (None,                     "upload.pdf"),
        ("",                       "upload.pdf"),
    ])
    def test_sanitize(self, raw, expected):
        assert sanitize_filename(raw) == expected
