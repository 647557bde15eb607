"""
Unit Tests — DocumentService
═════════════════════════════
Deletion ordering, tenant scoping and tenant purge, exercised against the
in-memory repository and vector index.
"""

from __future__ import annotations

import uuid

import pytest

from ragchat.core.exceptions import DocumentNotFound, VectorStoreUnavailable
from ragchat.models.documents import DetectedEvent
from ragchat.services.documents import DocumentService
from ragchat.services.ingestion import IngestionService


@pytest.fixture
def make_ingestion(doc_repo, fake_index, mock_blob_store, mock_publisher):
    def _build(tenant_id) -> IngestionService:
        return IngestionService(doc_repo, fake_index, mock_blob_store, mock_publisher, tenant_id)
    return _build


@pytest.fixture
def make_documents(doc_repo, fake_index):
    def _build(tenant_id) -> DocumentService:
        return DocumentService(repo=doc_repo, index=fake_index, tenant_id=tenant_id)
    return _build


def _words(n: int) -> str:
    return " ".join(f"w{i}" for i in range(n))


@pytest.mark.unit
class TestListAndGet:

    async def test_list_is_tenant_scoped_with_chunk_counts(
        self, make_ingestion, make_documents, test_tenant_id, other_tenant_id,
    ):
        mine = await make_ingestion(test_tenant_id).ingest_text(_words(650), "mine")
        await make_ingestion(other_tenant_id).ingest_text(_words(10), "theirs")

        summaries = await make_documents(test_tenant_id).list_documents()

        assert [s.document.id for s in summaries] == [mine.document_id]
        assert summaries[0].chunk_count == 3

    async def test_detail_has_ordered_chunks(self, make_ingestion, make_documents, test_tenant_id):
        result = await make_ingestion(test_tenant_id).ingest_text(_words(650))
        detail = await make_documents(test_tenant_id).get_document(result.document_id)
        assert [c.chunk_index for c in detail.chunks] == [0, 1, 2]

    async def test_other_tenant_gets_not_found(
        self, make_ingestion, make_documents, test_tenant_id, other_tenant_id,
    ):
        result = await make_ingestion(test_tenant_id).ingest_text("private notes")
        with pytest.raises(DocumentNotFound):
            await make_documents(other_tenant_id).get_document(result.document_id)
        with pytest.raises(DocumentNotFound):
            await make_documents(other_tenant_id).list_events(result.document_id)


@pytest.mark.unit
class TestDelete:

    async def test_delete_removes_points_rows_and_events(
        self, make_ingestion, make_documents, doc_repo, fake_index, test_tenant_id,
    ):
        result = await make_ingestion(test_tenant_id).ingest_text(_words(650))
        doc_repo.events.append(DetectedEvent(
            id=uuid.uuid4(), tenant_id=test_tenant_id, document_id=result.document_id,
            title="Standup", recurrence="daily", confidence=0.9, source_text="",
        ))
        assert await fake_index.count(test_tenant_id, result.document_id) == 3

        await make_documents(test_tenant_id).delete_document(result.document_id)

        assert await fake_index.count(test_tenant_id, result.document_id) == 0
        assert doc_repo.documents == []
        assert doc_repo.chunks == []
        assert doc_repo.events == []

    async def test_vector_failure_still_deletes_row(
        self, make_ingestion, make_documents, doc_repo, fake_index, test_tenant_id, caplog,
    ):
        result = await make_ingestion(test_tenant_id).ingest_text("to be deleted")
        fake_index.fail_delete_with = VectorStoreUnavailable("timeout")

        await make_documents(test_tenant_id).delete_document(result.document_id)

        assert doc_repo.documents == []
        assert "Vector delete failed" in caplog.text

    async def test_other_tenant_cannot_delete(
        self, make_ingestion, make_documents, doc_repo, fake_index, test_tenant_id, other_tenant_id,
    ):
        result = await make_ingestion(test_tenant_id).ingest_text("keep me")
        with pytest.raises(DocumentNotFound):
            await make_documents(other_tenant_id).delete_document(result.document_id)
        assert len(doc_repo.documents) == 1
        assert await fake_index.count(test_tenant_id) == 1


@pytest.mark.unit
class TestPurge:

    async def test_purge_removes_only_that_tenant(
        self, make_ingestion, make_documents, doc_repo, fake_index, test_tenant_id, other_tenant_id,
    ):
        await make_ingestion(test_tenant_id).ingest_text(_words(400))
        await make_ingestion(test_tenant_id).ingest_text("second doc")
        await make_ingestion(other_tenant_id).ingest_text("someone else")

        purged = await make_documents(test_tenant_id).purge_tenant()

        assert purged.points_deleted == 3
        assert purged.documents_deleted == 2
        assert await fake_index.count(test_tenant_id) == 0
        assert await fake_index.count(other_tenant_id) == 1
        assert [d.tenant_id for d in doc_repo.documents] == [other_tenant_id]

    async def test_purge_propagates_vector_failure(
        self, make_ingestion, make_documents, doc_repo, fake_index, test_tenant_id,
    ):
        await make_ingestion(test_tenant_id).ingest_text("text")
        fake_index.fail_delete_with = VectorStoreUnavailable("down")
        with pytest.raises(VectorStoreUnavailable):
            await make_documents(test_tenant_id).purge_tenant()
        assert len(doc_repo.documents) == 1
