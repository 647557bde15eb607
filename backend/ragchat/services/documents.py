"""
Document Service — list, inspect and delete a tenant's documents.

Deletion order is vector points first, relational rows second.
A vector-store error during a single-document delete is logged and the
row is removed anyway; a tenant purge propagates it instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from ragchat.core.exceptions import DocumentNotFound, VectorStoreUnavailable
from ragchat.db.repositories import DocumentRepository
from ragchat.models.documents import Chunk, DetectedEvent, Document
from ragchat.vectorstore.base import VectorIndexBase

logger = logging.getLogger(__name__)


@dataclass
class DocumentSummary:
    document:    Document
    chunk_count: int


@dataclass
class DocumentDetail:
    document: Document
    chunks:   list[Chunk]


@dataclass
class PurgeResult:
    points_deleted:    int
    documents_deleted: int


class DocumentService:

    def __init__(self, repo: DocumentRepository, index: VectorIndexBase, tenant_id: UUID) -> None:
        self._repo      = repo
        self._index     = index
        self._tenant_id = tenant_id

    async def _require(self, document_id: UUID) -> Document:
        doc = await self._repo.get(self._tenant_id, document_id)
        if doc is None:
            raise DocumentNotFound(document_id)
        return doc

    async def list_documents(self) -> list[DocumentSummary]:
        rows = await self._repo.list_with_chunk_counts(self._tenant_id)
        return [DocumentSummary(document=doc, chunk_count=count) for doc, count in rows]

    async def get_document(self, document_id: UUID) -> DocumentDetail:
        doc    = await self._require(document_id)
        chunks = await self._repo.list_chunks(document_id)
        return DocumentDetail(document=doc, chunks=chunks)

    async def list_events(self, document_id: UUID) -> list[DetectedEvent]:
        await self._require(document_id)
        return await self._repo.list_events(self._tenant_id, document_id)

    async def delete_document(self, document_id: UUID) -> None:
        doc = await self._require(document_id)

        try:
            deleted = await self._index.delete_by_document(self._tenant_id, document_id)
            logger.info("Vectors deleted | tenant=%s doc=%s points=%d", self._tenant_id, document_id, deleted)
        except VectorStoreUnavailable as exc:
            logger.error(
                "Vector delete failed, removing document anyway | tenant=%s doc=%s error=%s",
                self._tenant_id, document_id, exc.message,
            )

        await self._repo.delete(doc)
        await self._repo.commit()
        logger.info("Document deleted | tenant=%s doc=%s", self._tenant_id, document_id)

    async def purge_tenant(self) -> PurgeResult:
        """Remove every point and document the tenant owns (account deletion)."""
        points = await self._index.delete_by_tenant(self._tenant_id)
        docs   = await self._repo.delete_all_for_tenant(self._tenant_id)
        await self._repo.commit()
        logger.warning(
            "Tenant purged | tenant=%s points=%d documents=%d", self._tenant_id, points, docs,
        )
        return PurgeResult(points_deleted=points, documents_deleted=docs)
