"""
Vector Index — Abstract Base

Every concrete vector store backend implements this interface. The rest of
the application only speaks this protocol, so backends are swappable
without changing ingestion, RAG or API code.

Tenant isolation contract (enforced by ALL implementations):
  - Every write stores tenant_id in the point payload.
  - Every search/count/delete filters on tenant_id == the caller's tenant.
  - The tenant_id comes ONLY from the authenticated token (or the job that
    was enqueued on behalf of that token), never from request bodies.
  - Cross-tenant operations are not exposed on this interface.

Point identity:
  Each point gets a fresh UUID4 on write, independent of the Chunk id.
  The Chunk id travels in the payload (chunk_id) so search hits map back
  to relational rows.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence
from uuid import UUID

from ragchat.processing.embeddings import EmbeddingGateway


# ---------------------------------------------------------------------------
# Shared data types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ChunkPayload:
    """One chunk to index: the relational chunk id plus its text."""
    chunk_id: UUID
    text:     str


@dataclass
class SearchHit:
    """One result returned from a similarity search."""
    chunk_id:    str
    document_id: str
    text:        str
    score:       float      # 1 - cosine distance, higher is closer


# ---------------------------------------------------------------------------
# Abstract interface
# ---------------------------------------------------------------------------

class VectorIndexBase(ABC):
    """
    Tenant-filtered vector index.

    Implementations embed text through the shared EmbeddingGateway so that
    ingestion and query time always use the same model and dimension.
    """

    def __init__(self, embedder: EmbeddingGateway) -> None:
        self._embedder = embedder

    @property
    def embedder(self) -> EmbeddingGateway:
        return self._embedder

    @abstractmethod
    async def ensure_collection(self) -> None:
        """
        Idempotently create the collection and its filterable properties.
        Index provisioning errors are logged, never raised.
        """

    @abstractmethod
    async def upsert_chunks(
        self,
        tenant_id:   UUID,
        document_id: UUID,
        chunks:      Sequence[ChunkPayload],
        source_type: str,
    ) -> list[str]:
        """
        Embed and write one point per chunk. Returns point ids in chunk order.
        Returns only after the store has acknowledged the write.
        """

    @abstractmethod
    async def search(
        self,
        tenant_id:  UUID,
        query_text: str,
        limit:      int = 5,
    ) -> list[SearchHit]:
        """Nearest-neighbour search restricted to the tenant's points."""

    @abstractmethod
    async def delete_by_tenant(self, tenant_id: UUID) -> int:
        """Delete every point owned by the tenant. Returns the deleted count."""

    @abstractmethod
    async def delete_by_document(self, tenant_id: UUID, document_id: UUID) -> int:
        """Delete every point of one document. Returns the deleted count."""

    @abstractmethod
    async def count(self, tenant_id: UUID, document_id: UUID | None = None) -> int:
        """Number of points owned by the tenant (optionally one document)."""
