"""
Weaviate Vector Index — Shared Collection, Tenant Property Filter

Isolation model:
  All tenants share one collection (settings.vector_collection). Every
  object carries tenant_id as a filterable property and every query,
  count and delete ANDs a tenant_id filter into its where-clause.

  Properties:
      tenant_id     TEXT   filterable
      document_id   TEXT   filterable
      chunk_id      TEXT   filterable
      text          TEXT   searchable
      source_type   TEXT
      created_at    DATE

  Vectors are supplied by the EmbeddingGateway (vectorizer: none) and
  indexed with HNSW using cosine distance.

The v4 client is synchronous; every call is pushed to a worker thread so
the event loop is never blocked.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Sequence
from uuid import UUID

import weaviate
import weaviate.classes as wvc
from weaviate.classes.config import Configure, DataType, Property
from weaviate.classes.query import Filter, MetadataQuery
from weaviate.exceptions import WeaviateBaseError

from ragchat.core.config import settings
from ragchat.core.exceptions import VectorStoreUnavailable
from ragchat.processing.embeddings import EmbeddingGateway
from ragchat.vectorstore.base import ChunkPayload, SearchHit, VectorIndexBase

logger = logging.getLogger(__name__)

_FILTER_PROPERTIES = ("tenant_id", "document_id", "chunk_id")

_RETURN_PROPERTIES = ["tenant_id", "document_id", "chunk_id", "text"]


def _filterable(name: str) -> Property:
    return Property(name=name, data_type=DataType.TEXT, index_filterable=True)


class WeaviateVectorIndex(VectorIndexBase):
    """Weaviate-backed vector index scoped by a tenant_id property filter."""

    def __init__(
        self,
        client:     weaviate.WeaviateClient,
        embedder:   EmbeddingGateway,
        collection: str | None = None,
    ) -> None:
        super().__init__(embedder)
        self._client = client
        self._name   = collection or settings.vector_collection

    def _collection(self):
        return self._client.collections.get(self._name)

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    @staticmethod
    def _tenant_filter(tenant_id: UUID, document_id: UUID | None = None):
        clause = Filter.by_property("tenant_id").equal(str(tenant_id))
        if document_id is not None:
            clause = Filter.all_of([
                clause,
                Filter.by_property("document_id").equal(str(document_id)),
            ])
        return clause

    # ------------------------------------------------------------------
    # Collection provisioning
    # ------------------------------------------------------------------

    async def ensure_collection(self) -> None:
        try:
            await asyncio.to_thread(self._ensure_collection_sync)
        except WeaviateBaseError as exc:
            logger.error("Weaviate collection setup failed | name=%s error=%s", self._name, exc)

    def _ensure_collection_sync(self) -> None:
        if not self._client.collections.exists(self._name):
            self._client.collections.create(
                name=self._name,
                description="Document chunks for retrieval (filtered by tenant_id)",
                vectorizer_config=Configure.Vectorizer.none(),
                vector_index_config=Configure.VectorIndex.hnsw(
                    distance_metric=wvc.config.VectorDistances.COSINE,
                ),
                properties=[
                    *[_filterable(name) for name in _FILTER_PROPERTIES],
                    Property(name="text",        data_type=DataType.TEXT, index_searchable=True),
                    Property(name="source_type", data_type=DataType.TEXT),
                    Property(name="created_at",  data_type=DataType.DATE),
                ],
            )
            logger.info("Weaviate collection created: %s", self._name)
            return

        # Collection exists: add any filter property an older schema lacks
        collection = self._collection()
        existing   = {p.name for p in collection.config.get().properties}
        for name in _FILTER_PROPERTIES:
            if name in existing:
                continue
            try:
                collection.config.add_property(_filterable(name))
                logger.info("Weaviate property added | collection=%s property=%s", self._name, name)
            except WeaviateBaseError as exc:
                if "already exists" in str(exc):
                    continue
                logger.error(
                    "Weaviate property add failed | collection=%s property=%s error=%s",
                    self._name, name, exc,
                )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def upsert_chunks(
        self,
        tenant_id:   UUID,
        document_id: UUID,
        chunks:      Sequence[ChunkPayload],
        source_type: str,
    ) -> list[str]:
        if not chunks:
            return []

        vectors    = await self._embedder.embed_many([c.text for c in chunks])
        created_at = datetime.now(timezone.utc)
        point_ids  = [str(uuid.uuid4()) for _ in chunks]

        objects = [
            wvc.data.DataObject(
                uuid=point_id,
                properties={
                    "tenant_id":   str(tenant_id),
                    "document_id": str(document_id),
                    "chunk_id":    str(chunk.chunk_id),
                    "text":        chunk.text,
                    "source_type": source_type,
                    "created_at":  created_at,
                },
                vector=vector,
            )
            for point_id, chunk, vector in zip(point_ids, chunks, vectors)
        ]

        try:
            result = await asyncio.to_thread(self._collection().data.insert_many, objects)
        except WeaviateBaseError as exc:
            raise VectorStoreUnavailable(str(exc)) from exc

        if result.has_errors:
            messages = [err.message for err in result.errors.values()]
            logger.error(
                "Weaviate upsert rejected | tenant=%s doc=%s errors=%d first=%s",
                tenant_id, document_id, len(messages), messages[0],
            )
            raise VectorStoreUnavailable(messages[0])

        logger.info(
            "Weaviate upsert | tenant=%s doc=%s points=%d",
            tenant_id, document_id, len(point_ids),
        )
        return point_ids

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def search(
        self,
        tenant_id:  UUID,
        query_text: str,
        limit:      int = 5,
    ) -> list[SearchHit]:
        vector = await self._embedder.embed(query_text)

        try:
            response = await asyncio.to_thread(
                self._collection().query.near_vector,
                near_vector=vector,
                limit=limit,
                filters=self._tenant_filter(tenant_id),
                return_metadata=MetadataQuery(distance=True),
                return_properties=_RETURN_PROPERTIES,
            )
        except WeaviateBaseError as exc:
            raise VectorStoreUnavailable(str(exc)) from exc

        hits: list[SearchHit] = []
        for obj in response.objects:
            props = obj.properties
            if props.get("tenant_id") != str(tenant_id):
                logger.warning(
                    "Dropping foreign-tenant hit | tenant=%s point=%s", tenant_id, obj.uuid,
                )
                continue
            hits.append(SearchHit(
                chunk_id=props.get("chunk_id", ""),
                document_id=props.get("document_id", ""),
                text=props.get("text", ""),
                score=round(1.0 - (obj.metadata.distance or 0.0), 4),
            ))

        hits.sort(key=lambda h: h.score, reverse=True)
        logger.debug("Weaviate search | tenant=%s limit=%d hits=%d", tenant_id, limit, len(hits))
        return hits

    async def count(self, tenant_id: UUID, document_id: UUID | None = None) -> int:
        try:
            agg = await asyncio.to_thread(
                self._collection().aggregate.over_all,
                filters=self._tenant_filter(tenant_id, document_id),
                total_count=True,
            )
        except WeaviateBaseError as exc:
            raise VectorStoreUnavailable(str(exc)) from exc
        return agg.total_count or 0

    # ------------------------------------------------------------------
    # Deletes
    # ------------------------------------------------------------------

    async def _delete_where(self, where) -> int:
        try:
            result = await asyncio.to_thread(self._collection().data.delete_many, where=where)
        except WeaviateBaseError as exc:
            raise VectorStoreUnavailable(str(exc)) from exc
        if result.failed:
            raise VectorStoreUnavailable(f"{result.failed} point(s) could not be deleted")
        return result.successful

    async def delete_by_tenant(self, tenant_id: UUID) -> int:
        deleted = await self._delete_where(self._tenant_filter(tenant_id))
        logger.info("Weaviate delete_by_tenant | tenant=%s deleted=%d", tenant_id, deleted)
        return deleted

    async def delete_by_document(self, tenant_id: UUID, document_id: UUID) -> int:
        deleted = await self._delete_where(self._tenant_filter(tenant_id, document_id))
        logger.info(
            "Weaviate delete_by_document | tenant=%s doc=%s deleted=%d",
            tenant_id, document_id, deleted,
        )
        return deleted


# ---------------------------------------------------------------------------
# Client factory: call once at startup and share via app state
# ---------------------------------------------------------------------------

def create_weaviate_client() -> weaviate.WeaviateClient:
    """
    Create and return a connected Weaviate client.
    Supports both local (Docker) and Weaviate Cloud modes.
    """
    try:
        if settings.weaviate_api_key:
            return weaviate.connect_to_weaviate_cloud(
                cluster_url=settings.weaviate_url,
                auth_credentials=weaviate.auth.AuthApiKey(settings.weaviate_api_key),
            )
        return weaviate.connect_to_local(
            host=settings.weaviate_host,
            port=settings.weaviate_port,
            grpc_port=settings.weaviate_grpc_port,
        )
    except WeaviateBaseError as exc:
        raise VectorStoreUnavailable(str(exc)) from exc
