"""
Repositories — every relational read/write the services perform.

Each query filters on tenant_id explicitly; the only unscoped lookup is
DocumentRepository.get_unscoped(), used by Celery jobs that receive a
document id enqueued on behalf of an authenticated tenant.

Services depend on these classes rather than on AsyncSession so the unit
tests can swap in in-memory fakes.
"""

from __future__ import annotations

import logging
from typing import Sequence
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from ragchat.core.exceptions import ConversationConflict
from ragchat.models.conversations import Conversation
from ragchat.models.documents import Chunk, DetectedEvent, Document

logger = logging.getLogger(__name__)


class DocumentRepository:
    """Documents plus the rows that belong to them (chunks, detected events)."""

    def __init__(self, session: AsyncSession) -> None:
        self._db = session

    async def commit(self) -> None:
        await self._db.commit()

    async def rollback(self) -> None:
        await self._db.rollback()

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def add(self, document: Document) -> Document:
        self._db.add(document)
        await self._db.flush()
        return document

    async def get(self, tenant_id: UUID, document_id: UUID) -> Document | None:
        result = await self._db.execute(
            select(Document).where(
                Document.id == document_id,
                Document.tenant_id == tenant_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_unscoped(self, document_id: UUID) -> Document | None:
        return await self._db.get(Document, document_id)

    async def list_with_chunk_counts(self, tenant_id: UUID) -> list[tuple[Document, int]]:
        """Tenant's documents, newest first, each with its chunk count."""
        result = await self._db.execute(
            select(Document, func.count(Chunk.id))
            .outerjoin(Chunk, Chunk.document_id == Document.id)
            .where(Document.tenant_id == tenant_id)
            .group_by(Document.id)
            .order_by(Document.uploaded_at.desc())
        )
        return [(doc, count) for doc, count in result.all()]

    async def delete(self, document: Document) -> None:
        await self._db.delete(document)
        await self._db.flush()

    async def delete_all_for_tenant(self, tenant_id: UUID) -> int:
        result = await self._db.execute(
            delete(Document).where(Document.tenant_id == tenant_id)
        )
        return result.rowcount or 0

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def add_chunks(self, chunks: Sequence[Chunk]) -> list[Chunk]:
        self._db.add_all(chunks)
        await self._db.flush()
        return list(chunks)

    async def list_chunks(self, document_id: UUID) -> list[Chunk]:
        result = await self._db.execute(
            select(Chunk)
            .where(Chunk.document_id == document_id)
            .order_by(Chunk.chunk_index)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Detected events
    # ------------------------------------------------------------------

    async def has_events(self, document_id: UUID) -> bool:
        result = await self._db.execute(
            select(DetectedEvent.id).where(DetectedEvent.document_id == document_id).limit(1)
        )
        return result.first() is not None

    async def add_events(self, events: Sequence[DetectedEvent]) -> None:
        self._db.add_all(events)
        await self._db.flush()

    async def list_events(self, tenant_id: UUID, document_id: UUID) -> list[DetectedEvent]:
        result = await self._db.execute(
            select(DetectedEvent)
            .where(
                DetectedEvent.document_id == document_id,
                DetectedEvent.tenant_id == tenant_id,
            )
            .order_by(DetectedEvent.confidence.desc())
        )
        return list(result.scalars().all())


class ConversationRepository:

    def __init__(self, session: AsyncSession) -> None:
        self._db = session

    async def get(self, tenant_id: UUID, conversation_id: UUID) -> Conversation | None:
        result = await self._db.execute(
            select(Conversation).where(
                Conversation.id == conversation_id,
                Conversation.tenant_id == tenant_id,
            )
        )
        return result.scalar_one_or_none()

    async def list(self, tenant_id: UUID) -> list[Conversation]:
        result = await self._db.execute(
            select(Conversation)
            .where(Conversation.tenant_id == tenant_id)
            .order_by(Conversation.updated_at.desc())
        )
        return list(result.scalars().all())

    async def save(self, conversation: Conversation) -> Conversation:
        """
        Insert or update and commit in one step.

        Raises:
            ConversationConflict: the row's version changed since it was loaded.
        """
        self._db.add(conversation)
        try:
            await self._db.commit()
        except StaleDataError as exc:
            await self._db.rollback()
            logger.warning("Conversation version conflict | conversation=%s", conversation.id)
            raise ConversationConflict(conversation.id) from exc
        return conversation

    async def delete(self, conversation: Conversation) -> None:
        await self._db.delete(conversation)
        await self._db.commit()
