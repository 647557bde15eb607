"""
SQLAlchemy ORM Model — Conversations

Messages are stored inline as a JSONB array of {"role", "content"} objects.
Appends reassign the list (JSONB columns are not mutation-tracked).

Concurrency: `version` is the mapper's version_id_col. Every UPDATE is
issued as `... WHERE id = :id AND version = :loaded_version`; when another
writer got there first, zero rows match and SQLAlchemy raises StaleDataError,
which the conversation service turns into ConversationConflict.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, Text, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from ragchat.models.documents import Base

TITLE_MAX_CHARS = 50


class Conversation(Base):
    __tablename__ = "conversations"
    __table_args__ = (
        Index("idx_conversations_tenant_updated", "tenant_id", "updated_at"),
        {"schema": "ragchat"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    title:     Mapped[str]       = mapped_column(Text, nullable=False)
    messages:  Mapped[list]      = mapped_column(JSONB, nullable=False, default=list, server_default="[]")
    version:   Mapped[int]       = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
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

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<Conversation id={self.id} tenant={self.tenant_id} "
            f"messages={len(self.messages or [])} version={self.version}>"
        )


def make_title(first_message: str) -> str:
    return first_message[:TITLE_MAX_CHARS]
