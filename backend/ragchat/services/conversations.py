"""
Conversation Service — chat turns with optimistic concurrency.

A turn:
  1. load the conversation (or start a new one, titled from the message)
  2. compose the answer from the stored history plus the new message
  3. append user + assistant turns and save in ONE commit

Nothing is written before the answer exists, so a generation failure
leaves an existing conversation untouched and never creates a new one.
Two concurrent turns on the same conversation both load version N; the
second commit matches zero rows and surfaces as ConversationConflict.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from uuid import UUID

from ragchat.core.exceptions import ConversationNotFound
from ragchat.db.repositories import ConversationRepository
from ragchat.models.conversations import Conversation, make_title
from ragchat.rag.composer import ResponseComposer, RetrievedChunkRef

logger = logging.getLogger(__name__)


@dataclass
class ChatResult:
    conversation_id:  UUID
    response:         str
    retrieved_chunks: list[RetrievedChunkRef] = field(default_factory=list)


class ConversationService:

    def __init__(
        self,
        repo:      ConversationRepository,
        composer:  ResponseComposer,
        tenant_id: UUID,
    ) -> None:
        self._repo      = repo
        self._composer  = composer
        self._tenant_id = tenant_id

    async def _require(self, conversation_id: UUID) -> Conversation:
        conversation = await self._repo.get(self._tenant_id, conversation_id)
        if conversation is None:
            raise ConversationNotFound(conversation_id)
        return conversation

    async def chat(
        self,
        message:         str,
        conversation_id: UUID | None = None,
        use_rag:         bool = True,
    ) -> ChatResult:
        conversation = await self._require(conversation_id) if conversation_id else None
        history      = list(conversation.messages) if conversation else []

        composed = await self._composer.respond(
            tenant_id=self._tenant_id,
            query=message,
            history=history,
            use_retrieval=use_rag,
        )

        turns = [
            {"role": "user",      "content": message},
            {"role": "assistant", "content": composed.answer},
        ]
        if conversation is None:
            conversation = Conversation(
                id=uuid.uuid4(),
                tenant_id=self._tenant_id,
                title=make_title(message),
                messages=turns,
            )
        else:
            conversation.messages = [*history, *turns]

        await self._repo.save(conversation)
        logger.info(
            "Chat turn saved | tenant=%s conversation=%s messages=%d grounded=%s",
            self._tenant_id, conversation.id, len(conversation.messages), composed.grounded,
        )

        return ChatResult(
            conversation_id=conversation.id,
            response=composed.answer,
            retrieved_chunks=composed.retrieved_chunks if use_rag else [],
        )

    async def list_conversations(self) -> list[Conversation]:
        return await self._repo.list(self._tenant_id)

    async def get_conversation(self, conversation_id: UUID) -> Conversation:
        return await self._require(conversation_id)

    async def delete_conversation(self, conversation_id: UUID) -> None:
        conversation = await self._require(conversation_id)
        await self._repo.delete(conversation)
        logger.info("Conversation deleted | tenant=%s conversation=%s", self._tenant_id, conversation_id)
