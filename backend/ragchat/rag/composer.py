"""
Retrieval-Augmented Response Composer

    respond(tenant, query, history, use_retrieval=True)
        │
        ├─ use_retrieval?  ──NO──────────────────────────┐
        │                                                │
        ▼                                                │
    VectorIndex.search(tenant, query, top_k)             │
        │                                                │
        ├─ 0 hits ───────────────────────────────────────┤
        │                                                ▼
        ▼                                       general system prompt
    grounded system prompt                      + history + question
    (hit texts joined by "\n\n---\n\n")
    + history + question
        │                                                │
        └──────────────► LLMGateway.invoke ◄─────────────┘
                                 │
                                 ▼
            ComposedResponse(answer, retrieved_chunks, grounded)

retrieved_chunks carries only chunk_id, document_id and score; the chunk
text never leaves the server in a chat response.

Generation errors propagate as GenerationFailed / GenerationOverloaded.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Mapping, Sequence
from uuid import UUID

from ragchat.core.config import settings
from ragchat.llm.gateway import LLMGateway
from ragchat.rag.prompts import build_chat_messages, general_system_prompt, grounded_system_prompt
from ragchat.vectorstore.base import VectorIndexBase

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetrievedChunkRef:
    chunk_id:    str
    document_id: str
    score:       float


@dataclass
class ComposedResponse:
    answer:           str
    retrieved_chunks: list[RetrievedChunkRef] = field(default_factory=list)
    grounded:         bool = False


class ResponseComposer:
    """Answers a chat turn, grounding it in the tenant's documents when possible."""

    def __init__(self, index: VectorIndexBase, llm: LLMGateway) -> None:
        self._index = index
        self._llm   = llm

    async def respond(
        self,
        tenant_id:     UUID,
        query:         str,
        history:       Sequence[Mapping[str, str]],
        use_retrieval: bool = True,
        top_k:         int | None = None,
    ) -> ComposedResponse:
        t0    = time.monotonic()
        top_k = top_k or settings.retrieval_top_k

        hits = []
        if use_retrieval:
            hits = await self._index.search(tenant_id, query, limit=top_k)

        if hits:
            system_prompt = grounded_system_prompt(h.text for h in hits)
        else:
            system_prompt = general_system_prompt()

        response = await self._llm.invoke(build_chat_messages(system_prompt, history, query))

        composed = ComposedResponse(
            answer=response.content,
            retrieved_chunks=[
                RetrievedChunkRef(chunk_id=h.chunk_id, document_id=h.document_id, score=h.score)
                for h in hits
            ],
            grounded=bool(hits),
        )
        logger.info(
            "Compose | tenant=%s retrieval=%s hits=%d grounded=%s history=%d elapsed_ms=%.0f",
            tenant_id, use_retrieval, len(hits), composed.grounded, len(history),
            (time.monotonic() - t0) * 1000,
        )
        return composed
