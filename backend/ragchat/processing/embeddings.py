"""
Embedding Gateway  —  Fixed-Dimension Text Vectors with Retry
══════════════════════════════════════════════════════════════

Converts text into a dense vector of exactly `dimensions` floats using the
configured OpenAI embedding model (via langchain-openai).

Contract shared by every consumer (vector index, retrieval):
  • dimension D = settings.embedding_dimensions (384 by default)
  • similarity metric = cosine
  • same model for ingestion and query time

Shape normalisation:
  Embedding providers do not agree on response shapes. Depending on the
  backend a single input can come back as
      [v1, v2, …]                 flat vector
      [[v1, v2, …]]               batch of one
      [[t1v1, …], [t2v1, …], …]   token-level matrix
  or as a numpy array. `normalize_vector()` flattens any of these into a
  plain list[float] and verifies the length against D.

Retry policy:
  Transient errors (rate limit, timeout, connection, 5xx) are retried with
  exponential back-off up to `max_retries`. Anything else, or exhausting the
  retries, raises EmbeddingUnavailable carrying the upstream message.
  Errors are never swallowed — the orchestration layer decides what to do.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Sequence

from langchain_openai import OpenAIEmbeddings

from ragchat.core.config import settings
from ragchat.core.exceptions import EmbeddingUnavailable

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

RETRY_BASE_DELAY = 1.0     # seconds: doubles each retry
RETRY_MAX_DELAY  = 20.0    # cap

_TRANSIENT_EXCEPTION_TYPES = (
    # openai
    "RateLimitError",
    "APITimeoutError",
    "APIConnectionError",
    "InternalServerError",
    # httpx / generic
    "ConnectTimeout",
    "ReadTimeout",
    "TimeoutError",
    "RemoteProtocolError",
)


def _is_transient(exc: Exception) -> bool:
    """True if the exception class name suggests a transient provider error."""
    name = type(exc).__name__
    return any(name.endswith(t) for t in _TRANSIENT_EXCEPTION_TYPES)


# ---------------------------------------------------------------------------
# Shape normalisation
# ---------------------------------------------------------------------------

def _flatten(value: Any) -> list[float]:
    if hasattr(value, "tolist"):
        value = value.tolist()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return [float(value)]
    if isinstance(value, (list, tuple)):
        flat: list[float] = []
        for item in value:
            flat.extend(_flatten(item))
        return flat
    raise TypeError(f"unexpected embedding element type: {type(value).__name__}")


def normalize_vector(raw: Any, dimensions: int) -> list[float]:
    """
    Flatten a provider response into a list of `dimensions` floats.

    A batch of one (`[[...]]`) is unwrapped first so that a wrapped vector
    and a flat vector produce the same result.

    Raises:
        EmbeddingUnavailable: when the response is empty, non-numeric, or
                              has the wrong length.
    """
    if hasattr(raw, "tolist"):
        raw = raw.tolist()
    if isinstance(raw, (list, tuple)) and len(raw) == 1 and isinstance(raw[0], (list, tuple)):
        raw = raw[0]

    try:
        vector = _flatten(raw)
    except TypeError as exc:
        raise EmbeddingUnavailable(str(exc)) from exc

    if len(vector) != dimensions:
        raise EmbeddingUnavailable(
            f"expected a {dimensions}-dimension vector, got {len(vector)} values"
        )
    return vector


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------

def get_embedding_model() -> OpenAIEmbeddings:
    """Return the configured OpenAI embedding model at the shared dimension."""
    return OpenAIEmbeddings(
        model=settings.embedding_model,
        api_key=settings.openai_api_key,
        dimensions=settings.embedding_dimensions,
    )


class EmbeddingGateway:
    """
    Stateless embedding facade.

    Usage:
        gateway = EmbeddingGateway()
        vector  = await gateway.embed("when do I meet Bob")
        vectors = await gateway.embed_many([c.content for c in chunks])
    """

    def __init__(
        self,
        model:       Any | None = None,
        dimensions:  int | None = None,
        max_retries: int | None = None,
    ) -> None:
        self._model       = model or get_embedding_model()
        self._dimensions  = dimensions or settings.embedding_dimensions
        self._max_retries = settings.embedding_max_retries if max_retries is None else max_retries

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def embed(self, text: str) -> list[float]:
        """Embed a single string into a D-dimension vector."""
        raw = await self._with_retry(self._model.aembed_query, text)
        return normalize_vector(raw, self._dimensions)

    async def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed a batch of strings; output order matches input order."""
        if not texts:
            return []
        raw = await self._with_retry(self._model.aembed_documents, list(texts))
        if len(raw) != len(texts):
            raise EmbeddingUnavailable(
                f"provider returned {len(raw)} vectors for {len(texts)} inputs"
            )
        return [normalize_vector(r, self._dimensions) for r in raw]

    async def _with_retry(self, call, payload):
        last_error: Exception | None = None

        for attempt in range(self._max_retries + 1):
            if attempt > 0:
                delay = min(RETRY_BASE_DELAY * (2 ** (attempt - 1)), RETRY_MAX_DELAY)
                logger.warning(
                    "Embedding retry | attempt=%d delay=%.1fs error=%s",
                    attempt, delay, last_error,
                )
                await asyncio.sleep(delay)

            t0 = time.monotonic()
            try:
                result = await call(payload)
            except Exception as exc:
                last_error = exc
                if not _is_transient(exc):
                    logger.error("Non-retryable embedding error: %s: %s", type(exc).__name__, exc)
                    raise EmbeddingUnavailable(str(exc)) from exc
                continue

            logger.debug(
                "Embeddings | model=%s inputs=%d api_ms=%.0f",
                settings.embedding_model,
                len(payload) if isinstance(payload, list) else 1,
                (time.monotonic() - t0) * 1000,
            )
            return result

        raise EmbeddingUnavailable(str(last_error)) from last_error
