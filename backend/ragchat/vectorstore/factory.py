"""
Vector Index Factory

Selects the configured backend. The rest of the app only imports
get_vector_index() and never touches the concrete classes directly.

The index (and its client connection) is created once per process and
shared: the API lifespan calls it at startup, Celery workers on first use.

Usage in a FastAPI route (via dependency):
    index: VectorIndexBase = Depends(get_vector_index)
"""

from __future__ import annotations

from functools import lru_cache

from ragchat.core.config import settings
from ragchat.processing.embeddings import EmbeddingGateway
from ragchat.vectorstore.base import VectorIndexBase


@lru_cache(maxsize=1)
def get_vector_index() -> VectorIndexBase:
    """Return the process-wide vector index for the configured backend."""
    backend = settings.vector_store_backend.lower()

    if backend == "weaviate":
        from ragchat.vectorstore.weaviate_store import WeaviateVectorIndex, create_weaviate_client
        return WeaviateVectorIndex(
            client=create_weaviate_client(),
            embedder=EmbeddingGateway(),
        )

    raise ValueError(
        f"Unknown vector store backend: '{backend}'. "
        f"Valid options: 'weaviate'"
    )
