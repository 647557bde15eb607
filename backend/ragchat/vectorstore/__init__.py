from ragchat.vectorstore.base import ChunkPayload, SearchHit, VectorIndexBase
from ragchat.vectorstore.factory import get_vector_index

__all__ = ["VectorIndexBase", "ChunkPayload", "SearchHit", "get_vector_index"]
