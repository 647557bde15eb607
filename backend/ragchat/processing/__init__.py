"""
Document Processing Package
════════════════════════════

Building blocks of the ingestion pipeline:

  Text Extraction → Word-Window Chunking → Embedding

Modules
───────
  extractor.py  pypdf text-layer extraction (runs in a worker thread)
  chunking.py   Whitespace-normalising fixed-size word chunker
  embeddings.py Embedding gateway with shape normalisation and retry

Every component is stateless and dependency-injected. Orchestration lives
in ragchat.services.
"""

from ragchat.processing.chunking import chunk_text, count_words, normalize_whitespace
from ragchat.processing.embeddings import EmbeddingGateway, normalize_vector
from ragchat.processing.extractor import ExtractionResult, extract_pdf_text, looks_like_pdf

__all__ = [
    "chunk_text",
    "count_words",
    "normalize_whitespace",
    "EmbeddingGateway",
    "normalize_vector",
    "ExtractionResult",
    "extract_pdf_text",
    "looks_like_pdf",
]
