"""
Word-Window Chunker
═══════════════════

Splits document text into fixed-size, order-preserving word windows.

Algorithm
─────────
  1. Collapse every run of whitespace (spaces, tabs, newlines, NBSP …)
     into a single space and trim both ends.
  2. Empty result → zero chunks.
  3. Split on single spaces into words.
  4. Emit consecutive groups of exactly `chunk_size` words; the final
     group may be shorter. No overlap between chunks.

Guarantees:
  - " ".join(chunk_text(t)) == normalize_whitespace(t) for every input.
  - Words are never split; order and content are preserved verbatim.
  - Pure and deterministic — no I/O, no model, no tokenizer.

The chunk is the unit of embedding and retrieval, so every consumer
(vector index, event extractor, document detail view) relies on the
chunk_index ordering produced here.
"""

from __future__ import annotations

import re

DEFAULT_CHUNK_SIZE = 300   # words

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace runs to single spaces and trim."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def count_words(text: str) -> int:
    normalized = normalize_whitespace(text)
    return len(normalized.split(" ")) if normalized else 0


def chunk_text(text: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> list[str]:
    """
    Split `text` into chunks of `chunk_size` words.

    Args:
        text:       Raw document text (any whitespace layout).
        chunk_size: Words per chunk; must be >= 1.

    Returns:
        Ordered list of chunk strings; empty for empty/whitespace input.
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")

    normalized = normalize_whitespace(text)
    if not normalized:
        return []

    words = normalized.split(" ")
    return [
        " ".join(words[i : i + chunk_size])
        for i in range(0, len(words), chunk_size)
    ]
