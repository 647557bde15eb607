"""
PDF Text Extraction
═══════════════════

Pulls the native text layer out of a PDF with pypdf. Parsing is CPU-bound,
so the async entry point runs it in a worker thread.

  extract_pdf_text(data)  →  ExtractionResult(text, page_count, elapsed_ms)

Pages are joined with a blank line; the chunker collapses whitespace
afterwards so the separator does not leak into chunks. Scanned PDFs with
no text layer come back empty, and the pipeline treats that as a
NoExtractableText failure. There is no OCR fallback.
"""

from __future__ import annotations

import asyncio
import io
import logging
import time
from dataclasses import dataclass

from pypdf import PdfReader

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF"


@dataclass
class ExtractionResult:
    text:       str
    page_count: int
    elapsed_ms: float

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()


def looks_like_pdf(data: bytes) -> bool:
    """True if the payload starts with the PDF magic bytes."""
    return data[:4] == PDF_MAGIC


def _extract_sync(data: bytes) -> ExtractionResult:
    t0     = time.monotonic()
    reader = PdfReader(io.BytesIO(data))
    pages  = [page.extract_text() or "" for page in reader.pages]
    return ExtractionResult(
        text="\n\n".join(pages),
        page_count=len(pages),
        elapsed_ms=(time.monotonic() - t0) * 1000,
    )


async def extract_pdf_text(data: bytes) -> ExtractionResult:
    """Extract the text layer of a PDF without blocking the event loop."""
    result = await asyncio.to_thread(_extract_sync, data)
    logger.info(
        "Extraction | strategy=pypdf pages=%d chars=%d elapsed_ms=%.0f",
        result.page_count, len(result.text), result.elapsed_ms,
    )
    return result
