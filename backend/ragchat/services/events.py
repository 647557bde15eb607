"""
Event Extractor — scheduled events mined from a document's text

    extract_events(document_id)
        │
        ├─ document missing                     → DocumentNotFound
        ├─ events already stored for document   → skipped (no model call)
        ├─ combined chunk text < 50 chars       → skipped
        ▼
    LLM (strict JSON-array prompt)
        │   generation error → logged, zero events
        ▼
    parse_events_response()   tolerant JSON array parsing, never raises
        ▼
    sanitize_events()         title / confidence / time checks
        ▼
    DetectedEvent rows (source_text = combined[:1000])

Nothing in here is surfaced to a user request: it runs as a Celery job
after ingestion and only ever logs its failures.
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from dateutil import parser as dateutil_parser

from ragchat.core.config import settings
from ragchat.core.exceptions import DocumentNotFound, GenerationFailed, ParseFailure
from ragchat.db.repositories import DocumentRepository
from ragchat.llm.gateway import LLMGateway
from ragchat.models.documents import DetectedEvent
from ragchat.rag.prompts import event_extraction_prompt

logger = logging.getLogger(__name__)

_FENCED_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------

@dataclass
class CandidateEvent:
    """An event that survived sanitization, ready to persist."""
    title:      str
    start_time: datetime | None
    end_time:   datetime | None
    recurrence: str | None
    confidence: float


@dataclass
class ExtractionOutcome:
    skipped:         bool = False
    detected_count:  int = 0     # rows written
    raw_count:       int = 0     # items the model returned
    sanitized_count: int = 0     # items passing title/confidence checks
    rejected_count:  int = 0     # sanitized items with no usable time info


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _load_array(candidate: str) -> list | None:
    try:
        parsed = json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return None
    return parsed if isinstance(parsed, list) else None


def parse_events_response(raw: str) -> list:
    """
    Pull a JSON array out of a model reply.

    Tried in order: the whole reply, the first fenced code block, the span
    from the first "[" to the last "]". A candidate that is valid JSON but
    not an array falls through to the next one, so `{"events": [...]}` still
    yields its array. When no candidate works the result is [] and a
    ParseFailure is logged.
    """
    text = (raw or "").strip()
    candidates = [text]

    fenced = _FENCED_BLOCK_RE.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())

    start, end = text.find("["), text.rfind("]")
    if start != -1 and end > start:
        candidates.append(text[start : end + 1])

    try:
        for candidate in candidates:
            parsed = _load_array(candidate)
            if parsed is not None:
                return parsed
        raise ParseFailure("no JSON array found in model output")
    except ParseFailure as exc:
        logger.warning("Event parse failed | error=%s preview=%r", exc.message, text[:200])
        return []


def parse_event_time(value: Any) -> datetime | None:
    """Parse a model-supplied timestamp. Invalid → None; naive → UTC."""
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = dateutil_parser.isoparse(value.strip())
    except (ValueError, OverflowError):
        try:
            parsed = dateutil_parser.parse(value.strip())
        except (ValueError, OverflowError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# Sanitization
# ---------------------------------------------------------------------------

def _is_finite_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not isinstance(value, float) or math.isfinite(value)


def sanitize_events(items: list, min_confidence: float | None = None) -> list[dict]:
    """
    Keep items with a non-blank string title and a finite numeric confidence
    at or above the threshold. Titles are trimmed and confidence clamped to [0, 1].
    """
    threshold = settings.event_min_confidence if min_confidence is None else min_confidence
    kept: list[dict] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        title = item.get("title")
        if not isinstance(title, str) or not title.strip():
            continue
        confidence = item.get("confidence")
        if not _is_finite_number(confidence) or confidence < threshold:
            continue
        kept.append({
            "title":      title.strip(),
            "start_time": item.get("start_time"),
            "end_time":   item.get("end_time"),
            "recurrence": item.get("recurrence"),
            "confidence": float(min(1.0, max(0.0, confidence))),
        })
    return kept


def to_candidate(item: dict) -> CandidateEvent | None:
    """None when the event has no start, no end and no recurrence."""
    start = parse_event_time(item.get("start_time"))
    end   = parse_event_time(item.get("end_time"))

    recurrence = item.get("recurrence")
    if not isinstance(recurrence, str) or not recurrence.strip():
        recurrence = None
    else:
        recurrence = recurrence.strip()

    if start is None and end is None and recurrence is None:
        return None
    return CandidateEvent(
        title=item["title"],
        start_time=start,
        end_time=end,
        recurrence=recurrence,
        confidence=item["confidence"],
    )


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------

class EventExtractor:

    def __init__(self, repo: DocumentRepository, llm: LLMGateway) -> None:
        self._repo = repo
        self._llm  = llm

    async def extract_events(self, document_id: UUID) -> ExtractionOutcome:
        doc = await self._repo.get_unscoped(document_id)
        if doc is None:
            raise DocumentNotFound(document_id)

        if await self._repo.has_events(document_id):
            logger.info("Event detection skipped | doc=%s reason=already_detected", document_id)
            return ExtractionOutcome(skipped=True)

        chunks   = await self._repo.list_chunks(document_id)
        combined = "\n".join(c.content for c in chunks)
        if len(combined) < settings.event_min_text_chars:
            logger.info(
                "Event detection skipped | doc=%s reason=too_short chars=%d",
                document_id, len(combined),
            )
            return ExtractionOutcome(skipped=True)

        raw_items = await self._ask_model(document_id, combined)
        sanitized = sanitize_events(raw_items)

        outcome = ExtractionOutcome(raw_count=len(raw_items), sanitized_count=len(sanitized))
        source_text = combined[: settings.event_source_text_chars]

        rows: list[DetectedEvent] = []
        for item in sanitized:
            candidate = to_candidate(item)
            if candidate is None:
                outcome.rejected_count += 1
                continue
            rows.append(DetectedEvent(
                tenant_id=doc.tenant_id,
                document_id=doc.id,
                title=candidate.title,
                start_time=candidate.start_time,
                end_time=candidate.end_time,
                recurrence=candidate.recurrence,
                confidence=candidate.confidence,
                source_text=source_text,
            ))

        if rows:
            await self._repo.add_events(rows)
            await self._repo.commit()
        outcome.detected_count = len(rows)

        logger.info(
            "Event detection complete | doc=%s raw=%d sanitized=%d created=%d rejected=%d",
            document_id, outcome.raw_count, outcome.sanitized_count,
            outcome.detected_count, outcome.rejected_count,
        )
        return outcome

    async def _ask_model(self, document_id: UUID, text: str) -> list:
        messages = LLMGateway.build_messages(
            "You output only JSON.",
            event_extraction_prompt(text),
        )
        try:
            response = await self._llm.invoke(messages)
        except GenerationFailed as exc:
            logger.error("Event detection model call failed | doc=%s error=%s", document_id, exc.message)
            return []
        return parse_events_response(response.content)
