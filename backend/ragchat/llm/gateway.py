"""
LLM Gateway — Single Entry Point for Chat Completions

Both the response composer and the event extractor call the generative
model through LLMGateway.invoke(). The gateway:

  1. sends the LangChain message list to ChatOpenAI
  2. measures latency and logs one line per call
  3. classifies provider errors:
        overload / rate limit / 5xx  → GenerationOverloaded (retryable)
        anything else                → GenerationFailed
     Neither is retried here; callers decide (the composer surfaces the
     error, the event extractor logs it and yields no events).

Usage::

    gateway  = LLMGateway()
    response = await gateway.invoke(
        LLMGateway.build_messages(system_prompt, question),
    )
    response.content
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from ragchat.core.config import settings
from ragchat.core.exceptions import GenerationFailed, GenerationOverloaded

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Overload detection
# ---------------------------------------------------------------------------

_OVERLOAD_EXCEPTION_TYPES = (
    # openai
    "RateLimitError",
    "ServiceUnavailableError",
    "InternalServerError",
    "OverloadedError",
)

_OVERLOAD_STATUS_CODES = {429, 500, 502, 503, 504, 529}


def _is_overload(exc: Exception) -> bool:
    """True if the provider reported overload, throttling or a server-side outage."""
    name = type(exc).__name__
    if any(name.endswith(t) for t in _OVERLOAD_EXCEPTION_TYPES):
        return True
    return getattr(exc, "status_code", None) in _OVERLOAD_STATUS_CODES


def get_chat_model() -> ChatOpenAI:
    return ChatOpenAI(
        model=settings.llm_model,
        api_key=settings.openai_api_key,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        max_retries=0,
    )


# ---------------------------------------------------------------------------
# LLMGateway
# ---------------------------------------------------------------------------

class LLMGateway:
    """
    Thin async wrapper around a LangChain chat model.

    Instantiate once per process; safe for concurrent use.
    """

    def __init__(self, model: Any | None = None) -> None:
        self._model = model or get_chat_model()

    async def invoke(self, messages: list[BaseMessage]) -> "GatewayResponse":
        """
        Run one completion.

        Raises:
            GenerationOverloaded: provider overload / rate limit.
            GenerationFailed:     any other provider error.
        """
        t0 = time.perf_counter()
        try:
            result = await self._model.ainvoke(messages)
        except Exception as exc:
            latency = (time.perf_counter() - t0) * 1000
            if _is_overload(exc):
                logger.warning(
                    "LLMGateway | overloaded model=%s latency_ms=%.1f error=%s",
                    settings.llm_model, latency, exc,
                )
                raise GenerationOverloaded(str(exc)) from exc
            logger.error(
                "LLMGateway | failed model=%s latency_ms=%.1f error=%s: %s",
                settings.llm_model, latency, type(exc).__name__, exc,
            )
            raise GenerationFailed(str(exc)) from exc

        latency = (time.perf_counter() - t0) * 1000
        content = result.content if isinstance(result.content, str) else str(result.content)

        response = GatewayResponse(
            content    = content,
            model_used = settings.llm_model,
            latency_ms = latency,
        )
        logger.info(
            "LLMGateway | model=%s messages=%d chars_out=%d latency_ms=%.1f",
            response.model_used, len(messages), len(content), latency,
        )
        return response

    # -----------------------------------------------------------------------
    # Convenience: build message list
    # -----------------------------------------------------------------------

    @staticmethod
    def build_messages(system_prompt: str, user_question: str) -> list[BaseMessage]:
        """Build a standard [SystemMessage, HumanMessage] list."""
        return [
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_question),
        ]


@dataclass
class GatewayResponse:
    """The result of a single LLM gateway call."""
    content:    str
    model_used: str
    latency_ms: float
