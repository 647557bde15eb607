"""
Prompt templates and message builders.

Two conversational prompts share one block of guidance:
  - GROUNDED: the retrieved passages are appended to the system prompt.
  - GENERAL:  no passages; plain conversational assistant.

The passages are joined with a bare separator (no numbering, no source
labels) so the model has nothing like "[Context 1]" to echo back.

The event extraction prompt asks for a strict JSON array; the parser in
ragchat.services.events still tolerates fenced or chatty output.
"""

from __future__ import annotations

from typing import Final, Iterable, Mapping

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

CONTEXT_SEPARATOR: Final[str] = "\n\n---\n\n"

_SHARED_GUIDANCE: Final[str] = """\
- Answer in the same language as the user's question.
- Reply the way a person would in conversation. Do not mention context, \
sources, documents, passages or how you found the information unless the user \
asks about it. Never write phrases like "Based on the context" or \
"According to the information provided".
- Be concise and accurate.
"""

GROUNDED_SYSTEM_TEMPLATE: Final[str] = """\
You are a helpful assistant. Use the background knowledge below to answer the \
user's question. If it does not contain the answer, say briefly that you do \
not know rather than guessing.

Guidelines:
{guidance}
Background knowledge:
{context}
"""

GENERAL_SYSTEM_TEMPLATE: Final[str] = """\
You are a helpful, friendly assistant.

Guidelines:
{guidance}"""

EVENT_EXTRACTION_TEMPLATE: Final[str] = '''\
You extract time-based events from text.

Rules:
- Only extract events with explicit times or schedules.
- Do NOT guess or invent.
- Skip anything uncertain.
- Output ONLY a valid JSON array. No explanations, no markdown, no text before or after.
- Start your response with [ and end with ]
- If no events exist, return exactly: []

Schema:
[
  {{
    "title": string,
    "start_time": string | null,
    "end_time": string | null,
    "recurrence": string | null,
    "confidence": number
  }}
]

Text:
"""
{text}
"""

Return ONLY the JSON array, nothing else:
'''


def format_context(texts: Iterable[str]) -> str:
    return CONTEXT_SEPARATOR.join(texts)


def grounded_system_prompt(texts: Iterable[str]) -> str:
    return GROUNDED_SYSTEM_TEMPLATE.format(
        guidance=_SHARED_GUIDANCE,
        context=format_context(texts),
    )


def general_system_prompt() -> str:
    return GENERAL_SYSTEM_TEMPLATE.format(guidance=_SHARED_GUIDANCE)


def event_extraction_prompt(text: str) -> str:
    return EVENT_EXTRACTION_TEMPLATE.format(text=text)


def history_to_messages(history: Iterable[Mapping[str, str]]) -> list[BaseMessage]:
    """Map stored {role, content} turns to LangChain chat messages."""
    messages: list[BaseMessage] = []
    for turn in history:
        if turn.get("role") == "assistant":
            messages.append(AIMessage(content=turn.get("content", "")))
        else:
            messages.append(HumanMessage(content=turn.get("content", "")))
    return messages


def build_chat_messages(
    system_prompt: str,
    history:       Iterable[Mapping[str, str]],
    question:      str,
) -> list[BaseMessage]:
    return [
        SystemMessage(content=system_prompt),
        *history_to_messages(history),
        HumanMessage(content=question),
    ]
