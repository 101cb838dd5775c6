"""Vendor dialect adapters: one decoded frame in, one text delta out.

Each vendor wraps its incremental text differently. The adapter only reads
the field that carries the delta; everything else in the payload (usage,
stop reasons, safety ratings) is ignored.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from bpstudio.schemas.providers import Framing, ProviderKind
from bpstudio.schemas.streaming import StreamFrame

logger = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"

# Anthropic event type carrying generated text
_ANTHROPIC_TEXT_EVENT = "content_block_delta"


def sse_payload(line: str) -> str | None:
    """Return the payload of an SSE ``data:`` line, or None for other lines."""
    if not line.startswith(SSE_DATA_PREFIX):
        return None
    payload = line[len(SSE_DATA_PREFIX):]
    if payload.startswith(" "):
        payload = payload[1:]
    return payload.strip()


def _first(items: Any) -> Any:
    if isinstance(items, list) and items:
        return items[0]
    return None


def _get(obj: Any, key: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(key)
    return None


def _as_text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def openai_delta(data: Any) -> str:
    """``choices[0].delta.content`` of an OpenAI-compatible chunk."""
    return _as_text(_get(_get(_first(_get(data, "choices")), "delta"), "content"))


def anthropic_delta(data: Any) -> str | None:
    """``delta.text`` of a ``content_block_delta`` event; None for other events."""
    if _get(data, "type") != _ANTHROPIC_TEXT_EVENT:
        return None
    return _as_text(_get(_get(data, "delta"), "text"))


def google_delta(data: Any) -> str:
    """``candidates[0].content.parts[0].text`` of a Gemini response object."""
    candidate = _first(_get(data, "candidates"))
    part = _first(_get(_get(candidate, "content"), "parts"))
    return _as_text(_get(part, "text"))


def extract_delta(frame: StreamFrame, kind: ProviderKind) -> str | None:
    """Map one frame to its text delta.

    Returns:
        The delta text, ``""`` when the payload lacks the expected field,
        or None when the frame carries no delta at all (non-data lines,
        the ``[DONE]`` sentinel, unparseable JSON, non-text events).
    """
    if kind is ProviderKind.GOOGLE:
        if frame.framing is not Framing.JSON:
            return None
        return google_delta(frame.data)

    payload = sse_payload(frame.text)
    if payload is None or payload == DONE_SENTINEL:
        return None
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        logger.debug("Dropping malformed %s frame: %.80s", kind, payload)
        return None

    if kind is ProviderKind.ANTHROPIC:
        return anthropic_delta(data)
    return openai_delta(data)
