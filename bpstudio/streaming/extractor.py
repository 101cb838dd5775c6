"""Blueprint extraction from streamed assistant text.

The assistant reply is natural language that may contain a T3D document
anywhere: in a ``blueprint``/``t3d`` fenced block, in an untagged fenced
block, or as raw text. Extraction runs on the whole running text after
every delta, so the document is usually still incomplete when first
found. Three tiers are tried in priority order:

1. the first fenced block tagged with a recognized tag,
2. the first untagged fenced block containing the start marker,
3. raw text from the first start marker to the last end marker, or to
   the end of the available text while no end marker has arrived.

While streaming, an open fence runs to the end of the input. At end of
stream only complete documents count: fences must be closed and raw text
must contain the end marker.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import NamedTuple

START_MARKER = "Begin Object"
END_MARKER = "End Object"
FENCE_TAGS = ("blueprint", "t3d")

_FENCE = "```"


class FencedBlock(NamedTuple):
    """A fenced code block found in markdown text."""

    tag: str
    content: str
    closed: bool


def fenced_blocks(text: str) -> list[FencedBlock]:
    """Split text into fenced blocks, in order of appearance.

    A fence opens a block only once its tag line is complete. The last
    block may be unterminated, in which case it runs to end of input.
    """
    blocks: list[FencedBlock] = []
    pos = 0
    while True:
        open_at = text.find(_FENCE, pos)
        if open_at < 0:
            break
        line_end = text.find("\n", open_at + len(_FENCE))
        if line_end < 0:
            break
        tag = text[open_at + len(_FENCE):line_end].strip()
        body_start = line_end + 1
        close_at = text.find(_FENCE, body_start)
        if close_at < 0:
            # Backticks at the tail may be a closing fence still arriving
            blocks.append(FencedBlock(tag, text[body_start:].rstrip("`"), closed=False))
            break
        blocks.append(FencedBlock(tag, text[body_start:close_at], closed=True))
        pos = close_at + len(_FENCE)
    return blocks


def _is_tagged(block: FencedBlock, tags: Iterable[str]) -> bool:
    return block.tag.lower() in {t.lower() for t in tags}


def find_streaming_candidate(
    text: str,
    *,
    start_marker: str = START_MARKER,
    end_marker: str = END_MARKER,
    fence_tags: Iterable[str] = FENCE_TAGS,
) -> str | None:
    """Return the best current candidate document in partial text, untrimmed.

    The candidate may not contain the start marker yet (a tagged fence
    whose body has not arrived); callers decide whether to surface it.
    """
    blocks = fenced_blocks(text)
    for block in blocks:
        if _is_tagged(block, fence_tags):
            return block.content
    for block in blocks:
        if not block.tag and start_marker in block.content:
            return block.content

    start = text.find(start_marker)
    if start < 0:
        return None
    end = text.rfind(end_marker)
    if end > start:
        return text[start:end + len(end_marker)]
    return text[start:]


def find_final_document(
    text: str,
    *,
    start_marker: str = START_MARKER,
    end_marker: str = END_MARKER,
    fence_tags: Iterable[str] = FENCE_TAGS,
) -> str | None:
    """Return the complete document in finished text, trimmed, or None."""
    blocks = [b for b in fenced_blocks(text) if b.closed]
    for block in blocks:
        if _is_tagged(block, fence_tags):
            content = block.content.strip()
            return content if start_marker in content else None
    for block in blocks:
        if not block.tag and _has_document(block.content, start_marker, end_marker):
            return block.content.strip()

    start = text.find(start_marker)
    end = text.rfind(end_marker)
    if start < 0 or end <= start:
        return None
    return text[start:end + len(end_marker)].strip()


def _has_document(text: str, start_marker: str, end_marker: str) -> bool:
    start = text.find(start_marker)
    return start >= 0 and text.find(end_marker, start) >= 0


class BlueprintExtractor:
    """Surfaces the blueprint embedded in a growing reply, once per change.

    ``update`` is called with the full running text after every delta and
    returns a document only when it contains the start marker and differs
    from the last one surfaced. ``finalize`` is called once at end of
    stream and always returns the complete document when there is one,
    even if it equals the last streamed candidate.
    """

    def __init__(
        self,
        *,
        start_marker: str = START_MARKER,
        end_marker: str = END_MARKER,
        fence_tags: Iterable[str] = FENCE_TAGS,
    ) -> None:
        self._start_marker = start_marker
        self._end_marker = end_marker
        self._fence_tags = tuple(fence_tags)
        self._last: str | None = None

    @property
    def last(self) -> str | None:
        """The most recently surfaced document."""
        return self._last

    def reset(self) -> None:
        self._last = None

    def update(self, text: str) -> str | None:
        candidate = find_streaming_candidate(
            text,
            start_marker=self._start_marker,
            end_marker=self._end_marker,
            fence_tags=self._fence_tags,
        )
        if candidate is None or self._start_marker not in candidate:
            return None
        if candidate == self._last:
            return None
        self._last = candidate
        return candidate

    def finalize(self, text: str) -> str | None:
        document = find_final_document(
            text,
            start_marker=self._start_marker,
            end_marker=self._end_marker,
            fence_tags=self._fence_tags,
        )
        if document is None:
            return None
        self._last = document
        return document
