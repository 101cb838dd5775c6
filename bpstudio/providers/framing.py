"""Frame decoders for chunked streaming response bodies.

Response bodies arrive as byte chunks whose boundaries have nothing to do
with the vendor's framing. A decoder buffers those chunks and hands back
every frame that has become complete, keeping any partial tail for the
next chunk:

- LineFrameDecoder: SSE-style bodies (OpenAI, OpenRouter, Anthropic). One
  frame per non-blank line.
- BalancedJsonFrameDecoder: bodies that are a bare concatenation (or a
  JSON array) of objects (Google). One frame per top-level ``{...}``.

Malformed input never raises; undecodable spans are logged at debug level
and skipped.
"""

from __future__ import annotations

import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator

from bpstudio.schemas.providers import Framing, ProviderKind, framing_for
from bpstudio.schemas.streaming import StreamFrame

logger = logging.getLogger(__name__)


class _IncrementalText:
    """UTF-8 decoding that survives multi-byte characters split across chunks."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def decode(self, chunk: bytes | str, final: bool = False) -> str:
        if isinstance(chunk, str):
            return chunk
        return self._decoder.decode(chunk, final=final)


class LineFrameDecoder:
    """Split a byte stream into newline-terminated frames."""

    framing = Framing.LINE

    def __init__(self) -> None:
        self._text = _IncrementalText()
        self._buffer = ""

    def feed(self, chunk: bytes | str) -> list[StreamFrame]:
        """Consume a chunk and return the lines it completed."""
        self._buffer += self._text.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")
        return [frame for frame in map(self._frame, lines) if frame is not None]

    def flush(self) -> list[StreamFrame]:
        """Return the unterminated trailing line, if any, at end of stream."""
        self._buffer += self._text.decode(b"", final=True)
        tail, self._buffer = self._buffer, ""
        frame = self._frame(tail)
        return [frame] if frame is not None else []

    def _frame(self, line: str) -> StreamFrame | None:
        line = line.rstrip("\r")
        if not line.strip():
            return None
        return StreamFrame(framing=Framing.LINE, text=line)


class BalancedJsonFrameDecoder:
    """Extract top-level JSON objects from an unframed byte stream.

    Scans the buffer once, tracking brace depth. Braces inside string
    literals do not count, so a ``"}"`` in a text field cannot close an
    object early. Each time depth returns to zero the span is parsed; a
    span that parses becomes a frame and everything up to its end is
    consumed. A span that fails to parse stays in the buffer and is
    dropped once a later span is consumed.
    """

    framing = Framing.JSON

    def __init__(self) -> None:
        self._text = _IncrementalText()
        self._buffer = ""
        # Scanner state, kept across feeds so each character is read once
        self._pos = 0
        self._depth = 0
        self._start = -1
        self._in_string = False
        self._escaped = False

    def feed(self, chunk: bytes | str) -> list[StreamFrame]:
        """Consume a chunk and return every object it completed."""
        self._buffer += self._text.decode(chunk)
        return self._scan()

    def flush(self) -> list[StreamFrame]:
        """Make one last attempt to parse whatever is left at end of stream."""
        self._buffer += self._text.decode(b"", final=True)
        frames = self._scan()
        # Array punctuation around the objects is not content
        leftover = self._buffer.strip().strip("[],").strip()
        self._reset()
        if not leftover:
            return frames
        try:
            data = json.loads(leftover)
        except json.JSONDecodeError:
            logger.debug("Discarding %d unparsed trailing characters", len(leftover))
            return frames
        if isinstance(data, dict):
            frames.append(StreamFrame(framing=Framing.JSON, text=leftover, data=data))
        return frames

    def _scan(self) -> list[StreamFrame]:
        frames: list[StreamFrame] = []
        consumed = 0
        buffer = self._buffer

        for i in range(self._pos, len(buffer)):
            ch = buffer[i]
            if self._in_string:
                if self._escaped:
                    self._escaped = False
                elif ch == "\\":
                    self._escaped = True
                elif ch == '"':
                    self._in_string = False
                continue

            if ch == '"':
                if self._depth > 0:
                    self._in_string = True
            elif ch == "{":
                if self._depth == 0:
                    self._start = i
                self._depth += 1
            elif ch == "}" and self._depth > 0:
                self._depth -= 1
                if self._depth == 0:
                    span = buffer[self._start:i + 1]
                    try:
                        data = json.loads(span)
                    except json.JSONDecodeError:
                        logger.debug("Skipping unparseable JSON span (%d chars)", len(span))
                    else:
                        frames.append(StreamFrame(framing=Framing.JSON, text=span, data=data))
                        consumed = i + 1
                    self._start = -1

        self._pos = len(buffer)
        if consumed:
            self._buffer = buffer[consumed:]
            self._pos -= consumed
            if self._start >= 0:
                self._start -= consumed
        return frames

    def _reset(self) -> None:
        self._buffer = ""
        self._pos = 0
        self._depth = 0
        self._start = -1
        self._in_string = False
        self._escaped = False


FrameDecoder = LineFrameDecoder | BalancedJsonFrameDecoder


def decoder_for(kind: ProviderKind) -> FrameDecoder:
    """Create a fresh decoder for a vendor's framing discipline."""
    if framing_for(kind) is Framing.JSON:
        return BalancedJsonFrameDecoder()
    return LineFrameDecoder()


async def iter_frames(
    chunks: AsyncIterable[bytes], kind: ProviderKind
) -> AsyncIterator[StreamFrame]:
    """Lazily turn a chunked body into complete frames.

    Frames are yielded as soon as the chunk completing them arrives; the
    stream is never read ahead.
    """
    decoder = decoder_for(kind)
    async for chunk in chunks:
        for frame in decoder.feed(chunk):
            yield frame
    for frame in decoder.flush():
        yield frame
