"""Delta aggregation for one streamed assistant turn."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from bpstudio.schemas.streaming import StreamChunk

ChunkCallback = Callable[[StreamChunk], Any]


class DeltaAggregator:
    """Concatenates deltas into the running text of the current turn.

    Deltas are appended strictly in the order they are received. After
    every append the callback gets a StreamChunk whose ``accumulated``
    field is the whole text so far, so consumers that render or parse the
    full reply never have to reassemble it. The callback may be sync or
    async.
    """

    def __init__(self, on_chunk: ChunkCallback | None = None) -> None:
        self._on_chunk = on_chunk
        self._text = ""
        self._count = 0

    @property
    def text(self) -> str:
        """The running text of the current turn."""
        return self._text

    @property
    def chunk_count(self) -> int:
        return self._count

    def reset(self) -> None:
        """Start a new turn."""
        self._text = ""
        self._count = 0

    async def append(self, delta: str) -> StreamChunk | None:
        """Append a delta and notify. Empty deltas are ignored."""
        if not delta:
            return None
        self._text += delta
        self._count += 1
        chunk = StreamChunk(
            delta=delta,
            accumulated=self._text,
            chunk_count=self._count,
        )
        await self._notify(chunk)
        return chunk

    async def complete(self) -> StreamChunk:
        """Emit the final ``is_complete`` chunk for the turn."""
        chunk = StreamChunk(
            delta="",
            accumulated=self._text,
            chunk_count=self._count,
            is_complete=True,
        )
        await self._notify(chunk)
        return chunk

    async def _notify(self, chunk: StreamChunk) -> None:
        if self._on_chunk is None:
            return
        result = self._on_chunk(chunk)
        if asyncio.iscoroutine(result):
            await result
