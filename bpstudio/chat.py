"""Chat session: one streamed assistant turn at a time.

Each turn owns a fresh DeltaAggregator and BlueprintExtractor. Every
delta grows the last assistant message in place, goes to the transcript
listener as a whole-text StreamChunk, and is scanned for a blueprint;
a blueprint that changed is handed to the blueprint listener while the
reply is still streaming, and the complete one is handed over again when
the stream ends.

The provider list is injected as a snapshot. The first provider in it is
the active one.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import Any

import httpx

from bpstudio.providers.client import StreamingProvider
from bpstudio.providers.registry import active_provider
from bpstudio.schemas.chat import Message, Role
from bpstudio.schemas.config import StudioConfig
from bpstudio.schemas.providers import ProviderConfig
from bpstudio.schemas.streaming import StreamChunk
from bpstudio.streaming.aggregator import DeltaAggregator
from bpstudio.streaming.extractor import BlueprintExtractor

logger = logging.getLogger(__name__)

ChunkListener = Callable[[StreamChunk], Any]
# Called with (blueprint_text, is_final)
BlueprintListener = Callable[[str, bool], Any]


class ChatSession:
    """Multi-turn chat against the active provider.

    Args:
        providers: Configured providers; the first one is used.
        blueprint_source: Returns the current blueprint, sent as context
            with every turn.
        on_chunk: Transcript listener, called after every append.
        on_blueprint: Blueprint listener, called per extraction.
        studio: Studio settings.
        http_client: Optional shared httpx client.
    """

    def __init__(
        self,
        providers: Sequence[ProviderConfig],
        *,
        blueprint_source: Callable[[], str] | None = None,
        on_chunk: ChunkListener | None = None,
        on_blueprint: BlueprintListener | None = None,
        studio: StudioConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
        system_prompt: str | None = None,
    ) -> None:
        self._providers = tuple(providers)
        self._blueprint_source = blueprint_source or (lambda: "")
        self._on_chunk = on_chunk
        self._on_blueprint = on_blueprint
        self._studio = studio or StudioConfig()
        self._http_client = http_client
        self._system_prompt = system_prompt
        self._messages: list[Message] = []
        self._turn: asyncio.Task | None = None
        self._turn_id = 0
        self._send_lock = asyncio.Lock()

    @property
    def messages(self) -> list[Message]:
        """A copy of the transcript."""
        return [m.model_copy() for m in self._messages]

    @property
    def busy(self) -> bool:
        """Whether a turn is currently streaming."""
        return self._turn is not None and not self._turn.done()

    def clear(self) -> None:
        """Forget the transcript. Does not cancel a running turn."""
        self._messages.clear()

    async def send(self, content: str) -> str | None:
        """Send a user message and stream the reply.

        A turn already in flight is cancelled first; its callbacks stop
        and its partial reply stays in the transcript.

        Returns:
            The full reply, ``""`` for a blank message, or None if this
            turn was itself superseded by a later send.

        Raises:
            ValueError: If no provider or API key is configured. Raised
                before anything is sent.
            TimeoutError: If the provider times out.
            RuntimeError: On transport failure.
        """
        content = content.strip()
        if not content:
            return ""
        provider = active_provider(self._providers)
        if not provider.resolved_api_key():
            raise ValueError(
                f"No API key for {provider.name}. Set {provider.api_key_env}."
            )

        # Sends queue here so each one cancels the turn started just before it
        async with self._send_lock:
            await self.cancel()
            self._messages.append(Message(role=Role.USER, content=content))
            self._turn_id += 1
            turn_id = self._turn_id
            turn = asyncio.ensure_future(self._run_turn(provider, turn_id))
            self._turn = turn
        try:
            return await turn
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if turn.cancelled() and (current is None or not current.cancelling()):
                logger.info("Turn %d superseded", turn_id)
                return None
            raise

    async def cancel(self) -> None:
        """Cancel the running turn, if any, and wait for it to stop."""
        turn, self._turn = self._turn, None
        if turn is None or turn.done():
            return
        turn.cancel()
        try:
            await turn
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.debug("Cancelled turn ended with an error", exc_info=True)

    async def _run_turn(self, provider: ProviderConfig, turn_id: int) -> str:
        streamer = StreamingProvider(
            provider, studio=self._studio, http_client=self._http_client
        )
        extractor = BlueprintExtractor(
            start_marker=self._studio.start_marker,
            end_marker=self._studio.end_marker,
            fence_tags=self._studio.fence_tags,
        )
        history = list(self._messages)
        reply: Message | None = None

        async def on_chunk(chunk: StreamChunk) -> None:
            nonlocal reply
            if turn_id != self._turn_id:
                return
            if reply is None and chunk.accumulated:
                reply = Message(role=Role.ASSISTANT)
                self._messages.append(reply)
            if reply is not None:
                reply.content = chunk.accumulated
            await self._notify(self._on_chunk, chunk)
            if not chunk.is_complete:
                candidate = extractor.update(chunk.accumulated)
                if candidate is not None:
                    await self._notify(self._on_blueprint, candidate, False)

        aggregator = DeltaAggregator(on_chunk)
        async for delta in streamer.stream_deltas(
            history,
            blueprint_text=self._blueprint_source(),
            system_prompt=self._system_prompt,
        ):
            await aggregator.append(delta)
        await aggregator.complete()

        text = aggregator.text
        document = extractor.finalize(text)
        if document is not None and turn_id == self._turn_id:
            logger.info("Blueprint updated from AI response (%d chars)", len(document))
            await self._notify(self._on_blueprint, document, True)
        return text

    @staticmethod
    async def _notify(listener: Callable[..., Any] | None, *args: Any) -> None:
        if listener is None:
            return
        try:
            result = listener(*args)
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            logger.exception("Chat listener failed")
