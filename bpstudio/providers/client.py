"""Streaming HTTP client for the supported vendor APIs.

POSTs a vendor-shaped request, then pipes the raw response body through
the frame decoder and dialect adapter, yielding text deltas as they
arrive. Framing is done here rather than by a vendor SDK because the
three vendors frame their bodies differently and a half-received frame
must never be lost or parsed twice.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from typing import Any

import httpx

from bpstudio.providers.dialects import extract_delta
from bpstudio.providers.framing import iter_frames
from bpstudio.providers.requests import (
    PreparedRequest,
    build_models_request,
    build_request,
)
from bpstudio.schemas.chat import Message
from bpstudio.schemas.config import StudioConfig
from bpstudio.schemas.providers import ProviderConfig, ProviderKind
from bpstudio.schemas.streaming import StreamChunk
from bpstudio.streaming.aggregator import DeltaAggregator

logger = logging.getLogger(__name__)


def _short_error_reason(error: Exception) -> str:
    """Extract a short, user-friendly reason from a transport error."""
    if isinstance(error, httpx.TimeoutException):
        return "timeout"
    if isinstance(error, httpx.ConnectError):
        return "connection error"
    if isinstance(error, httpx.RemoteProtocolError):
        return "connection closed by server"
    return str(error)[:80] or type(error).__name__


class StreamingProvider:
    """Streams chat completions from one configured provider.

    Holds a frozen ProviderConfig snapshot. Transport failures abort the
    stream and are raised once; malformed frames inside a healthy stream
    are dropped and decoding continues.
    """

    def __init__(
        self,
        config: ProviderConfig,
        *,
        studio: StudioConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._studio = studio or StudioConfig()
        self._http_client = http_client

    # ── Identity ──────────────────────────────────────────────

    @property
    def kind(self) -> ProviderKind:
        """Vendor dialect of this provider."""
        return self._config.kind

    @property
    def model_id(self) -> str:
        """Vendor model identifier."""
        return self._config.model

    @property
    def display_name(self) -> str:
        return self._config.name

    @property
    def config(self) -> ProviderConfig:
        """The ProviderConfig backing this provider."""
        return self._config

    # ── Streaming ─────────────────────────────────────────────

    async def stream_deltas(
        self,
        messages: Sequence[Message],
        *,
        blueprint_text: str = "",
        system_prompt: str | None = None,
    ) -> AsyncIterator[str]:
        """Yield the non-empty text deltas of one streamed reply, in order.

        Raises:
            ValueError: If the provider has no API key (before any I/O).
            TimeoutError: If the request times out.
            RuntimeError: On a non-success status or network failure.
        """
        request = build_request(
            self._config,
            messages,
            blueprint_text=blueprint_text,
            system_prompt=system_prompt,
            config=self._studio,
        )
        async with self._client() as client:
            try:
                async with client.stream(
                    request.method,
                    request.url,
                    headers=request.headers,
                    params=request.params,
                    json=request.body,
                ) as response:
                    if not response.is_success:
                        await self._raise_for_status(response)
                    async for frame in iter_frames(response.aiter_bytes(), self.kind):
                        delta = extract_delta(frame, self.kind)
                        if delta:
                            yield delta
            except httpx.TimeoutException as e:
                raise TimeoutError(
                    f"Streaming call to {self.model_id} timed out after "
                    f"{self._studio.request_timeout:g}s"
                ) from e
            except httpx.HTTPError as e:
                raise RuntimeError(
                    f"Streaming call to {self.model_id} failed "
                    f"({_short_error_reason(e)})"
                ) from e

    async def complete_streaming(
        self,
        messages: Sequence[Message],
        *,
        blueprint_text: str = "",
        system_prompt: str | None = None,
        on_chunk: Callable[[StreamChunk], Any] | None = None,
    ) -> str:
        """Stream one reply, invoking on_chunk with the whole text after every delta.

        Returns:
            The full accumulated reply.
        """
        aggregator = DeltaAggregator(on_chunk)
        async for delta in self.stream_deltas(
            messages, blueprint_text=blueprint_text, system_prompt=system_prompt
        ):
            await aggregator.append(delta)
        await aggregator.complete()
        return aggregator.text

    # ── Model discovery ───────────────────────────────────────

    async def list_models(self) -> list[str]:
        """Fetch the vendor's model list; doubles as an API key check.

        Returns:
            Sorted model ids.

        Raises:
            ValueError: If the provider has no API key.
            RuntimeError: On a non-success status or network failure.
        """
        request = build_models_request(self._config, self._studio)
        async with self._client() as client:
            try:
                response = await client.request(
                    request.method, request.url,
                    headers=request.headers, params=request.params,
                )
            except httpx.HTTPError as e:
                raise RuntimeError(
                    f"Model listing for {self.display_name} failed "
                    f"({_short_error_reason(e)})"
                ) from e
            if not response.is_success:
                await self._raise_for_status(response)
            return _model_ids(self.kind, response.json())

    # ── Internals ─────────────────────────────────────────────

    def _client(self) -> _ClientScope:
        return _ClientScope(self._http_client, self._studio.request_timeout)

    async def _raise_for_status(self, response: httpx.Response) -> None:
        await response.aread()
        detail = response.text[:500]
        logger.warning(
            "%s returned %d %s", self.display_name, response.status_code, response.reason_phrase
        )
        raise RuntimeError(
            f"API Error: {response.status_code} {response.reason_phrase} - {detail}"
        )


class _ClientScope:
    """Async context yielding the injected client, or a private one it owns."""

    def __init__(self, client: httpx.AsyncClient | None, timeout: float) -> None:
        self._injected = client
        self._timeout = timeout
        self._owned: httpx.AsyncClient | None = None

    async def __aenter__(self) -> httpx.AsyncClient:
        if self._injected is not None:
            return self._injected
        self._owned = httpx.AsyncClient(timeout=self._timeout)
        return self._owned

    async def __aexit__(self, *exc_info: object) -> None:
        if self._owned is not None:
            await self._owned.aclose()
            self._owned = None


def _model_ids(kind: ProviderKind, payload: Any) -> list[str]:
    """Pull model ids out of a vendor model-list response."""
    if kind is ProviderKind.GOOGLE:
        entries = payload.get("models", []) if isinstance(payload, dict) else []
        ids = [str(m.get("name", "")).removeprefix("models/") for m in entries]
    else:
        entries = payload.get("data", []) if isinstance(payload, dict) else []
        ids = [str(m.get("id", "")) for m in entries]
    return sorted(i for i in ids if i)


async def stream_chat(
    messages: Sequence[Message],
    provider: ProviderConfig,
    blueprint_text: str,
    on_delta: Callable[[str], Any],
    *,
    studio: StudioConfig | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> None:
    """Stream one reply from ``provider``, handing each delta to ``on_delta``.

    Convenience wrapper for callers that do their own aggregation.
    """
    streamer = StreamingProvider(provider, studio=studio, http_client=http_client)
    async for delta in streamer.stream_deltas(messages, blueprint_text=blueprint_text):
        result = on_delta(delta)
        if asyncio.iscoroutine(result):
            await result
