"""Tests for ChatSession turns, extraction callbacks and supersession."""

from __future__ import annotations

import asyncio
import json
import logging

import httpx
import pytest

from bpstudio.chat import ChatSession
from bpstudio.schemas.chat import Role
from bpstudio.schemas.providers import ProviderConfig
from bpstudio.schemas.streaming import StreamChunk

DOC = 'Begin Object Name="K2Node_Event_0"\n   NodePosX=0\nEnd Object'
PROVIDERS = [
    ProviderConfig(kind="openai", model="gpt-test", api_key="k-1"),
    ProviderConfig(kind="anthropic", model="claude-test", api_key="k-2"),
]


def _sse(*texts: str) -> list[bytes]:
    frames = [
        f"data: {json.dumps({'choices': [{'delta': {'content': t}}]})}\n\n".encode()
        for t in texts
    ]
    return [*frames, b"data: [DONE]\n\n"]


class PieceStream(httpx.AsyncByteStream):
    def __init__(self, pieces: list[bytes], hold: asyncio.Event | None = None) -> None:
        self._pieces = pieces
        self._hold = hold

    async def __aiter__(self):
        for piece in self._pieces:
            yield piece
        if self._hold is not None:
            await self._hold.wait()


def _session(handler, **kwargs) -> tuple[ChatSession, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ChatSession(PROVIDERS, http_client=client, system_prompt="SYS", **kwargs), client


class TestSend:
    @pytest.mark.asyncio
    async def test_reply_streams_into_transcript(self):
        chunks: list[StreamChunk] = []

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, stream=PieceStream(_sse("Hello", " world")))

        session, client = _session(handler, on_chunk=chunks.append)
        async with client:
            reply = await session.send("hi")

        assert reply == "Hello world"
        assert [(m.role, m.content) for m in session.messages] == [
            (Role.USER, "hi"),
            (Role.ASSISTANT, "Hello world"),
        ]
        assert [c.accumulated for c in chunks] == ["Hello", "Hello world", "Hello world"]
        assert not session.busy

    @pytest.mark.asyncio
    async def test_first_provider_is_used(self):
        urls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            urls.append(str(request.url))
            return httpx.Response(200, stream=PieceStream(_sse("ok")))

        session, client = _session(handler)
        async with client:
            await session.send("hi")
        assert urls == ["https://api.openai.com/v1/chat/completions"]

    @pytest.mark.asyncio
    async def test_blueprint_sent_as_context(self):
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, stream=PieceStream(_sse("ok")))

        session, client = _session(handler, blueprint_source=lambda: DOC)
        async with client:
            await session.send("add a node")
        assert DOC in bodies[0]["messages"][-1]["content"]

    @pytest.mark.asyncio
    async def test_history_is_sent_on_next_turn(self):
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, stream=PieceStream(_sse("ok")))

        session, client = _session(handler)
        async with client:
            await session.send("one")
            await session.send("two")
        roles = [m["role"] for m in bodies[1]["messages"]]
        assert roles == ["system", "user", "assistant", "user"]

    @pytest.mark.asyncio
    async def test_blank_message_is_ignored(self):
        session = ChatSession(PROVIDERS)
        assert await session.send("   ") == ""
        assert session.messages == []

    @pytest.mark.asyncio
    async def test_no_provider(self):
        session = ChatSession([])
        with pytest.raises(ValueError, match="No AI provider configured"):
            await session.send("hi")
        assert session.messages == []

    @pytest.mark.asyncio
    async def test_no_key(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        session = ChatSession([ProviderConfig(kind="google", model="g")])
        with pytest.raises(ValueError, match="GEMINI_API_KEY"):
            await session.send("hi")
        assert session.messages == []

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="boom")

        session, client = _session(handler)
        async with client:
            with pytest.raises(RuntimeError, match="API Error: 500"):
                await session.send("hi")
        assert [m.role for m in session.messages] == [Role.USER]

    @pytest.mark.asyncio
    async def test_clear(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, stream=PieceStream(_sse("ok")))

        session, client = _session(handler)
        async with client:
            await session.send("hi")
        session.clear()
        assert session.messages == []


class TestBlueprintExtraction:
    @pytest.mark.asyncio
    async def test_streamed_then_final_blueprint(self):
        reply = f"Sure! ```blueprint\n{DOC}\n```\nThat adds BeginPlay."
        pieces = [reply[i:i + 9] for i in range(0, len(reply), 9)]
        seen: list[tuple[str, bool]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, stream=PieceStream(_sse(*pieces)))

        session, client = _session(handler, on_blueprint=lambda t, f: seen.append((t, f)))
        async with client:
            await session.send("make BeginPlay")

        partial = [t for t, final in seen if not final]
        assert partial and all(t.startswith("Begin Object") for t in partial)
        assert seen[-1] == (DOC, True)
        assert len(partial) == len(set(partial))

    @pytest.mark.asyncio
    async def test_reply_without_blueprint(self):
        seen: list[tuple[str, bool]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, stream=PieceStream(_sse("Just ", "chatting.")))

        session, client = _session(handler, on_blueprint=lambda t, f: seen.append((t, f)))
        async with client:
            await session.send("hello")
        assert seen == []

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_turn(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, stream=PieceStream(_sse(f"```t3d\n{DOC}\n```")))

        def on_blueprint(text: str, is_final: bool) -> None:
            raise RuntimeError("view crashed")

        session, client = _session(handler, on_blueprint=on_blueprint)
        async with client:
            assert await session.send("go") == f"```t3d\n{DOC}\n```"


class TestSupersede:
    @pytest.mark.asyncio
    async def test_new_send_cancels_in_flight_turn(self, caplog):
        caplog.set_level(logging.INFO, logger="bpstudio.chat")
        hold = asyncio.Event()
        first_chunk = asyncio.Event()
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls == 1:
                pieces = _sse("partial")[:-1]
                return httpx.Response(200, stream=PieceStream(pieces, hold=hold))
            return httpx.Response(200, stream=PieceStream(_sse("second")))

        seen: list[str] = []

        def on_chunk(chunk: StreamChunk) -> None:
            seen.append(chunk.accumulated)
            first_chunk.set()

        session, client = _session(handler, on_chunk=on_chunk)
        async with client:
            first = asyncio.ensure_future(session.send("one"))
            await asyncio.wait_for(first_chunk.wait(), timeout=2)
            assert session.busy

            second = await session.send("two")
            assert await first is None

        assert second == "second"
        assert [(m.role, m.content) for m in session.messages] == [
            (Role.USER, "one"),
            (Role.ASSISTANT, "partial"),
            (Role.USER, "two"),
            (Role.ASSISTANT, "second"),
        ]
        assert "partial" in seen and seen[-1] == "second"
        assert "Turn 1 superseded" in caplog.text

    @pytest.mark.asyncio
    async def test_rapid_sends_run_one_turn_in_order(self):
        hold = asyncio.Event()
        started = asyncio.Event()

        def handler(request: httpx.Request) -> httpx.Response:
            last = json.loads(request.content)["messages"][-1]["content"]
            if "three" in last:
                return httpx.Response(200, stream=PieceStream(_sse("third")))
            started.set()
            return httpx.Response(200, stream=PieceStream([], hold=hold))

        session, client = _session(handler)
        async with client:
            first = asyncio.ensure_future(session.send("one"))
            await asyncio.wait_for(started.wait(), timeout=2)
            second = asyncio.ensure_future(session.send("two"))
            third = asyncio.ensure_future(session.send("three"))
            results = await asyncio.wait_for(
                asyncio.gather(first, second, third), timeout=2
            )

        assert results == [None, None, "third"]
        assert [(m.role, m.content) for m in session.messages] == [
            (Role.USER, "one"),
            (Role.USER, "two"),
            (Role.USER, "three"),
            (Role.ASSISTANT, "third"),
        ]
        assert not session.busy

    @pytest.mark.asyncio
    async def test_cancel_stops_turn(self):
        hold = asyncio.Event()
        started = asyncio.Event()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, stream=PieceStream(_sse("x")[:-1], hold=hold))

        session, client = _session(handler, on_chunk=lambda c: started.set())
        async with client:
            turn = asyncio.ensure_future(session.send("hi"))
            await asyncio.wait_for(started.wait(), timeout=2)
            await session.cancel()
            assert await turn is None
        assert not session.busy

    @pytest.mark.asyncio
    async def test_cancelling_caller_propagates(self):
        hold = asyncio.Event()
        started = asyncio.Event()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, stream=PieceStream(_sse("x")[:-1], hold=hold))

        session, client = _session(handler, on_chunk=lambda c: started.set())
        async with client:
            turn = asyncio.ensure_future(session.send("hi"))
            await asyncio.wait_for(started.wait(), timeout=2)
            turn.cancel()
            with pytest.raises(asyncio.CancelledError):
                await turn
