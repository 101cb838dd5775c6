"""Streaming schemas for real-time token delivery.

Defines the StreamFrame produced by the frame decoders and the StreamChunk
delivered to display and extraction consumers after every append.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from bpstudio.schemas.providers import Framing


class StreamFrame(BaseModel):
    """One complete logical unit of a streaming wire format."""

    framing: Framing = Field(description="Discipline that produced this frame")
    text: str = Field(description="Raw frame text (an SSE line or a JSON span)")
    data: Any = Field(
        default=None, description="Parsed JSON object for balanced-JSON frames"
    )


class StreamChunk(BaseModel):
    """A single chunk of streaming output from a model."""

    delta: str = Field(description="New text in this chunk")
    accumulated: str = Field(description="Full text accumulated so far")
    chunk_count: int = Field(ge=0, description="Number of deltas appended so far")
    is_complete: bool = Field(
        default=False, description="True on final chunk"
    )
