"""Chat transcript schemas.

Defines the Message record exchanged with provider endpoints and kept as
the session transcript.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field


class Role(StrEnum):
    """Speaker of a transcript message."""

    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """A single chat message.

    The transcript is append-only; the only in-place mutation allowed is
    growing the content of the last assistant message while it streams.
    """

    role: Role = Field(description="Who produced the message")
    content: str = Field(default="", description="Message text")

    def as_wire(self) -> dict[str, str]:
        """Render as an OpenAI-style ``{"role", "content"}`` dict."""
        return {"role": self.role.value, "content": self.content}
