"""Provider configuration schemas.

A ProviderConfig selects the wire dialect, endpoint and credentials for one
streaming chat request. Records are frozen: a request always sees the
snapshot it was started with.
"""

from __future__ import annotations

import os
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ProviderKind(StrEnum):
    """Supported vendor APIs.

    ``openrouter`` speaks the OpenAI wire dialect and only differs in
    request headers.
    """

    OPENAI = "openai"
    OPENROUTER = "openrouter"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"


class Framing(StrEnum):
    """How a vendor frames its streamed response body."""

    LINE = "line"
    JSON = "json"


DEFAULT_BASE_URLS: dict[ProviderKind, str] = {
    ProviderKind.OPENAI: "https://api.openai.com/v1",
    ProviderKind.OPENROUTER: "https://openrouter.ai/api/v1",
    ProviderKind.ANTHROPIC: "https://api.anthropic.com/v1",
    ProviderKind.GOOGLE: "https://generativelanguage.googleapis.com/v1beta",
}

DEFAULT_KEY_ENVS: dict[ProviderKind, str] = {
    ProviderKind.OPENAI: "OPENAI_API_KEY",
    ProviderKind.OPENROUTER: "OPENROUTER_API_KEY",
    ProviderKind.ANTHROPIC: "ANTHROPIC_API_KEY",
    ProviderKind.GOOGLE: "GEMINI_API_KEY",
}

# Suggested models shown by `bpstudio providers list`
PROVIDER_MODELS: dict[ProviderKind, list[str]] = {
    ProviderKind.OPENAI: ["gpt-4o", "gpt-4o-mini", "gpt-4-turbo"],
    ProviderKind.OPENROUTER: [
        "google/gemini-2.5-flash",
        "openai/gpt-4o",
        "anthropic/claude-3.5-sonnet",
    ],
    ProviderKind.ANTHROPIC: ["claude-3-5-sonnet", "claude-3-opus"],
    ProviderKind.GOOGLE: ["gemini-1.5-pro", "gemini-2.0-flash"],
}


def framing_for(kind: ProviderKind) -> Framing:
    """Return the response framing discipline used by a vendor."""
    if kind is ProviderKind.GOOGLE:
        return Framing.JSON
    return Framing.LINE


class ProviderConfig(BaseModel):
    """Connection settings for a single configured provider."""

    model_config = ConfigDict(frozen=True)

    kind: ProviderKind = Field(description="Vendor API dialect")
    model: str = Field(min_length=1, description="Vendor model identifier")
    name: str = Field(default="", description="Display name (defaults to the kind)")
    api_key: str = Field(default="", repr=False, description="Inline API key")
    api_key_env: str = Field(
        default="", description="Environment variable holding the API key"
    )
    base_url: str = Field(default="", description="API base URL (empty = vendor default)")

    @model_validator(mode="before")
    @classmethod
    def _fill_defaults(cls, data: object) -> object:
        if not isinstance(data, dict) or "kind" not in data:
            return data
        kind = ProviderKind(data["kind"])
        data = dict(data)
        if not data.get("name"):
            data["name"] = kind.value
        if not data.get("api_key_env"):
            data["api_key_env"] = DEFAULT_KEY_ENVS[kind]
        data["base_url"] = (data.get("base_url") or DEFAULT_BASE_URLS[kind]).rstrip("/")
        return data

    @property
    def framing(self) -> Framing:
        return framing_for(self.kind)

    def resolved_api_key(self) -> str:
        """Return the inline key, falling back to the configured env var."""
        return self.api_key or os.environ.get(self.api_key_env, "")
