"""Studio configuration schema.

Loaded from ``bpstudio/config/defaults.toml`` by
:func:`bpstudio.providers.registry.load_studio_config`.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class StudioConfig(BaseModel):
    """Tunables for streaming, extraction and document sync."""

    debounce_delay: float = Field(
        default=0.1, ge=0.0, description="Quiescence delay before rebuilding the structural form"
    )
    request_timeout: float = Field(
        default=120.0, gt=0.0, description="HTTP timeout in seconds for a streaming call"
    )
    anthropic_max_tokens: int = Field(
        default=4096, gt=0, description="max_tokens sent to the Anthropic messages API"
    )
    anthropic_version: str = Field(
        default="2023-06-01", description="anthropic-version request header"
    )
    start_marker: str = Field(default="Begin Object", description="Document start marker")
    end_marker: str = Field(default="End Object", description="Document end marker")
    fence_tags: list[str] = Field(
        default_factory=lambda: ["blueprint", "t3d"],
        description="Code fence tags recognized as a blueprint block",
    )
    app_title: str = Field(
        default="Blueprint AI Studio", description="X-Title header sent to OpenRouter"
    )
    app_url: str = Field(
        default="http://localhost", description="HTTP-Referer header sent to OpenRouter"
    )
