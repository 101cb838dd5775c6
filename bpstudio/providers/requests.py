"""Vendor-shaped request construction.

Turns a transcript, the current blueprint and a provider snapshot into the
URL, headers and JSON body each vendor's streaming endpoint expects. The
blueprint is sent as context on every turn so the model edits what the
user currently sees.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel, Field

from bpstudio.prompts import render_prompt
from bpstudio.schemas.chat import Message, Role
from bpstudio.schemas.config import StudioConfig
from bpstudio.schemas.providers import ProviderConfig, ProviderKind


class PreparedRequest(BaseModel):
    """An HTTP request ready to hand to the transport."""

    method: str = Field(default="POST")
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    params: dict[str, str] = Field(default_factory=dict)
    body: dict[str, Any] | None = None


def build_request(
    provider: ProviderConfig,
    messages: Sequence[Message],
    *,
    blueprint_text: str = "",
    system_prompt: str | None = None,
    config: StudioConfig | None = None,
) -> PreparedRequest:
    """Build the streaming chat request for a provider.

    Args:
        provider: The provider snapshot for this request.
        messages: Conversation so far, oldest first.
        blueprint_text: Current blueprint, injected as context when non-empty.
        system_prompt: System instruction. Defaults to the bundled prompt.
        config: Studio settings (Anthropic limits, OpenRouter headers).

    Raises:
        ValueError: If the provider has no API key.
    """
    config = config or StudioConfig()
    api_key = provider.resolved_api_key()
    if not api_key:
        raise ValueError(
            f"No API key for {provider.name}. Set {provider.api_key_env} "
            f"or add api_key to providers.toml."
        )
    system = system_prompt if system_prompt is not None else render_prompt("system")

    if provider.kind is ProviderKind.ANTHROPIC:
        return _anthropic_request(provider, api_key, messages, system, blueprint_text, config)
    if provider.kind is ProviderKind.GOOGLE:
        return _google_request(provider, api_key, messages, system, blueprint_text)
    return _openai_request(provider, api_key, messages, system, blueprint_text, config)


def _openai_request(
    provider: ProviderConfig,
    api_key: str,
    messages: Sequence[Message],
    system: str,
    blueprint_text: str,
    config: StudioConfig,
) -> PreparedRequest:
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {api_key}",
    }
    if provider.kind is ProviderKind.OPENROUTER:
        headers["HTTP-Referer"] = config.app_url
        headers["X-Title"] = config.app_title

    wire = [{"role": "system", "content": system}, *(m.as_wire() for m in messages)]
    if blueprint_text:
        wire.append({
            "role": Role.USER.value,
            "content": render_prompt("context", blueprint_text=blueprint_text, fenced=True),
        })

    return PreparedRequest(
        url=f"{provider.base_url}/chat/completions",
        headers=headers,
        body={"model": provider.model, "messages": wire, "stream": True},
    )


def _anthropic_request(
    provider: ProviderConfig,
    api_key: str,
    messages: Sequence[Message],
    system: str,
    blueprint_text: str,
    config: StudioConfig,
) -> PreparedRequest:
    if blueprint_text:
        system = f"{system}\n\n{render_prompt('context', blueprint_text=blueprint_text)}"

    return PreparedRequest(
        url=f"{provider.base_url}/messages",
        headers={
            "Content-Type": "application/json",
            "x-api-key": api_key,
            "anthropic-version": config.anthropic_version,
        },
        body={
            "model": provider.model,
            "messages": [m.as_wire() for m in messages],
            "system": system,
            "max_tokens": config.anthropic_max_tokens,
            "stream": True,
        },
    )


def _google_request(
    provider: ProviderConfig,
    api_key: str,
    messages: Sequence[Message],
    system: str,
    blueprint_text: str,
) -> PreparedRequest:
    contents = [
        {
            "role": "user" if m.role is Role.USER else "model",
            "parts": [{"text": m.content}],
        }
        for m in messages
    ]
    if blueprint_text:
        contents.append({
            "role": "user",
            "parts": [{"text": render_prompt("context", blueprint_text=blueprint_text)}],
        })

    return PreparedRequest(
        url=f"{provider.base_url}/models/{provider.model}:streamGenerateContent",
        headers={"Content-Type": "application/json"},
        params={"key": api_key},
        body={
            "contents": contents,
            "systemInstruction": {"parts": [{"text": system}]},
        },
    )


def build_models_request(
    provider: ProviderConfig, config: StudioConfig | None = None
) -> PreparedRequest:
    """Build the model-listing request used to verify a provider's key.

    Raises:
        ValueError: If the provider has no API key.
    """
    config = config or StudioConfig()
    api_key = provider.resolved_api_key()
    if not api_key:
        raise ValueError(f"No API key for {provider.name}. Set {provider.api_key_env}.")

    url = f"{provider.base_url}/models"
    if provider.kind is ProviderKind.GOOGLE:
        return PreparedRequest(method="GET", url=url, params={"key": api_key})
    if provider.kind is ProviderKind.ANTHROPIC:
        return PreparedRequest(
            method="GET",
            url=url,
            headers={"x-api-key": api_key, "anthropic-version": config.anthropic_version},
            params={"limit": "100"},
        )
    return PreparedRequest(
        method="GET", url=url, headers={"Authorization": f"Bearer {api_key}"}
    )
