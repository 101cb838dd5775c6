"""Markdown prompt templates rendered with Jinja2.

``system.md`` is the T3D engine instruction sent with every request;
``context.md`` wraps the current blueprint so the model edits what the
user is looking at.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, TemplateNotFound

_PROMPTS_DIR = Path(__file__).parent


@lru_cache(maxsize=1)
def _environment() -> Environment:
    # Undefined variables render empty, which drops optional {% if %} blocks
    return Environment(
        loader=FileSystemLoader(_PROMPTS_DIR),
        keep_trailing_newline=True,
        autoescape=False,
    )


def available_prompts() -> list[str]:
    """Names of the bundled templates, without the .md suffix."""
    return sorted(p.stem for p in _PROMPTS_DIR.glob("*.md"))


def render_prompt(template_name: str, **variables: object) -> str:
    """Render ``<template_name>.md`` with the given variables.

    Returns:
        The rendered text with surrounding whitespace stripped.

    Raises:
        FileNotFoundError: If no such template is bundled.
    """
    try:
        template = _environment().get_template(f"{template_name}.md")
    except TemplateNotFound:
        raise FileNotFoundError(
            f"Prompt template not found: {_PROMPTS_DIR / template_name}.md"
        ) from None
    return template.render(**variables).strip()
