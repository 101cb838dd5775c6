"""Tests for prompt template rendering."""

from __future__ import annotations

import pytest

from bpstudio.prompts import available_prompts, render_prompt


class TestRenderPrompt:
    def test_system_prompt_asks_for_fenced_blueprint(self):
        text = render_prompt("system")
        assert "```blueprint" in text
        assert "End Object" in text

    def test_context_fenced(self):
        text = render_prompt("context", blueprint_text="Begin Object\nEnd Object", fenced=True)
        assert text == "Current Blueprint Context:\n```\nBegin Object\nEnd Object\n```"

    def test_context_plain(self):
        text = render_prompt("context", blueprint_text="Begin Object\nEnd Object")
        assert text == "Current Blueprint Context:\nBegin Object\nEnd Object"

    def test_context_empty_without_blueprint(self):
        assert render_prompt("context", blueprint_text="") == ""

    def test_missing_template(self):
        with pytest.raises(FileNotFoundError):
            render_prompt("nonexistent")

    def test_available_prompts(self):
        assert {"system", "context"} <= set(available_prompts())
