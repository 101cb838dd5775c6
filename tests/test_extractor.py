"""Tests for blueprint extraction from streamed assistant text."""

from __future__ import annotations

from bpstudio.streaming.extractor import (
    BlueprintExtractor,
    fenced_blocks,
    find_final_document,
    find_streaming_candidate,
)

DOC = "Begin Object Name=\"A\"\nEnd Object"


def _stream(extractor: BlueprintExtractor, text: str, step: int = 1) -> list[str]:
    """Feed growing prefixes of text, as the chat session does per delta."""
    surfaced = []
    for end in range(step, len(text) + step, step):
        found = extractor.update(text[:end])
        if found is not None:
            surfaced.append(found)
    return surfaced


# ── Fence scanning ───────────────────────────────────────────────


class TestFencedBlocks:
    def test_closed_and_open_blocks(self):
        text = "a\n```python\nx = 1\n```\nb\n```blueprint\nBegin"
        blocks = fenced_blocks(text)
        assert [(b.tag, b.content, b.closed) for b in blocks] == [
            ("python", "x = 1\n", True),
            ("blueprint", "Begin", False),
        ]

    def test_fence_in_middle_of_line(self):
        blocks = fenced_blocks("Sure! ```blueprint\nBegin Object\n```")
        assert blocks[0].tag == "blueprint"
        assert blocks[0].closed

    def test_incomplete_tag_line_does_not_open(self):
        assert fenced_blocks("text ```bluep") == []


# ── Streaming tiers ──────────────────────────────────────────────


class TestStreamingCandidate:
    def test_tagged_fence_wins(self):
        text = f"```\n{DOC}\n```\n```t3d\nBegin Object Name=\"B\""
        assert find_streaming_candidate(text) == 'Begin Object Name="B"'

    def test_untagged_fence_with_marker(self):
        text = f"```\nprint()\n```\n```\n{DOC}"
        assert find_streaming_candidate(text) == DOC

    def test_raw_text_to_end_when_unterminated(self):
        assert find_streaming_candidate("Here: Begin Object Name") == "Begin Object Name"

    def test_raw_text_to_last_end_marker(self):
        text = f"x {DOC}\nBegin Object\nEnd Object trailing"
        assert find_streaming_candidate(text) == f"{DOC}\nBegin Object\nEnd Object"

    def test_nothing_found(self):
        assert find_streaming_candidate("just talking") is None

    def test_tag_match_is_case_insensitive(self):
        assert find_streaming_candidate("```Blueprint\nBegin Object") == "Begin Object"


class TestBlueprintExtractor:
    def test_surfaces_growing_document_once_per_change(self):
        text = f"Sure! ```blueprint\n{DOC}\n```"
        surfaced = _stream(BlueprintExtractor(), text)
        assert surfaced[0] == "Begin Object"
        assert surfaced[-1] == DOC + "\n"
        assert len(surfaced) == len(set(surfaced))

    def test_same_text_twice_surfaces_once(self):
        extractor = BlueprintExtractor()
        text = f"```blueprint\n{DOC}"
        assert extractor.update(text) == DOC
        assert extractor.update(text) is None

    def test_candidate_without_start_marker_is_not_surfaced(self):
        extractor = BlueprintExtractor()
        assert extractor.update("```blueprint\nBegin Obj") is None

    def test_final_result_is_trimmed_and_always_returned(self):
        extractor = BlueprintExtractor()
        text = f"Sure! ```blueprint\n{DOC}\n```\nDone."
        _stream(extractor, text)
        assert extractor.finalize(text) == DOC
        assert extractor.last == DOC

    def test_unclosed_fence_falls_back_to_raw_text(self):
        assert BlueprintExtractor().finalize(f"```blueprint\n{DOC}\n") == DOC

    def test_tagged_fence_without_marker_has_no_final(self):
        text = "```blueprint\nnot a blueprint\n```\nBegin Object\nEnd Object"
        assert find_final_document(text) is None

    def test_untagged_block_needs_end_marker(self):
        text = "```\nBegin Object Name=\"A\"\n```"
        assert find_final_document(text) is None

    def test_raw_final_document(self):
        text = f"Here you go:\n{DOC}\nEnjoy."
        assert find_final_document(text) == DOC

    def test_no_final_without_document(self):
        assert BlueprintExtractor().finalize("No blueprint here") is None

    def test_custom_markers_and_tags(self):
        extractor = BlueprintExtractor(
            start_marker="BEGIN", end_marker="END", fence_tags=["graph"]
        )
        assert extractor.finalize("```graph\nBEGIN x END\n```") == "BEGIN x END"

    def test_reset_forgets_last(self):
        extractor = BlueprintExtractor()
        text = f"```blueprint\n{DOC}"
        extractor.update(text)
        extractor.reset()
        assert extractor.update(text) == DOC
