"""Terminal display components for Blueprint Studio.

Renders a streaming turn as two Rich panels, the assistant reply and the
blueprint extracted from it, refreshed in place as chunks arrive.
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.text import Text

from bpstudio.schemas.streaming import StreamChunk

# ── Brand Colors ──────────────────────────────────────────────────

BRAND = {
    "accent": "#3fa7ff",
    "blueprint": "#5ec8ff",
    "green": "#00ff88",
    "dim": "#6a7a8a",
    "amber": "#ffaa00",
    "red": "#ff4444",
}

# Reply panel shows only the tail of long replies
_MAX_REPLY_LINES = 30


class StreamingView:
    """Live two-panel view of a streaming reply and its blueprint.

    Use as a context manager around a chat turn and pass
    :meth:`on_chunk` / :meth:`on_blueprint` as the session listeners.
    """

    def __init__(self, console: Console, *, model: str = "") -> None:
        self._console = console
        self._model = model
        self._reply = ""
        self._blueprint = ""
        self._final = False
        self._chunks = 0
        self._live: Live | None = None

    @property
    def blueprint(self) -> str:
        return self._blueprint

    def __enter__(self) -> StreamingView:
        self._live = Live(
            self._render(), console=self._console, refresh_per_second=12, transient=False
        )
        self._live.__enter__()
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self._live is not None:
            self._live.update(self._render())
            self._live.__exit__(*exc_info)
            self._live = None

    def on_chunk(self, chunk: StreamChunk) -> None:
        self._reply = chunk.accumulated
        self._chunks = chunk.chunk_count
        self._refresh()

    def on_blueprint(self, text: str, is_final: bool) -> None:
        self._blueprint = text
        self._final = is_final
        self._refresh()

    def _refresh(self) -> None:
        if self._live is not None:
            self._live.update(self._render())

    def _render(self) -> Group:
        lines = self._reply.splitlines()
        tail = "\n".join(lines[-_MAX_REPLY_LINES:])
        title = f"[bold {BRAND['accent']}]Assistant[/bold {BRAND['accent']}]"
        if self._model:
            title += f" [{BRAND['dim']}]{self._model}[/{BRAND['dim']}]"
        reply_panel = Panel(
            Text(tail or "…", style="default"),
            title=title,
            subtitle=f"[{BRAND['dim']}]{self._chunks} chunks[/{BRAND['dim']}]",
            border_style=BRAND["accent"],
        )
        if not self._blueprint:
            return Group(reply_panel)

        state = "complete" if self._final else "streaming"
        blueprint_panel = Panel(
            Text(self._blueprint, style=BRAND["blueprint"]),
            title=f"[bold]Blueprint[/bold] [{BRAND['dim']}]{state}[/{BRAND['dim']}]",
            border_style=BRAND["green"] if self._final else BRAND["amber"],
        )
        return Group(reply_panel, blueprint_panel)
