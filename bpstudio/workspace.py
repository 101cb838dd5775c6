"""The blueprint workspace: owner of the canonical blueprint text.

Wires the two producers of blueprint changes together. Extractions from
the chat stream and raw-text edits arrive through :meth:`set_text`;
structural edits come back from the sync controller through the same
method, where the controller recognizes and absorbs them.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from bpstudio.schemas.sync import SyncPhase
from bpstudio.sync.controller import DEFAULT_DEBOUNCE_DELAY, DocumentSyncController
from bpstudio.sync.document import StructuralDocument
from bpstudio.sync.t3d import T3DDocument

logger = logging.getLogger(__name__)


class BlueprintWorkspace:
    """Holds the canonical blueprint text and keeps its structural view in sync."""

    def __init__(
        self,
        text: str = "",
        *,
        document: StructuralDocument | None = None,
        delay: float = DEFAULT_DEBOUNCE_DELAY,
    ) -> None:
        self._text = text
        self._listeners: list[Callable[[str], Any]] = []
        self.controller = DocumentSyncController(
            document or T3DDocument(),
            on_text_change=self.set_text,
            delay=delay,
        )

    @property
    def text(self) -> str:
        return self._text

    def add_listener(self, listener: Callable[[str], Any]) -> None:
        """Register a callback for every canonical text change (persistence, display)."""
        self._listeners.append(listener)

    def open(self) -> None:
        """Show the structural view, building it from the current text."""
        self.controller.set_text(self._text)

    def set_text(self, text: str) -> None:
        """Replace the canonical text, from any origin."""
        changed = text != self._text
        self._text = text
        self.controller.set_text(text)
        if changed:
            for listener in list(self._listeners):
                try:
                    listener(text)
                except Exception:
                    logger.exception("Workspace listener failed")

    def apply_blueprint(self, text: str, is_final: bool = False) -> None:
        """Chat blueprint listener: adopt an extracted document."""
        logger.debug("Adopting %s blueprint (%d chars)", "final" if is_final else "partial", len(text))
        self.set_text(text)

    @property
    def editing_raw(self) -> bool:
        return self.controller.phase is SyncPhase.SUSPENDED

    def structure(self) -> Any:
        """The live structural view, brought up to date with the text.

        Returns None while raw-text editing or when the text could not be
        built. Edits made on the returned form flow back into :attr:`text`.
        """
        if self.editing_raw:
            return None
        self.controller.flush()
        return self.controller.handle

    def edit_raw(self) -> None:
        """Switch to raw-text editing; edits no longer rebuild the view."""
        self.controller.suspend()

    def show_structure(self) -> None:
        """Leave raw-text editing; the view is rebuilt once."""
        self.controller.resume()

    def close(self) -> None:
        self.controller.close()
