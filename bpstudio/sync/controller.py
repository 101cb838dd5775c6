"""Two-way binding between canonical blueprint text and its structural form.

Text arrives from outside (the chat stream, a raw-text editor, a file)
and the structural form is rebuilt from it. The structural form can also
be edited directly, in which case its serialization is pushed back out as
the new canonical text. Wired naively, each side would keep re-triggering
the other. Two guards keep the loop convergent:

- An equality check at every boundary: text equal to what the form was
  last built from is not rebuilt, and a serialization equal to the
  canonical text is not pushed.
- An ``internal_update`` flag. It is raised when the controller pushes a
  structure-originated change, and each incoming text while it is raised
  is the echo of one outstanding push and is absorbed without a rebuild.
  Pushes are counted, so several edits made before the first echo
  arrives are all absorbed, and only the last echo settles the
  canonical text.

Rebuilds are expensive, so they are debounced: a burst of text arrivals
results in one rebuild from the last one.

State machine::

    idle --set_text--> text_driven --timer--> idle
    idle --mutation--> structure_driven --echo--> idle
    any  --suspend--> suspended --resume--> text_driven
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from bpstudio.schemas.sync import SyncPhase, SyncState
from bpstudio.sync.document import StructuralDocument, Unsubscribe
from bpstudio.sync.scheduler import ScheduledTask

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_DELAY = 0.1

TextListener = Callable[[str], Any]


def is_degenerate(text: str) -> bool:
    """Whether a serialization is too empty to replace the canonical text."""
    return not text or not text.strip()


class DocumentSyncController:
    """Keeps a StructuralDocument and its canonical text in step.

    Args:
        document: Capability used to build, serialize, observe and
            destroy the structural form.
        on_text_change: Called with the new canonical text whenever a
            structural edit changes it. The owner is expected to feed the
            text back through :meth:`set_text`, synchronously or later.
        delay: Quiescence delay in seconds before a rebuild.
        loop: Event loop for the debounce timer. Defaults to the running
            loop at scheduling time.
    """

    def __init__(
        self,
        document: StructuralDocument,
        *,
        on_text_change: TextListener | None = None,
        delay: float = DEFAULT_DEBOUNCE_DELAY,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._document = document
        self._on_text_change = on_text_change
        self._rebuild = ScheduledTask(delay, self._rebuild_now, loop=loop)

        self._phase = SyncPhase.IDLE
        self._canonical = ""
        self._last_pushed: str | None = None
        self._pending_echoes = 0
        self._rebuild_count = 0

        self._handle: Any = None
        self._unsubscribe: Unsubscribe | None = None
        self._closed = False
        self._tasks: set[asyncio.Future] = set()

    # ── Introspection ─────────────────────────────────────────

    @property
    def phase(self) -> SyncPhase:
        return self._phase

    @property
    def canonical_text(self) -> str:
        return self._canonical

    @property
    def handle(self) -> Any:
        """The live structural form, or None before the first rebuild."""
        return self._handle

    @property
    def rebuild_pending(self) -> bool:
        return self._rebuild.pending

    @property
    def state(self) -> SyncState:
        return SyncState(
            phase=self._phase,
            canonical_text=self._canonical,
            last_pushed_text=self._last_pushed,
            internal_update=self._pending_echoes > 0,
            rebuild_count=self._rebuild_count,
        )

    # ── Text side ─────────────────────────────────────────────

    def set_text(self, text: str) -> None:
        """Accept new canonical text from outside."""
        if self._closed:
            return

        if self._pending_echoes:
            # Echo of our own push: record it, never rebuild from it
            self._pending_echoes -= 1
            if self._pending_echoes:
                # A later push is still in flight; the form already shows it
                return
            self._canonical = text
            self._last_pushed = text
            if self._phase is not SyncPhase.SUSPENDED:
                self._phase = SyncPhase.IDLE
            return

        if self._phase is SyncPhase.SUSPENDED:
            self._canonical = text
            return

        if text == self._last_pushed:
            self._canonical = text
            if self._rebuild.pending:
                # Reverted to what the form already shows
                self._rebuild.cancel()
                self._observe()
                self._phase = SyncPhase.IDLE
            return

        self._canonical = text
        self._phase = SyncPhase.TEXT_DRIVEN
        self._disconnect()
        self._rebuild.schedule()

    def flush(self) -> bool:
        """Run a pending rebuild immediately. Returns whether one ran."""
        return self._rebuild.fire_now()

    # ── Raw-text editing ──────────────────────────────────────

    def suspend(self) -> None:
        """Hand editing to a raw-text surface; text writes no longer rebuild."""
        if self._closed or self._phase is SyncPhase.SUSPENDED:
            return
        self._rebuild.cancel()
        self._disconnect()
        self._phase = SyncPhase.SUSPENDED

    def resume(self) -> None:
        """Return to the structural view with exactly one rebuild."""
        if self._closed or self._phase is not SyncPhase.SUSPENDED:
            return
        self._phase = SyncPhase.TEXT_DRIVEN
        self._rebuild.schedule()

    # ── Teardown ──────────────────────────────────────────────

    def close(self) -> None:
        """Stop observing, cancel the timer and pending pushes, destroy the form."""
        if self._closed:
            return
        self._closed = True
        self._rebuild.cancel()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self._pending_echoes = 0
        self._teardown()
        self._phase = SyncPhase.IDLE

    # ── Internals ─────────────────────────────────────────────

    def _rebuild_now(self) -> None:
        if self._closed or self._phase is SyncPhase.SUSPENDED:
            return
        text = self._canonical
        self._teardown()
        self._last_pushed = text
        try:
            self._handle = self._document.construct(text)
        except Exception:
            logger.exception("Failed to build structural form (%d chars)", len(text))
            self._handle = None
        else:
            self._rebuild_count += 1
            self._observe()
            logger.debug("Rebuilt structural form (%d chars)", len(text))
        self._phase = SyncPhase.IDLE

    def _on_mutation(self, _mutation: Any = None) -> None:
        if self._closed or self._handle is None:
            return
        if self._phase in (SyncPhase.SUSPENDED, SyncPhase.TEXT_DRIVEN):
            return
        try:
            text = self._document.serialize(self._handle)
        except Exception:
            logger.debug("Structural form serialization failed", exc_info=True)
            return
        if not isinstance(text, str) or is_degenerate(text) or text == self._canonical:
            return

        self._canonical = text
        if self._on_text_change is None:
            # Nobody to echo back: the form is already in step
            self._last_pushed = text
            return

        self._pending_echoes += 1
        self._phase = SyncPhase.STRUCTURE_DRIVEN
        self._push(text)

    def _push(self, text: str) -> None:
        outstanding = self._pending_echoes
        try:
            result = self._on_text_change(text)
        except Exception:
            logger.exception("Text change listener failed")
            if self._pending_echoes < outstanding:
                # Echoed before failing
                return
            # No echo will come; do not let the flag swallow the next real edit
            self._pending_echoes -= 1
            if not self._pending_echoes:
                self._last_pushed = text
                self._phase = SyncPhase.IDLE
            return
        if asyncio.iscoroutine(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    def _observe(self) -> None:
        if self._handle is not None and self._unsubscribe is None:
            self._unsubscribe = self._document.on_mutation(self._handle, self._on_mutation)

    def _disconnect(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _teardown(self) -> None:
        self._disconnect()
        if self._handle is not None:
            self._document.destroy(self._handle)
            self._handle = None
