"""Cancellable one-shot scheduled task (debounce timer)."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class ScheduledTask:
    """Runs a callback once after a delay; rescheduling restarts the delay.

    At most one run is ever pending. ``schedule`` cancels any pending run
    before arming a new one, so a burst of schedules within the delay
    results in a single call, ``delay`` seconds after the last schedule.
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[], object],
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._delay = delay
        self._callback = callback
        self._loop = loop
        self._handle: asyncio.TimerHandle | None = None

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def pending(self) -> bool:
        """Whether a run is armed and has not fired yet."""
        return self._handle is not None

    def schedule(self) -> None:
        """Arm (or re-arm) the timer."""
        self.cancel()
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(self._delay, self._fire)

    def cancel(self) -> None:
        """Disarm the timer. No-op when nothing is pending."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def fire_now(self) -> bool:
        """Run a pending callback immediately.

        Returns:
            True if a pending run was fired, False if nothing was pending.
        """
        if self._handle is None:
            return False
        self.cancel()
        self._callback()
        return True

    def _fire(self) -> None:
        self._handle = None
        self._callback()
