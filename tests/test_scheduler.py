"""Tests for the debounce timer."""

from __future__ import annotations

import asyncio

import pytest

from bpstudio.sync.scheduler import ScheduledTask


class TestScheduledTask:
    @pytest.mark.asyncio
    async def test_fires_once_after_delay(self):
        calls: list[int] = []
        task = ScheduledTask(0.01, lambda: calls.append(1))
        task.schedule()
        assert task.pending
        await asyncio.sleep(0.05)
        assert calls == [1]
        assert not task.pending

    @pytest.mark.asyncio
    async def test_burst_of_schedules_fires_once(self):
        calls: list[int] = []
        task = ScheduledTask(0.02, lambda: calls.append(1))
        for _ in range(10):
            task.schedule()
            await asyncio.sleep(0.001)
        await asyncio.sleep(0.08)
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_cancel_prevents_run(self):
        calls: list[int] = []
        task = ScheduledTask(0.01, lambda: calls.append(1))
        task.schedule()
        task.cancel()
        await asyncio.sleep(0.03)
        assert calls == []
        assert not task.pending

    @pytest.mark.asyncio
    async def test_fire_now_runs_pending_callback(self):
        calls: list[int] = []
        task = ScheduledTask(10.0, lambda: calls.append(1))
        assert task.fire_now() is False
        task.schedule()
        assert task.fire_now() is True
        assert calls == [1]
        assert not task.pending

    def test_cancel_without_schedule_is_noop(self):
        task = ScheduledTask(0.1, lambda: None)
        task.cancel()
        assert not task.pending
        assert task.delay == 0.1
