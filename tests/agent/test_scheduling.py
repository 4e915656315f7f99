"""Tests for the recurring-callback schedulers."""

import asyncio

import pytest

from kagami.agent.scheduling import AsyncioScheduler, ManualScheduler


class TestManualScheduler:

    def test_fires_in_time_order(self):
        scheduler = ManualScheduler()
        order: list[str] = []
        scheduler.call_every(30, lambda: order.append("fast"))
        scheduler.call_every(45, lambda: order.append("slow"))

        fired = scheduler.advance(90)

        # fast@30, slow@45, fast@60, fast@90, slow@90
        assert fired == 5
        assert order == ["fast", "slow", "fast", "fast", "slow"]
        assert scheduler.now == 90

    def test_cancelled_entry_does_not_fire(self):
        scheduler = ManualScheduler()
        calls: list[int] = []
        handle = scheduler.call_every(10, lambda: calls.append(1))
        handle.cancel()
        assert handle.cancelled
        assert scheduler.advance(100) == 0
        assert calls == []

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            ManualScheduler().call_every(0, lambda: None)


class TestAsyncioScheduler:

    @pytest.mark.asyncio
    async def test_ticks_until_cancelled(self):
        calls: list[int] = []
        handle = AsyncioScheduler().call_every(0.01, lambda: calls.append(1))
        await asyncio.sleep(0.06)
        handle.cancel()
        await asyncio.sleep(0)
        count = len(calls)
        assert count >= 1
        await asyncio.sleep(0.03)
        assert len(calls) == count
        assert handle.cancelled

    @pytest.mark.asyncio
    async def test_callback_error_keeps_ticking(self):
        calls: list[int] = []

        def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")

        handle = AsyncioScheduler().call_every(0.01, flaky)
        await asyncio.sleep(0.06)
        handle.cancel()
        assert len(calls) >= 2
