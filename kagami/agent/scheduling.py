"""Periodic callback scheduling.

The energy gate needs a recurring tick that lives exactly as long as its
room. Production code runs ticks on the asyncio loop; tests drive them by
hand with ManualScheduler.advance() so recovery is deterministic.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable

from loguru import logger


class ScheduledHandle(ABC):
    """A cancellable recurring callback."""

    @abstractmethod
    def cancel(self) -> None:
        ...

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        ...


class Scheduler(ABC):
    """Something that can run a callback every N seconds."""

    @abstractmethod
    def call_every(self, interval: float, callback: Callable[[], None]) -> ScheduledHandle:
        ...


# ── asyncio ───────────────────────────────────────────────────────────


class _TaskHandle(ScheduledHandle):
    def __init__(self, task: asyncio.Task) -> None:
        self._task = task

    def cancel(self) -> None:
        if not self._task.done():
            self._task.cancel()

    @property
    def cancelled(self) -> bool:
        return self._task.cancelled() or self._task.done()


class AsyncioScheduler(Scheduler):
    """Runs each recurring callback as a background task on the running loop."""

    def call_every(self, interval: float, callback: Callable[[], None]) -> ScheduledHandle:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        task = asyncio.get_running_loop().create_task(self._tick(interval, callback))
        return _TaskHandle(task)

    @staticmethod
    async def _tick(interval: float, callback: Callable[[], None]) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                callback()
            except Exception as e:
                logger.exception(f"Scheduled callback failed: {e}")


# ── manual (tests, lab) ───────────────────────────────────────────────


@dataclass
class _ManualEntry(ScheduledHandle):
    interval: float
    callback: Callable[[], None]
    next_due: float
    _cancelled: bool = field(default=False)

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler(Scheduler):
    """Scheduler whose clock only moves when advance() is called.

    Usage::

        scheduler = ManualScheduler()
        gate = EnergyGate(state, scheduler)
        scheduler.advance(60)   # fires every tick due within the next 60s
    """

    def __init__(self) -> None:
        self.now: float = 0.0
        self._entries: list[_ManualEntry] = []

    def call_every(self, interval: float, callback: Callable[[], None]) -> ScheduledHandle:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        entry = _ManualEntry(interval=interval, callback=callback, next_due=self.now + interval)
        self._entries.append(entry)
        return entry

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing due callbacks in time order.

        Returns the number of callbacks fired.
        """
        target = self.now + seconds
        fired = 0
        while True:
            live = [e for e in self._entries if not e.cancelled and e.next_due <= target]
            if not live:
                break
            entry = min(live, key=lambda e: e.next_due)
            self.now = entry.next_due
            entry.next_due += entry.interval
            entry.callback()
            fired += 1
        self.now = target
        self._entries = [e for e in self._entries if not e.cancelled]
        return fired

    @property
    def active_count(self) -> int:
        return sum(1 for e in self._entries if not e.cancelled)
