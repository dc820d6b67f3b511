"""Timer hosts for the data sources and the driving loop.

Every source reschedules itself through a ``Scheduler`` instead of sleeping,
so the whole timeline runs on one thread. ``AsyncioScheduler`` backs the
real event loop; ``ManualScheduler`` advances a virtual clock and fires due
callbacks in order, which keeps timing behaviour testable without real time.
"""

import abc
import asyncio
import heapq
import itertools
from typing import Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(abc.ABC):
    """Schedules callbacks after a delay given in milliseconds."""

    @abc.abstractmethod
    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        ...


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay_ms) / 1000, callback)


class _ManualTimer:
    def __init__(self, due_ms: float, callback: Callable[[], None]) -> None:
        self.due_ms = due_ms
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Virtual-clock scheduler. Nothing fires until ``advance`` is called."""

    def __init__(self, start_ms: float = 0.0) -> None:
        self._now = start_ms
        self._seq = itertools.count()
        self._queue: list[tuple[float, int, _ManualTimer]] = []
        self.scheduled_delays: list[float] = []

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> _ManualTimer:
        timer = _ManualTimer(self._now + max(0.0, delay_ms), callback)
        heapq.heappush(self._queue, (timer.due_ms, next(self._seq), timer))
        self.scheduled_delays.append(delay_ms)
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for _, _, timer in self._queue if not timer.cancelled)

    def advance(self, ms: float) -> int:
        """Move the clock forward, firing due timers in order. Returns the number fired."""
        target = self._now + ms
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now = due
            timer.callback()
            fired += 1
        self._now = target
        return fired

    def run_next(self) -> bool:
        """Fire the next pending timer, jumping the clock to its due time."""
        while self._queue:
            due, _, timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now = max(self._now, due)
            timer.callback()
            return True
        return False
