"""
Periodic callbacks for session ticks and the client's local loop.

``AsyncioScheduler`` runs real timers on the event loop. ``ManualScheduler``
fires the same callbacks from a ``VirtualClock`` so tests never sleep.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from viscunam.simulation.clock import VirtualClock

log = logging.getLogger(__name__)

TickCallback = Callable[[], Awaitable[None]]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...

    @property
    def cancelled(self) -> bool: ...


class Scheduler(Protocol):
    def call_every(self, period: float, callback: TickCallback) -> TimerHandle: ...

    async def join_cancelled(self) -> None: ...


class _TaskHandle:
    def __init__(self, task: asyncio.Task):
        self._task = task
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True
        self._task.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler:
    def __init__(self) -> None:
        self._handles: set[_TaskHandle] = set()

    async def _run_every(self, period: float, callback: TickCallback) -> None:
        while True:
            await asyncio.sleep(period)
            try:
                await callback()
            except asyncio.CancelledError:
                raise
            except Exception:
                # one failing tick must not stop the timer
                log.exception("Periodic callback %r failed", callback)

    def call_every(self, period: float, callback: TickCallback) -> TimerHandle:
        if period <= 0:
            raise ValueError("period must be positive")
        task = asyncio.get_running_loop().create_task(self._run_every(period, callback))
        handle = _TaskHandle(task)
        self._handles.add(handle)
        task.add_done_callback(lambda _: self._handles.discard(handle))
        return handle

    async def join_cancelled(self) -> None:
        """Wait until every cancelled timer task has actually finished."""
        tasks = [h._task for h in self._handles if h.cancelled]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


class _ManualTimer:
    def __init__(self, period: float, callback: TickCallback, due: float, seq: int):
        self.period = period
        self.callback = callback
        self.due = due
        self.seq = seq
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler:
    def __init__(self, clock: VirtualClock):
        self.clock = clock
        self._timers: list[_ManualTimer] = []
        self._seq = 0

    def call_every(self, period: float, callback: TickCallback) -> TimerHandle:
        if period <= 0:
            raise ValueError("period must be positive")
        self._seq += 1
        timer = _ManualTimer(period, callback, self.clock.now() + period, self._seq)
        self._timers.append(timer)
        return timer

    @property
    def active(self) -> int:
        return sum(1 for t in self._timers if not t.cancelled)

    async def join_cancelled(self) -> None:
        self._timers = [t for t in self._timers if not t.cancelled]

    async def advance(self, seconds: float) -> None:
        """Move the clock forward, firing every timer that falls due on the way."""
        target = self.clock.now() + seconds
        while True:
            self._timers = [t for t in self._timers if not t.cancelled]
            due = [t for t in self._timers if t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.seq))
            self.clock.set(max(self.clock.now(), timer.due))
            timer.due += timer.period
            await timer.callback()
        self.clock.set(target)
