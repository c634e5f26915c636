"""
Session timing schedulers.

Everything time-driven on the live surface (walking frames, milestone text
expiry, render throttling) goes through a `Scheduler`, so the same code runs
on an asyncio loop in production and on a manually advanced clock in
simulations and tests. Schedulers are single-threaded: callbacks never run
concurrently with each other.
"""

from __future__ import annotations

import asyncio
import itertools
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

Callback = Callable[[], None]


class TimerHandle(ABC):
    @abstractmethod
    def cancel(self) -> None:
        pass

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        pass


class Scheduler(ABC):
    @abstractmethod
    def now(self) -> float:
        """Monotonic time in seconds."""
        pass

    @abstractmethod
    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        pass

    @abstractmethod
    def call_repeating(self, interval: float, callback: Callback) -> TimerHandle:
        """Run `callback` every `interval` seconds until the handle is cancelled."""
        pass


# --- asyncio ---------------------------------------------------------------

class _AsyncioTimer(TimerHandle):
    def __init__(self, loop: asyncio.AbstractEventLoop, delay: float, callback: Callback, interval: Optional[float]):
        self._loop = loop
        self._callback = callback
        self._interval = interval
        self._cancelled = False
        self._handle = loop.call_later(delay, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        if self._interval is not None:
            # Re-arm before running so a callback that cancels us wins
            self._handle = self._loop.call_later(self._interval, self._fire)
        self._callback()

    def cancel(self) -> None:
        self._cancelled = True
        self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler(Scheduler):
    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        return _AsyncioTimer(self.loop, delay, callback, None)

    def call_repeating(self, interval: float, callback: Callback) -> TimerHandle:
        return _AsyncioTimer(self.loop, interval, callback, interval)


# --- manual clock ----------------------------------------------------------

class _ManualTimer(TimerHandle):
    def __init__(self, due: float, seq: int, callback: Callback, interval: Optional[float]):
        self.due = due
        self.seq = seq
        self.callback = callback
        self.interval = interval
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler(Scheduler):
    """A scheduler whose clock only moves when `advance` is called."""

    def __init__(self, start: float = 0.0):
        self._time = start
        self._timers: List[_ManualTimer] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._time

    @property
    def pending(self) -> int:
        """Number of live (uncancelled) timers."""
        return sum(1 for t in self._timers if not t.cancelled)

    def _add(self, delay: float, callback: Callback, interval: Optional[float]) -> TimerHandle:
        timer = _ManualTimer(self._time + delay, next(self._seq), callback, interval)
        self._timers.append(timer)
        return timer

    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        return self._add(delay, callback, None)

    def call_repeating(self, interval: float, callback: Callback) -> TimerHandle:
        if interval <= 0:
            raise ValueError("Repeating interval must be positive")
        return self._add(interval, callback, interval)

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing every timer that falls due, in order."""
        target = self._time + seconds
        while True:
            self._timers = [t for t in self._timers if not t.cancelled]
            due = [t for t in self._timers if t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.seq))
            self._time = max(self._time, timer.due)
            if timer.interval is not None:
                timer.due += timer.interval
            else:
                timer.cancel()
            timer.callback()
        self._time = target
