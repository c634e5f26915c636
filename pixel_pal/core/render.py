"""Rendering surfaces that receive content snapshots from the live session."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional

from pixel_pal.core.models import ContentSnapshot
from pixel_pal.core.scheduler import Scheduler, TimerHandle


class RenderSurface(ABC):
    @abstractmethod
    def render(self, snapshot: ContentSnapshot) -> None:
        """Draw `snapshot`. Must tolerate the same snapshot arriving twice."""
        pass

    def close(self) -> None:
        pass


class CallbackSurface(RenderSurface):
    def __init__(self, callback: Callable[[ContentSnapshot], None]):
        self.callback = callback

    def render(self, snapshot: ContentSnapshot) -> None:
        self.callback(snapshot)


class ThrottledSurface(RenderSurface):
    """
    Enforces a platform update-rate ceiling in front of another surface.

    Snapshots arriving faster than `min_interval` are coalesced: only the
    newest pending one is delivered when the interval has elapsed. Exact
    repeats of the last delivered snapshot are dropped.
    """

    def __init__(self, inner: RenderSurface, scheduler: Scheduler, min_interval: float):
        self.inner = inner
        self.scheduler = scheduler
        self.min_interval = min_interval
        self._last_delivered: Optional[ContentSnapshot] = None
        self._last_time: Optional[float] = None
        self._pending: Optional[ContentSnapshot] = None
        self._flush_timer: Optional[TimerHandle] = None

    def render(self, snapshot: ContentSnapshot) -> None:
        if self._flush_timer is None and snapshot == self._last_delivered:
            return
        now = self.scheduler.now()
        if self._flush_timer is None and (
            self._last_time is None or now - self._last_time >= self.min_interval
        ):
            self._deliver(snapshot, now)
            return
        self._pending = snapshot
        if self._flush_timer is None:
            delay = self.min_interval - (now - self._last_time)
            self._flush_timer = self.scheduler.call_later(delay, self._flush)

    def _deliver(self, snapshot: ContentSnapshot, now: float) -> None:
        self._last_delivered = snapshot
        self._last_time = now
        self.inner.render(snapshot)

    def _flush(self) -> None:
        self._flush_timer = None
        pending, self._pending = self._pending, None
        if pending is not None and pending != self._last_delivered:
            self._deliver(pending, self.scheduler.now())

    def close(self) -> None:
        # The final state must reach the surface before it is ended
        if self._flush_timer is not None:
            self._flush_timer.cancel()
            self._flush()
        self.inner.close()
