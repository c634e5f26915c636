"""
Typed state-change events and the queue that delivers them.

Components publish events; renderers subscribe and redraw. Events published
while a dispatch is running are queued and delivered after the current one,
so every subscriber sees events in publication order.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, List, Optional

from pixel_pal.core.models import ContentSnapshot
from pixel_pal.infra import log_utils


@dataclass(frozen=True)
class Event:
    pass


@dataclass(frozen=True)
class StepsUpdated(Event):
    previous_total: int
    total: int
    current_phase: int


@dataclass(frozen=True)
class PhaseTransitioned(Event):
    previous_phase: int
    new_phase: int


@dataclass(frozen=True)
class MilestoneReached(Event):
    milestone: int
    text: str


@dataclass(frozen=True)
class PaywallDue(Event):
    earned_phase: int


@dataclass(frozen=True)
class AuthorizationRequired(Event):
    reason: str


@dataclass(frozen=True)
class SnapshotRendered(Event):
    snapshot: ContentSnapshot


Handler = Callable[[Event], None]


class EventBus:
    def __init__(self) -> None:
        self._subscribers: List[tuple[Optional[type], Handler]] = []
        self._queue: Deque[Event] = deque()
        self._lock = threading.Lock()
        self._dispatching = False

    def subscribe(self, handler: Handler, event_type: Optional[type] = None) -> Callable[[], None]:
        """Register `handler`, optionally for one event type only. Returns an unsubscribe callable."""
        entry = (event_type, handler)
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    def publish(self, event: Event) -> None:
        with self._lock:
            self._queue.append(event)
            if self._dispatching:
                return
            self._dispatching = True
        self._drain()

    def _drain(self) -> None:
        while True:
            with self._lock:
                if not self._queue:
                    self._dispatching = False
                    return
                event = self._queue.popleft()
            for event_type, handler in list(self._subscribers):
                if event_type is not None and not isinstance(event, event_type):
                    continue
                try:
                    handler(event)
                except Exception as e:
                    log_utils.log_message(
                        f"[events] Handler {getattr(handler, '__name__', handler)!s} failed on {type(event).__name__}: {e}",
                        "ERROR",
                    )
