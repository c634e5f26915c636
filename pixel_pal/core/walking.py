"""
Walking animation state machine.

    IDLE --(sample > previous)--> WALKING   render frame 1, start frame timer
    WALKING --(sample <= previous)--> IDLE  stop timer, render idle frame 1

While walking, each timer tick advances the frame (1..N, wrapping) and
re-renders. A single non-increasing sample ends walking immediately; there is
no debounce. The previous sample is updated on every call.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from pixel_pal.config import Settings, settings as default_settings
from pixel_pal.core.scheduler import Scheduler, TimerHandle

# (steps, is_walking, frame_index)
FrameCallback = Callable[[int, bool, int], None]


class MotionState(str, Enum):
    IDLE = "idle"
    WALKING = "walking"


@dataclass
class WalkingAnimationState:
    is_walking: bool = False
    frame_index: int = 1
    previous_step_sample: Optional[int] = None


class WalkingAnimationStateMachine:
    def __init__(self, scheduler: Scheduler, on_frame: FrameCallback, config: Settings | None = None):
        config = config or default_settings
        self.scheduler = scheduler
        self.on_frame = on_frame
        self.frame_count = config.WALKING_FRAME_COUNT
        self.frame_interval = config.WALKING_FRAME_INTERVAL
        self.state = WalkingAnimationState()
        self._steps = 0
        self._timer: Optional[TimerHandle] = None

    @property
    def motion(self) -> MotionState:
        return MotionState.WALKING if self.state.is_walking else MotionState.IDLE

    @property
    def timer_running(self) -> bool:
        return self._timer is not None

    def seed(self, steps: int) -> None:
        """Set the comparison sample without rendering or transitioning."""
        self.state.previous_step_sample = steps
        self._steps = steps

    def update(self, steps: int) -> Optional[MotionState]:
        """Feed a step sample. Returns the new motion state on a transition."""
        previous = self.state.previous_step_sample
        self.state.previous_step_sample = steps
        self._steps = steps
        increased = previous is not None and steps > previous

        if increased and not self.state.is_walking:
            self._start_walking()
            return MotionState.WALKING
        if not increased and self.state.is_walking:
            self._stop_walking()
            return MotionState.IDLE
        if not self.state.is_walking:
            self.on_frame(steps, False, 1)
        # Walking and still increasing: the next tick draws the new count
        return None

    def refresh(self) -> None:
        """Re-render the current frame, e.g. after non-step content changed."""
        self.on_frame(self._steps, self.state.is_walking, self.state.frame_index)

    def reset(self) -> None:
        """Cancel the timer and forget all transient state."""
        self._cancel_timer()
        self.state = WalkingAnimationState()
        self._steps = 0

    def _start_walking(self) -> None:
        self._cancel_timer()
        self.state.is_walking = True
        self.state.frame_index = 1
        self.on_frame(self._steps, True, 1)
        self._timer = self.scheduler.call_repeating(self.frame_interval, self._advance_frame)

    def _advance_frame(self) -> None:
        if not self.state.is_walking:
            return
        self.state.frame_index = (self.state.frame_index % self.frame_count) + 1
        self.on_frame(self._steps, True, self.state.frame_index)

    def _stop_walking(self) -> None:
        self._cancel_timer()
        self.state.is_walking = False
        self.state.frame_index = 1
        self.on_frame(self._steps, False, 1)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
