"""
The hosted live surface (lock screen / island style activity).

A session owns the walking state machine and every timer it starts. Ending a
session, or starting a new one over it, cancels those timers synchronously
so none can outlive the session.
"""

from __future__ import annotations

from typing import Optional

from pixel_pal.config import Settings, settings as default_settings
from pixel_pal.core.display_state import AvatarState
from pixel_pal.core.events import EventBus, SnapshotRendered
from pixel_pal.core.models import ContentSnapshot, Gender
from pixel_pal.core.render import RenderSurface
from pixel_pal.core.scheduler import Scheduler, TimerHandle
from pixel_pal.core.walking import MotionState, WalkingAnimationStateMachine
from pixel_pal.infra import log_utils


class LiveSession:
    def __init__(
        self,
        surface: RenderSurface,
        scheduler: Scheduler,
        config: Settings | None = None,
        events: EventBus | None = None,
    ):
        self.config = config or default_settings
        self.surface = surface
        self.scheduler = scheduler
        self.events = events
        self.machine = WalkingAnimationStateMachine(scheduler, self._render, self.config)
        self.is_active = False
        self.gender = Gender.MALE
        self.state = AvatarState.LOW
        self.phase = 1
        self.milestone_text: Optional[str] = None
        self._milestone_timer: Optional[TimerHandle] = None
        self.last_snapshot: Optional[ContentSnapshot] = None

    @property
    def is_walking(self) -> bool:
        return self.machine.state.is_walking

    def start(self, steps: int, state: AvatarState, gender: Gender, phase: int = 1) -> None:
        if self.is_active:
            self.end()
        self.state = state
        self.gender = gender
        self.phase = phase
        self.is_active = True
        self.machine.seed(steps)
        log_utils.log_message(f"[live] Session started at {steps} steps")
        self._render(steps, False, 1)

    def update(
        self,
        steps: int,
        state: AvatarState | None = None,
        gender: Gender | None = None,
        phase: int | None = None,
    ) -> Optional[MotionState]:
        """Feed a new sample; starts a session if none is running."""
        if not self.is_active:
            self.start(steps, state or self.state, gender or self.gender, phase or self.phase)
            return None
        if state is not None:
            self.state = state
        if gender is not None:
            self.gender = gender
        if phase is not None:
            self.phase = phase
        return self.machine.update(steps)

    def show_milestone(self, text: str) -> None:
        """Attach celebration text to snapshots for a few seconds."""
        if not self.is_active:
            return
        self._cancel_milestone_timer()
        self.milestone_text = text
        self.machine.refresh()
        self._milestone_timer = self.scheduler.call_later(
            self.config.MILESTONE_DISPLAY_SECONDS, self._clear_milestone
        )

    def end(self) -> None:
        """End the session; cancels every timer it owns."""
        self.machine.reset()
        self._cancel_milestone_timer()
        self.milestone_text = None
        self.surface.close()
        if self.is_active:
            log_utils.log_message("[live] Session ended")
        self.is_active = False

    def _clear_milestone(self) -> None:
        self._milestone_timer = None
        self.milestone_text = None
        if self.is_active:
            self.machine.refresh()

    def _cancel_milestone_timer(self) -> None:
        if self._milestone_timer is not None:
            self._milestone_timer.cancel()
            self._milestone_timer = None

    def _render(self, steps: int, is_walking: bool, frame_index: int) -> None:
        if not self.is_active:
            return
        snapshot = ContentSnapshot(
            steps=steps,
            phase=self.phase,
            state=self.state,
            gender=self.gender,
            is_walking=is_walking,
            frame_index=frame_index,
            milestone_text=self.milestone_text,
        )
        self.last_snapshot = snapshot
        self.surface.render(snapshot)
        if self.events is not None:
            self.events.publish(SnapshotRendered(snapshot))
