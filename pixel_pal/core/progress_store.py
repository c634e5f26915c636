"""
Owner of the durable entities: profile, progress and entitlements.

All writes to ProgressState go through `apply_step_update`,
`record_today_steps` and `acknowledge_paywall`, serialized by one lock.
Records are loaded on start and saved on every mutation. A failed save
leaves the new state in memory, marks the store dirty and is retried on the
next mutation or `flush()`.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from pixel_pal.config import Settings, settings as default_settings
from pixel_pal.core import milestones, phase
from pixel_pal.core.errors import PersistenceFailure, ProfileExists, ProfileMissing, RegressiveUpdate
from pixel_pal.core.events import (
    EventBus,
    MilestoneReached,
    PaywallDue,
    PhaseTransitioned,
    StepsUpdated,
)
from pixel_pal.core.models import (
    ENTITLEMENTS_KEY,
    PROFILE_KEY,
    PROGRESS_KEY,
    Entitlements,
    Gender,
    ProgressSnapshot,
    ProgressState,
    UserProfile,
    utcnow,
)
from pixel_pal.data_access.dal import DataAccessLayer
from pixel_pal.infra import log_utils


@dataclass(frozen=True)
class StepUpdateResult:
    """Events produced by one update, for the rendering layer to animate."""

    phase_transition: Optional[int] = None
    milestone: Optional[int] = None
    paywall_due: bool = False

    @property
    def milestone_text(self) -> Optional[str]:
        if self.milestone is None:
            return None
        return milestones.format_milestone(self.milestone)


class ProgressStore:
    def __init__(
        self,
        dal: DataAccessLayer,
        config: Settings | None = None,
        events: EventBus | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.dal = dal
        self.config = config or default_settings
        self.events = events or EventBus()
        self.clock = clock
        self._lock = threading.RLock()
        self._dirty: set[str] = set()
        self.profile: Optional[UserProfile] = None
        self.progress = ProgressState()
        self.entitlements = Entitlements.create_free()

    # --- Loading / saving ----------------------------------------------------
    def load(self) -> "ProgressStore":
        """Load all three records; missing ones start fresh."""
        with self._lock:
            record = self.dal.load_record(PROFILE_KEY)
            self.profile = UserProfile.from_record(record) if record else None
            record = self.dal.load_record(PROGRESS_KEY)
            self.progress = ProgressState.from_record(record) if record else ProgressState()
            record = self.dal.load_record(ENTITLEMENTS_KEY)
            self.entitlements = Entitlements.from_record(record) if record else Entitlements.create_free()
            self._dirty.clear()
        log_utils.log_message(
            f"[store] Loaded: {self.progress.total_steps_since_start} steps, phase {self.progress.current_phase}"
        )
        return self

    def _models(self):
        return {
            PROFILE_KEY: self.profile,
            PROGRESS_KEY: self.progress,
            ENTITLEMENTS_KEY: self.entitlements,
        }

    def _save(self, *keys: str) -> None:
        """Persist `keys` plus anything left dirty by an earlier failure."""
        self._dirty.update(keys)
        models = self._models()
        failed = []
        for key in sorted(self._dirty):
            model = models[key]
            if model is None:
                self._dirty.discard(key)
                continue
            try:
                self.dal.save_record(key, model.to_record())
            except PersistenceFailure as e:
                failed.append((key, e))
                continue
            except OSError as e:
                failed.append((key, PersistenceFailure(str(e))))
                continue
            self._dirty.discard(key)
        if failed:
            names = ", ".join(k for k, _ in failed)
            log_utils.log_message(f"[store] Save failed for {names}; will retry on next mutation", "ERROR")
            raise PersistenceFailure(f"Failed to persist: {names}") from failed[0][1]

    @property
    def is_dirty(self) -> bool:
        return bool(self._dirty)

    def flush(self) -> None:
        """Retry any saves that failed earlier."""
        with self._lock:
            if self._dirty:
                self._save()

    # --- Onboarding ----------------------------------------------------------
    def create_profile(self, gender: Gender, starter_style: str = "default") -> UserProfile:
        """Create the profile (the cumulative baseline) with fresh progress and free tier."""
        with self._lock:
            if self.profile is not None:
                raise ProfileExists("Profile already exists; created_at is immutable")
            self.profile = UserProfile.create_new(gender, starter_style, now=self.clock())
            self.progress = ProgressState()
            self.entitlements = Entitlements.create_free()
            log_utils.log_message(f"[store] Profile created, baseline {self.profile.created_at.isoformat()}")
            self._save(PROFILE_KEY, PROGRESS_KEY, ENTITLEMENTS_KEY)
            return self.profile

    def complete_onboarding(self) -> None:
        with self._lock:
            if self.profile is None:
                raise ProfileMissing("No profile to complete onboarding for")
            if self.profile.onboarding_complete:
                return
            self.profile.onboarding_complete = True
            self._save(PROFILE_KEY)

    @property
    def baseline(self) -> datetime:
        if self.profile is None:
            raise ProfileMissing("Onboarding has not created a profile yet")
        return self.profile.created_at

    # --- Progress mutations --------------------------------------------------
    def apply_step_update(self, new_total: int, is_premium: bool) -> StepUpdateResult:
        """
        Record a new cumulative total and evaluate its events.

        The stored phase is the max of its old value and the phase accessible
        now, so a phase reached under premium stays unlocked after a
        downgrade. Transition and milestone events compare against the
        previous total, so re-applying the same total emits nothing.

        Raises:
            RegressiveUpdate: `new_total` is below the stored total.
            PersistenceFailure: the new state is applied but could not be saved;
                its `result` carries the events of this update.
        """
        with self._lock:
            previous_total = self.progress.total_steps_since_start
            if new_total < previous_total:
                log_utils.log_message(
                    f"[store] Regressive update rejected: {new_total} < {previous_total}", "WARN"
                )
                raise RegressiveUpdate(new_total, previous_total)

            previous_phase = self.progress.current_phase
            accessible = phase.current_phase(new_total, is_premium)
            self.progress.total_steps_since_start = new_total
            self.progress.current_phase = max(previous_phase, accessible)
            self.progress.last_sync_time = self.clock()

            result = StepUpdateResult(
                phase_transition=phase.check_phase_transition(previous_total, new_total),
                milestone=milestones.check_milestone(previous_total, new_total),
                paywall_due=phase.should_show_paywall(
                    new_total, is_premium, self.progress.has_seen_paywall
                ),
            )
            if result.phase_transition:
                log_utils.log_message(f"[store] Earned phase {result.phase_transition} at {new_total} steps")
            try:
                self._save(PROGRESS_KEY)
            except PersistenceFailure as e:
                e.result = result
                raise
            finally:
                self._publish(previous_total, previous_phase, result)
            return result

    def record_today_steps(self, today_steps: int) -> None:
        """Store today's count; it is display-only and never drives the phase."""
        with self._lock:
            today_steps = max(today_steps, 0)
            if today_steps == self.progress.today_steps:
                return
            self.progress.today_steps = today_steps
            self._save(PROGRESS_KEY)

    def acknowledge_paywall(self) -> None:
        with self._lock:
            if self.progress.has_seen_paywall:
                return
            self.progress.has_seen_paywall = True
            self._save(PROGRESS_KEY)

    # --- Entitlements (billing collaborator) ---------------------------------
    def activate_premium(self) -> None:
        with self._lock:
            self.entitlements.activate_premium(now=self.clock())
            log_utils.log_message("[store] Premium activated")
            self._save(ENTITLEMENTS_KEY)

    def deactivate_premium(self) -> None:
        with self._lock:
            self.entitlements.deactivate_premium()
            log_utils.log_message("[store] Premium deactivated")
            self._save(ENTITLEMENTS_KEY)

    # --- Read side -----------------------------------------------------------
    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            total = self.progress.total_steps_since_start
            return ProgressSnapshot(
                total_steps=total,
                today_steps=self.progress.today_steps,
                current_phase=self.progress.current_phase,
                earned_phase=phase.earned_phase(total),
                phase_name=phase.PHASE_NAMES[self.progress.current_phase],
                progress_in_phase=phase.progress_in_phase(total),
                steps_to_next_phase=phase.steps_to_next_phase(total),
                is_premium=self.entitlements.is_premium,
                has_seen_paywall=self.progress.has_seen_paywall,
                last_sync_time=self.progress.last_sync_time,
                gender=self.profile.gender if self.profile else None,
            )

    def _publish(self, previous_total: int, previous_phase: int, result: StepUpdateResult) -> None:
        progress = self.progress
        if progress.total_steps_since_start != previous_total:
            self.events.publish(
                StepsUpdated(previous_total, progress.total_steps_since_start, progress.current_phase)
            )
        if result.phase_transition:
            self.events.publish(PhaseTransitioned(phase.earned_phase(previous_total), result.phase_transition))
        if result.milestone:
            self.events.publish(MilestoneReached(result.milestone, result.milestone_text))
        if result.paywall_due:
            self.events.publish(PaywallDue(phase.earned_phase(progress.total_steps_since_start)))
        if progress.current_phase != previous_phase:
            log_utils.log_message(f"[store] Accessible phase {previous_phase} -> {progress.current_phase}")
