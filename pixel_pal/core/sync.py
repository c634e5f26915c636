"""
One poll cycle of the engine: provider -> cache -> store -> live session.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import List, Optional

from pixel_pal.config import Settings, settings as default_settings
from pixel_pal.core import display_state
from pixel_pal.core.display_state import AvatarState
from pixel_pal.core.errors import (
    FetchFailed,
    PersistenceFailure,
    ProfileMissing,
    ProviderUnavailable,
    RegressiveUpdate,
)
from pixel_pal.core.events import AuthorizationRequired, EventBus
from pixel_pal.core.live_session import LiveSession
from pixel_pal.core.progress_store import ProgressStore, StepUpdateResult
from pixel_pal.core.providers import EntitlementProvider, StepProvider, StoredEntitlementProvider
from pixel_pal.core.step_cache import StepCache
from pixel_pal.infra import log_utils


@dataclass
class SyncResult:
    total_steps: int
    today_steps: int
    avatar_state: AvatarState
    update: Optional[StepUpdateResult] = None
    baseline_average: Optional[float] = None
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class SyncEngine:
    def __init__(
        self,
        store: ProgressStore,
        provider: StepProvider,
        cache: StepCache | None = None,
        entitlements: EntitlementProvider | None = None,
        live: LiveSession | None = None,
        config: Settings | None = None,
        events: EventBus | None = None,
    ):
        self.config = config or default_settings
        self.store = store
        self.provider = provider
        self.cache = cache or StepCache(provider, self.config)
        self.entitlements = entitlements or StoredEntitlementProvider(store)
        self.live = live
        self.events = events or store.events
        self._authorization_requested = False

    def _check_authorization(self) -> bool:
        if self.provider.is_authorized():
            self._authorization_requested = False
            return True
        if not self._authorization_requested:
            self._authorization_requested = True
            log_utils.log_message("[sync] Step data not authorized; requesting re-authorization", "WARN")
            self.events.publish(AuthorizationRequired("Step data read access not granted"))
        return False

    async def _cumulative_steps(self, baseline, errors: List[str]) -> Optional[int]:
        try:
            return await self.cache.get(baseline)
        except FetchFailed as e:
            # A failed read is not a zero reading: the stored total stays as it is
            log_utils.log_message(f"[sync] Cumulative fetch failed; keeping last known state: {e}", "WARN")
            errors.append(f"cumulative: {e}")
            return None

    async def _today_steps(self, errors: List[str]) -> int:
        try:
            today = await self.provider.fetch_today_steps()
        except ProviderUnavailable:
            return 0
        except FetchFailed as e:
            errors.append(f"today: {e}")
            return self.store.progress.today_steps
        return today or 0

    async def _baseline_average(self, errors: List[str]) -> Optional[float]:
        try:
            return await self.provider.fetch_baseline_average(self.config.BASELINE_DAYS)
        except ProviderUnavailable:
            return None
        except FetchFailed as e:
            errors.append(f"baseline: {e}")
            return None

    async def run_sync(self) -> SyncResult:
        """Poll the provider once and push the result through the engine."""
        baseline = self.store.baseline
        errors: List[str] = []
        authorized = self._check_authorization()

        update = None
        average = None
        if authorized:
            total, today, average = await asyncio.gather(
                self._cumulative_steps(baseline, errors),
                self._today_steps(errors),
                self._baseline_average(errors),
            )
            if total is not None:
                # Entitlement is read fresh for every update, never cached across calls
                is_premium = self.entitlements.is_premium
                try:
                    update = self.store.apply_step_update(total, is_premium)
                except RegressiveUpdate as e:
                    log_utils.log_message(f"[sync] {e}; keeping last known state", "WARN")
                    errors.append(str(e))
                except PersistenceFailure as e:
                    # The update was applied in memory; its milestone still shows
                    update = e.result
                    errors.append(str(e))

            try:
                self.store.record_today_steps(today)
            except PersistenceFailure as e:
                errors.append(str(e))
        # Without authorization the provider counts as zero: nothing is written

        today = self.store.progress.today_steps
        state = display_state.determine_state(today, self.config)
        if self.live is not None and self.live.is_active:
            self.live.update(today, state=state, phase=self.store.progress.current_phase)
            if update is not None and update.milestone_text:
                self.live.show_milestone(update.milestone_text)

        log_utils.log_message(
            f"[sync] total={self.store.progress.total_steps_since_start} today={today} "
            f"phase={self.store.progress.current_phase} state={state.value}"
        )
        return SyncResult(
            total_steps=self.store.progress.total_steps_since_start,
            today_steps=today,
            avatar_state=state,
            update=update,
            baseline_average=average,
            errors=errors,
        )

    async def refresh(self) -> SyncResult:
        """User-initiated refresh: bypass the cache for this sync."""
        self.cache.invalidate()
        return await self.run_sync()

    async def run_sync_with_retries(self, retries: int | None = None, delay: float | None = None) -> SyncResult:
        """Attempt the sync several times while it reports transient errors."""
        retries = retries or self.config.SYNC_RETRIES
        delay = self.config.SYNC_RETRY_DELAY if delay is None else delay
        result = None
        for i in range(retries):
            result = await self.run_sync()
            if result.ok:
                return result
            log_utils.log_message(
                f"[sync] Attempt {i + 1}/{retries} had errors: {result.errors}.", "WARN"
            )
            if i + 1 < retries:
                self.cache.invalidate()
                await asyncio.sleep(delay)
        log_utils.log_message(f"[sync] All {retries} sync attempts reported errors.", "ERROR")
        return result


def start_session(engine: SyncEngine) -> None:
    """Start the live session from the store's current state."""
    if engine.live is None:
        raise ValueError("Engine has no live session configured")
    if engine.store.profile is None:
        raise ProfileMissing("Onboarding has not created a profile yet")
    progress = engine.store.progress
    engine.live.start(
        progress.today_steps,
        display_state.determine_state(progress.today_steps, engine.config),
        engine.store.profile.gender,
        phase=progress.current_phase,
    )
