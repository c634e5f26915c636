"""
Time-bounded cache of the provider's cumulative step total.

Cumulative queries span the whole life of the profile and are expensive, so a
result is reused until it is `STEP_CACHE_SECONDS` old or explicitly
invalidated. Concurrent readers of the same baseline share one in-flight
fetch; readers of different baselines never wait on each other.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Callable, Dict, NamedTuple, Optional, Set

from pixel_pal.config import Settings, settings as default_settings
from pixel_pal.core.errors import FetchFailed, ProviderUnavailable
from pixel_pal.core.models import utcnow
from pixel_pal.core.providers import StepProvider
from pixel_pal.infra import log_utils


class CachedTotal(NamedTuple):
    value: int
    captured_at: datetime
    baseline: datetime


class StepCache:
    def __init__(
        self,
        provider: StepProvider,
        config: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        config = config or default_settings
        self.provider = provider
        self.clock = clock
        self.cache_duration = timedelta(seconds=config.STEP_CACHE_SECONDS)
        self._entry: Optional[CachedTotal] = None
        self._in_flight: Dict[datetime, asyncio.Task] = {}
        self._running: Set[asyncio.Task] = set()
        # Bumped by invalidate(); fetches started under an older generation
        # still answer their waiters but never write the entry.
        self._generation = 0

    @property
    def entry(self) -> Optional[CachedTotal]:
        return self._entry

    def is_fresh(self, baseline: datetime) -> bool:
        entry = self._entry
        return (
            entry is not None
            and entry.baseline == baseline
            and self.clock() - entry.captured_at < self.cache_duration
        )

    def invalidate(self) -> None:
        """Drop the cached total so the next get() refetches."""
        self._entry = None
        self._generation += 1
        # Fetches already running still answer their waiters, but later
        # readers start a fresh one
        self._in_flight.clear()
        log_utils.log_message("[cache] Cumulative step cache invalidated")

    async def get(self, baseline: datetime) -> int:
        """
        Cumulative steps from `baseline` until now.

        Raises:
            FetchFailed: the provider query failed. Nothing is cached; use
                `last_known` for the value to keep showing.
        """
        if self.is_fresh(baseline):
            return self._entry.value

        task = self._in_flight.get(baseline)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._fetch(baseline))
            self._in_flight[baseline] = task
            self._running.add(task)
            task.add_done_callback(lambda t, b=baseline: self._forget(b, t))
        # A cancelled waiter must not cancel the fetch other waiters share
        return await asyncio.shield(task)

    def cancel_pending(self) -> None:
        """Cancel every in-flight fetch; their results are discarded."""
        for task in list(self._running):
            task.cancel()

    def _forget(self, baseline: datetime, task: asyncio.Task) -> None:
        self._running.discard(task)
        if self._in_flight.get(baseline) is task:
            del self._in_flight[baseline]

    def last_known(self, baseline: datetime) -> int:
        """The cached total for `baseline`, even if stale, or 0."""
        entry = self._entry
        if entry is not None and entry.baseline == baseline:
            return entry.value
        return 0

    async def _fetch(self, baseline: datetime) -> int:
        generation = self._generation
        try:
            value = await self.provider.fetch_cumulative_steps(baseline, self.clock())
        except ProviderUnavailable as e:
            log_utils.log_message(f"[cache] Provider unavailable, treating total as 0: {e}", "WARN")
            value = None
        except FetchFailed as e:
            log_utils.log_message(f"[cache] Cumulative fetch failed, nothing cached: {e}", "WARN")
            raise

        # No data is itself a fact worth caching until expiry
        total = value if value is not None else 0
        if generation == self._generation:
            self._entry = CachedTotal(total, self.clock(), baseline)
        return total
