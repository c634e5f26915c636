"""
Contracts for the engine's external collaborators, plus the implementations
backed by this package's own storage.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from pixel_pal.core.models import utcnow
from pixel_pal.data_access.dal import DataAccessLayer
from pixel_pal.core.errors import FetchFailed, ProviderUnavailable
from pixel_pal.infra import log_utils


class StepProvider(ABC):
    """A polled source of step counts."""

    @abstractmethod
    def is_authorized(self) -> bool:
        """Whether the engine may read step data. Authorization itself is managed elsewhere."""
        pass

    @abstractmethod
    async def fetch_cumulative_steps(self, start: datetime, end: datetime) -> Optional[int]:
        """
        Sum of steps in `[start, end)`.

        Returns:
            The total, or None when the provider holds no data for the window.

        Raises:
            ProviderUnavailable: read authorization is missing.
            FetchFailed: the query failed for a transient reason.
        """
        pass

    @abstractmethod
    async def fetch_today_steps(self) -> Optional[int]:
        """Steps recorded today, or None when there is no data yet."""
        pass

    async def fetch_baseline_average(self, days: int) -> Optional[float]:
        """
        Average daily steps over the last `days` days, today included.

        Providers without history return None.
        """
        return None


class DailySummaryStepProvider(StepProvider):
    """
    Step provider over the daily summaries persisted through the DAL.

    Summaries have daily granularity, so the window's first day is counted in
    full. Reads run in a worker thread to keep the event loop free.
    """

    def __init__(
        self,
        dal: DataAccessLayer,
        authorized: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.dal = dal
        self.authorized = authorized
        self.clock = clock

    def is_authorized(self) -> bool:
        return self.authorized

    def _sum_steps(self, start_day: date, end_day: date) -> Optional[int]:
        summaries = self.dal.get_historical_data(start_day, end_day)
        steps = [
            s.get("apple", {}).get("steps")
            for s in summaries
            if s.get("apple", {}).get("steps") is not None
        ]
        if not steps:
            return None
        return sum(int(v) for v in steps)

    async def _query(self, start_day: date, end_day: date) -> Optional[int]:
        if not self.authorized:
            raise ProviderUnavailable("Step data read access not granted")
        try:
            return await asyncio.to_thread(self._sum_steps, start_day, end_day)
        except Exception as e:
            log_utils.log_message(f"[provider] Step query {start_day}..{end_day} failed: {e}", "ERROR")
            raise FetchFailed(str(e)) from e

    async def fetch_cumulative_steps(self, start: datetime, end: datetime) -> Optional[int]:
        if end <= start:
            return None
        return await self._query(start.date(), end.date())

    async def fetch_today_steps(self) -> Optional[int]:
        today = self.clock().date()
        return await self._query(today, today)

    async def fetch_baseline_average(self, days: int) -> Optional[float]:
        if days <= 0:
            return None
        today = self.clock().date()
        total = await self._query(today - timedelta(days=days - 1), today)
        if total is None:
            return None
        # Days without a summary count as zero
        return total / days


class EntitlementProvider(ABC):
    """Read-only view of premium status, kept current by the billing collaborator."""

    @property
    @abstractmethod
    def is_premium(self) -> bool:
        pass


class StoredEntitlementProvider(EntitlementProvider):
    """Reads the entitlement record held by a ProgressStore on every access."""

    def __init__(self, store):
        self.store = store

    @property
    def is_premium(self) -> bool:
        return self.store.entitlements.is_premium
