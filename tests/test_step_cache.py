import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import pytest

from pixel_pal.config import Settings
from pixel_pal.core.errors import FetchFailed, ProviderUnavailable
from pixel_pal.core.providers import StepProvider
from pixel_pal.core.step_cache import StepCache

BASELINE = datetime(2025, 1, 1, 8, 0, tzinfo=timezone.utc)
OTHER_BASELINE = datetime(2025, 2, 1, 8, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeProvider(StepProvider):
    def __init__(self, total: Optional[int] = 0, error: Exception | None = None):
        self.total = total
        self.error = error
        self.calls = 0
        self.gates: Dict[datetime, asyncio.Event] = {}

    def is_authorized(self) -> bool:
        return not isinstance(self.error, ProviderUnavailable)

    async def fetch_cumulative_steps(self, start, end):
        self.calls += 1
        gate = self.gates.get(start)
        if gate is not None:
            await gate.wait()
        if self.error is not None:
            raise self.error
        return self.total

    async def fetch_today_steps(self):
        return None


def make_cache(provider, clock=None):
    clock = clock or FakeClock(BASELINE + timedelta(days=3))
    return StepCache(provider, Settings(STEP_CACHE_SECONDS=3600), clock=clock), clock


def test_two_gets_inside_window_fetch_once():
    provider = FakeProvider(total=42_000)
    cache, clock = make_cache(provider)

    async def scenario():
        first = await cache.get(BASELINE)
        clock.advance(3599)
        second = await cache.get(BASELINE)
        return first, second

    assert asyncio.run(scenario()) == (42_000, 42_000)
    assert provider.calls == 1


def test_expired_entry_is_refetched():
    provider = FakeProvider(total=1_000)
    cache, clock = make_cache(provider)

    async def scenario():
        await cache.get(BASELINE)
        provider.total = 1_500
        clock.advance(3600)
        return await cache.get(BASELINE)

    assert asyncio.run(scenario()) == 1_500
    assert provider.calls == 2
    assert cache.entry.value == 1_500


def test_invalidate_forces_refetch():
    provider = FakeProvider(total=10)
    cache, _ = make_cache(provider)

    async def scenario():
        await cache.get(BASELINE)
        cache.invalidate()
        assert cache.entry is None
        provider.total = 20
        return await cache.get(BASELINE)

    assert asyncio.run(scenario()) == 20
    assert provider.calls == 2


def test_different_baseline_misses_the_single_entry():
    provider = FakeProvider(total=10)
    cache, _ = make_cache(provider)

    async def scenario():
        await cache.get(BASELINE)
        await cache.get(OTHER_BASELINE)

    asyncio.run(scenario())
    assert provider.calls == 2
    assert cache.entry.baseline == OTHER_BASELINE


def test_no_data_resolves_to_zero_and_is_cached():
    provider = FakeProvider(total=None)
    cache, _ = make_cache(provider)

    async def scenario():
        return await cache.get(BASELINE), await cache.get(BASELINE)

    assert asyncio.run(scenario()) == (0, 0)
    assert provider.calls == 1


def test_unauthorized_provider_resolves_to_zero():
    provider = FakeProvider(error=ProviderUnavailable("denied"))
    cache, _ = make_cache(provider)

    assert asyncio.run(cache.get(BASELINE)) == 0
    assert cache.entry.value == 0


def test_failed_fetch_raises_and_keeps_previous_entry():
    provider = FakeProvider(total=5_000)
    cache, clock = make_cache(provider)

    async def scenario():
        await cache.get(BASELINE)
        captured = cache.entry.captured_at
        clock.advance(7200)
        provider.error = FetchFailed("timeout")
        with pytest.raises(FetchFailed):
            await cache.get(BASELINE)
        return captured

    captured = asyncio.run(scenario())
    assert cache.last_known(BASELINE) == 5_000
    assert cache.entry.captured_at == captured
    assert provider.calls == 2


def test_failed_fetch_without_entry_has_nothing_to_fall_back_on():
    provider = FakeProvider(error=FetchFailed("timeout"))
    cache, _ = make_cache(provider)

    with pytest.raises(FetchFailed):
        asyncio.run(cache.get(BASELINE))
    assert cache.entry is None
    assert cache.last_known(BASELINE) == 0


def test_last_known_ignores_entry_for_other_baseline():
    provider = FakeProvider(total=300)
    cache, _ = make_cache(provider)

    asyncio.run(cache.get(BASELINE))
    assert cache.last_known(BASELINE) == 300
    assert cache.last_known(OTHER_BASELINE) == 0


def test_concurrent_gets_share_one_fetch():
    provider = FakeProvider(total=777)
    cache, _ = make_cache(provider)

    async def scenario():
        gate = provider.gates[BASELINE] = asyncio.Event()
        waiters = [asyncio.create_task(cache.get(BASELINE)) for _ in range(5)]
        await asyncio.sleep(0)
        gate.set()
        return await asyncio.gather(*waiters)

    assert asyncio.run(scenario()) == [777] * 5
    assert provider.calls == 1


def test_other_baselines_do_not_wait_on_a_slow_fetch():
    provider = FakeProvider(total=3)
    cache, _ = make_cache(provider)

    async def scenario():
        gate = provider.gates[BASELINE] = asyncio.Event()
        slow = asyncio.create_task(cache.get(BASELINE))
        await asyncio.sleep(0)
        fast = await asyncio.wait_for(cache.get(OTHER_BASELINE), timeout=1)
        assert not slow.done()
        gate.set()
        return fast, await slow

    assert asyncio.run(scenario()) == (3, 3)
    assert provider.calls == 2


def test_invalidate_during_fetch_discards_the_write():
    provider = FakeProvider(total=900)
    cache, _ = make_cache(provider)

    async def scenario():
        gate = provider.gates[BASELINE] = asyncio.Event()
        waiter = asyncio.create_task(cache.get(BASELINE))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        cache.invalidate()
        gate.set()
        return await waiter

    assert asyncio.run(scenario()) == 900
    assert cache.entry is None



def test_get_after_invalidate_starts_a_new_fetch():
    provider = FakeProvider(total=100)
    cache, _ = make_cache(provider)

    async def scenario():
        gate = provider.gates[BASELINE] = asyncio.Event()
        stale = asyncio.create_task(cache.get(BASELINE))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        cache.invalidate()
        provider.total = 250
        fresh = asyncio.create_task(cache.get(BASELINE))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        gate.set()
        return await stale, await fresh

    assert asyncio.run(scenario()) == (250, 250)
    assert provider.calls == 2
    assert cache.entry.value == 250


def test_cancelled_waiter_does_not_cancel_shared_fetch():
    provider = FakeProvider(total=64)
    cache, _ = make_cache(provider)

    async def scenario():
        gate = provider.gates[BASELINE] = asyncio.Event()
        first = asyncio.create_task(cache.get(BASELINE))
        second = asyncio.create_task(cache.get(BASELINE))
        await asyncio.sleep(0)
        first.cancel()
        gate.set()
        return await second

    assert asyncio.run(scenario()) == 64
    assert provider.calls == 1
    assert cache.entry.value == 64


def test_cancelled_fetch_writes_nothing():
    provider = FakeProvider(total=64)
    cache, _ = make_cache(provider)

    async def scenario():
        provider.gates[BASELINE] = asyncio.Event()
        waiter = asyncio.create_task(cache.get(BASELINE))
        await asyncio.sleep(0)
        cache.cancel_pending()
        with pytest.raises(asyncio.CancelledError):
            await waiter

    asyncio.run(scenario())
    assert cache.entry is None
