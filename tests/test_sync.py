import asyncio
from datetime import date, datetime, timezone

import pytest

from pixel_pal.config import Settings
from pixel_pal.core.display_state import AvatarState
from pixel_pal.core.errors import PersistenceFailure, ProfileMissing
from pixel_pal.core.events import AuthorizationRequired, EventBus
from pixel_pal.core.live_session import LiveSession
from pixel_pal.core.models import Gender
from pixel_pal.core.progress_store import ProgressStore
from pixel_pal.core.providers import DailySummaryStepProvider
from pixel_pal.core.render import CallbackSurface
from pixel_pal.core.scheduler import ManualScheduler
from pixel_pal.core.step_cache import StepCache
from pixel_pal.core.sync import SyncEngine, start_session
from pixel_pal.data_access.json_dal import JsonDal

ONBOARDED = datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc)
LATER = datetime(2025, 3, 2, 18, 0, tzinfo=timezone.utc)
CONFIG = Settings(STEP_CACHE_SECONDS=3600, SYNC_RETRY_DELAY=0)


def ingest(dal, day, steps):
    dal.save_daily_summary({"date": day.isoformat(), "apple": {"steps": steps}}, day)


def make_engine(live=None, onboard=True):
    dal = JsonDal()
    events = EventBus()
    store = ProgressStore(dal, CONFIG, events, clock=lambda: ONBOARDED).load()
    if onboard:
        store.create_profile(Gender.FEMALE)
    provider = DailySummaryStepProvider(dal, clock=lambda: LATER)
    cache = StepCache(provider, CONFIG, clock=lambda: LATER)
    engine = SyncEngine(store, provider, cache=cache, live=live, config=CONFIG, events=events)
    return engine, dal, provider


def test_sync_applies_cumulative_and_today_steps():
    engine, dal, _ = make_engine()
    ingest(dal, date(2025, 3, 1), 3_000)
    ingest(dal, date(2025, 3, 2), 24_000)

    result = asyncio.run(engine.run_sync())

    assert result.ok
    assert result.total_steps == 27_000
    assert result.today_steps == 24_000
    assert result.avatar_state is AvatarState.VITAL
    assert result.update.phase_transition == 2
    assert result.update.milestone == 1_000
    assert engine.store.progress.current_phase == 2


def test_cached_total_until_refresh():
    engine, dal, _ = make_engine()
    ingest(dal, date(2025, 3, 2), 1_000)
    asyncio.run(engine.run_sync())

    ingest(dal, date(2025, 3, 2), 2_000)
    cached = asyncio.run(engine.run_sync())
    refreshed = asyncio.run(engine.refresh())

    assert cached.total_steps == 1_000
    assert cached.today_steps == 2_000
    assert refreshed.total_steps == 2_000


def test_unauthorized_provider_requests_authorization_once():
    engine, dal, provider = make_engine()
    ingest(dal, date(2025, 3, 2), 5_000)
    provider.authorized = False
    requests = []
    engine.events.subscribe(requests.append, AuthorizationRequired)

    first = asyncio.run(engine.run_sync())
    asyncio.run(engine.run_sync())

    assert len(requests) == 1
    assert first.total_steps == 0
    assert engine.store.progress.last_sync_time is None


def test_regressive_total_keeps_last_known_state():
    engine, dal, _ = make_engine()
    engine.store.apply_step_update(50_000, is_premium=False)
    ingest(dal, date(2025, 3, 2), 1_000)

    result = asyncio.run(engine.run_sync())

    assert not result.ok
    assert engine.store.progress.total_steps_since_start == 50_000


def test_sync_needs_profile():
    engine, _, _ = make_engine(onboard=False)
    with pytest.raises(ProfileMissing):
        asyncio.run(engine.run_sync())


def test_entitlement_read_at_each_sync():
    engine, dal, _ = make_engine()
    ingest(dal, date(2025, 3, 2), 100_000)
    asyncio.run(engine.run_sync())
    assert engine.store.progress.current_phase == 2

    engine.store.activate_premium()
    asyncio.run(engine.run_sync())

    assert engine.store.progress.current_phase == 3


def test_live_session_receives_sync_results():
    scheduler = ManualScheduler()
    rendered = []
    live = LiveSession(CallbackSurface(rendered.append), scheduler, CONFIG)
    engine, dal, _ = make_engine(live=live)
    start_session(engine)
    ingest(dal, date(2025, 3, 2), 5_200)

    asyncio.run(engine.run_sync())

    last = rendered[-1]
    assert last.steps == 5_200
    assert last.is_walking
    assert last.state is AvatarState.NEUTRAL
    assert last.gender is Gender.FEMALE
    assert last.milestone_text == "1k!"
    live.end()
    assert scheduler.pending == 0


def test_retries_stop_after_success():
    engine, dal, _ = make_engine()
    ingest(dal, date(2025, 3, 2), 10)

    result = asyncio.run(engine.run_sync_with_retries(retries=3, delay=0))

    assert result.ok
    assert result.total_steps == 10


def test_failed_cumulative_fetch_is_not_a_regression(monkeypatch):
    engine, dal, _ = make_engine()
    ingest(dal, date(2025, 3, 2), 5_000)
    assert asyncio.run(engine.run_sync()).total_steps == 5_000

    def unreachable(start_day, end_day):
        raise OSError("store offline")

    monkeypatch.setattr(dal, "get_historical_data", unreachable)
    result = asyncio.run(engine.refresh())

    assert not result.ok
    assert any(e.startswith("cumulative:") for e in result.errors)
    assert not any("regressive" in e for e in result.errors)
    assert result.update is None
    assert result.total_steps == 5_000
    assert result.today_steps == 5_000
    assert engine.store.progress.total_steps_since_start == 5_000


def test_failed_cumulative_fetch_does_not_touch_live_milestone(monkeypatch):
    scheduler = ManualScheduler()
    rendered = []
    live = LiveSession(CallbackSurface(rendered.append), scheduler, CONFIG)
    engine, dal, _ = make_engine(live=live)
    start_session(engine)

    def unreachable(start_day, end_day):
        raise OSError("store offline")

    monkeypatch.setattr(dal, "get_historical_data", unreachable)
    result = asyncio.run(engine.run_sync())

    assert not result.ok
    assert all(s.milestone_text is None for s in rendered)
    live.end()


def test_failed_save_still_shows_the_milestone(monkeypatch):
    scheduler = ManualScheduler()
    rendered = []
    live = LiveSession(CallbackSurface(rendered.append), scheduler, CONFIG)
    engine, dal, _ = make_engine(live=live)
    start_session(engine)
    ingest(dal, date(2025, 3, 2), 1_500)

    def disk_full(key, record):
        raise PersistenceFailure(f"disk full ({key})")

    monkeypatch.setattr(dal, "save_record", disk_full)
    result = asyncio.run(engine.run_sync())

    assert not result.ok
    assert result.update.milestone == 1_000
    assert result.total_steps == 1_500
    assert engine.store.is_dirty
    assert rendered[-1].milestone_text == "1k!"
    live.end()


def test_baseline_average_covers_the_last_seven_days():
    engine, dal, _ = make_engine()
    # 2025-02-23 falls outside the window ending 2025-03-02
    ingest(dal, date(2025, 2, 23), 70_000)
    ingest(dal, date(2025, 2, 25), 7_000)
    ingest(dal, date(2025, 3, 2), 7_000)

    result = asyncio.run(engine.run_sync())

    assert result.baseline_average == 2_000


def test_baseline_average_is_none_without_history():
    engine, _, _ = make_engine()

    result = asyncio.run(engine.run_sync())

    assert result.ok
    assert result.baseline_average is None
