"""
Command-line interface for the Pixel Pal engine.

Feeds step samples in (`ingest`), runs poll cycles (`sync`, `refresh`),
reports progress (`status`) and stands in for the external collaborators
that would otherwise drive the engine: onboarding, the paywall screen and
billing (`onboard`, `ack-paywall`, `premium`). `demo-walk` replays a sample
stream through the live session on a simulated clock.
"""
import argparse
import asyncio
import json
import sys
from datetime import date
from pathlib import Path

from pixel_pal.config import settings
from pixel_pal.core import display_state, phase
from pixel_pal.core.apple import build_daily_summary
from pixel_pal.core.errors import PixelPalError
from pixel_pal.core.events import EventBus, MilestoneReached, PaywallDue, PhaseTransitioned
from pixel_pal.core.live_session import LiveSession
from pixel_pal.core.models import ContentSnapshot, Gender
from pixel_pal.core.progress_store import ProgressStore
from pixel_pal.core.providers import DailySummaryStepProvider
from pixel_pal.core.render import CallbackSurface, ThrottledSurface
from pixel_pal.core.scheduler import ManualScheduler
from pixel_pal.core.sync import SyncEngine
from pixel_pal.data_access.dal import DataAccessLayer
from pixel_pal.data_access.json_dal import JsonDal
from pixel_pal.infra import log_utils


def _get_dal() -> DataAccessLayer:
    """Select the appropriate DAL based on environment settings."""
    if settings.DATABASE_URL and settings.ENVIRONMENT == "production":
        try:
            from pixel_pal.data_access.postgres_dal import PostgresDal
            return PostgresDal(settings)
        except Exception as e:
            log_utils.log_message(
                f"Postgres DAL init failed: {e}. Falling back to JSON.", "WARN"
            )
    return JsonDal(settings)


def _print_event(event) -> None:
    if isinstance(event, PhaseTransitioned):
        print(f"Evolved! Phase {event.new_phase}: {phase.PHASE_NAMES[event.new_phase]}")
    elif isinstance(event, MilestoneReached):
        print(f"Milestone {event.text}")
    elif isinstance(event, PaywallDue):
        print(f"Phase {event.earned_phase} earned. Premium unlocks it.")


def _format_snapshot(snapshot: ContentSnapshot) -> str:
    motion = f"walking frame {snapshot.frame_index}" if snapshot.is_walking else "idle"
    line = f"{snapshot.steps:>7} steps  {snapshot.state.value:<7}  phase {snapshot.phase}  {motion}"
    if snapshot.milestone_text:
        line += f"  {snapshot.milestone_text}"
    return line


def cmd_onboard(store: ProgressStore, args) -> None:
    profile = store.create_profile(Gender(args.gender), args.style)
    print(f"Welcome! Counting steps from {profile.created_at.isoformat()}")


def cmd_ingest(store: ProgressStore, args) -> None:
    if args.file:
        payload = json.loads(Path(args.file).read_text(encoding="utf-8"))
    else:
        payload = {"date": args.date, "steps": args.steps}
    summary = build_daily_summary(payload)
    store.dal.save_daily_summary(summary, date.fromisoformat(summary["date"]))
    print(f"Recorded {summary['apple']['steps']} steps for {summary['date']}")


def _run_sync(store: ProgressStore, refresh: bool) -> None:
    provider = DailySummaryStepProvider(store.dal)
    engine = SyncEngine(store, provider, config=settings)
    store.events.subscribe(_print_event)
    if refresh:
        result = asyncio.run(engine.refresh())
    else:
        result = asyncio.run(engine.run_sync_with_retries())
    for error in result.errors:
        print(f"warning: {error}", file=sys.stderr)
    cmd_status(store, None)
    if result.baseline_average is not None:
        print(f"{settings.BASELINE_DAYS}-day average: {result.baseline_average:,.0f} steps/day")


def cmd_sync(store: ProgressStore, args) -> None:
    _run_sync(store, refresh=False)


def cmd_refresh(store: ProgressStore, args) -> None:
    _run_sync(store, refresh=True)


def cmd_status(store: ProgressStore, args) -> None:
    snap = store.snapshot()
    state = display_state.determine_state(snap.today_steps, settings)
    print(f"Phase {snap.current_phase} ({snap.phase_name}), earned {snap.earned_phase}")
    print(f"Total steps: {snap.total_steps}  today: {snap.today_steps} ({state.description})")
    print(f"Progress in phase: {snap.progress_in_phase:.0%}")
    if snap.steps_to_next_phase is not None:
        print(f"Steps to next phase: {snap.steps_to_next_phase}")
    print(f"Premium: {'yes' if snap.is_premium else 'no'}")
    if phase.should_show_paywall(snap.total_steps, snap.is_premium, snap.has_seen_paywall):
        print("Paywall pending")


def cmd_ack_paywall(store: ProgressStore, args) -> None:
    store.acknowledge_paywall()
    print("Paywall acknowledged")


def cmd_premium(store: ProgressStore, args) -> None:
    if args.state == "on":
        store.activate_premium()
    else:
        store.deactivate_premium()
    print(f"Premium {args.state}")


def cmd_demo_walk(store: ProgressStore, args) -> None:
    scheduler = ManualScheduler()
    surface = ThrottledSurface(
        CallbackSurface(lambda s: print(f"t={scheduler.now():5.1f}s  {_format_snapshot(s)}")),
        scheduler,
        settings.RENDER_MIN_INTERVAL,
    )
    live = LiveSession(surface, scheduler, settings, EventBus())
    samples = args.samples
    gender = store.profile.gender if store.profile else Gender.MALE
    live.start(samples[0], display_state.determine_state(samples[0], settings), gender,
               phase=store.progress.current_phase)
    for steps in samples[1:]:
        scheduler.advance(args.poll)
        live.update(steps, state=display_state.determine_state(steps, settings))
    scheduler.advance(args.poll)
    live.end()


def main(argv=None):
    """Parses CLI arguments and runs the requested command."""
    parser = argparse.ArgumentParser(prog="pixel-pal", description="Pixel Pal evolution engine.")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("onboard", help="Create the profile; starts cumulative counting now.")
    p.add_argument("--gender", choices=[g.value for g in Gender], required=True)
    p.add_argument("--style", default="default", help="Starter style.")
    p.set_defaults(func=cmd_onboard)

    p = sub.add_parser("ingest", help="Record a day's steps from an Apple Health export.")
    p.add_argument("--file", help="JSON payload exported from Apple Health.")
    p.add_argument("--date", default=date.today().isoformat(), help="Day (YYYY-MM-DD).")
    p.add_argument("--steps", help="Step count for the day.")
    p.set_defaults(func=cmd_ingest)

    sub.add_parser("sync", help="Poll steps and update progress.").set_defaults(func=cmd_sync)
    sub.add_parser("refresh", help="Sync, bypassing the step cache.").set_defaults(func=cmd_refresh)
    sub.add_parser("status", help="Show progress.").set_defaults(func=cmd_status)
    sub.add_parser("ack-paywall", help="Mark the paywall as seen.").set_defaults(func=cmd_ack_paywall)

    p = sub.add_parser("premium", help="Switch premium on or off.")
    p.add_argument("state", choices=["on", "off"])
    p.set_defaults(func=cmd_premium)

    p = sub.add_parser("demo-walk", help="Replay step samples through the live surface.")
    p.add_argument("samples", nargs="+", type=int, help="Today's step samples, in order.")
    p.add_argument("--poll", type=float, default=1.0, help="Simulated seconds between samples.")
    p.set_defaults(func=cmd_demo_walk)

    args = parser.parse_args(argv)
    if args.command == "ingest" and not args.file and args.steps is None:
        parser.error("ingest needs --file or --steps")

    log_utils.log_message(f"CLI invoked: {args.command}", "INFO")
    store = ProgressStore(_get_dal(), settings).load()
    try:
        args.func(store, args)
    except PixelPalError as e:
        log_utils.log_message(f"CLI {args.command} failed: {e}", "ERROR")
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
