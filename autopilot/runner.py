"""
Wire the autopilot together and drive it.

Usage:
  python run_agent.py            # toggle on, then poll until stopped (Ctrl-C)
  python run_agent.py --once     # one scan/apply cycle
  python run_agent.py --status   # print persisted status
  python run_agent.py --stop     # persist enabled=false
"""
from __future__ import annotations

import asyncio
import json
import sys

from autopilot.channels import HttpChannel, MockChannel
from autopilot.config import PROFILE_PATH, Settings, load_settings
from autopilot.log import get_logger
from autopilot.messaging import ResilientMessenger
from autopilot.notify import EmailNotifier, LogNotifier, MultiNotifier
from autopilot.profile import HttpProfile, YamlProfile
from autopilot.retry import RetryPolicy
from autopilot.scheduler import AutopilotScheduler
from autopilot.storage import JsonFileStore
from autopilot.telemetry import CsvTelemetry, HttpTelemetry, MultiTelemetry

log = get_logger(__name__)


def build_scheduler(settings: Settings | None = None) -> AutopilotScheduler:
    settings = settings or load_settings()
    notifier = MultiNotifier(LogNotifier(), EmailNotifier())

    if settings.channel_url:
        channel = HttpChannel(settings.channel_url)
        page_url = settings.page_url
        log.info("Using page bridge at %s", settings.channel_url)
    else:
        channel = MockChannel()
        page_url = settings.page_url or MockChannel.url
        log.info("CHANNEL_URL not set — using MockChannel")

    messenger = ResilientMessenger(
        channel,
        notifier=notifier,
        timeout=settings.send_timeout,
        policy=RetryPolicy(max_attempts=settings.max_retries, base_delay=settings.retry_base_delay),
        deferred_ttl=settings.deferred_ttl,
        probe_interval=settings.probe_interval,
    )

    sinks = [CsvTelemetry(settings.data_dir / "applications.csv")]
    if settings.api_url:
        sinks.append(HttpTelemetry(settings.api_url))
        profiles = HttpProfile(settings.api_url)
    else:
        profiles = YamlProfile(PROFILE_PATH)

    return AutopilotScheduler(
        messenger,
        JsonFileStore(settings.data_dir),
        profiles=profiles,
        notifier=notifier,
        telemetry=MultiTelemetry(*sinks),
        page_url=lambda: page_url,
        settings=settings,
    )


async def serve(scheduler: AutopilotScheduler) -> None:
    stop = asyncio.Event()
    probe = asyncio.create_task(scheduler.messenger.run_probe(stop))
    try:
        await scheduler.toggle(True)
        await scheduler.run(stop)
    finally:
        stop.set()
        probe.cancel()
        try:
            await probe
        except asyncio.CancelledError:
            pass


async def run_once(scheduler: AutopilotScheduler) -> dict:
    await scheduler.messenger.probe()
    if not scheduler.is_active:
        await scheduler.toggle(True)
    else:
        await scheduler.run_cycle()
    return scheduler.get_status()


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    scheduler = build_scheduler()

    if "--status" in argv:
        print(json.dumps(scheduler.get_status(), indent=2))
        return 0
    if "--stop" in argv:
        asyncio.run(scheduler.toggle(False))
        return 0
    if "--once" in argv:
        status = asyncio.run(run_once(scheduler))
        log.info("Cycle complete — state=%s, applied today=%d/%d",
                 status["state"], status["appliedToday"], status["dailyLimit"])
        return 0

    log.info("Autopilot running (Ctrl-C to stop)")
    try:
        asyncio.run(serve(scheduler))
    except KeyboardInterrupt:
        log.info("Interrupted — applied today: %d", scheduler.quota.applied_today)
    return 0
