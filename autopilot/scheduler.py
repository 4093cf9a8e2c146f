"""
Autopilot scheduler.

Runs: scan page → qualify (filter/score/sort) → apply in batches, gated by
the daily quota. All work happens on one event loop; the only waits are
channel calls and the configured delays, so ``toggle(False)`` takes effect
at the next checkpoint (before the next job or the next scan).
"""
from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable

from autopilot.clock import SystemClock
from autopilot.config import Settings
from autopilot.log import get_logger
from autopilot.messaging import ChannelStatus, ResilientMessenger
from autopilot.models import (
    ApplicationLedger,
    JobPosting,
    Preferences,
    QuotaState,
    SchedulerState,
    ScoredJob,
)
from autopilot.notify import APPLIED, STARTED, STOPPED, Notification, Notifier
from autopilot.profile import ProfileProvider
from autopilot.quota import QuotaTracker
from autopilot.scorer import JobClassifier, filter_and_rank
from autopilot.storage import SYNC, KeyValueStore, PersistenceWriteFailure
from autopilot.telemetry import TelemetrySink, application_event

log = get_logger(__name__)

PREFERENCES_KEY = "autopilotPreferences"


@dataclass
class AutopilotState:
    """Everything the scheduler mutates. Only touched from the event loop."""

    ledger: ApplicationLedger
    channel: ChannelStatus
    status: SchedulerState = SchedulerState.INACTIVE
    queue: deque[ScoredJob] = field(default_factory=deque)


class AutopilotScheduler:
    def __init__(
        self,
        messenger: ResilientMessenger,
        store: KeyValueStore,
        *,
        profiles: ProfileProvider,
        notifier: Notifier,
        telemetry: TelemetrySink,
        page_url: Callable[[], str],
        settings: Settings | None = None,
        clock=None,
        classifier: JobClassifier | None = None,
    ) -> None:
        self.messenger = messenger
        self.store = store
        self.profiles = profiles
        self.notifier = notifier
        self.telemetry = telemetry
        self.page_url = page_url
        self.settings = settings or Settings()
        self.clock = clock or SystemClock()
        self.classifier = classifier

        stored = store.get(SYNC, [PREFERENCES_KEY]).get(PREFERENCES_KEY)
        self.preferences = Preferences.from_dict(stored, base=self.settings.default_preferences)
        self.quota = QuotaTracker(
            store,
            preferences=lambda: self.preferences,
            today=self.clock.today,
            notifier=notifier,
            on_exhausted=self._pause,
        )
        self.state = AutopilotState(ledger=self.quota.ledger, channel=messenger.status)
        self._cycle_running = False

    @property
    def status(self) -> SchedulerState:
        return self.state.status

    @property
    def is_active(self) -> bool:
        return self.state.status is not SchedulerState.INACTIVE

    def _set_status(self, status: SchedulerState) -> None:
        if status is not self.state.status:
            log.info("Autopilot %s → %s", self.state.status.value, status.value)
            self.state.status = status

    def _pause(self) -> None:
        if self.is_active:
            self._set_status(SchedulerState.PAUSED)
        self._drop_queue("daily limit reached")

    def _drop_queue(self, reason: str) -> None:
        if self.state.queue:
            log.info("Dropping %d queued job(s): %s", len(self.state.queue), reason)
            self.state.queue.clear()

    def _reset_day(self) -> None:
        if self.quota.check_reset():
            self._drop_queue("new day")

    def _sync_preferences(self) -> bool:
        """Reload persisted preferences; False (and INACTIVE) once they say disabled."""
        stored = self.store.get(SYNC, [PREFERENCES_KEY]).get(PREFERENCES_KEY)
        if stored is not None:
            self.preferences = Preferences.from_dict(stored, base=self.settings.default_preferences)
        if self.preferences.enabled:
            return True
        if self.is_active:
            log.info("Autopilot disabled in stored preferences")
            self._set_status(SchedulerState.INACTIVE)
        self.state.queue.clear()
        return False

    def _save_preferences(self) -> None:
        try:
            self.store.set(SYNC, {PREFERENCES_KEY: self.preferences.to_dict()})
        except PersistenceWriteFailure as exc:
            log.error("Could not persist preferences: %s", exc)

    # --- control surface ---

    async def toggle(self, enabled: bool) -> None:
        self.preferences.enabled = enabled
        self._save_preferences()
        if enabled:
            self._reset_day()
            self._set_status(SchedulerState.SCANNING)
            self.notifier.notify(Notification(
                kind=STARTED,
                title="Autopilot active",
                message="Searching for jobs matching your criteria. "
                        f"Daily limit: {self.quota.remaining()} remaining.",
            ))
            await self.run_cycle()
        else:
            self._set_status(SchedulerState.INACTIVE)
            self.state.queue.clear()
            self.notifier.notify(Notification(
                kind=STOPPED,
                title="Autopilot stopped",
                message=f"Applied to {self.quota.applied_today} jobs today.",
            ))

    def update_preferences(self, changes: dict[str, Any]) -> Preferences:
        self.preferences = self.preferences.merged(changes)
        self._save_preferences()
        log.info("Preferences updated: %s", ", ".join(sorted(changes)) or "(none)")
        return self.preferences

    def get_status(self) -> dict[str, Any]:
        return {
            "isActive": self.is_active,
            "state": self.state.status.value,
            "appliedToday": self.quota.applied_today,
            "dailyLimit": self.preferences.daily_limit,
            "queueLength": len(self.state.queue),
            "matchThreshold": self.preferences.match_threshold,
            "channel": self.state.channel.validity.value,
        }

    async def handle_message(self, message: dict[str, Any]) -> dict[str, Any]:
        action = message.get("action")
        if action == "toggleAutopilot":
            await self.toggle(bool(message.get("enabled")))
            return {"success": True}
        if action == "getAutopilotStatus":
            return self.get_status()
        if action == "updateAutopilotPreferences":
            self.update_preferences(message.get("preferences") or {})
            return {"success": True}
        return {"success": False, "error": f"Unknown action: {action}"}

    def is_supported_job_board(self, url: str) -> bool:
        low = (url or "").lower()
        return any(domain in low for domain in self.settings.supported_job_boards)

    # --- scan cycle ---

    async def run_cycle(self) -> None:
        if self._cycle_running:
            log.debug("Cycle already in progress; skipping")
            return
        self._cycle_running = True
        try:
            await self._cycle()
        finally:
            self._cycle_running = False

    async def _cycle(self) -> None:
        self._reset_day()
        if not self._sync_preferences():
            return
        if not self.is_active:
            return
        if self.quota.state is QuotaState.EXHAUSTED:
            self._pause()
            return
        if self.state.status is SchedulerState.PAUSED:
            log.info("Quota available again; resuming")
        self._set_status(SchedulerState.SCANNING)

        url = self.page_url()
        if not self.is_supported_job_board(url):
            log.info("Not on a supported job board: %s", url or "(no page)")
            return

        try:
            profile = await asyncio.to_thread(self.profiles.get)
        except Exception as exc:
            log.error("Profile load failed: %s", exc)
            return
        if profile is None:
            log.error("User profile not available")
            return

        jobs = await self._extract_jobs()
        if not jobs and not self.state.queue:
            return

        # leftovers are requalified with today's preferences and ledger
        self._set_status(SchedulerState.QUALIFYING)
        pending = {s.job.key: s.job for s in self.state.queue}
        for job in jobs:
            pending[job.key] = job
        ranked = filter_and_rank(
            list(pending.values()), profile, self.preferences, self.quota.ledger,
            now=self.clock.now(), classifier=self.classifier,
        )
        self.state.queue = deque(ranked)
        if not self.state.queue:
            self._set_status(SchedulerState.SCANNING)
            return
        await self.process_queue()

    async def _extract_jobs(self) -> list[JobPosting]:
        result = await self.messenger.request("extractAllJobs")
        if not result.ok:
            log.warning("Job extraction failed: %s", result.error)
            return []
        raw = result.value.get("jobs") if isinstance(result.value, dict) else None
        jobs: list[JobPosting] = []
        for item in raw or []:
            if not isinstance(item, dict):
                continue
            job = JobPosting.from_dict(item)
            if not job.key:
                log.debug("Posting without id or url ignored: %s", job.title)
                continue
            jobs.append(job)
        log.info("Extracted %d jobs from page", len(jobs))
        return jobs

    # --- apply loop ---

    async def process_queue(self) -> None:
        """Drain the queue in batches, one application at a time."""
        queue = self.state.queue
        batch_size = max(self.settings.batch_size, 1)
        self._set_status(SchedulerState.APPLYING)

        while queue:
            for position in range(batch_size):
                if not queue:
                    break
                if not self.is_active or not self._sync_preferences():
                    return
                if not self.quota.can_apply():
                    log.info("Daily limit reached")
                    self._pause()
                    return
                await self._apply(queue.popleft())
                if self.state.status is not SchedulerState.APPLYING:
                    return
                if queue and position < batch_size - 1:
                    await self.clock.sleep(self.settings.job_delay)

            if not queue or not self.is_active:
                break
            log.info("%d job(s) left in queue; next batch in %.0fs", len(queue), self.settings.batch_delay)
            await self.clock.sleep(self.settings.batch_delay)

        if self.state.status is SchedulerState.APPLYING:
            self._set_status(SchedulerState.SCANNING)

    async def _apply(self, scored: ScoredJob) -> bool:
        job = scored.job
        log.info("Applying: %s @ %s (match %d%%)", job.title, job.company, scored.score)
        result = await self.messenger.request("applyToJob", {"jobData": scored.to_payload()})
        if not result.ok:
            log.warning("Apply failed for %s @ %s: %s", job.title, job.company, result.error)
            return False
        response = result.value if isinstance(result.value, dict) else {}
        if not response.get("success"):
            errors = response.get("errors") or ["no success flag"]
            log.warning("Apply rejected for %s @ %s: %s", job.title, job.company, "; ".join(map(str, errors)))
            return False

        self.quota.record_application(job.key)
        self.notifier.notify(Notification(
            kind=APPLIED,
            title=f"Applied: {job.title}",
            message=f"{job.company} - Match: {scored.score}%",
        ))
        event = application_event(job.title, job.company, job.location, job.url, scored.score)
        try:
            await asyncio.to_thread(self.telemetry.track, event)
        except Exception as exc:
            log.error("Telemetry failed for %s: %s", job.title, str(exc)[:150])
        return True

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """Poll until toggled off (or *stop* is set); PAUSED resumes on a new day."""
        while self.is_active and not (stop and stop.is_set()):
            await self.clock.sleep(self.settings.poll_interval)
            if not self.is_active or (stop and stop.is_set()):
                break
            await self.run_cycle()
