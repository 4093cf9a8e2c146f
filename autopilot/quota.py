"""Daily application quota with calendar-day reset."""
from __future__ import annotations

from typing import Callable

from autopilot.log import get_logger
from autopilot.models import ApplicationLedger, Preferences, QuotaState
from autopilot.notify import QUOTA_EXHAUSTED, Notification, Notifier
from autopilot.storage import LOCAL, KeyValueStore, PersistenceWriteFailure

log = get_logger(__name__)

LEDGER_KEYS: tuple[str, ...] = ("appliedJobsToday", "lastResetDate", "appliedJobKeys")


class QuotaTracker:
    """Owns the ApplicationLedger and its local-scope persistence.

    ``today`` returns the current calendar date string; ``preferences``
    returns the live preferences so limit changes apply immediately.
    """

    def __init__(
        self,
        store: KeyValueStore,
        preferences: Callable[[], Preferences],
        today: Callable[[], str],
        notifier: Notifier,
        on_exhausted: Callable[[], None] | None = None,
    ) -> None:
        self.store = store
        self._preferences = preferences
        self._today = today
        self.notifier = notifier
        self.on_exhausted = on_exhausted
        self.ledger = ApplicationLedger.from_dict(store.get(LOCAL, LEDGER_KEYS), self._today())

    @property
    def applied_today(self) -> int:
        return self.ledger.applied_today

    @property
    def state(self) -> QuotaState:
        if self.ledger.applied_today >= self._preferences().daily_limit:
            return QuotaState.EXHAUSTED
        return QuotaState.NORMAL

    def remaining(self) -> int:
        return max(self._preferences().daily_limit - self.ledger.applied_today, 0)

    def check_reset(self) -> bool:
        """Zero the counter when the stored date is not today. Returns True on reset."""
        today = self._today()
        if self.ledger.last_reset_date == today:
            return False
        log.info("New day (%s → %s): resetting daily count from %d",
                 self.ledger.last_reset_date, today, self.ledger.applied_today)
        self.ledger.applied_today = 0
        self.ledger.last_reset_date = today
        self.persist()
        return True

    def can_apply(self) -> bool:
        prefs = self._preferences()
        return prefs.enabled and self.ledger.applied_today < prefs.daily_limit

    def has_applied(self, key: str) -> bool:
        return key in self.ledger.applied_keys

    def record_application(self, key: str | None = None) -> None:
        prefs = self._preferences()
        if self.ledger.applied_today >= prefs.daily_limit:
            log.warning("Daily limit %d already reached; application not counted", prefs.daily_limit)
            return
        if key:
            self.ledger.applied_keys.add(key)
        self.ledger.applied_today += 1
        self.persist()
        log.info("Applied today: %d/%d", self.ledger.applied_today, prefs.daily_limit)

        if self.ledger.applied_today == prefs.daily_limit:
            self.notifier.notify(Notification(
                kind=QUOTA_EXHAUSTED,
                title="Autopilot paused: daily limit reached",
                message=f"Applied to {self.ledger.applied_today} jobs today. Resuming tomorrow.",
            ))
            if self.on_exhausted:
                self.on_exhausted()

    def persist(self) -> None:
        try:
            self.store.set(LOCAL, self.ledger.to_dict())
        except PersistenceWriteFailure as exc:
            log.error("Could not persist application ledger: %s", exc)
