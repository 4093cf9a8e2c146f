"""
Tests for the daily quota tracker.
"""
from autopilot.models import QuotaState
from autopilot.notify import QUOTA_EXHAUSTED
from autopilot.quota import QuotaTracker
from autopilot.storage import LOCAL, MemoryStore, PersistenceWriteFailure

from conftest import make_prefs


def tracker(clock, notifier, store=None, prefs=None, on_exhausted=None):
    prefs = prefs or make_prefs(enabled=True, daily_limit=2)
    return QuotaTracker(
        store or MemoryStore(),
        preferences=lambda: prefs,
        today=clock.today,
        notifier=notifier,
        on_exhausted=on_exhausted,
    )


def test_new_day_resets_count_exactly_once(clock, notifier):
    store = MemoryStore({LOCAL: {"appliedJobsToday": 2, "lastResetDate": "Mon Jan 01 2024"}})
    quota = tracker(clock, notifier, store=store)
    assert quota.applied_today == 2
    assert quota.state is QuotaState.EXHAUSTED

    clock.date = "Tue Jan 02 2024"
    assert quota.check_reset() is True
    assert quota.applied_today == 0
    assert quota.check_reset() is False
    assert store.get(LOCAL, ["appliedJobsToday", "lastResetDate"]) == {
        "appliedJobsToday": 0,
        "lastResetDate": "Tue Jan 02 2024",
    }


def test_same_day_keeps_count(clock, notifier):
    store = MemoryStore({LOCAL: {"appliedJobsToday": 1, "lastResetDate": clock.date}})
    quota = tracker(clock, notifier, store=store)
    assert quota.check_reset() is False
    assert quota.applied_today == 1


def test_missing_ledger_starts_today(clock, notifier):
    quota = tracker(clock, notifier)
    assert quota.ledger.last_reset_date == clock.date
    assert quota.applied_today == 0
    assert quota.can_apply()


def test_count_never_exceeds_limit(clock, notifier):
    exhausted = []
    quota = tracker(clock, notifier, on_exhausted=lambda: exhausted.append(True))

    quota.record_application("a")
    assert quota.can_apply()
    quota.record_application("b")
    assert not quota.can_apply()
    assert quota.state is QuotaState.EXHAUSTED

    quota.record_application("c")
    assert quota.applied_today == 2
    assert quota.ledger.applied_keys == {"a", "b"}
    assert exhausted == [True]
    assert notifier.kinds() == [QUOTA_EXHAUSTED]


def test_disabled_preferences_block_applying(clock, notifier):
    quota = tracker(clock, notifier, prefs=make_prefs(enabled=False))
    assert not quota.can_apply()
    assert quota.state is QuotaState.NORMAL


def test_record_persists_immediately(clock, notifier):
    store = MemoryStore()
    quota = tracker(clock, notifier, store=store)
    quota.record_application("job-1")
    assert store.get(LOCAL, ["appliedJobsToday", "appliedJobKeys"]) == {
        "appliedJobsToday": 1,
        "appliedJobKeys": ["job-1"],
    }


def test_applied_keys_survive_reset(clock, notifier):
    quota = tracker(clock, notifier)
    quota.record_application("job-1")
    clock.date = "Tue Jan 02 2024"
    quota.check_reset()
    assert quota.has_applied("job-1")


def test_persistence_failure_keeps_memory_state(clock, notifier):
    class BrokenStore(MemoryStore):
        def set(self, scope, values):
            raise PersistenceWriteFailure("disk full")

    quota = tracker(clock, notifier, store=BrokenStore())
    quota.record_application("job-1")
    assert quota.applied_today == 1
    assert quota.remaining() == 1
