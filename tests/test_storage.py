"""
Tests for the persistence adapters and model (de)serialisation.
"""
import threading

import pytest

from autopilot.models import ApplicationLedger, CandidateProfile, JobPosting, Preferences
from autopilot.storage import LOCAL, SYNC, JsonFileStore, MemoryStore, PersistenceWriteFailure


def test_json_store_round_trip(tmp_path):
    store = JsonFileStore(tmp_path)
    store.set(SYNC, {"autopilotPreferences": Preferences(daily_limit=7).to_dict()})
    store.set(LOCAL, {"appliedJobsToday": 3, "lastResetDate": "Mon Jan 01 2024"})

    reopened = JsonFileStore(tmp_path)
    prefs = reopened.get(SYNC, ["autopilotPreferences"])["autopilotPreferences"]
    assert prefs["dailyLimit"] == 7
    assert reopened.get(LOCAL, ["appliedJobsToday", "missing"]) == {"appliedJobsToday": 3}
    assert (tmp_path / "sync.json").exists()
    assert (tmp_path / "local.json").exists()


def test_json_store_replaces_whole_value(tmp_path):
    store = JsonFileStore(tmp_path)
    store.set(SYNC, {"autopilotPreferences": {"dailyLimit": 5, "remoteOnly": True}})
    store.set(SYNC, {"autopilotPreferences": {"dailyLimit": 9}})
    assert store.get(SYNC, ["autopilotPreferences"]) == {"autopilotPreferences": {"dailyLimit": 9}}


def test_json_store_ignores_corrupt_file(tmp_path):
    (tmp_path / "local.json").write_text("{not json", encoding="utf-8")
    assert JsonFileStore(tmp_path).get(LOCAL, ["appliedJobsToday"]) == {}


def test_json_store_write_failure(tmp_path):
    blocker = tmp_path / "data"
    blocker.write_text("a file, not a directory", encoding="utf-8")
    with pytest.raises(PersistenceWriteFailure):
        JsonFileStore(blocker).set(LOCAL, {"appliedJobsToday": 1})


def test_unknown_scope_rejected():
    with pytest.raises(ValueError):
        MemoryStore().get("session", ["x"])


def test_memory_store_copies_values():
    store = MemoryStore()
    keys = ["a"]
    store.set(LOCAL, {"appliedJobKeys": keys})
    keys.append("b")
    assert store.get(LOCAL, ["appliedJobKeys"]) == {"appliedJobKeys": ["a"]}


def test_preferences_tolerate_malformed_values():
    prefs = Preferences.from_dict({
        "dailyLimit": "ten",
        "matchThreshold": 250,
        "jobTypes": "full-time",
        "excludeCompanies": None,
        "remoteOnly": 1,
    })
    assert prefs.daily_limit == 50
    assert prefs.match_threshold == 100
    assert prefs.job_types == ["full-time"]
    assert prefs.exclude_companies == []
    assert prefs.remote_only is True


def test_preferences_merge_keeps_unchanged_fields():
    base = Preferences(daily_limit=3, locations=["Berlin"])
    merged = base.merged({"matchThreshold": 80})
    assert merged.daily_limit == 3
    assert merged.match_threshold == 80
    merged.locations.append("Paris")
    assert base.locations == ["Berlin"]


def test_ledger_from_storage_defaults_to_today():
    ledger = ApplicationLedger.from_dict({}, "Tue Jan 02 2024")
    assert ledger.last_reset_date == "Tue Jan 02 2024"
    assert ledger.applied_today == 0
    assert ledger.to_dict()["appliedJobKeys"] == []


def test_job_posting_from_page_record():
    job = JobPosting.from_dict({"title": "Dev", "company": None, "url": "https://x/1", "jobType": "Contract"})
    assert job.key == "https://x/1"
    assert job.company == ""
    assert job.job_type == "Contract"


def test_candidate_profile_accepts_backend_skill_objects():
    profile = CandidateProfile.from_dict({
        "skills": [{"skillName": "Python"}, "SQL", {"name": "AWS"}, {}],
        "yearsExperience": "4",
    })
    assert profile.skills == ("Python", "SQL", "AWS")
    assert profile.years_experience == 4


def test_json_store_concurrent_writers_keep_every_key(tmp_path):
    def writer(prefix):
        store = JsonFileStore(tmp_path)
        for n in range(20):
            store.set(SYNC, {f"{prefix}{n}": n})

    threads = [threading.Thread(target=writer, args=(p,)) for p in "abcd"]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    keys = [f"{p}{n}" for p in "abcd" for n in range(20)]
    assert len(JsonFileStore(tmp_path).get(SYNC, keys)) == 80
    assert (tmp_path / "sync.lock").exists()


@pytest.mark.parametrize("raw, expected", [
    ("false", False),
    ("False", False),
    ("no", False),
    ("0", False),
    ("true", True),
    ("yes", True),
    (0, False),
    (1, True),
])
def test_preferences_parse_boolean_spellings(raw, expected):
    prefs = Preferences.from_dict({"remoteOnly": raw, "enabled": raw})
    assert prefs.remote_only is expected
    assert prefs.enabled is expected


def test_update_with_string_false_keeps_remote_only_off():
    prefs = Preferences(remote_only=False).merged({"remoteOnly": "false"})
    assert prefs.remote_only is False
    assert Preferences(remote_only=True).merged({"remoteOnly": "maybe"}).remote_only is True
