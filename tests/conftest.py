"""
Pytest fixtures: a virtual clock, a scriptable channel and recording sinks.
"""
import asyncio
import os

os.environ.setdefault("AUTOPILOT_LOG_FILE", "0")

import pytest

from autopilot.config import Settings
from autopilot.messaging import ResilientMessenger
from autopilot.models import CandidateProfile, Preferences
from autopilot.profile import StaticProfile
from autopilot.retry import RetryPolicy
from autopilot.scheduler import AutopilotScheduler
from autopilot.storage import SYNC, MemoryStore

HANG = object()
LINKEDIN = "https://www.linkedin.com/jobs/search/?keywords=python"


class VirtualClock:
    """Records every sleep and advances virtual time instead of waiting."""

    def __init__(self, start: float = 1_700_000_000.0, today: str = "Mon Jan 01 2024"):
        self.t = start
        self.date = today
        self.sleeps = []

    def now(self) -> float:
        return self.t

    def today(self) -> str:
        return self.date

    def advance(self, seconds: float) -> None:
        self.t += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.t += seconds
        await asyncio.sleep(0)


class FakeChannel:
    """
    Per-action scripted outcomes. Each outcome is a value to return, an
    exception to raise, HANG, or a (possibly async) callable of the message.
    The last scripted outcome repeats.
    """

    def __init__(self):
        self.calls = []
        self.outcomes = {}
        self.alive = True
        self.ping_error = None

    def script(self, action, *outcomes):
        self.outcomes[action] = list(outcomes)

    def actions(self):
        return [m["action"] for m in self.calls]

    def applied_ids(self):
        return [m["jobData"]["id"] for m in self.calls if m["action"] == "applyToJob"]

    async def request(self, message):
        self.calls.append(message)
        queue = self.outcomes.get(message["action"])
        if not queue:
            return {"success": True}
        outcome = queue.pop(0) if len(queue) > 1 else queue[0]
        if asyncio.iscoroutinefunction(outcome):
            outcome = await outcome(message)
        elif callable(outcome):
            outcome = outcome(message)
        if outcome is HANG:
            await asyncio.Event().wait()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def ping(self):
        if self.ping_error is not None:
            raise self.ping_error
        return self.alive


class RecordingNotifier:
    def __init__(self):
        self.notes = []

    def notify(self, note):
        self.notes.append(note)

    def kinds(self):
        return [n.kind for n in self.notes]


class RecordingTelemetry:
    def __init__(self):
        self.events = []

    def track(self, event):
        self.events.append(event)


def job(id, title="Engineer", company="Acme Corp", description="", location="Remote", type="Full-time"):
    return {
        "id": id,
        "title": title,
        "company": company,
        "location": location,
        "description": description,
        "type": type,
        "url": f"https://www.linkedin.com/jobs/view/{id}",
    }


# Scores against PROFILE / PREFS below:
#   C = 15 loc + 20 exp + 10 type + 15 company + 20 skills (1/2)  = 80
#   A = 15 loc + 20 exp +  0 type + 15 company + 20 skills (1/2)  = 70
#   B = 15 loc +  0 exp + 10 type + 15 company + 10 skills (1/4)  = 50
#   D = 15 loc + 20 exp + 10 type + 15 company + 30 skills (3/4)  = 90
JOB_A = job("A", company="Acme Labs", description="Python and Redis work.", type="Internship")
JOB_B = job("B", company="Acme Inc", description="Senior role: Python, Redis, GraphQL, MongoDB.")
JOB_C = job("C", company="Acme Corp", description="Python and Redis services.")
JOB_D = job("D", company="Acme Cloud", description="Python, AWS, Docker and Redis.")

PROFILE = CandidateProfile(skills=("Python", "AWS", "Docker", "SQL"), years_experience=3)


def make_prefs(**overrides):
    base = dict(
        daily_limit=2,
        match_threshold=60,
        job_types=["full-time"],
        preferred_companies=["acme"],
        locations=[],
    )
    base.update(overrides)
    return Preferences(**base)


@pytest.fixture
def clock():
    return VirtualClock()


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def telemetry():
    return RecordingTelemetry()


@pytest.fixture
def messenger(channel, clock, notifier):
    return ResilientMessenger(
        channel,
        clock=clock,
        notifier=notifier,
        timeout=0.05,
        policy=RetryPolicy(max_attempts=3, base_delay=1.0),
    )


@pytest.fixture
def store():
    return MemoryStore({SYNC: {"autopilotPreferences": make_prefs().to_dict()}})


@pytest.fixture
def page():
    return {"url": LINKEDIN}


@pytest.fixture
def scheduler(messenger, store, notifier, telemetry, clock, page):
    return AutopilotScheduler(
        messenger,
        store,
        profiles=StaticProfile(PROFILE),
        notifier=notifier,
        telemetry=telemetry,
        page_url=lambda: page["url"],
        settings=Settings(),
        clock=clock,
    )
