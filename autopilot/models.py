"""Data models for postings, preferences, the application ledger and messages."""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Callable


class SchedulerState(str, Enum):
    INACTIVE = "inactive"
    SCANNING = "scanning"
    QUALIFYING = "qualifying"
    APPLYING = "applying"
    PAUSED = "paused"


class ChannelValidity(str, Enum):
    VALID = "valid"
    INVALID = "invalid"


class QuotaState(str, Enum):
    NORMAL = "normal"
    EXHAUSTED = "exhausted"


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


_TRUE_WORDS = frozenset({"true", "yes", "on", "1"})
_FALSE_WORDS = frozenset({"false", "no", "off", "0", ""})


def _as_bool(value: Any, default: bool = False) -> bool:
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
        return default
    if value is None:
        return False
    return bool(value)


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    try:
        return [str(v) for v in value if v is not None and str(v).strip()]
    except TypeError:
        return []


def _copy(value: Any) -> Any:
    return list(value) if isinstance(value, list) else value


@dataclass(frozen=True)
class JobPosting:
    id: str
    title: str
    company: str
    location: str = ""
    description: str = ""
    requirements: str = ""
    job_type: str = ""
    url: str = ""
    source: str = "page"

    @property
    def key(self) -> str:
        """Dedup key: the job id when present, otherwise the posting URL."""
        return self.id or self.url

    @property
    def text(self) -> str:
        return self.description or self.requirements

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobPosting":
        return cls(
            id=_as_str(data.get("id")),
            title=_as_str(data.get("title")),
            company=_as_str(data.get("company")),
            location=_as_str(data.get("location")),
            description=_as_str(data.get("description")),
            requirements=_as_str(data.get("requirements")),
            job_type=_as_str(data.get("type") or data.get("jobType")),
            url=_as_str(data.get("url")),
            source=_as_str(data.get("source")) or "page",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "company": self.company,
            "location": self.location,
            "description": self.description,
            "requirements": self.requirements,
            "type": self.job_type,
            "url": self.url,
            "source": self.source,
        }


@dataclass(frozen=True)
class CandidateProfile:
    skills: tuple[str, ...] = ()
    years_experience: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "CandidateProfile":
        data = data or {}
        skills: list[str] = []
        for s in data.get("skills") or []:
            if isinstance(s, dict):
                s = s.get("skillName") or s.get("name")
            if s:
                skills.append(str(s))
        return cls(
            skills=tuple(skills),
            years_experience=_as_int(data.get("yearsExperience", data.get("years_experience"))),
        )


# Maps Preferences attributes to the camelCase keys used in storage.
_PREF_KEYS: dict[str, str] = {
    "enabled": "enabled",
    "auto_apply": "autoApply",
    "daily_limit": "dailyLimit",
    "match_threshold": "matchThreshold",
    "job_types": "jobTypes",
    "experience_levels": "experienceLevels",
    "locations": "locations",
    "salary_min": "salaryMin",
    "remote_only": "remoteOnly",
    "exclude_companies": "excludeCompanies",
    "preferred_companies": "preferredCompanies",
    "keywords": "keywords",
    "exclude_keywords": "excludeKeywords",
}


@dataclass
class Preferences:
    enabled: bool = False
    auto_apply: bool = False
    daily_limit: int = 50
    match_threshold: int = 60
    job_types: list[str] = field(default_factory=lambda: ["full-time", "contract"])
    experience_levels: list[str] = field(default_factory=lambda: ["entry", "mid", "senior"])
    locations: list[str] = field(default_factory=list)
    salary_min: int = 0
    remote_only: bool = False
    exclude_companies: list[str] = field(default_factory=list)
    preferred_companies: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    exclude_keywords: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None, base: "Preferences | None" = None) -> "Preferences":
        """Build preferences from a stored camelCase dict, falling back to *base*."""
        prefs = cls(**{f.name: _copy(getattr(base, f.name)) for f in fields(cls)}) if base else cls()
        for attr, key in _PREF_KEYS.items():
            if not data or key not in data:
                continue
            value = data[key]
            current = getattr(prefs, attr)
            if isinstance(current, bool):
                value = _as_bool(value, current)
            elif isinstance(current, int):
                value = max(_as_int(value, current), 0)
            elif isinstance(current, list):
                value = _as_list(value)
            setattr(prefs, attr, value)
        prefs.match_threshold = min(prefs.match_threshold, 100)
        return prefs

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for attr, key in _PREF_KEYS.items():
            value = getattr(self, attr)
            out[key] = list(value) if isinstance(value, list) else value
        return out

    def merged(self, changes: dict[str, Any]) -> "Preferences":
        return Preferences.from_dict(changes, base=self)


@dataclass
class ScoredJob:
    job: JobPosting
    score: int
    discovered_at: float

    def to_payload(self) -> dict[str, Any]:
        data = self.job.to_dict()
        data["matchScore"] = self.score
        data["timestamp"] = int(self.discovered_at * 1000)
        return data


@dataclass
class ApplicationLedger:
    applied_keys: set[str] = field(default_factory=set)
    applied_today: int = 0
    last_reset_date: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None, today: str) -> "ApplicationLedger":
        data = data or {}
        return cls(
            applied_keys=set(_as_list(data.get("appliedJobKeys"))),
            applied_today=max(_as_int(data.get("appliedJobsToday")), 0),
            last_reset_date=_as_str(data.get("lastResetDate")) or today,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "appliedJobsToday": self.applied_today,
            "lastResetDate": self.last_reset_date,
            "appliedJobKeys": sorted(self.applied_keys),
        }


@dataclass
class MessageEnvelope:
    action: str
    payload: dict[str, Any] = field(default_factory=dict)
    attempts: int = 0

    def to_message(self) -> dict[str, Any]:
        return {"action": self.action, **self.payload}


@dataclass
class DeferredMessage:
    envelope: MessageEnvelope
    enqueued_at: float
    callback: Callable[[Any], None] | None = None
