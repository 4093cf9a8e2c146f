"""Score postings against the candidate profile and qualify them for auto-apply."""
from __future__ import annotations

from typing import Iterable, Protocol

from autopilot.log import get_logger
from autopilot.models import (
    ApplicationLedger,
    CandidateProfile,
    JobPosting,
    Preferences,
    ScoredJob,
)

log = get_logger(__name__)

SKILLS_WEIGHT = 40
EXPERIENCE_WEIGHT = 20
LOCATION_WEIGHT = 15
JOB_TYPE_WEIGHT = 10
PREFERRED_COMPANY_WEIGHT = 15

SKILL_VOCABULARY: tuple[str, ...] = (
    "javascript", "python", "java", "react", "node", "sql", "aws",
    "docker", "kubernetes", "typescript", "angular", "vue", "css",
    "html", "git", "agile", "scrum", "rest", "api", "mongodb",
    "postgresql", "redis", "graphql", "jenkins", "ci/cd", "testing",
    "machine learning", "ai", "data science", "analytics",
)

# Checked in order; the first level with a matching phrase wins.
LEVEL_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("entry", ("entry", "junior", "0-2 years")),
    ("senior", ("senior", "5+ years", "7+ years")),
    ("lead", ("lead", "principal", "staff")),
)
DEFAULT_LEVEL = "mid"

# Inclusive year ranges. senior and lead overlap on 7-10 years; kept as observed.
EXPERIENCE_RANGES: dict[str, tuple[int, int]] = {
    "entry": (0, 2),
    "mid": (2, 5),
    "senior": (5, 10),
    "lead": (7, 20),
}


def _normalize(s: str | None) -> str:
    return (s or "").lower()


def _any_in(needles: Iterable[str], haystack: str) -> bool:
    return any(_normalize(n) in haystack for n in needles if n)


class JobClassifier(Protocol):
    def extract_skills(self, text: str) -> list[str]: ...

    def experience_level(self, text: str) -> str: ...


class KeywordClassifier:
    """Substring heuristics over a fixed vocabulary."""

    def __init__(
        self,
        vocabulary: Iterable[str] = SKILL_VOCABULARY,
        level_keywords: tuple[tuple[str, tuple[str, ...]], ...] = LEVEL_KEYWORDS,
    ) -> None:
        self.vocabulary = tuple(vocabulary)
        self.level_keywords = level_keywords

    def extract_skills(self, text: str) -> list[str]:
        low = _normalize(text)
        return [skill for skill in self.vocabulary if skill in low]

    def experience_level(self, text: str) -> str:
        low = _normalize(text)
        for level, phrases in self.level_keywords:
            if any(p in low for p in phrases):
                return level
        return DEFAULT_LEVEL


_default_classifier = KeywordClassifier()


def matches_experience(level: str, years: int) -> bool:
    low, high = EXPERIENCE_RANGES.get(level, (0, 100))
    return low <= years <= high


def score_job(
    job: JobPosting,
    profile: CandidateProfile,
    prefs: Preferences,
    classifier: JobClassifier | None = None,
) -> int:
    """Return a 0-100 match score. Pure: no I/O, no mutation."""
    classifier = classifier or _default_classifier
    score = 0.0

    # --- Skills (40) ---
    job_skills = classifier.extract_skills(job.text)
    user_skills = [_normalize(s) for s in profile.skills]
    matched = [js for js in job_skills if any(js in us for us in user_skills)]
    score += len(matched) / max(len(job_skills), 1) * SKILLS_WEIGHT

    # --- Experience (20) ---
    level = classifier.experience_level(job.description)
    if matches_experience(level, profile.years_experience):
        score += EXPERIENCE_WEIGHT

    # --- Location (15) ---
    job_loc = _normalize(job.location)
    if prefs.remote_only and "remote" in job_loc:
        score += LOCATION_WEIGHT
    elif not prefs.locations or _any_in(prefs.locations, job_loc):
        score += LOCATION_WEIGHT

    # --- Job type (10) ---
    if _any_in(prefs.job_types, _normalize(job.job_type)):
        score += JOB_TYPE_WEIGHT

    # --- Preferred company (15) ---
    if _any_in(prefs.preferred_companies, _normalize(job.company)):
        score += PREFERRED_COMPANY_WEIGHT

    return min(int(round(score)), 100)


def _exclusion_reason(job: JobPosting, prefs: Preferences, ledger: ApplicationLedger) -> str | None:
    if job.key in ledger.applied_keys:
        return "already applied"
    if _any_in(prefs.exclude_companies, _normalize(job.company)):
        return "excluded company"
    if _any_in(prefs.exclude_keywords, _normalize(job.title)) or _any_in(
        prefs.exclude_keywords, _normalize(job.description)
    ):
        return "excluded keyword"
    return None


def filter_and_rank(
    jobs: list[JobPosting],
    profile: CandidateProfile,
    prefs: Preferences,
    ledger: ApplicationLedger,
    *,
    now: float = 0.0,
    classifier: JobClassifier | None = None,
) -> list[ScoredJob]:
    """Drop applied/excluded/below-threshold postings; best score first.

    ``sorted`` is stable, so equal scores keep discovery order.
    """
    qualified: list[ScoredJob] = []
    for job in jobs:
        reason = _exclusion_reason(job, prefs, ledger)
        if reason:
            log.debug("Skip %s @ %s: %s", job.title, job.company, reason)
            continue
        score = score_job(job, profile, prefs, classifier)
        if score < prefs.match_threshold:
            log.debug("Skip %s @ %s: score %d < %d", job.title, job.company, score, prefs.match_threshold)
            continue
        qualified.append(ScoredJob(job=job, score=score, discovered_at=now))

    result = sorted(qualified, key=lambda s: -s.score)
    log.info("Scored %d jobs → %d at or above %d%% threshold", len(jobs), len(result), prefs.match_threshold)
    return result
