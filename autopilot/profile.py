"""Candidate profile sources: a local YAML file or the account backend."""
from __future__ import annotations

import time
from pathlib import Path
from typing import Callable, Protocol

import requests
import yaml

from autopilot.log import get_logger
from autopilot.models import CandidateProfile
from autopilot.retry import retry

log = get_logger(__name__)

PROFILE_CACHE_SECONDS = 300.0


class ProfileProvider(Protocol):
    def get(self) -> CandidateProfile | None: ...


class StaticProfile:
    def __init__(self, profile: CandidateProfile) -> None:
        self.profile = profile

    def get(self) -> CandidateProfile | None:
        return self.profile


class YamlProfile:
    """Reads ``skills`` and ``years_experience`` from a YAML file.

    Both the flat layout and the nested ``profile:`` block are accepted.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def get(self) -> CandidateProfile | None:
        if not self.path.exists():
            log.error("No profile at %s", self.path)
            return None
        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if isinstance(data.get("profile"), dict):
            data = {**data, **data["profile"]}
        return CandidateProfile.from_dict(data)


class HttpProfile:
    """``GET {api_url}/api/extension/profile``; authenticated results are cached five minutes."""

    def __init__(
        self,
        api_url: str,
        session: requests.Session | None = None,
        now: Callable[[], float] = time.monotonic,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.session = session or requests.Session()
        self._now = now
        self._cached: CandidateProfile | None = None
        self._cached_at = 0.0

    @retry(max_attempts=3, base_delay=2.0, retryable=(requests.ConnectionError, requests.Timeout))
    def _fetch(self) -> dict | None:
        r = self.session.get(f"{self.api_url}/api/extension/profile", timeout=15)
        if r.status_code == 401:
            log.info("User not authenticated — no profile available")
            return None
        r.raise_for_status()
        return r.json()

    def get(self) -> CandidateProfile | None:
        if self._cached is not None and self._now() - self._cached_at < PROFILE_CACHE_SECONDS:
            return self._cached
        try:
            data = self._fetch()
        except requests.RequestException as exc:
            log.error("Profile fetch failed: %s", exc)
            return None
        if not data:
            return None
        profile = CandidateProfile.from_dict(data)
        if data.get("authenticated", True):
            self._cached = profile
            self._cached_at = self._now()
        return profile
