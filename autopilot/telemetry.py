"""Record successful applications: local CSV log and the tracking backend."""
from __future__ import annotations

import csv
import fcntl
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

import requests

from autopilot.log import get_logger
from autopilot.retry import retry

log = get_logger(__name__)

HEADERS: list[str] = [
    "applied_at", "title", "company", "location", "url", "match_score", "platform",
]


def application_event(
    title: str, company: str, location: str, url: str, score: int, platform: str = "autopilot",
) -> dict[str, Any]:
    return {
        "title": title,
        "company": company,
        "location": location,
        "url": url,
        "matchScore": score,
        "platform": platform,
    }


class TelemetrySink(Protocol):
    def track(self, event: dict[str, Any]) -> None: ...


def _lock(f) -> None:
    try:
        fcntl.flock(f.fileno(), fcntl.LOCK_EX)
    except (OSError, AttributeError):
        pass


def _unlock(f) -> None:
    try:
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
    except (OSError, AttributeError):
        pass


class CsvTelemetry:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def ensure(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            with open(self.path, "w", newline="", encoding="utf-8") as f:
                _lock(f)
                csv.writer(f).writerow(HEADERS)
                _unlock(f)
            log.info("Created application log → %s", self.path.name)

    def track(self, event: dict[str, Any]) -> None:
        self.ensure()
        row = {
            "applied_at": datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M"),
            "title": event.get("title", ""),
            "company": event.get("company", ""),
            "location": event.get("location", ""),
            "url": event.get("url", ""),
            "match_score": event.get("matchScore", ""),
            "platform": event.get("platform", ""),
        }
        with open(self.path, "a", newline="", encoding="utf-8") as f:
            _lock(f)
            csv.DictWriter(f, fieldnames=HEADERS).writerow(row)
            _unlock(f)
        log.debug("Tracked: %s @ %s", row["title"], row["company"])

    def rows(self) -> list[dict[str, str]]:
        if not self.path.exists():
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            return list(csv.DictReader(f))


class HttpTelemetry:
    """POSTs each application to ``{api_url}/api/applications``."""

    def __init__(self, api_url: str, session: requests.Session | None = None) -> None:
        self.api_url = api_url.rstrip("/")
        self.session = session or requests.Session()

    @retry(max_attempts=3, base_delay=2.0, retryable=(requests.ConnectionError, requests.Timeout))
    def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        r = self.session.post(f"{self.api_url}/api/applications", json=body, timeout=15)
        if r.status_code == 401:
            raise PermissionError("Not logged in — cannot track application")
        r.raise_for_status()
        return r.json() if r.content else {}

    def track(self, event: dict[str, Any]) -> None:
        body = {
            "jobTitle": event.get("title", ""),
            "company": event.get("company", ""),
            "location": event.get("location") or "",
            "jobUrl": event.get("url") or "",
            "status": "applied",
            "source": "extension",
            "notes": f"Applied via {event.get('platform') or 'extension'} on "
                     f"{datetime.now().strftime('%m/%d/%Y')}",
        }
        self._post(body)
        log.info("Tracked application: %s at %s", body["jobTitle"], body["company"])


class MultiTelemetry:
    def __init__(self, *sinks: TelemetrySink) -> None:
        self.sinks = list(sinks)

    def track(self, event: dict[str, Any]) -> None:
        for sink in self.sinks:
            try:
                sink.track(event)
            except Exception as exc:
                log.error("%s failed: %s", sink.__class__.__name__, str(exc)[:150])
