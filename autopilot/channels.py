"""Concrete page-content channels."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import requests

from autopilot.log import get_logger
from autopilot.messaging import ChannelError, ConnectionTransient, ContextInvalidated, MessageTimeout

log = get_logger(__name__)


class HttpChannel:
    """Talks to the page bridge over HTTP.

    ``POST {base}/message`` carries ``{"action": ..., ...}`` and returns the
    response JSON; ``GET {base}/health`` is the liveness check. The bridge
    answers 410 once the page context is gone and 503 while no handler is
    attached yet.
    """

    def __init__(self, base_url: str, *, http_timeout: float = 30.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.http_timeout = http_timeout
        self.session = requests.Session()

    def _post(self, message: dict[str, Any]) -> Any:
        try:
            r = self.session.post(f"{self.base_url}/message", json=message, timeout=self.http_timeout)
        except requests.ConnectionError as exc:
            raise ConnectionTransient(f"Could not establish connection: {exc}") from exc
        except requests.Timeout as exc:
            raise MessageTimeout(f"Bridge timed out: {exc}") from exc
        if r.status_code == 410:
            raise ContextInvalidated("Extension context invalidated")
        if r.status_code in (502, 503):
            raise ConnectionTransient("Receiving end does not exist")
        try:
            r.raise_for_status()
        except requests.HTTPError as exc:
            raise ChannelError(f"{message.get('action')}: HTTP {r.status_code}") from exc
        return r.json()

    def _health(self) -> bool:
        r = self.session.get(f"{self.base_url}/health", timeout=self.http_timeout)
        if r.status_code == 410:
            return False
        r.raise_for_status()
        data = r.json() if r.content else {}
        return bool(data.get("runtime", True)) if isinstance(data, dict) else True

    async def request(self, message: dict[str, Any]) -> Any:
        return await asyncio.to_thread(self._post, message)

    async def ping(self) -> bool:
        return await asyncio.to_thread(self._health)


def _mock_id(suffix: str) -> str:
    """Date-based ID so mock postings are treated as new each day."""
    return f"mock-{datetime.now(timezone.utc).strftime('%Y-%m-%d')}-{suffix}"


class MockChannel:
    """Offline stand-in for the page: serves sample postings and accepts every apply."""

    url = "https://www.linkedin.com/jobs/search/"

    def __init__(self) -> None:
        self.applied: list[str] = []

    def _jobs(self) -> list[dict[str, Any]]:
        return [
            {
                "id": _mock_id("1"),
                "title": "Senior Python Engineer",
                "company": "TechCorp",
                "location": "Remote",
                "description": "Senior role. Python, AWS, Docker, Kubernetes, PostgreSQL. 5+ years.",
                "type": "Full-time",
                "url": "https://example.com/job/1",
            },
            {
                "id": _mock_id("2"),
                "title": "Frontend Developer",
                "company": "CloudScale SaaS",
                "location": "New York, NY",
                "description": "React, TypeScript, CSS, HTML, REST API work.",
                "type": "Contract",
                "url": "https://example.com/job/2",
            },
            {
                "id": _mock_id("3"),
                "title": "Junior Data Analyst",
                "company": "Enterprise Platform Inc",
                "location": "Austin, TX (Hybrid)",
                "description": "Entry level. SQL, analytics, data science basics.",
                "type": "Full-time",
                "url": "https://example.com/job/3",
            },
        ]

    async def request(self, message: dict[str, Any]) -> Any:
        action = message.get("action")
        if action == "extractAllJobs":
            log.info("MockChannel serving sample jobs")
            return {"jobs": self._jobs()}
        if action == "applyToJob":
            job = message.get("jobData") or {}
            self.applied.append(job.get("id") or job.get("url", ""))
            return {"success": True}
        return {"error": f"Unknown action: {action}"}

    async def ping(self) -> bool:
        return True
