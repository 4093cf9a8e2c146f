"""User-facing notifications: log lines, e-mail, or both."""
from __future__ import annotations

import html
import os
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Iterable, Protocol

from autopilot.log import get_logger
from autopilot.retry import retry

log = get_logger(__name__)

STARTED = "started"
STOPPED = "stopped"
APPLIED = "applied"
QUOTA_EXHAUSTED = "quota_exhausted"
CONTEXT_INVALIDATED = "context_invalidated"


@dataclass(frozen=True)
class Notification:
    kind: str
    title: str
    message: str


class Notifier(Protocol):
    def notify(self, note: Notification) -> None: ...


class LogNotifier:
    def notify(self, note: Notification) -> None:
        if note.kind == CONTEXT_INVALIDATED:
            log.warning("[notify] %s: %s", note.title, note.message)
        else:
            log.info("[notify] %s: %s", note.title, note.message)


@retry(max_attempts=3, base_delay=3.0, retryable=(smtplib.SMTPException, OSError))
def _smtp_send(
    host: str, port: int, user: str, password: str,
    from_addr: str, to_addr: str, msg: MIMEMultipart,
) -> None:
    with smtplib.SMTP(host, port, timeout=20) as server:
        server.starttls()
        server.login(user, password)
        server.sendmail(from_addr, [to_addr], msg.as_string())


class EmailNotifier:
    """Mails selected notification kinds through SMTP settings from the environment."""

    DEFAULT_KINDS: frozenset[str] = frozenset({STOPPED, QUOTA_EXHAUSTED, CONTEXT_INVALIDATED})

    def __init__(self, kinds: Iterable[str] | None = None, to_email: str | None = None) -> None:
        self.kinds = frozenset(kinds) if kinds is not None else self.DEFAULT_KINDS
        self.host = os.environ.get("SMTP_HOST", "").strip()
        try:
            self.port = int(os.environ.get("SMTP_PORT", "587").strip())
        except ValueError:
            self.port = 587
        self.user = os.environ.get("SMTP_USER", "").strip()
        self.password = os.environ.get("SMTP_PASSWORD", "").strip()
        self.from_addr = os.environ.get("FROM_EMAIL", self.user).strip()
        self.to_addr = (to_email or os.environ.get("TO_EMAIL", "")).strip()

    @property
    def configured(self) -> bool:
        return all([self.host, self.user, self.password, self.to_addr])

    def notify(self, note: Notification) -> None:
        if note.kind not in self.kinds:
            return
        if not self.configured:
            log.debug("SMTP not configured — skipping e-mail for %s", note.kind)
            return

        msg = MIMEMultipart("alternative")
        msg["Subject"] = f"Autopilot: {note.title}"
        msg["From"] = self.from_addr
        msg["To"] = self.to_addr
        msg.attach(MIMEText(note.message, "plain", "utf-8"))
        msg.attach(MIMEText(
            f"<div style=\"font-family:sans-serif;color:#333\"><h3>{html.escape(note.title)}</h3>"
            f"<p>{html.escape(note.message)}</p></div>",
            "html", "utf-8",
        ))
        try:
            _smtp_send(self.host, self.port, self.user, self.password, self.from_addr, self.to_addr, msg)
            log.info("Notification e-mailed to %s", self.to_addr)
        except Exception as e:
            log.error("E-mail notification failed: %s", str(e)[:150])


class MultiNotifier:
    def __init__(self, *notifiers: Notifier) -> None:
        self.notifiers = list(notifiers)

    def notify(self, note: Notification) -> None:
        for n in self.notifiers:
            try:
                n.notify(note)
            except Exception as exc:
                log.error("%s failed: %s", n.__class__.__name__, exc)
