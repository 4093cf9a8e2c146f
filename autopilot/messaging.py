"""Fault-tolerant request/response over the page-content channel.

Every call is raced against a timeout and retried with linear backoff when
the failure is transient. A context-invalidated failure is never retried:
it flips the shared channel status to INVALID and every later call fails
fast until the liveness probe sees the channel answer again. While the
channel is invalid callers can park messages in a deferred FIFO queue that
is replayed once the probe restores it.
"""
from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Protocol

from autopilot.clock import SystemClock
from autopilot.log import get_logger
from autopilot.models import ChannelValidity, DeferredMessage, MessageEnvelope
from autopilot.notify import CONTEXT_INVALIDATED, LogNotifier, Notification, Notifier
from autopilot.retry import RetryPolicy

log = get_logger(__name__)

DEFAULT_TIMEOUT = 10.0
DEFERRED_TTL = 300.0
PROBE_INTERVAL = 5.0

_INVALIDATED_PHRASES = ("extension context invalidated", "context invalidated")
_TRANSIENT_PHRASES = (
    "could not establish connection",
    "receiving end does not exist",
    "message port closed",
)


class ErrorKind(str, Enum):
    CONTEXT_INVALIDATED = "context_invalidated"
    CONNECTION_TRANSIENT = "connection_transient"
    TIMEOUT = "timeout"
    OTHER = "other"


class MessagingError(Exception):
    kind: ErrorKind = ErrorKind.OTHER


class ContextInvalidated(MessagingError):
    kind = ErrorKind.CONTEXT_INVALIDATED


class ConnectionTransient(MessagingError):
    kind = ErrorKind.CONNECTION_TRANSIENT


class MessageTimeout(MessagingError):
    kind = ErrorKind.TIMEOUT


class ChannelError(MessagingError):
    kind = ErrorKind.OTHER


class RetriesExhausted(ChannelError):
    def __init__(self, message: str, last_error: MessagingError | None = None) -> None:
        super().__init__(message)
        self.last_error = last_error


def classify(exc: BaseException) -> MessagingError:
    """Map any channel failure onto the messaging error taxonomy."""
    if isinstance(exc, (ContextInvalidated, ConnectionTransient, MessageTimeout)):
        return exc
    text = str(exc).lower()
    if any(p in text for p in _INVALIDATED_PHRASES) or ("cannot access" in text and "runtime" in text):
        err: MessagingError = ContextInvalidated(str(exc))
    elif any(p in text for p in _TRANSIENT_PHRASES):
        err = ConnectionTransient(str(exc))
    elif isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        err = MessageTimeout(str(exc) or "Message timeout")
    elif isinstance(exc, ConnectionError):
        err = ConnectionTransient(str(exc))
    elif isinstance(exc, MessagingError):
        return exc
    else:
        err = ChannelError(str(exc) or exc.__class__.__name__)
    if err is not exc:
        err.__cause__ = exc
    return err


@dataclass(frozen=True)
class Result:
    value: Any = None
    error: MessagingError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.value


class Channel(Protocol):
    async def request(self, message: dict[str, Any]) -> Any: ...

    async def ping(self) -> bool: ...


class ChannelStatus:
    """Shared validity flag. Written by the probe and by failure classification."""

    def __init__(self) -> None:
        self.validity = ChannelValidity.VALID

    @property
    def valid(self) -> bool:
        return self.validity is ChannelValidity.VALID


class ResilientMessenger:
    def __init__(
        self,
        channel: Channel,
        *,
        clock=None,
        notifier: Notifier | None = None,
        status: ChannelStatus | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        policy: RetryPolicy | None = None,
        deferred_ttl: float = DEFERRED_TTL,
        probe_interval: float = PROBE_INTERVAL,
    ) -> None:
        self.channel = channel
        self.clock = clock or SystemClock()
        self.notifier = notifier or LogNotifier()
        self.status = status or ChannelStatus()
        self.timeout = timeout
        self.policy = policy or RetryPolicy()
        self.deferred_ttl = deferred_ttl
        self.probe_interval = probe_interval
        self._deferred: deque[DeferredMessage] = deque()
        self._notice_shown = False

    @property
    def validity(self) -> ChannelValidity:
        return self.status.validity

    @property
    def deferred_count(self) -> int:
        return len(self._deferred)

    async def request(self, action: str, payload: dict[str, Any] | None = None, **kwargs: Any) -> Result:
        return await self.send(MessageEnvelope(action=action, payload=payload or {}), **kwargs)

    async def send(
        self,
        envelope: MessageEnvelope,
        *,
        timeout: float | None = None,
        max_retries: int | None = None,
        on_error: Callable[[MessagingError], None] | None = None,
    ) -> Result:
        result = await self._send(envelope, timeout if timeout is not None else self.timeout, max_retries)
        if result.error is not None and on_error is not None:
            on_error(result.error)
        return result

    async def _send(self, envelope: MessageEnvelope, timeout: float, max_retries: int | None) -> Result:
        if not self.status.valid:
            return Result(error=ContextInvalidated("Channel context is invalid. Please reload the page."))

        policy = self.policy
        if max_retries is not None:
            policy = RetryPolicy(max_attempts=max_retries, base_delay=self.policy.base_delay)

        last_error: MessagingError | None = None
        for attempt in policy.attempts():
            delay = policy.delay_before(attempt)
            if delay > 0:
                await self.clock.sleep(delay)
            if not self.status.valid:
                return Result(error=ContextInvalidated("Channel context is invalid. Please reload the page."))

            envelope.attempts = attempt
            try:
                response = await asyncio.wait_for(self.channel.request(envelope.to_message()), timeout)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                err = classify(exc)
            else:
                if isinstance(response, dict) and response.get("error"):
                    err = classify(ChannelError(str(response["error"])))
                else:
                    return Result(value=response)

            if err.kind is ErrorKind.CONTEXT_INVALIDATED:
                self._invalidate(err)
                return Result(error=err)
            if err.kind is ErrorKind.OTHER:
                log.error("%s rejected: %s", envelope.action, err)
                return Result(error=err)

            last_error = err
            log.warning(
                "%s attempt %d/%d failed (%s: %s)",
                envelope.action, attempt, policy.max_attempts, err.kind.value, err,
            )

        return Result(error=RetriesExhausted(
            f"{envelope.action} failed after {envelope.attempts} attempts: {last_error}",
            last_error,
        ))

    def _invalidate(self, err: MessagingError) -> None:
        if self.status.valid:
            log.warning("Channel context invalidated: %s", err)
        self.status.validity = ChannelValidity.INVALID
        if self._notice_shown:
            return
        self._notice_shown = True
        self.notifier.notify(Notification(
            kind=CONTEXT_INVALIDATED,
            title="Extension reloaded",
            message="Please refresh this page to continue using autopilot.",
        ))

    # --- deferred delivery ---

    def defer(self, envelope: MessageEnvelope, callback: Callable[[Result], None] | None = None) -> None:
        now = self.clock.now()
        self._deferred.append(DeferredMessage(envelope=envelope, enqueued_at=now, callback=callback))
        cutoff = now - self.deferred_ttl
        kept = deque(m for m in self._deferred if m.enqueued_at > cutoff)
        purged = len(self._deferred) - len(kept)
        self._deferred = kept
        if purged:
            log.info("Dropped %d deferred message(s) older than %.0fs", purged, self.deferred_ttl)

    async def send_or_defer(
        self, envelope: MessageEnvelope, callback: Callable[[Result], None] | None = None
    ) -> Result | None:
        """Send now, or park the message when the channel is invalid (returns None)."""
        if not self.status.valid:
            self.defer(envelope, callback)
            return None
        result = await self.send(envelope)
        if callback is not None:
            callback(result)
        return result

    async def drain_deferred(self) -> int:
        if not self.status.valid or not self._deferred:
            return 0
        pending = list(self._deferred)
        self._deferred.clear()
        log.info("Replaying %d deferred message(s)", len(pending))
        for item in pending:
            result = await self.send(item.envelope)
            if not result.ok:
                log.error("Deferred %s failed: %s", item.envelope.action, result.error)
            if item.callback is not None:
                try:
                    item.callback(result)
                except Exception as exc:
                    log.error("Deferred %s callback raised: %s", item.envelope.action, exc)
        return len(pending)

    # --- liveness probe ---

    async def probe(self) -> ChannelValidity:
        try:
            alive = await asyncio.wait_for(self.channel.ping(), self.timeout)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._invalidate(ContextInvalidated(str(exc) or "Channel probe failed"))
            return self.status.validity
        if alive is False:
            self._invalidate(ContextInvalidated("Channel probe reported no runtime"))
            return self.status.validity

        if not self.status.valid:
            log.info("Channel context restored")
            self.status.validity = ChannelValidity.VALID
            self._notice_shown = False
            await self.drain_deferred()
        return self.status.validity

    async def run_probe(self, stop: asyncio.Event | None = None) -> None:
        while stop is None or not stop.is_set():
            await self.probe()
            await self.clock.sleep(self.probe_interval)
