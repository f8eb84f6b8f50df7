"""
Notification External Integrations
===================================

Slack webhook delivery for ticket events:
- Circuit breaker so a dead webhook is not hammered
- Exponential backoff retry within one delivery
- Block Kit message per event type
"""

import asyncio
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import httpx

from sst_resolve.config import SUPER_ADMIN_URGENT_TIER, EventType
from sst_resolve.core import NotificationException
from sst_resolve.notifications.application.services import INotificationChannel
from sst_resolve.shared.infrastructure.logging import get_logger
from sst_resolve.tickets.domain import OutboxEvent

logger = get_logger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Stops calling Slack after repeated delivery failures.

    After ``failure_threshold`` consecutive failures the breaker opens and
    rejects calls for ``recovery_timeout`` seconds. The first call after
    that is a trial call: success closes the breaker, failure reopens it.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._failures = 0
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> CircuitState:
        if self._opened_at is None:
            return CircuitState.CLOSED
        if self._clock() - self._opened_at >= self.recovery_timeout:
            return CircuitState.HALF_OPEN
        return CircuitState.OPEN

    def allow_request(self) -> bool:
        return self.state is not CircuitState.OPEN

    def record_success(self) -> None:
        self._failures = 0
        self._opened_at = None

    def record_failure(self) -> None:
        self._failures += 1
        if self._opened_at is None and self._failures < self.failure_threshold:
            return

        self._opened_at = self._clock()
        logger.warning("Slack circuit opened", extra={
            "consecutive_failures": self._failures,
            "retry_after_seconds": self.recovery_timeout,
        })


# Header text per event type
_HEADERS = {
    EventType.TICKET_CREATED: ":ticket: New Ticket",
    EventType.ACKNOWLEDGED: ":eyes: Ticket Acknowledged",
    EventType.COMMENT_ADDED: ":speech_balloon: New Comment",
    EventType.STATUS_CHANGED: ":arrows_counterclockwise: Status Changed",
    EventType.ESCALATED_MANUAL: ":warning: Ticket Escalated",
    EventType.ESCALATED_AUTO: ":rotating_light: Ticket Auto-Escalated",
    EventType.REASSIGNED: ":bust_in_silhouette: Ticket Reassigned",
    EventType.TAT_SET: ":hourglass: TAT Updated",
    EventType.RATED: ":star: Ticket Rated",
    EventType.TAT_REMINDER: ":alarm_clock: Reminder: TAT Due Today",
    EventType.ACK_REMINDER: ":bell: Reminder: Awaiting Acknowledgement",
}

_ESCALATIONS = (EventType.ESCALATED_MANUAL, EventType.ESCALATED_AUTO)
_REMINDERS = (EventType.TAT_REMINDER, EventType.ACK_REMINDER)


def _humanize(value: Optional[str]) -> str:
    return (value or "-").replace("_", " ").title()


def _field(label: str, value: Any) -> Dict[str, str]:
    return {"type": "mrkdwn", "text": f"*{label}:*\n{value}"}


class SlackClient(INotificationChannel):
    """
    Posts outbox events to Slack incoming webhooks.

    Escalations go to the channels configured for their new level; every
    other event goes to the default channel. Without a webhook URL every
    delivery is a logged no-op, so events still drain from the outbox in
    environments without Slack.
    """

    def __init__(
        self,
        webhook_url: Optional[str],
        channel: str = "#tickets",
        timeout_seconds: float = 10.0,
        ticket_base_url: str = "http://localhost:3000/tickets",
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        channels_for_level: Optional[Callable[[int], List[str]]] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self._webhook_url = webhook_url
        self._channel = channel
        self._timeout_seconds = timeout_seconds
        self._ticket_base_url = ticket_base_url.rstrip("/")
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._channels_for_level = channels_for_level
        self._circuit_breaker = circuit_breaker or CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        self._http_client = http_client

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    def supports(self, event_type: EventType) -> bool:
        return event_type in _HEADERS

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout_seconds)
        return self._http_client

    def build_message(self, event: OutboxEvent, channel: Optional[str] = None) -> Dict[str, Any]:
        """Block Kit body for one event on one channel."""
        payload = event.payload
        ticket_id = payload.get("ticket_id")
        ticket_url = f"{self._ticket_base_url}/{ticket_id}"

        header = _HEADERS[event.event_type]
        urgent = payload.get("escalated_to") == SUPER_ADMIN_URGENT_TIER
        if urgent:
            header = f":sos: URGENT: {header.split(' ', 1)[1]}"

        fields = [
            _field("Ticket", f"<{ticket_url}|#{ticket_id}>"),
            _field("Status", _humanize(payload.get("new_status"))),
        ]
        if payload.get("domain"):
            fields.append(_field("Domain", payload["domain"]))
        if payload.get("scope"):
            fields.append(_field("Scope", payload["scope"]))

        if event.event_type in _ESCALATIONS:
            severity = "URGENT" if urgent else "Normal"
            fields.extend([
                _field("Escalation Level", payload.get("new_level")),
                _field("Escalated To", _humanize(payload.get("escalated_to"))),
                _field("Severity", severity),
            ])
        elif event.event_type == EventType.TAT_SET:
            fields.append(_field("TAT", payload.get("tat")))
        elif event.event_type == EventType.RATED:
            fields.append(_field("Rating", f"{payload.get('rating')}/5"))
        elif event.event_type in _REMINDERS:
            fields.append(_field("Due", payload.get("due_at") or "-"))

        blocks: List[Dict[str, Any]] = [
            {"type": "header", "text": {"type": "plain_text", "text": header, "emoji": True}},
            {"type": "section", "fields": fields},
        ]

        text = payload.get("reason") or payload.get("comment") or payload.get("description")
        if text and payload.get("student_visible", True):
            blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": f">{text}"}})

        blocks.append({
            "type": "context",
            "elements": [
                {"type": "mrkdwn", "text": f"{_humanize(payload.get('actor_role'))} | {payload.get('occurred_at')}"}
            ]
        })

        return {
            "channel": channel or self._channel,
            "text": f"{header} #{ticket_id}",
            "blocks": blocks,
        }

    def _channels(self, event: OutboxEvent) -> List[str]:
        if event.event_type in _ESCALATIONS and self._channels_for_level is not None:
            level = event.payload.get("new_level")
            if isinstance(level, int):
                channels = self._channels_for_level(level)
                if channels:
                    return list(channels)
        return [self._channel]

    async def deliver(self, event: OutboxEvent) -> None:
        """
        Send the event to every channel it routes to.

        Channels already in ``event.delivered_channels`` are skipped and each
        successful post is appended there, so a retried event resumes where
        the previous attempt stopped.

        Raises:
            NotificationException: Circuit open or retries exhausted
        """
        if not self._webhook_url:
            logger.debug(
                "Slack webhook URL not configured, skipping notification",
                extra={"event_id": event.id, "event_type": event.event_type.value}
            )
            return

        for channel in self._channels(event):
            if channel in event.delivered_channels:
                continue
            await self._post(self.build_message(event, channel), event)
            event.delivered_channels.append(channel)

    async def _attempt(self, message: Dict[str, Any]) -> Optional[str]:
        """One POST; returns None on success, otherwise a short error description."""
        client = await self._get_client()
        try:
            response = await client.post(self._webhook_url, json=message)
        except httpx.HTTPError as e:
            return f"{type(e).__name__}: {e}"
        if response.status_code != 200:
            return f"HTTP {response.status_code}"
        return None

    async def _post(self, message: Dict[str, Any], event: OutboxEvent) -> None:
        if not self._circuit_breaker.allow_request():
            raise NotificationException("slack", "Circuit breaker open", {"event_id": event.id})

        context = {"event_id": event.id, "channel": message["channel"]}
        error: Optional[str] = None
        for attempt in range(1, self._max_retries + 1):
            error = await self._attempt(message)
            if error is None:
                self._circuit_breaker.record_success()
                logger.info("Slack notification sent", extra={
                    **context, "event_type": event.event_type.value, "attempt": attempt,
                })
                return

            logger.warning("Slack post failed", extra={**context, "error": error, "attempt": attempt})
            if attempt < self._max_retries:
                await asyncio.sleep(self._retry_base_delay * 2 ** (attempt - 1))

        self._circuit_breaker.record_failure()
        raise NotificationException("slack", error or "no attempts made", context)

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
