"""
Notification Application Services
==================================

Outbox consumer: delivers recorded ticket events to the notification
channel and tracks delivery attempts.

Delivery runs after the state change has committed, so a failed or slow
channel never affects ticket state. Failed events are retried with
exponential backoff until they run out of attempts.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sst_resolve.config import EventType
from sst_resolve.core import ExternalServiceException
from sst_resolve.shared.infrastructure.logging import get_logger, log_latency
from sst_resolve.tickets.application.services import IOutboxRepository
from sst_resolve.tickets.domain import OutboxEvent

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def retry_delay(attempts: int) -> timedelta:
    """Backoff before the next try after ``attempts`` failures: 2^attempts minutes."""
    return timedelta(minutes=2 ** attempts)


# ========== Channel Interface ==========

class INotificationChannel(ABC):
    """A destination that can deliver ticket events."""

    @abstractmethod
    def supports(self, event_type: EventType) -> bool:
        """Whether this channel has a message for the event type."""

    @abstractmethod
    async def deliver(self, event: OutboxEvent) -> None:
        """
        Deliver one event.

        Raises:
            ExternalServiceException: Delivery failed and should be retried
        """


@dataclass
class OutboxBatchResult:
    """Outcome of one outbox poll."""
    fetched: int = 0
    delivered: int = 0
    skipped: int = 0
    failed: int = 0
    exhausted: int = 0


class OutboxProcessor:
    """
    Polls pending outbox events and hands them to the notification channel.

    Pending means unprocessed, with attempts left and a retry time that has
    come. Events without a message for the channel are marked processed.
    """

    def __init__(
        self,
        outbox_repository: IOutboxRepository,
        channel: INotificationChannel,
        batch_size: int = 10,
        max_attempts: int = 3,
        clock: Callable[[], datetime] = _utcnow
    ):
        self._outbox_repo = outbox_repository
        self._channel = channel
        self._batch_size = batch_size
        self._max_attempts = max_attempts
        self._clock = clock

    async def process_batch(self, now: Optional[datetime] = None) -> OutboxBatchResult:
        now = now or self._clock()
        result = OutboxBatchResult()

        with log_latency(logger, "outbox_batch"):
            events = await self._outbox_repo.get_pending(
                now, limit=self._batch_size, max_attempts=self._max_attempts
            )
            result.fetched = len(events)

            for event in events:
                if not self._channel.supports(event.event_type):
                    logger.warning(
                        "No notification for event type, marking processed",
                        extra={"event_id": event.id, "event_type": event.event_type.value}
                    )
                    await self._outbox_repo.mark_processed(event.id, now)
                    result.skipped += 1
                    continue

                try:
                    await self._channel.deliver(event)
                except ExternalServiceException as e:
                    await self._record_failure(event, now, e, result)
                    continue

                await self._outbox_repo.mark_processed(event.id, now)
                result.delivered += 1
                logger.info(
                    "Outbox event delivered",
                    extra={
                        "event_id": event.id,
                        "event_type": event.event_type.value,
                        "ticket_id": event.ticket_id,
                        "attempt": event.attempts + 1,
                    }
                )

        return result

    async def _record_failure(
        self,
        event: OutboxEvent,
        now: datetime,
        error: ExternalServiceException,
        result: OutboxBatchResult
    ) -> None:
        next_retry_at = now + retry_delay(event.attempts + 1)
        attempts = event.attempts + 1
        await self._outbox_repo.mark_failed(
            event.id, attempts, next_retry_at, error.message,
            delivered_channels=event.delivered_channels,
        )

        result.failed += 1
        if attempts >= self._max_attempts:
            result.exhausted += 1
            logger.error(
                "Outbox event gave up after max attempts",
                extra={
                    "event_id": event.id,
                    "event_type": event.event_type.value,
                    "ticket_id": event.ticket_id,
                    "attempts": attempts,
                    "error": error.message,
                }
            )
        else:
            logger.warning(
                "Outbox event delivery failed",
                extra={
                    "event_id": event.id,
                    "event_type": event.event_type.value,
                    "ticket_id": event.ticket_id,
                    "attempt": attempts,
                    "next_retry_at": next_retry_at.isoformat(),
                    "error": error.message,
                }
            )
