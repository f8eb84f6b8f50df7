"""
Notification Application Layer
===============================

Contains:
- OutboxProcessor: delivers recorded events with retry/backoff
- INotificationChannel: interface the Slack client implements
"""

from sst_resolve.notifications.application.services import (
    INotificationChannel,
    OutboxBatchResult,
    OutboxProcessor,
    retry_delay,
)

__all__ = [
    "INotificationChannel",
    "OutboxBatchResult",
    "OutboxProcessor",
    "retry_delay",
]
