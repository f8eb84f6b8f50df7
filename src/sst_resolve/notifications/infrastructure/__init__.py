"""
Notification Infrastructure Layer
==================================

Contains:
- SlackClient: webhook channel with retry
- CircuitBreaker: failure isolation for the webhook
"""

from sst_resolve.notifications.infrastructure.external import (
    CircuitBreaker,
    CircuitState,
    SlackClient,
)

__all__ = ["CircuitBreaker", "CircuitState", "SlackClient"]
