"""
Shared Kernel Module
====================

Infrastructure shared by the bounded contexts (SLA, Tickets, Notifications).

- Each module (sla, tickets, notifications) is a bounded context
- Shared kernel contains only generic infrastructure: logging, caching,
  HTTP middleware and error mapping

Ticket and escalation rules live in their own contexts, not here.
"""

__version__ = "2.1.0"
