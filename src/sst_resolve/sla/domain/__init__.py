"""
SLA Domain Layer
================

Domain layer for the SLA module.

Contains:
- Value Objects: SLAPolicy, EscalationRule, Identity, SLAConfig
- Domain Services: TATCalculator, merge_escalation_rules
- Metrics: pure analytics over ticket collections

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from sst_resolve.sla.domain.value_objects import (
    TATCalculator,
    Identity,
    EscalationRule,
    ChainEntry,
    SLAPolicy,
    SLATargets,
    DomainTargets,
    AutoEscalationConfig,
    ReminderConfig,
    EscalationLevelConfig,
    SLAConfig,
    merge_escalation_rules,
)
from sst_resolve.sla.domain.metrics import (
    TicketMetrics,
    hours_between,
    average_hours_between,
    percentage,
    count_in_window,
    summarize_tickets,
)

__all__ = [
    # Value Objects & Services
    "TATCalculator",
    "Identity",
    "EscalationRule",
    "ChainEntry",
    "SLAPolicy",
    "SLATargets",
    "DomainTargets",
    "AutoEscalationConfig",
    "ReminderConfig",
    "EscalationLevelConfig",
    "SLAConfig",
    "merge_escalation_rules",
    # Metrics
    "TicketMetrics",
    "hours_between",
    "average_hours_between",
    "percentage",
    "count_in_window",
    "summarize_tickets",
]
