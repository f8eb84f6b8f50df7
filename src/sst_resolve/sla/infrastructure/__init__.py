"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for the SLA module.

Contains:
- Models: SQLAlchemy ORM models (escalation rules)
- Repositories: Concrete repository implementations
- External: Config hot reload, background scheduler
"""

from sst_resolve.sla.infrastructure.models import EscalationRuleModel
from sst_resolve.sla.infrastructure.repositories import SQLAlchemyEscalationRuleRepository
from sst_resolve.sla.infrastructure.external import SLAConfigManager, SLAScheduler

__all__ = [
    "EscalationRuleModel",
    "SQLAlchemyEscalationRuleRepository",
    "SLAConfigManager",
    "SLAScheduler",
]
