"""
SLA Infrastructure Repositories
=================================

Concrete implementations of SLA repository interfaces using SQLAlchemy.
"""

from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sst_resolve.core import DependencyFailureException, RepositoryException
from sst_resolve.sla.application.services import IEscalationRuleRepository
from sst_resolve.sla.domain import EscalationRule
from sst_resolve.sla.infrastructure.models import EscalationRuleModel


class SQLAlchemyEscalationRuleRepository(IEscalationRuleRepository):
    """
    SQLAlchemy implementation of escalation rule repository.

    Reads scope-specific and domain-wide rules in a single query.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def list_for(self, domain: str, scope: Optional[str]) -> List[EscalationRule]:
        scope_condition = EscalationRuleModel.scope.is_(None)
        if scope is not None:
            scope_condition = or_(EscalationRuleModel.scope == scope, scope_condition)

        stmt = (
            select(EscalationRuleModel)
            .where(EscalationRuleModel.domain == domain, scope_condition)
            .order_by(EscalationRuleModel.level.asc())
        )

        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise DependencyFailureException("database", "failed to load escalation rules") from e

        return [self._to_domain(model) for model in result.scalars().all()]

    @staticmethod
    def _to_domain(model: EscalationRuleModel) -> EscalationRule:
        if model.level < 1:
            raise RepositoryException(
                f"Escalation rule {model.id} has invalid level {model.level}",
                {"domain": model.domain, "scope": model.scope},
            )
        return EscalationRule(
            id=model.id,
            domain=model.domain,
            scope=model.scope,
            level=model.level,
            user_id=model.user_id,
            tat_hours=model.tat_hours,
            notify_channel=model.notify_channel,
        )
