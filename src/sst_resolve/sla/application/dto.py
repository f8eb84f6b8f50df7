"""
SLA Application DTOs
=====================

Data Transfer Objects for the SLA API layer.

These Pydantic models handle serialization for API responses.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from sst_resolve.sla.domain import SLAPolicy, TicketMetrics


# ========== Type Aliases for Literals ==========
SLAStateStr = Literal["no_sla", "on_track", "at_risk", "breached", "met"]


# ========== Response DTOs ==========

class ChainEntryResponse(BaseModel):
    """One reachable level of an escalation chain."""
    level: int
    user_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    tat_hours: Optional[float] = None


class SLAPolicyResponse(BaseModel):
    """Effective SLA policy for a (domain, scope)."""
    domain: str
    scope: Optional[str] = None
    acknowledgement_hours: Optional[float] = Field(None, description="Null means no SLA")
    resolution_hours: Optional[float] = Field(None, description="Null means no SLA")
    chain: List[ChainEntryResponse] = Field(default_factory=list)

    @classmethod
    def from_policy(cls, policy: SLAPolicy) -> "SLAPolicyResponse":
        return cls(**policy.to_dict())


class SLAClockResponse(BaseModel):
    """State of a single SLA clock."""
    due_at: Optional[datetime] = Field(None, description="Deadline, null for no SLA")
    met_at: Optional[datetime] = None
    remaining_seconds: Optional[float] = Field(None, description="Negative once breached")
    state: SLAStateStr


class TicketSLAResponse(BaseModel):
    """SLA view of one ticket."""
    ticket_id: int
    status: str
    escalation_level: int
    acknowledgement: SLAClockResponse
    resolution: SLAClockResponse
    is_overdue: bool
    missed_deadline: Optional[datetime] = None
    sla_breached_at: Optional[datetime] = None
    last_escalation_at: Optional[datetime] = None


class MetricsResponse(BaseModel):
    """Aggregated ticket analytics."""
    total: int
    by_status: Dict[str, int]
    active: int
    resolved: int
    escalated: int
    reopened: int
    overdue: int
    breached: int
    average_acknowledgement_hours: Optional[float] = None
    average_resolution_hours: Optional[float] = None
    resolution_rate: float
    sla_compliance_rate: float
    average_rating: Optional[float] = None
    created_last_7_days: int
    created_last_30_days: int
    resolved_last_7_days: int
    resolved_last_30_days: int

    @classmethod
    def from_metrics(cls, metrics: TicketMetrics) -> "MetricsResponse":
        return cls(**metrics.to_dict())


class SweepResponse(BaseModel):
    """Outcome of one breach sweep."""
    scanned: int
    breached: int
    escalated: int
    skipped_cooldown: int
    failed: int
    escalated_ticket_ids: List[int] = Field(default_factory=list)
