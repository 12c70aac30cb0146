"""Escalation schemas."""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field

from .anomalies import SeverityLevel
from .telemetry import GeoPoint


class EscalationState(str, Enum):
    """Per-tourist escalation states."""
    IDLE = "idle"
    ESCALATING = "escalating"
    ESCALATED = "escalated"
    RESOLVED = "resolved"


class EscalationTrigger(BaseModel):
    """Signal that opened (or tried to re-open) an escalation."""
    kind: str = Field(..., description="anomaly or safety_score")
    alert_type: str
    severity: SeverityLevel
    description: str
    location: Optional[GeoPoint] = None
    timestamp: datetime

    class Config:
        frozen = True


class EscalationTransition(BaseModel):
    """One state change of the escalation state machine."""
    from_state: EscalationState
    to_state: EscalationState
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    reason: str = ""

    class Config:
        frozen = True


class EscalationStatus(BaseModel):
    """Snapshot of a tourist's escalation."""
    tourist_id: str
    state: EscalationState = EscalationState.IDLE
    degraded: bool = False
    trigger: Optional[EscalationTrigger] = None
    alert_id: Optional[str] = None
    attempts: int = 0
    suppressed_signals: int = 0
    opened_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    resolved_by: Optional[str] = None
    history: List[EscalationTransition] = Field(default_factory=list)


class DispatchResult(BaseModel):
    """Response of the emergency collaborator."""
    success: bool
    alert_id: Optional[str] = None
