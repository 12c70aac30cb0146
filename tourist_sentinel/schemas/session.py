"""Session-level schemas: submit results, status and persisted snapshots."""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field

from .escalation import EscalationStatus
from .profile import BehaviorProfile
from .safety import SafetyScore
from .telemetry import LocationFix


class SubmitReason(str, Enum):
    """Why a fix was (or was not) taken."""
    QUEUED = "queued"
    INVALID_FIX = "invalid_fix"
    OUT_OF_ORDER = "out_of_order"
    DUPLICATE = "duplicate"
    DROPPED_OVERFLOW = "dropped_overflow"
    SESSION_CLOSED = "session_closed"


class SubmitResult(BaseModel):
    """Answer to a fix submission."""
    accepted: bool
    reason: Optional[SubmitReason] = None
    storage_degraded: bool = False


class SessionSnapshot(BaseModel):
    """What is persisted to the key-value collaborator for one tourist."""
    tourist_id: str
    history: List[LocationFix] = Field(default_factory=list)
    profile: Optional[BehaviorProfile] = None


class SessionStatus(BaseModel):
    """Monitoring status of one tourist session."""
    tourist_id: str
    monitoring: bool
    data_points: int
    profile_generated: bool
    queue_depth: int = 0
    storage_degraded: bool = False
    last_score: Optional[SafetyScore] = None
    escalation: EscalationStatus
