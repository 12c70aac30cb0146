"""Shared data schemas for Tourist Sentinel."""

from .telemetry import GeoPoint, LocationFix
from .profile import BehaviorProfile, CommonLocation, MovementPattern
from .anomalies import AnomalyEvent, AnomalyType, SeverityLevel
from .safety import GeoZone, RiskLevel, SafetyFactors, SafetyScore, SafetyStatus, ZoneTransition
from .escalation import (
    DispatchResult,
    EscalationState,
    EscalationStatus,
    EscalationTransition,
    EscalationTrigger,
)
from .session import SessionSnapshot, SessionStatus, SubmitReason, SubmitResult
from .stream import StreamMessage, StreamMessageType

__all__ = [
    "GeoPoint",
    "LocationFix",
    "BehaviorProfile",
    "CommonLocation",
    "MovementPattern",
    "AnomalyEvent",
    "AnomalyType",
    "SeverityLevel",
    "GeoZone",
    "RiskLevel",
    "SafetyFactors",
    "SafetyScore",
    "SafetyStatus",
    "ZoneTransition",
    "DispatchResult",
    "EscalationState",
    "EscalationStatus",
    "EscalationTransition",
    "EscalationTrigger",
    "SessionSnapshot",
    "SessionStatus",
    "SubmitReason",
    "SubmitResult",
    "StreamMessage",
    "StreamMessageType",
]
