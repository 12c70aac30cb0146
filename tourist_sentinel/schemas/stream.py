"""Messages published on the subscription stream."""

from enum import Enum
from typing import Union
from pydantic import BaseModel

from .anomalies import AnomalyEvent
from .escalation import EscalationStatus
from .safety import SafetyScore, ZoneTransition


class StreamMessageType(str, Enum):
    ANOMALY = "anomaly"
    SAFETY_SCORE = "safety_score"
    ESCALATION = "escalation"
    ZONE_TRANSITION = "zone_transition"


class StreamMessage(BaseModel):
    """Envelope for everything a subscriber can receive."""
    type: StreamMessageType
    tourist_id: str
    data: Union[AnomalyEvent, SafetyScore, EscalationStatus, ZoneTransition]
