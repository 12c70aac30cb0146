"""Anomaly event schemas."""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from .telemetry import GeoPoint


class AnomalyType(str, Enum):
    """Anomaly categories."""
    MOVEMENT = "movement"
    LOCATION = "location"
    TIME = "time"
    BEHAVIOR = "behavior"


class SeverityLevel(str, Enum):
    """Anomaly severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AnomalyEvent(BaseModel):
    """A single detected anomaly. Immutable once created."""
    id: str = Field(..., description="Deterministic event identifier")
    type: AnomalyType
    severity: SeverityLevel
    description: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    timestamp: datetime
    location: Optional[GeoPoint] = None
    detector: str = Field(..., description="Name of the rule that produced the event")

    class Config:
        frozen = True
