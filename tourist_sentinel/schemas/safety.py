"""Safety scoring schemas."""

from datetime import datetime
from enum import Enum
from typing import List
from pydantic import BaseModel, Field

from .telemetry import GeoPoint


class RiskLevel(str, Enum):
    """Geofence risk levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SafetyStatus(str, Enum):
    """Status derived from the safety score."""
    SAFE = "safe"
    CAUTION = "caution"
    DANGER = "danger"


class GeoZone(BaseModel):
    """Circular geofence with a risk level. Reference data."""
    id: str
    name: str
    center: GeoPoint
    radius_meters: float = Field(..., gt=0)
    risk_level: RiskLevel = RiskLevel.LOW
    incident_count: int = Field(0, ge=0)

    class Config:
        frozen = True


class SafetyFactors(BaseModel):
    """The six weighted sub-scores."""
    time_of_day: float = Field(..., ge=0, le=100)
    location: float = Field(..., ge=0, le=100)
    crowd_density: float = Field(..., ge=0, le=100)
    incident_history: float = Field(..., ge=0, le=100)
    route_deviation: float = Field(..., ge=0, le=100)
    weather: float = Field(..., ge=0, le=100)

    class Config:
        frozen = True


class SafetyScore(BaseModel):
    """Recomputed safety score; never accumulated."""
    tourist_id: str
    value: float = Field(..., ge=0, le=100)
    status: SafetyStatus
    factors: SafetyFactors
    zone_ids: List[str] = Field(default_factory=list)
    nearby_incidents: int = Field(0, ge=0)
    recommendations: List[str] = Field(default_factory=list)
    timestamp: datetime

    class Config:
        frozen = True


class ZoneTransition(BaseModel):
    """Entry into or exit from a geofence."""
    tourist_id: str
    zone_id: str
    zone_name: str
    risk_level: RiskLevel
    entered: bool
    timestamp: datetime

    class Config:
        frozen = True
