"""Behavior profile schemas."""

from datetime import datetime
from enum import Enum
from typing import FrozenSet, Tuple
from pydantic import BaseModel, Field


class MovementPattern(str, Enum):
    """Heuristic movement pattern tags."""
    REGULAR_COMMUTER = "regular_commuter"
    TOURIST_EXPLORER = "tourist_explorer"
    STATIONARY_PERIODS = "stationary_periods"


class CommonLocation(BaseModel):
    """Cluster of fixes seen often enough to count as a common location."""
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    frequency: float = Field(..., ge=0.0, le=1.0, description="Share of history fixes in this cluster")

    class Config:
        frozen = True


class BehaviorProfile(BaseModel):
    """Statistical profile derived from a tourist's fix history.

    Rebuilt wholesale from history; never mutated in place.
    """
    average_speed: float = Field(..., ge=0.0, description="Average speed in km/h")
    common_locations: Tuple[CommonLocation, ...] = ()
    typical_hours: FrozenSet[int] = frozenset()
    movement_patterns: FrozenSet[MovementPattern] = frozenset()
    built_at: datetime = Field(..., description="Timestamp of the newest fix used")
    fix_count: int = Field(..., ge=0)

    class Config:
        frozen = True
