"""Telemetry data schemas for Tourist Sentinel."""

from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, Field, field_validator


class GeoPoint(BaseModel):
    """Geographic point in decimal degrees."""
    lat: float = Field(..., ge=-90, le=90, allow_inf_nan=False, description="Latitude in decimal degrees")
    lng: float = Field(..., ge=-180, le=180, allow_inf_nan=False, description="Longitude in decimal degrees")

    class Config:
        frozen = True


class LocationFix(BaseModel):
    """One location fix reported by a tracking device.

    ``speed`` is optional: when the device does not report it, ingest derives
    it from the previous accepted fix. It is never assumed to be zero.
    """
    timestamp: datetime
    lat: float = Field(..., ge=-90, le=90, allow_inf_nan=False, description="Latitude in decimal degrees")
    lng: float = Field(..., ge=-180, le=180, allow_inf_nan=False, description="Longitude in decimal degrees")
    speed: Optional[float] = Field(None, ge=0, allow_inf_nan=False, description="Speed in m/s")
    accuracy: Optional[float] = Field(None, ge=0, description="Horizontal accuracy in meters")

    class Config:
        frozen = True

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Naive timestamps are treated as UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(lat=self.lat, lng=self.lng)

    def same_reading(self, other: "LocationFix") -> bool:
        return self.timestamp == other.timestamp and self.lat == other.lat and self.lng == other.lng
