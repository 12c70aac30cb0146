"""The four per-fix anomaly rules plus the timer-driven inactivity rule."""

from datetime import datetime
from typing import List, Optional

import numpy as np

from ..config import SessionConfig
from ..geo import bearing_degrees, bearing_delta, centroid, haversine_meters
from ..profiling import local_hour
from ..schemas import AnomalyEvent, AnomalyType, GeoPoint, SeverityLevel
from .base import BaseAnomalyDetector, DetectionContext, event_id

PATTERN_WINDOW = 10
RECENT_WINDOW = 10
DIRECTION_CHANGE_DEGREES = 45.0
ERRATIC_CHANGES = 5
CIRCULAR_CV = 0.3
MIN_CIRCLE_RADIUS_METERS = 1.0


class SpeedAnomalyDetector(BaseAnomalyDetector):
    """Compares the fix speed against the profile's average speed."""

    name = "speed"

    def detect(self, context: DetectionContext) -> Optional[AnomalyEvent]:
        fix = context.fix
        if fix.speed is None:
            return None
        speed_kmh = fix.speed * 3.6
        avg = context.profile.average_speed

        if speed_kmh > avg * self.config.speed_critical_multiplier and speed_kmh > self.config.speed_critical_floor_kmh:
            return self._event(
                AnomalyType.MOVEMENT,
                SeverityLevel.CRITICAL,
                f"Unusual high speed detected: {speed_kmh:.1f} km/h (average {avg:.1f} km/h), possible forced transportation",
                0.9,
                fix.timestamp,
                fix.point,
            )
        if speed_kmh < avg * 0.1 and speed_kmh < 1.0:
            return self._event(
                AnomalyType.MOVEMENT,
                SeverityLevel.MEDIUM,
                f"Unusually low movement: {speed_kmh:.2f} km/h, possible injury or distress",
                0.7,
                fix.timestamp,
                fix.point,
            )
        return None


class LocationNoveltyDetector(BaseAnomalyDetector):
    """Flags fixes far from every common location and every recent fix."""

    name = "location_novelty"

    def detect(self, context: DetectionContext) -> Optional[AnomalyEvent]:
        fix = context.fix
        near_common = any(
            haversine_meters(fix.lat, fix.lng, loc.lat, loc.lng) <= self.config.cluster_radius_meters
            for loc in context.profile.common_locations
        )
        if near_common:
            return None
        near_recent = any(
            haversine_meters(fix.lat, fix.lng, prev.lat, prev.lng) <= self.config.recent_radius_meters
            for prev in context.recent(RECENT_WINDOW, include_current=False)
        )
        if near_recent:
            return None
        return self._event(
            AnomalyType.LOCATION,
            SeverityLevel.MEDIUM,
            "Tourist in unfamiliar location",
            0.8,
            fix.timestamp,
            fix.point,
        )


class TimeAnomalyDetector(BaseAnomalyDetector):
    """Flags activity outside the tourist's typical hours."""

    name = "time"

    def detect(self, context: DetectionContext) -> Optional[AnomalyEvent]:
        fix = context.fix
        hour = local_hour(fix, self.config.tz)
        if hour in context.profile.typical_hours:
            return None
        if hour < 6:
            return self._event(
                AnomalyType.TIME,
                SeverityLevel.HIGH,
                f"Unusual activity at {hour:02d}:00, late-night movement",
                0.9,
                fix.timestamp,
                fix.point,
            )
        return self._event(
            AnomalyType.TIME,
            SeverityLevel.LOW,
            f"Activity at {hour:02d}:00 outside typical hours",
            0.6,
            fix.timestamp,
            fix.point,
        )


class MovementPatternDetector(BaseAnomalyDetector):
    """Looks for erratic or circular movement over the last fixes."""

    name = "movement_pattern"

    def detect(self, context: DetectionContext) -> Optional[AnomalyEvent]:
        window = context.recent(PATTERN_WINDOW)
        if len(window) < PATTERN_WINDOW:
            return None
        fix = context.fix

        bearings = [
            bearing_degrees(a.lat, a.lng, b.lat, b.lng)
            for a, b in zip(window, window[1:])
        ]
        changes = sum(
            1 for b1, b2 in zip(bearings, bearings[1:])
            if bearing_delta(b1, b2) > DIRECTION_CHANGE_DEGREES
        )
        if changes > ERRATIC_CHANGES:
            return self._event(
                AnomalyType.BEHAVIOR,
                SeverityLevel.MEDIUM,
                f"Erratic movement: {changes} direction changes in last {PATTERN_WINDOW} fixes",
                0.7,
                fix.timestamp,
                fix.point,
            )

        c_lat, c_lng = centroid((f.lat, f.lng) for f in window)
        distances = np.array([haversine_meters(f.lat, f.lng, c_lat, c_lng) for f in window])
        mean = float(distances.mean())
        # A stationary window sits within GPS noise of its centroid
        if mean < MIN_CIRCLE_RADIUS_METERS:
            return None
        cv = float(distances.std()) / mean
        if cv < CIRCULAR_CV:
            return self._event(
                AnomalyType.BEHAVIOR,
                SeverityLevel.LOW,
                f"Circular or repetitive movement around ({c_lat:.5f}, {c_lng:.5f})",
                0.6,
                fix.timestamp,
                GeoPoint(lat=c_lat, lng=c_lng),
            )
        return None


def inactivity_event(last_fix_at: datetime, now: datetime, location: Optional[GeoPoint]) -> AnomalyEvent:
    """High-severity behavior event for a tourist that stopped reporting."""
    minutes = (now - last_fix_at).total_seconds() / 60.0
    return AnomalyEvent(
        id=event_id("inactivity", now),
        type=AnomalyType.BEHAVIOR,
        severity=SeverityLevel.HIGH,
        description=f"No location updates for {minutes:.0f} minutes",
        confidence=0.8,
        timestamp=now,
        location=location,
        detector="inactivity",
    )


def default_detectors(config: SessionConfig) -> List[BaseAnomalyDetector]:
    return [
        SpeedAnomalyDetector(config),
        LocationNoveltyDetector(config),
        TimeAnomalyDetector(config),
        MovementPatternDetector(config),
    ]
