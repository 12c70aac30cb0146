"""Safety score calculator.

Combines six deterministic sub-scores into one weighted 0-100 score:

- time of day (local hour)
- location risk from the geofences containing the position
- crowd density, a proxy derived from time and zone
- incident history of the containing zones
- deviation from the planned route
- weather, a passthrough from the host
"""

from datetime import datetime
from typing import List, Optional, Sequence

from .config import SessionConfig
from .geo import distance, distance_to_route
from .schemas import GeoPoint, GeoZone, RiskLevel, SafetyFactors, SafetyScore, SafetyStatus

_RISK_ORDER = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2}

LOCATION_SCORES = {
    None: 90.0,
    RiskLevel.LOW: 85.0,
    RiskLevel.MEDIUM: 60.0,
    RiskLevel.HIGH: 30.0,
}

NO_ROUTE_SCORE = 95.0
MIN_ROUTE_SCORE = 10.0
MIN_INCIDENT_SCORE = 20.0
INCIDENT_PENALTY = 8.0


def zones_containing(point: GeoPoint, zones: Sequence[GeoZone]) -> List[GeoZone]:
    """Zones whose circle contains the point, in the order given."""
    return [z for z in zones if distance(point, z.center) <= z.radius_meters]


def worst_risk(zones: Sequence[GeoZone]) -> Optional[RiskLevel]:
    if not zones:
        return None
    return max((z.risk_level for z in zones), key=lambda r: _RISK_ORDER[r])


def is_night(hour: int) -> bool:
    return hour < 6 or hour >= 22


def is_late_night(hour: int) -> bool:
    return hour >= 23 or hour <= 4


def time_of_day_score(hour: int) -> float:
    if is_late_night(hour):
        return 20.0
    if is_night(hour):
        return 45.0
    if 18 <= hour < 22:
        return 75.0
    return 90.0


def crowd_density_score(hour: int, risk: Optional[RiskLevel]) -> float:
    score = 80.0
    if is_night(hour):
        score -= 25.0
    if risk is RiskLevel.HIGH:
        score -= 25.0
    elif risk is RiskLevel.MEDIUM:
        score -= 10.0
    return score


def incident_score(incidents: int) -> float:
    return max(MIN_INCIDENT_SCORE, 100.0 - incidents * INCIDENT_PENALTY)


def route_score(point: GeoPoint, route: Optional[Sequence[GeoPoint]], scale_meters: float) -> float:
    d = distance_to_route(point, route or ())
    if d is None:
        return NO_ROUTE_SCORE
    return max(MIN_ROUTE_SCORE, 100.0 * scale_meters / (scale_meters + d))


def status_for(value: float) -> SafetyStatus:
    if value >= 80:
        return SafetyStatus.SAFE
    if value >= 60:
        return SafetyStatus.CAUTION
    return SafetyStatus.DANGER


def recommendations(value: float, risk: Optional[RiskLevel], incidents: int, hour: int) -> List[str]:
    """Plain-text advice attached to a score."""
    recs = []
    if value < 50:
        recs.append("CRITICAL: move to the nearest safe zone immediately")
    if risk is RiskLevel.HIGH:
        recs.append("You are in a high-crime area, avoid staying here")
    if incidents > 5:
        recs.append("Multiple recent incidents nearby, extra caution advised")
    if hour >= 22 or hour <= 5:
        recs.append("Late night travel, consider returning to your accommodation")
    if value >= 80:
        recs.append("Safe area, continue with normal precautions")
    if 50 <= value < 70:
        recs.append("Moderate risk, stay alert and avoid isolated areas")
    return recs


class SafetyScoreCalculator:
    """Computes SafetyScore values for one session's configuration and zones."""

    def __init__(self, config: SessionConfig, zones: Sequence[GeoZone] = ()):
        self.config = config
        self.zones = list(zones)

    def factors(
        self,
        point: GeoPoint,
        at: datetime,
        route: Optional[Sequence[GeoPoint]] = None,
        weather: Optional[float] = None,
    ) -> SafetyFactors:
        return self._evaluate(point, at, route, weather)[3]

    def _evaluate(self, point, at, route, weather):
        hour = at.astimezone(self.config.tz).hour
        inside = zones_containing(point, self.zones)
        risk = worst_risk(inside)
        incidents = sum(z.incident_count for z in inside)
        factors = SafetyFactors(
            time_of_day=time_of_day_score(hour),
            location=LOCATION_SCORES[risk],
            crowd_density=crowd_density_score(hour, risk),
            incident_history=incident_score(incidents),
            route_deviation=route_score(point, route, self.config.route_scale_meters),
            weather=self.config.default_weather_score if weather is None else weather,
        )
        return hour, inside, risk, factors, incidents

    def calculate(
        self,
        tourist_id: str,
        point: GeoPoint,
        at: datetime,
        route: Optional[Sequence[GeoPoint]] = None,
        weather: Optional[float] = None,
    ) -> SafetyScore:
        """Recompute the score from scratch; nothing carries over between calls."""
        hour, inside, risk, factors, incidents = self._evaluate(point, at, route, weather)

        weights = self.config.factor_weights
        weighted = sum(getattr(factors, name) * weight for name, weight in weights.items())
        value = max(0.0, min(100.0, round(weighted, 1)))

        return SafetyScore(
            tourist_id=tourist_id,
            value=value,
            status=status_for(value),
            factors=factors,
            zone_ids=[z.id for z in inside],
            nearby_incidents=incidents,
            recommendations=recommendations(value, risk, incidents, hour),
            timestamp=at,
        )
