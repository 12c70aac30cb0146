"""Behavior profile builder.

Derives a :class:`BehaviorProfile` wholesale from a fix history: greedy
location clusters, typical active hours and movement-pattern tags. The same
ordered history always yields the same profile.
"""

from collections import Counter
from typing import List, Optional, Sequence
from zoneinfo import ZoneInfo

from .config import SessionConfig
from .geo import haversine_meters
from .schemas import BehaviorProfile, CommonLocation, LocationFix, MovementPattern

TOP_CLUSTERS = 5
STATIONARY_SPEED_MS = 0.1


class _Cluster:
    __slots__ = ("lat", "lng", "count")

    def __init__(self, lat: float, lng: float):
        self.lat = lat
        self.lng = lng
        self.count = 1


def local_hour(fix: LocationFix, tz: ZoneInfo) -> int:
    return fix.timestamp.astimezone(tz).hour


class ProfileBuilder:
    """Builds behavior profiles according to a session configuration."""

    def __init__(self, config: SessionConfig):
        self.config = config

    def build(self, fixes: Sequence[LocationFix]) -> Optional[BehaviorProfile]:
        """Return a fresh profile, or None when there are too few fixes."""
        total = len(fixes)
        if total < self.config.min_profile_fixes:
            return None

        clusters = self.cluster(fixes)
        # sorted() is stable: ties keep creation order
        ranked = sorted(clusters, key=lambda c: c.count, reverse=True)
        common = tuple(
            CommonLocation(lat=c.lat, lng=c.lng, frequency=c.count / total)
            for c in ranked[:TOP_CLUSTERS]
        )

        return BehaviorProfile(
            average_speed=self._average_speed_kmh(fixes),
            common_locations=common,
            typical_hours=self._typical_hours(fixes),
            movement_patterns=self._movement_patterns(fixes, ranked),
            built_at=fixes[-1].timestamp,
            fix_count=total,
        )

    def cluster(self, fixes: Sequence[LocationFix]) -> List[_Cluster]:
        """Single-pass greedy clustering around the first fix of each cluster."""
        radius = self.config.cluster_radius_meters
        clusters: List[_Cluster] = []
        for fix in fixes:
            for c in clusters:
                if haversine_meters(fix.lat, fix.lng, c.lat, c.lng) <= radius:
                    c.count += 1
                    break
            else:
                clusters.append(_Cluster(fix.lat, fix.lng))
        return clusters

    def _typical_hours(self, fixes: Sequence[LocationFix]):
        tz = self.config.tz
        histogram = Counter(local_hour(f, tz) for f in fixes)
        threshold = 0.5 * (len(fixes) / 24)
        return frozenset(h for h, count in histogram.items() if count > threshold)

    @staticmethod
    def _average_speed_kmh(fixes: Sequence[LocationFix]) -> float:
        speeds = [f.speed for f in fixes if f.speed is not None]
        if not speeds:
            return 0.0
        return sum(speeds) / len(speeds) * 3.6

    @staticmethod
    def _movement_patterns(fixes: Sequence[LocationFix], ranked: List[_Cluster]):
        total = len(fixes)
        tags = set()
        top_frequency = ranked[0].count / total if ranked else 0.0

        if len(ranked) >= 2 and top_frequency > 0.3:
            tags.add(MovementPattern.REGULAR_COMMUTER)
        if len(ranked) > TOP_CLUSTERS and top_frequency < 0.2:
            tags.add(MovementPattern.TOURIST_EXPLORER)

        stationary = sum(1 for f in fixes if f.speed is not None and f.speed < STATIONARY_SPEED_MS)
        if stationary / total > 0.3:
            tags.add(MovementPattern.STATIONARY_PERIODS)

        return frozenset(tags)
