"""
Geodesic helpers: great-circle distance, bearings and point-to-route distance.

Distances are in meters and angles in degrees. Short segments are projected onto
a local tangent plane (equirectangular approximation) around the query point.
"""
from math import radians, degrees, sin, cos, atan2, sqrt
from typing import Iterable, Optional, Sequence, Tuple

from .schemas import GeoPoint

# Earth radius in meters
R = 6371000.0


def haversine_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in meters."""
    phi1 = radians(lat1)
    phi2 = radians(lat2)
    dphi = radians(lat2 - lat1)
    dlmb = radians(lng2 - lng1)
    a = sin(dphi / 2) ** 2 + cos(phi1) * cos(phi2) * sin(dlmb / 2) ** 2
    return 2 * R * atan2(sqrt(a), sqrt(1 - a))


def distance(a: GeoPoint, b: GeoPoint) -> float:
    return haversine_meters(a.lat, a.lng, b.lat, b.lng)


def bearing_degrees(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Initial bearing from point 1 to point 2, in [0, 360)."""
    phi1 = radians(lat1)
    phi2 = radians(lat2)
    dlmb = radians(lng2 - lng1)
    y = sin(dlmb) * cos(phi2)
    x = cos(phi1) * sin(phi2) - sin(phi1) * cos(phi2) * cos(dlmb)
    return (degrees(atan2(y, x)) + 360.0) % 360.0


def bearing_delta(b1: float, b2: float) -> float:
    """Smallest absolute angle between two bearings, in [0, 180]."""
    d = abs(b2 - b1) % 360.0
    return 360.0 - d if d > 180.0 else d


def centroid(points: Iterable[Tuple[float, float]]) -> Optional[Tuple[float, float]]:
    """Arithmetic mean of (lat, lng) pairs; adequate for city-scale spreads."""
    lat_sum = lng_sum = 0.0
    n = 0
    for lat, lng in points:
        lat_sum += lat
        lng_sum += lng
        n += 1
    if n == 0:
        return None
    return lat_sum / n, lng_sum / n


def _project(lat: float, lng: float, origin_lat: float, origin_lng: float) -> Tuple[float, float]:
    # Equirectangular projection to meters around the origin
    x = radians(lng - origin_lng) * cos(radians(origin_lat)) * R
    y = radians(lat - origin_lat) * R
    return x, y


def distance_to_segment(point: GeoPoint, start: GeoPoint, end: GeoPoint) -> float:
    """Distance in meters from a point to the segment start-end."""
    ax, ay = _project(start.lat, start.lng, point.lat, point.lng)
    bx, by = _project(end.lat, end.lng, point.lat, point.lng)
    dx = bx - ax
    dy = by - ay
    seg_len2 = dx * dx + dy * dy
    if seg_len2 == 0.0:
        return distance(point, start)
    # Parameter of the closest point, clamped to the segment
    t = max(0.0, min(1.0, -(ax * dx + ay * dy) / seg_len2))
    cx = ax + t * dx
    cy = ay + t * dy
    return sqrt(cx * cx + cy * cy)


def distance_to_route(point: GeoPoint, route: Sequence[GeoPoint]) -> Optional[float]:
    """Distance to the nearest segment of an ordered route, or None if the route is empty."""
    if not route:
        return None
    if len(route) == 1:
        return distance(point, route[0])
    return min(distance_to_segment(point, a, b) for a, b in zip(route, route[1:]))
