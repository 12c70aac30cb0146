"""Anomaly detection rules."""

from .base import AnomalyDetector, BaseAnomalyDetector, DetectionContext, event_id
from .detectors import (
    LocationNoveltyDetector,
    MovementPatternDetector,
    SpeedAnomalyDetector,
    TimeAnomalyDetector,
    default_detectors,
    inactivity_event,
)

__all__ = [
    "AnomalyDetector",
    "BaseAnomalyDetector",
    "DetectionContext",
    "event_id",
    "LocationNoveltyDetector",
    "MovementPatternDetector",
    "SpeedAnomalyDetector",
    "TimeAnomalyDetector",
    "default_detectors",
    "inactivity_event",
]
