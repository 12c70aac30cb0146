"""Rule-based anomaly detection framework."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from ..config import SessionConfig
from ..schemas import AnomalyEvent, AnomalyType, BehaviorProfile, GeoPoint, LocationFix, SeverityLevel


class DetectionContext:
    """Everything a detector may look at for one fix.

    ``history`` is the tourist's accepted history, oldest first, and already
    ends with ``fix``.
    """

    def __init__(
        self,
        fix: LocationFix,
        profile: BehaviorProfile,
        history: Sequence[LocationFix],
        config: SessionConfig,
    ):
        self.fix = fix
        self.profile = profile
        self.history = history
        self.config = config

    def recent(self, n: int, include_current: bool = True) -> List[LocationFix]:
        fixes = list(self.history)
        if not include_current:
            fixes = fixes[:-1]
        return fixes[-n:] if n > 0 else []


def event_id(detector: str, timestamp: datetime) -> str:
    """Deterministic id derived from the rule name and fix time."""
    return f"{detector}_{int(timestamp.timestamp() * 1000)}"


class BaseAnomalyDetector(ABC):
    """Abstract base class for a single anomaly rule.

    Detectors are pure: the same context always yields the same result.
    """

    name: str = "base"

    def __init__(self, config: SessionConfig):
        self.config = config

    @abstractmethod
    def detect(self, context: DetectionContext) -> Optional[AnomalyEvent]:
        """Return an AnomalyEvent or None."""
        pass

    def _event(
        self,
        type: AnomalyType,
        severity: SeverityLevel,
        description: str,
        confidence: float,
        timestamp: datetime,
        location: Optional[GeoPoint] = None,
    ) -> AnomalyEvent:
        return AnomalyEvent(
            id=event_id(self.name, timestamp),
            type=type,
            severity=severity,
            description=description,
            confidence=confidence,
            timestamp=timestamp,
            location=location,
            detector=self.name,
        )


class AnomalyDetector:
    """Registry of detectors run independently against every fix."""

    def __init__(self, detectors: Optional[Sequence[BaseAnomalyDetector]] = None):
        self._detectors: Dict[str, BaseAnomalyDetector] = {}
        for detector in detectors or ():
            self.register_detector(detector)

    def register_detector(self, detector: BaseAnomalyDetector) -> None:
        """Register a detector; a detector with the same name is replaced."""
        self._detectors[detector.name] = detector

    def list_detectors(self) -> List[str]:
        return list(self._detectors.keys())

    def detect(
        self,
        fix: LocationFix,
        profile: Optional[BehaviorProfile],
        history: Sequence[LocationFix],
        config: SessionConfig,
    ) -> List[AnomalyEvent]:
        """Run every detector; nothing fires without a profile."""
        if profile is None:
            return []
        context = DetectionContext(fix, profile, history, config)
        events = []
        for detector in self._detectors.values():
            event = detector.detect(context)
            if event is not None:
                events.append(event)
        return events
