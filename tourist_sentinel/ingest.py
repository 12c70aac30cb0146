"""Telemetry ingest: validation, ordering, derived speed and bounded history."""

from collections import deque
from datetime import datetime
from typing import Any, Deque, Iterable, Iterator, List, Mapping, Optional, Union

from pydantic import BaseModel, ValidationError

from .geo import haversine_meters
from .schemas import LocationFix, SubmitReason


class FixHistory:
    """Ring buffer of accepted fixes for one tourist; oldest evicted first."""

    def __init__(self, capacity: int = 1000, fixes: Optional[Iterable[LocationFix]] = None):
        self.capacity = capacity
        self._fixes: Deque[LocationFix] = deque(fixes or (), maxlen=capacity)

    def append(self, fix: LocationFix) -> None:
        self._fixes.append(fix)

    def last(self) -> Optional[LocationFix]:
        return self._fixes[-1] if self._fixes else None

    def recent(self, n: int) -> List[LocationFix]:
        """The newest ``n`` fixes, oldest first."""
        if n <= 0:
            return []
        start = max(0, len(self._fixes) - n)
        return [self._fixes[i] for i in range(start, len(self._fixes))]

    def to_list(self) -> List[LocationFix]:
        return list(self._fixes)

    def prepend_older(self, fixes: Iterable[LocationFix]) -> int:
        """Put fixes older than the current oldest in front; capacity still evicts oldest first."""
        first = self._fixes[0].timestamp if self._fixes else None
        older = [f for f in fixes if first is None or f.timestamp < first]
        if older:
            self._fixes = deque(older + list(self._fixes), maxlen=self.capacity)
        return len(older)

    def __len__(self) -> int:
        return len(self._fixes)

    def __iter__(self) -> Iterator[LocationFix]:
        return iter(self._fixes)

    def __reversed__(self) -> Iterator[LocationFix]:
        return reversed(self._fixes)


class IngestOutcome(BaseModel):
    """Result of offering one fix to ingest."""
    accepted: bool
    reason: Optional[SubmitReason] = None
    fix: Optional[LocationFix] = None
    detail: Optional[str] = None


def parse_fix(raw: Union[LocationFix, Mapping[str, Any]]) -> LocationFix:
    """Validate a raw mapping into a LocationFix. Raises ValidationError."""
    if isinstance(raw, LocationFix):
        return raw
    return LocationFix.model_validate(raw)


class TelemetryIngest:
    """Accepts fixes in timestamp order and appends them to the history.

    A fix without a device-reported speed gets one derived from the previous
    accepted fix (haversine distance over elapsed seconds, 0 when no time
    elapsed). The very first fix without a speed keeps ``speed=None``.
    """

    def __init__(self, history: FixHistory):
        self.history = history
        self.accepted_count = 0

    def accept(self, raw: Union[LocationFix, Mapping[str, Any]]) -> IngestOutcome:
        try:
            fix = parse_fix(raw)
        except ValidationError as e:
            return IngestOutcome(
                accepted=False,
                reason=SubmitReason.INVALID_FIX,
                detail=f"{e.error_count()} validation error(s)",
            )

        prev = self.history.last()
        if prev is not None:
            if fix.timestamp < prev.timestamp:
                return IngestOutcome(
                    accepted=False,
                    reason=SubmitReason.OUT_OF_ORDER,
                    fix=fix,
                    detail=f"timestamp {fix.timestamp.isoformat()} before {prev.timestamp.isoformat()}",
                )
            if self._is_duplicate(fix):
                return IngestOutcome(accepted=False, reason=SubmitReason.DUPLICATE, fix=fix)
            if fix.speed is None:
                fix = fix.model_copy(update={"speed": derive_speed(prev, fix)})

        self.history.append(fix)
        self.accepted_count += 1
        return IngestOutcome(accepted=True, fix=fix)

    def _is_duplicate(self, fix: LocationFix) -> bool:
        # Only trailing fixes can share the timestamp of an in-order fix
        for existing in reversed(self.history):
            if existing.timestamp != fix.timestamp:
                return False
            if existing.same_reading(fix):
                return True
        return False

    @property
    def last_timestamp(self) -> Optional[datetime]:
        last = self.history.last()
        return last.timestamp if last else None


def derive_speed(prev: LocationFix, cur: LocationFix) -> float:
    """Speed in m/s between two fixes; 0 when elapsed time is not positive."""
    elapsed = (cur.timestamp - prev.timestamp).total_seconds()
    if elapsed <= 0:
        return 0.0
    return haversine_meters(prev.lat, prev.lng, cur.lat, cur.lng) / elapsed
