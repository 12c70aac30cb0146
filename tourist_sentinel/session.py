"""
Per-tourist monitoring session.

A session owns one tourist's history, profile, score and escalation. Fixes
from any number of producers go through a bounded FIFO and are processed one
at a time by the session's single worker task, so no state is shared and no
locking is needed. When the buffer is full the oldest waiting fix is dropped.
Snapshots are written from a background task, so a slow store never holds
up the worker.
"""

import asyncio
from collections import deque
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Deque, List, Mapping, Optional, Sequence, Set, Tuple, Union

from pydantic import ValidationError

from .anomaly import AnomalyDetector, BaseAnomalyDetector, default_detectors, inactivity_event
from .config import SessionConfig
from .emergency import EmergencyDispatcher
from .escalation import EscalationCoordinator
from .events import EventBus
from .exceptions import ConfigurationError, SessionClosedError, StorageError
from .ingest import FixHistory, TelemetryIngest, parse_fix
from .logging_config import get_logger
from .metrics import EngineMetrics
from .profiling import ProfileBuilder
from .schemas import (
    AnomalyEvent,
    BehaviorProfile,
    EscalationStatus,
    GeoPoint,
    GeoZone,
    LocationFix,
    SafetyScore,
    SessionSnapshot,
    SessionStatus,
    StreamMessage,
    StreamMessageType,
    SubmitReason,
    SubmitResult,
    ZoneTransition,
)
from .scoring import SafetyScoreCalculator
from .storage import KeyValueStore

RawFix = Union[LocationFix, Mapping[str, Any]]


def _utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class TouristSession:
    """Monitoring session for a single tourist."""

    def __init__(
        self,
        tourist_id: str,
        config: SessionConfig,
        dispatcher: EmergencyDispatcher,
        store: Optional[KeyValueStore] = None,
        zones: Sequence[GeoZone] = (),
        bus: Optional[EventBus] = None,
        metrics: Optional[EngineMetrics] = None,
        detectors: Optional[Sequence[BaseAnomalyDetector]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.tourist_id = tourist_id
        self.config = config
        self.store = store
        self.bus = bus
        self.metrics = metrics
        self.logger = get_logger(__name__, tourist_id=tourist_id)

        self.history = FixHistory(config.history_capacity)
        self.ingest = TelemetryIngest(self.history)
        self.builder = ProfileBuilder(config)
        self.detector = AnomalyDetector(detectors if detectors is not None else default_detectors(config))
        self.calculator = SafetyScoreCalculator(config, zones)
        self.escalation = EscalationCoordinator(
            tourist_id,
            dispatcher,
            config,
            on_change=self._publish_escalation,
            metrics=metrics,
            sleep=sleep,
        )

        self.profile: Optional[BehaviorProfile] = None
        self.last_score: Optional[SafetyScore] = None
        self.planned_route: List[GeoPoint] = []
        self.weather_score: Optional[float] = None
        self.storage_degraded = False

        self._zone_ids: Set[str] = set()
        self._inactivity_alerted = False
        self._queue: Deque[Tuple[LocationFix, asyncio.Future]] = deque()
        self._wakeup = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self._worker: Optional[asyncio.Task] = None
        self._save_task: Optional[asyncio.Task] = None
        self._save_again = False
        self._restore_pending = False
        self._closing = False
        self.monitoring = False

    # Lifecycle

    async def start(self) -> None:
        """Restore persisted state and start the worker."""
        if self._closing:
            raise SessionClosedError(f"session for {self.tourist_id} has been stopped")
        if self._worker is not None:
            return
        await self._restore()
        self.monitoring = True
        self._worker = asyncio.get_running_loop().create_task(self._run())
        self.logger.info(
            "session_started",
            data_points=len(self.history),
            profile_generated=self.profile is not None,
            storage_degraded=self.storage_degraded,
        )

    async def stop(self) -> None:
        """Stop taking fixes, finish buffered work and in-flight dispatch, then persist."""
        if self._closing:
            if self._worker is not None:
                await asyncio.shield(self._worker)
            return
        self._closing = True
        self._wakeup.set()
        if self._worker is not None:
            await self._worker
        await self.escalation.wait_dispatch()
        self._schedule_save()
        if self._save_task is not None:
            await self._save_task
        self.monitoring = False
        self.logger.info("session_stopped", data_points=len(self.history))

    @property
    def closed(self) -> bool:
        return self._closing

    # Telemetry

    async def submit_fix(self, raw: RawFix, wait: bool = True) -> SubmitResult:
        """Queue a fix. With ``wait`` the result of processing it is returned."""
        if self._closing:
            self._count("session_closed")
            return self._result(False, SubmitReason.SESSION_CLOSED)
        try:
            fix = parse_fix(raw)
        except ValidationError as e:
            self.logger.warning("fix_rejected", reason=SubmitReason.INVALID_FIX.value, errors=e.error_count())
            self._count(SubmitReason.INVALID_FIX.value)
            return self._result(False, SubmitReason.INVALID_FIX)

        future = asyncio.get_running_loop().create_future()
        if len(self._queue) >= self.config.queue_capacity:
            dropped, dropped_future = self._queue.popleft()
            self.logger.warning(
                "fix_dropped_overflow",
                timestamp=dropped.timestamp.isoformat(),
                queue_capacity=self.config.queue_capacity,
            )
            self._count(SubmitReason.DROPPED_OVERFLOW.value)
            if self.metrics:
                self.metrics.queue_drops_total.inc()
            if not dropped_future.done():
                dropped_future.set_result(self._result(False, SubmitReason.DROPPED_OVERFLOW))

        self._queue.append((fix, future))
        self._idle.clear()
        self._wakeup.set()

        if not wait:
            return self._result(True, SubmitReason.QUEUED)
        return await future

    async def join(self) -> None:
        """Wait until every buffered fix has been processed."""
        await self._idle.wait()

    @property
    def queue_depth(self) -> int:
        return len(self._queue)

    async def _run(self) -> None:
        interval = self.config.tick_interval_seconds
        while True:
            if not self._queue:
                self._idle.set()
                if self._closing:
                    return
                self._wakeup.clear()
                if interval:
                    try:
                        await asyncio.wait_for(self._wakeup.wait(), interval)
                    except asyncio.TimeoutError:
                        self.tick()
                else:
                    await self._wakeup.wait()
                continue

            fix, future = self._queue.popleft()
            try:
                result = await self._process(fix)
            except Exception as e:
                self.logger.error("fix_processing_failed", error=str(e), exc_info=True)
                if not future.done():
                    future.set_exception(e)
                continue
            if not future.done():
                future.set_result(result)

    async def _process(self, fix: LocationFix) -> SubmitResult:
        outcome = self.ingest.accept(fix)
        if not outcome.accepted:
            self.logger.warning(
                "fix_rejected",
                reason=outcome.reason.value,
                timestamp=fix.timestamp.isoformat(),
                detail=outcome.detail,
            )
            self._count(outcome.reason.value)
            return self._result(False, outcome.reason)

        fix = outcome.fix
        self._count("accepted")
        self._inactivity_alerted = False

        # Detectors see the profile as it was before this fix
        for event in self.detector.detect(fix, self.profile, self.history, self.config):
            self._handle_anomaly(event)

        self._apply_score(
            self.calculator.calculate(self.tourist_id, fix.point, fix.timestamp, self.planned_route, self.weather_score),
            fix.point,
        )

        if self.ingest.accepted_count % self.config.rebuild_profile_every_n_fixes == 0:
            self.rebuild_profile()

        return self._result(True)

    def rebuild_profile(self) -> Optional[BehaviorProfile]:
        """Rebuild the profile from history; a short history leaves it unchanged."""
        profile = self.builder.build(self.history.to_list())
        if profile is None:
            self.logger.debug("profile_rebuild_skipped", data_points=len(self.history))
            return self.profile
        self.profile = profile
        self.logger.info(
            "profile_rebuilt",
            fix_count=profile.fix_count,
            average_speed_kmh=round(profile.average_speed, 2),
            common_locations=len(profile.common_locations),
            typical_hours=sorted(profile.typical_hours),
            movement_patterns=sorted(p.value for p in profile.movement_patterns),
        )
        self._schedule_save()
        return profile

    # Timer

    def tick(self, now: Optional[datetime] = None) -> Optional[SafetyScore]:
        """Recompute the score at ``now`` from the last position and check inactivity."""
        last = self.history.last()
        if last is None or self._closing:
            return None
        now = _utc(now) if now is not None else datetime.now(timezone.utc)

        idle_seconds = (now - last.timestamp).total_seconds()
        if idle_seconds >= self.config.inactivity_threshold_seconds and not self._inactivity_alerted:
            self._inactivity_alerted = True
            self._handle_anomaly(inactivity_event(last.timestamp, now, last.point))

        score = self.calculator.calculate(self.tourist_id, last.point, now, self.planned_route, self.weather_score)
        self._apply_score(score, last.point)
        return score

    # Host inputs

    def set_planned_route(self, waypoints: Sequence[Union[GeoPoint, Mapping[str, float]]]) -> None:
        self.planned_route = [p if isinstance(p, GeoPoint) else GeoPoint(**p) for p in waypoints]
        self.logger.info("planned_route_set", waypoints=len(self.planned_route))

    def set_weather_score(self, value: Optional[float]) -> None:
        if value is not None and not 0.0 <= value <= 100.0:
            raise ConfigurationError(f"weather score must be within [0, 100], got {value}")
        self.weather_score = value

    # Escalation

    def resolve_escalation(self, resolved_by: str, notes: Optional[str] = None) -> EscalationStatus:
        return self.escalation.resolve(resolved_by, notes)

    def retry_escalation(self) -> EscalationStatus:
        return self.escalation.retry()

    def status(self) -> SessionStatus:
        return SessionStatus(
            tourist_id=self.tourist_id,
            monitoring=self.monitoring and not self._closing,
            data_points=len(self.history),
            profile_generated=self.profile is not None,
            queue_depth=len(self._queue),
            storage_degraded=self.storage_degraded,
            last_score=self.last_score,
            escalation=self.escalation.snapshot(),
        )

    # Internals

    def _handle_anomaly(self, event: AnomalyEvent) -> None:
        self.logger.warning(
            "anomaly_detected",
            anomaly_type=event.type.value,
            severity=event.severity.value,
            confidence=event.confidence,
            description=event.description,
        )
        if self.metrics:
            self.metrics.anomaly(event.type.value, event.severity.value)
        self._publish(StreamMessageType.ANOMALY, event)
        self.escalation.on_anomaly(event)

    def _apply_score(self, score: SafetyScore, point: GeoPoint) -> None:
        self.last_score = score
        self._publish(StreamMessageType.SAFETY_SCORE, score)

        current = set(score.zone_ids)
        if current != self._zone_ids:
            zones = {z.id: z for z in self.calculator.zones}
            for zone_id in sorted(current - self._zone_ids):
                self._publish_zone(zones[zone_id], True, score.timestamp)
            for zone_id in sorted(self._zone_ids - current):
                self._publish_zone(zones[zone_id], False, score.timestamp)
            self._zone_ids = current

        self.escalation.on_score(score, point)

    def _publish_zone(self, zone: GeoZone, entered: bool, at: datetime) -> None:
        self.logger.info("zone_entered" if entered else "zone_exited", zone_id=zone.id, risk_level=zone.risk_level.value)
        self._publish(StreamMessageType.ZONE_TRANSITION, ZoneTransition(
            tourist_id=self.tourist_id,
            zone_id=zone.id,
            zone_name=zone.name,
            risk_level=zone.risk_level,
            entered=entered,
            timestamp=at,
        ))

    def _publish_escalation(self, status: EscalationStatus) -> None:
        self._publish(StreamMessageType.ESCALATION, status)

    def _publish(self, type: StreamMessageType, data) -> None:
        if self.bus is not None:
            self.bus.publish(StreamMessage(type=type, tourist_id=self.tourist_id, data=data))

    def _count(self, outcome: str) -> None:
        if self.metrics:
            self.metrics.fix(outcome)

    def _result(self, accepted: bool, reason: Optional[SubmitReason] = None) -> SubmitResult:
        return SubmitResult(accepted=accepted, reason=reason, storage_degraded=self.storage_degraded)

    async def _restore(self) -> None:
        if self.store is None:
            return
        try:
            snapshot = await self._store_call(self.store.get(self.tourist_id))
        except StorageError as e:
            # Nothing may be written back until the persisted state has been read
            self._restore_pending = True
            self._mark_degraded(e)
            return
        self._restore_pending = False
        if snapshot is not None:
            self._merge_snapshot(snapshot)

    def _merge_snapshot(self, snapshot: SessionSnapshot) -> None:
        restored = self.history.prepend_older(snapshot.history)
        if self.profile is None:
            self.profile = snapshot.profile
        self.logger.info("session_restored", restored=restored, data_points=len(self.history))
        if self.profile is None and len(self.history) >= self.config.min_profile_fixes:
            self.rebuild_profile()

    def _schedule_save(self) -> None:
        if self.store is None:
            return
        if self._save_task is not None and not self._save_task.done():
            self._save_again = True
            return
        self._save_task = asyncio.get_running_loop().create_task(self._save_loop())

    async def _save_loop(self) -> None:
        while True:
            self._save_again = False
            await self._save()
            if not self._save_again:
                return

    async def _save(self) -> None:
        if self.store is None:
            return
        if self._restore_pending:
            await self._restore()
            if self._restore_pending:
                self.logger.warning("save_skipped_unrestored", data_points=len(self.history))
                return
        snapshot = SessionSnapshot(tourist_id=self.tourist_id, history=self.history.to_list(), profile=self.profile)
        try:
            await self._store_call(self.store.put(snapshot))
        except StorageError as e:
            self._mark_degraded(e)
            return
        if self.storage_degraded:
            self.storage_degraded = False
            self.logger.info("storage_recovered")

    async def _store_call(self, call: Awaitable):
        try:
            return await asyncio.wait_for(call, self.config.storage_timeout_seconds)
        except asyncio.TimeoutError as e:
            raise StorageError(f"storage call timed out after {self.config.storage_timeout_seconds}s") from e

    def _mark_degraded(self, error: StorageError) -> None:
        if not self.storage_degraded:
            self.logger.error("storage_unavailable", error=str(error))
        self.storage_degraded = True
