"""
Monitoring engine: host-facing facade over independent tourist sessions.

Sessions are created on demand (first fix) or explicitly, each with the
engine's configuration unless one is passed in. Nothing is shared between
sessions except the read-only zones and the outbound collaborators.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .config import SessionConfig, Settings
from .emergency import EmergencyDispatcher, HttpEmergencyDispatcher, LoggingEmergencyDispatcher
from .events import EventBus, Subscription
from .exceptions import SessionNotFoundError
from .logging_config import get_logger
from .metrics import EngineMetrics
from .schemas import (
    EscalationStatus,
    GeoPoint,
    GeoZone,
    LocationFix,
    SafetyScore,
    SessionStatus,
    StreamMessageType,
    SubmitReason,
    SubmitResult,
)
from .session import TouristSession
from .storage import InMemoryStore, KeyValueStore, RedisStore

logger = get_logger(__name__)


class MonitoringEngine:
    """Routes fixes and operator actions to per-tourist sessions."""

    def __init__(
        self,
        config: Optional[SessionConfig] = None,
        emergency: Optional[EmergencyDispatcher] = None,
        store: Optional[KeyValueStore] = None,
        zones: Sequence[GeoZone] = (),
        bus: Optional[EventBus] = None,
        metrics: Optional[EngineMetrics] = None,
        sleep=asyncio.sleep,
    ):
        self.config = config or SessionConfig()
        self.emergency = emergency or LoggingEmergencyDispatcher()
        self.store = store if store is not None else InMemoryStore()
        self.zones = list(zones)
        self.bus = bus or EventBus()
        self.metrics = metrics or EngineMetrics()
        self._sleep = sleep
        self._sessions: Dict[str, TouristSession] = {}
        self._starting: Dict[str, asyncio.Future] = {}
        self._closed = False

    @classmethod
    def from_settings(cls, settings: Settings, zones: Sequence[GeoZone] = (), **kwargs) -> "MonitoringEngine":
        """Build an engine with collaborators chosen from host settings."""
        if settings.emergency_url:
            emergency = HttpEmergencyDispatcher(
                settings.emergency_url,
                api_key=settings.emergency_api_key,
                timeout=settings.dispatch_timeout_seconds,
            )
        else:
            emergency = LoggingEmergencyDispatcher()
        if settings.redis_url:
            store = RedisStore(settings.redis_url, socket_timeout=settings.storage_timeout_seconds)
        else:
            store = InMemoryStore()
        return cls(settings.session_config(), emergency, store, zones, **kwargs)

    # Sessions

    async def start_session(self, tourist_id: str, config: Optional[SessionConfig] = None) -> TouristSession:
        """Return the tourist's session, creating and starting it if needed."""
        session = self._sessions.get(tourist_id)
        if session is not None:
            return session
        pending = self._starting.get(tourist_id)
        if pending is not None:
            return await asyncio.shield(pending)

        future = asyncio.get_running_loop().create_future()
        self._starting[tourist_id] = future
        session = TouristSession(
            tourist_id,
            config or self.config,
            self.emergency,
            store=self.store,
            zones=self.zones,
            bus=self.bus,
            metrics=self.metrics,
            sleep=self._sleep,
        )
        try:
            await session.start()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Retrieved here so only concurrent waiters see it again
            future.exception()
            raise
        finally:
            self._starting.pop(tourist_id, None)

        self._sessions[tourist_id] = session
        self.metrics.active_sessions.inc()
        future.set_result(session)
        return session

    def session(self, tourist_id: str) -> TouristSession:
        try:
            return self._sessions[tourist_id]
        except KeyError:
            raise SessionNotFoundError(f"no monitoring session for tourist {tourist_id}") from None

    @property
    def tourist_ids(self) -> List[str]:
        return list(self._sessions.keys())

    async def submit_fix(
        self,
        tourist_id: str,
        fix: Union[LocationFix, Mapping[str, Any]],
        wait: bool = True,
    ) -> SubmitResult:
        """Submit a fix for a tourist; the first fix starts the session."""
        if self._closed:
            self.metrics.fix(SubmitReason.SESSION_CLOSED.value)
            return SubmitResult(accepted=False, reason=SubmitReason.SESSION_CLOSED)
        session = await self.start_session(tourist_id)
        return await session.submit_fix(fix, wait=wait)

    async def stop_session(self, tourist_id: str) -> None:
        session = self.session(tourist_id)
        await session.stop()
        if self._sessions.pop(tourist_id, None) is not None:
            self.metrics.active_sessions.dec()

    async def shutdown(self) -> None:
        """Stop every session, then release collaborators."""
        self._closed = True
        await asyncio.gather(*(self.stop_session(tid) for tid in self.tourist_ids))
        await self.emergency.close()
        await self.store.close()
        self.bus.close()
        logger.info("engine_shutdown")

    # Stream

    def subscribe(
        self,
        tourist_id: Optional[str] = None,
        types: Optional[Iterable[StreamMessageType]] = None,
        maxsize: Optional[int] = None,
    ) -> Subscription:
        return self.bus.subscribe(tourist_id=tourist_id, types=types, maxsize=maxsize)

    # Host inputs

    def set_planned_route(self, tourist_id: str, waypoints: Sequence[Union[GeoPoint, Mapping[str, float]]]) -> None:
        self.session(tourist_id).set_planned_route(waypoints)

    def set_weather_score(self, tourist_id: str, value: Optional[float]) -> None:
        self.session(tourist_id).set_weather_score(value)

    def tick(self, now: Optional[datetime] = None, tourist_id: Optional[str] = None) -> Dict[str, SafetyScore]:
        """Timer tick for one or all sessions; returns the recomputed scores."""
        ids = [tourist_id] if tourist_id is not None else self.tourist_ids
        scores = {}
        for tid in ids:
            score = self.session(tid).tick(now)
            if score is not None:
                scores[tid] = score
        return scores

    # Operator actions

    def resolve_escalation(self, tourist_id: str, resolved_by: str, notes: Optional[str] = None) -> EscalationStatus:
        return self.session(tourist_id).resolve_escalation(resolved_by, notes)

    def retry_escalation(self, tourist_id: str) -> EscalationStatus:
        return self.session(tourist_id).retry_escalation()

    def status(self, tourist_id: str) -> SessionStatus:
        return self.session(tourist_id).status()
