"""
Escalation coordinator: the per-tourist emergency state machine.

    IDLE -> ESCALATING       critical anomaly, or safety score below threshold
    ESCALATING -> ESCALATED  emergency collaborator acknowledged the alert
    ESCALATED -> RESOLVED -> IDLE   explicit resolution only

Signals that arrive while an escalation is open are counted, never
re-dispatched. Dispatch runs as a background task with a per-attempt timeout
and exponential backoff; when every attempt fails the escalation stays
ESCALATING with ``degraded=True`` until an operator retries or resolves it.
"""

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from .config import SessionConfig
from .emergency import EmergencyDispatcher
from .exceptions import DispatchError, EscalationStateError
from .logging_config import get_logger
from .metrics import EngineMetrics
from .schemas import (
    AnomalyEvent,
    EscalationState,
    EscalationStatus,
    EscalationTransition,
    EscalationTrigger,
    GeoPoint,
    SafetyScore,
    SeverityLevel,
)

StatusListener = Callable[[EscalationStatus], None]

# Newest transitions kept on the status
HISTORY_LIMIT = 20


def _now() -> datetime:
    return datetime.now(timezone.utc)


def backoff_delay(base: float, attempt: int) -> float:
    """Delay before retrying after the given (1-based) failed attempt."""
    return base * (2 ** (attempt - 1))


class EscalationCoordinator:
    """Owns one tourist's EscalationStatus and its in-flight dispatch."""

    def __init__(
        self,
        tourist_id: str,
        dispatcher: EmergencyDispatcher,
        config: SessionConfig,
        on_change: Optional[StatusListener] = None,
        metrics: Optional[EngineMetrics] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.tourist_id = tourist_id
        self.dispatcher = dispatcher
        self.config = config
        self.on_change = on_change
        self.metrics = metrics
        self._sleep = sleep
        self._status = EscalationStatus(tourist_id=tourist_id)
        self._task: Optional[asyncio.Task] = None
        self.logger = get_logger(__name__, tourist_id=tourist_id)

    @property
    def state(self) -> EscalationState:
        return self._status.state

    @property
    def dispatching(self) -> bool:
        return self._task is not None and not self._task.done()

    def snapshot(self) -> EscalationStatus:
        return self._status.model_copy(deep=True)

    # Signals

    def on_anomaly(self, event: AnomalyEvent) -> bool:
        """Feed an anomaly; returns True when it opened an escalation."""
        if event.severity != SeverityLevel.CRITICAL:
            return False
        return self._signal(EscalationTrigger(
            kind="anomaly",
            alert_type="anomaly",
            severity=event.severity,
            description=event.description,
            location=event.location,
            timestamp=event.timestamp,
        ))

    def on_score(self, score: SafetyScore, location: Optional[GeoPoint] = None) -> bool:
        """Feed a safety score; returns True when it opened an escalation."""
        if score.value >= self.config.escalation_score_threshold:
            return False
        return self._signal(EscalationTrigger(
            kind="safety_score",
            alert_type="low_safety_score",
            severity=SeverityLevel.HIGH,
            description=f"Safety score {score.value:.1f} below {self.config.escalation_score_threshold:.0f}",
            location=location,
            timestamp=score.timestamp,
        ))

    def _signal(self, trigger: EscalationTrigger) -> bool:
        if self._status.state != EscalationState.IDLE:
            self._status.suppressed_signals += 1
            self._status.updated_at = _now()
            self.logger.info(
                "escalation_signal_suppressed",
                state=self._status.state.value,
                kind=trigger.kind,
                suppressed=self._status.suppressed_signals,
            )
            return False

        self._status.trigger = trigger
        self._status.alert_id = None
        self._status.attempts = 0
        self._status.suppressed_signals = 0
        self._status.degraded = False
        self._status.resolved_by = None
        self._status.opened_at = _now()
        self._transition(EscalationState.ESCALATING, trigger.description)
        self.logger.warning(
            "escalation_opened",
            kind=trigger.kind,
            severity=trigger.severity.value,
            description=trigger.description,
        )
        if self.metrics:
            self.metrics.escalation("opened")
        self._start_dispatch()
        return True

    # Dispatch

    def _start_dispatch(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._dispatch())

    async def _dispatch(self) -> None:
        trigger = self._status.trigger
        max_attempts = self.config.dispatch_max_attempts

        for attempt in range(1, max_attempts + 1):
            self._status.attempts += 1
            try:
                result = await asyncio.wait_for(
                    self.dispatcher.trigger_alert(
                        self.tourist_id,
                        trigger.alert_type,
                        trigger.severity,
                        trigger.location,
                        trigger.description,
                    ),
                    timeout=self.config.dispatch_timeout_seconds,
                )
            except asyncio.TimeoutError:
                self.logger.warning("escalation_dispatch_timeout", attempt=attempt)
            except DispatchError as e:
                self.logger.warning("escalation_dispatch_failed", attempt=attempt, error=str(e))
            except Exception as e:
                self.logger.error("escalation_dispatch_error", attempt=attempt, error=str(e), exc_info=True)
            else:
                if result.success:
                    self._status.alert_id = result.alert_id
                    self._transition(EscalationState.ESCALATED, f"acknowledged as {result.alert_id}")
                    self.logger.warning("escalation_dispatched", alert_id=result.alert_id, attempts=attempt)
                    if self.metrics:
                        self.metrics.escalation("dispatched")
                    return
                self.logger.warning("escalation_dispatch_rejected", attempt=attempt)

            if attempt < max_attempts:
                await self._sleep(backoff_delay(self.config.dispatch_backoff_seconds, attempt))

        self._status.degraded = True
        self._status.updated_at = _now()
        self.logger.error(
            "escalation_degraded",
            attempts=self._status.attempts,
            description=trigger.description,
        )
        if self.metrics:
            self.metrics.escalation("degraded")
        self._notify()

    async def wait_dispatch(self) -> None:
        """Wait for the in-flight dispatch, if any, to finish."""
        if self._task is not None:
            await asyncio.shield(self._task)

    # Operator actions

    def retry(self) -> EscalationStatus:
        """Re-dispatch a degraded escalation."""
        if self._status.state != EscalationState.ESCALATING or not self._status.degraded or self.dispatching:
            raise EscalationStateError(
                f"retry needs a degraded escalation, tourist {self.tourist_id} is {self._describe()}"
            )
        self._status.degraded = False
        self._status.attempts = 0
        self._status.updated_at = _now()
        self.logger.info("escalation_retry")
        self._notify()
        self._start_dispatch()
        return self.snapshot()

    def resolve(self, resolved_by: str, notes: Optional[str] = None) -> EscalationStatus:
        """Close the escalation: ESCALATED (or degraded ESCALATING) -> RESOLVED -> IDLE."""
        state = self._status.state
        manual = state == EscalationState.ESCALATING and self._status.degraded and not self.dispatching
        if state != EscalationState.ESCALATED and not manual:
            raise EscalationStateError(f"cannot resolve, tourist {self.tourist_id} is {self._describe()}")

        reason = f"resolved by {resolved_by}" + (f": {notes}" if notes else "")
        self._status.resolved_by = resolved_by
        self._transition(EscalationState.RESOLVED, reason, notify=False)
        self._status.degraded = False
        self._transition(EscalationState.IDLE, "ready", notify=False)
        self.logger.info("escalation_resolved", resolved_by=resolved_by, manual=manual)
        if self.metrics:
            self.metrics.escalation("resolved")
        self._notify()
        return self.snapshot()

    # Internals

    def _describe(self) -> str:
        state = self._status.state.value
        return f"{state} (degraded)" if self._status.degraded else state

    def _transition(self, to_state: EscalationState, reason: str, notify: bool = True) -> None:
        now = _now()
        self._status.history.append(EscalationTransition(
            from_state=self._status.state,
            to_state=to_state,
            at=now,
            reason=reason,
        ))
        del self._status.history[:-HISTORY_LIMIT]
        self._status.state = to_state
        self._status.updated_at = now
        if notify:
            self._notify()

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self.snapshot())
