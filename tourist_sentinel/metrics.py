"""
Prometheus metrics for the monitoring engine.

Each engine owns its own CollectorRegistry so several engines (and tests)
can live in one process.
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest


class EngineMetrics:
    """Counters and gauges for fixes, anomalies, escalations and sessions."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        # Telemetry metrics
        self.fixes_total = Counter(
            'sentinel_fixes_total',
            'Location fixes submitted, by outcome',
            ['outcome'],
            registry=self.registry,
        )
        self.queue_drops_total = Counter(
            'sentinel_queue_drops_total',
            'Buffered fixes dropped on per-tourist queue overflow',
            registry=self.registry,
        )

        # Detection metrics
        self.anomalies_total = Counter(
            'sentinel_anomalies_total',
            'Anomaly events detected',
            ['type', 'severity'],
            registry=self.registry,
        )
        self.escalations_total = Counter(
            'sentinel_escalations_total',
            'Escalation outcomes',
            ['outcome'],
            registry=self.registry,
        )

        # Session metrics
        self.active_sessions = Gauge(
            'sentinel_active_sessions',
            'Tourist sessions currently monitored',
            registry=self.registry,
        )

    def fix(self, outcome: str) -> None:
        self.fixes_total.labels(outcome=outcome).inc()

    def anomaly(self, type: str, severity: str) -> None:
        self.anomalies_total.labels(type=type, severity=severity).inc()

    def escalation(self, outcome: str) -> None:
        self.escalations_total.labels(outcome=outcome).inc()

    def value(self, name: str, **labels) -> float:
        """Current sample value, 0 when the series does not exist yet."""
        sample = self.registry.get_sample_value(name, labels or None)
        return sample or 0.0

    def render(self) -> bytes:
        """Prometheus exposition text."""
        return generate_latest(self.registry)
