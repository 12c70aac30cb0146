"""Configuration for Tourist Sentinel sessions and hosts."""

import math
from typing import Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

from .exceptions import ConfigurationError


FACTOR_NAMES = (
    "time_of_day",
    "location",
    "crowd_density",
    "incident_history",
    "route_deviation",
    "weather",
)

DEFAULT_FACTOR_WEIGHTS: Dict[str, float] = {
    "time_of_day": 0.25,
    "location": 0.30,
    "crowd_density": 0.20,
    "incident_history": 0.15,
    "route_deviation": 0.05,
    "weather": 0.05,
}


class SessionConfig(BaseModel):
    """Per-tourist session options. Passed explicitly into every session."""

    # Profiling and anomaly rules
    cluster_radius_meters: float = Field(200.0, gt=0)
    recent_radius_meters: float = Field(500.0, gt=0)
    speed_critical_multiplier: float = Field(3.0, gt=0)
    speed_critical_floor_kmh: float = Field(50.0, ge=0)
    rebuild_profile_every_n_fixes: int = Field(50, ge=1)
    min_profile_fixes: int = Field(10, ge=1)
    history_capacity: int = Field(1000, ge=10)

    # Safety score
    factor_weights: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_FACTOR_WEIGHTS))
    escalation_score_threshold: float = Field(40.0, ge=0, le=100)
    route_scale_meters: float = Field(1000.0, gt=0)
    default_weather_score: float = Field(85.0, ge=0, le=100)
    local_timezone: str = "UTC"

    # Worker and dispatch
    queue_capacity: int = Field(100, ge=1)
    dispatch_timeout_seconds: float = Field(10.0, gt=0)
    dispatch_max_attempts: int = Field(3, ge=1)
    dispatch_backoff_seconds: float = Field(1.0, ge=0)
    inactivity_threshold_seconds: float = Field(1800.0, gt=0)
    tick_interval_seconds: Optional[float] = Field(None, gt=0)
    storage_timeout_seconds: float = Field(5.0, gt=0)

    class Config:
        frozen = True

    @field_validator("factor_weights")
    @classmethod
    def _validate_weights(cls, weights: Dict[str, float]) -> Dict[str, float]:
        missing = set(FACTOR_NAMES) - set(weights)
        unknown = set(weights) - set(FACTOR_NAMES)
        if missing or unknown:
            raise ValueError(
                f"factor_weights must name exactly {', '.join(FACTOR_NAMES)} "
                f"(missing: {sorted(missing)}, unknown: {sorted(unknown)})"
            )
        for name, weight in weights.items():
            if not 0.0 <= weight <= 1.0:
                raise ValueError(f"weight for {name} must be within [0, 1], got {weight}")
        total = sum(weights.values())
        if not math.isclose(total, 1.0, abs_tol=1e-6):
            raise ValueError(f"factor_weights must sum to 1.0, got {total:.6f}")
        return weights

    @field_validator("local_timezone")
    @classmethod
    def _validate_timezone(cls, name: str) -> str:
        try:
            ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone {name!r}") from e
        return name

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.local_timezone)


class Settings(BaseSettings):
    """Host settings loaded from environment variables (prefix ``SENTINEL_``)."""

    # Service configuration
    service_name: str = "tourist-sentinel"
    log_level: str = "INFO"
    json_logs: bool = True

    # Collaborators
    redis_url: Optional[str] = None
    emergency_url: Optional[str] = None
    emergency_api_key: Optional[str] = None

    # Session defaults
    cluster_radius_meters: float = 200.0
    recent_radius_meters: float = 500.0
    speed_critical_multiplier: float = 3.0
    speed_critical_floor_kmh: float = 50.0
    rebuild_profile_every_n_fixes: int = 50
    min_profile_fixes: int = 10
    escalation_score_threshold: float = 40.0
    route_scale_meters: float = 1000.0
    default_weather_score: float = 85.0
    local_timezone: str = "UTC"
    queue_capacity: int = 100
    history_capacity: int = 1000
    dispatch_timeout_seconds: float = 10.0
    dispatch_max_attempts: int = 3
    dispatch_backoff_seconds: float = 1.0
    inactivity_threshold_seconds: float = 1800.0
    tick_interval_seconds: Optional[float] = None
    storage_timeout_seconds: float = 5.0

    class Config:
        env_file = ".env"
        env_prefix = "SENTINEL_"
        extra = "ignore"

    def session_config(self, **overrides) -> SessionConfig:
        """Build the per-session configuration from these settings."""
        values = {
            "cluster_radius_meters": self.cluster_radius_meters,
            "recent_radius_meters": self.recent_radius_meters,
            "speed_critical_multiplier": self.speed_critical_multiplier,
            "speed_critical_floor_kmh": self.speed_critical_floor_kmh,
            "rebuild_profile_every_n_fixes": self.rebuild_profile_every_n_fixes,
            "min_profile_fixes": self.min_profile_fixes,
            "escalation_score_threshold": self.escalation_score_threshold,
            "route_scale_meters": self.route_scale_meters,
            "default_weather_score": self.default_weather_score,
            "local_timezone": self.local_timezone,
            "queue_capacity": self.queue_capacity,
            "history_capacity": self.history_capacity,
            "dispatch_timeout_seconds": self.dispatch_timeout_seconds,
            "dispatch_max_attempts": self.dispatch_max_attempts,
            "dispatch_backoff_seconds": self.dispatch_backoff_seconds,
            "inactivity_threshold_seconds": self.inactivity_threshold_seconds,
            "tick_interval_seconds": self.tick_interval_seconds,
            "storage_timeout_seconds": self.storage_timeout_seconds,
        }
        values.update(overrides)
        return SessionConfig(**values)


_CAMEL_TO_SNAKE = {
    "clusterRadiusMeters": "cluster_radius_meters",
    "recentRadiusMeters": "recent_radius_meters",
    "speedCriticalMultiplier": "speed_critical_multiplier",
    "speedCriticalFloorKmh": "speed_critical_floor_kmh",
    "rebuildProfileEveryNFixes": "rebuild_profile_every_n_fixes",
    "factorWeights": "factor_weights",
    "escalationScoreThreshold": "escalation_score_threshold",
}

_WEIGHT_ALIASES = {
    "timeOfDay": "time_of_day",
    "crowdDensity": "crowd_density",
    "incidentHistory": "incident_history",
    "routeDeviation": "route_deviation",
}


def load_session_config(options: Optional[Dict] = None, base: Optional[SessionConfig] = None) -> SessionConfig:
    """
    Build a SessionConfig from a plain mapping.

    Accepts both the snake_case field names and the camelCase option names
    used by location-tracking clients (``clusterRadiusMeters`` and so on).

    Raises:
        ConfigurationError: if the options do not describe a valid config
    """
    values = base.model_dump() if base is not None else {}
    for key, value in (options or {}).items():
        name = _CAMEL_TO_SNAKE.get(key, key)
        if name == "factor_weights" and isinstance(value, dict):
            value = {_WEIGHT_ALIASES.get(k, k): v for k, v in value.items()}
        values[name] = value
    try:
        return SessionConfig(**values)
    except ValidationError as e:
        raise ConfigurationError(f"invalid session configuration: {e}") from e
