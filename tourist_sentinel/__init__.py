"""
Tourist Sentinel

Streaming movement-anomaly detection and safety scoring for tourist
location telemetry, with at-most-once emergency escalation per tourist.
"""

__version__ = "0.3.0"

from .config import DEFAULT_FACTOR_WEIGHTS, FACTOR_NAMES, SessionConfig, Settings, load_session_config
from .emergency import EmergencyDispatcher, HttpEmergencyDispatcher, LoggingEmergencyDispatcher
from .engine import MonitoringEngine
from .events import EventBus, Subscription
from .exceptions import (
    ConfigurationError,
    DispatchError,
    EscalationStateError,
    SentinelError,
    SessionClosedError,
    SessionNotFoundError,
    StorageError,
)
from .logging_config import configure_logging, get_logger
from .metrics import EngineMetrics
from .session import TouristSession
from .storage import InMemoryStore, KeyValueStore, RedisStore

__all__ = [
    "__version__",
    "DEFAULT_FACTOR_WEIGHTS",
    "FACTOR_NAMES",
    "SessionConfig",
    "Settings",
    "load_session_config",
    "EmergencyDispatcher",
    "HttpEmergencyDispatcher",
    "LoggingEmergencyDispatcher",
    "MonitoringEngine",
    "EventBus",
    "Subscription",
    "ConfigurationError",
    "DispatchError",
    "EscalationStateError",
    "SentinelError",
    "SessionClosedError",
    "SessionNotFoundError",
    "StorageError",
    "configure_logging",
    "get_logger",
    "EngineMetrics",
    "TouristSession",
    "InMemoryStore",
    "KeyValueStore",
    "RedisStore",
]
