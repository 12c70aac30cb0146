"""
Tourist Sentinel Structured Logging Configuration

Provides consistent structured logging for the engine and its hosts with:
- JSON formatting for log aggregation
- Console rendering for local runs
- Service context
- Per-session context binding (tourist_id)
"""

import logging
import sys
from typing import Any, Optional

import structlog


def configure_logging(service_name: str, log_level: str = "INFO", json_logs: bool = True) -> None:
    """
    Configure structured logging for a host process.

    Args:
        service_name: Name of the service (e.g., "tourist-sentinel", "replay")
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Render JSON lines; human-readable console output otherwise
    """
    # Configure stdlib logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper()),
    )

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_service_context(service_name),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def add_service_context(service_name: str):
    """Add service context to all log messages."""
    def processor(logger, method_name, event_dict):
        event_dict["service"] = service_name
        return event_dict
    return processor


def get_logger(name: Optional[str] = None, **initial_values: Any) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)
        initial_values: Key/value context bound onto the logger

    Returns:
        Configured structlog logger
    """
    logger = structlog.get_logger(name)
    if initial_values:
        logger = logger.bind(**initial_values)
    return logger


def bind_context(**kwargs: Any) -> None:
    """
    Bind additional context to all logs in the current context.

    Example:
        bind_context(host="edge-01")
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all context variables."""
    structlog.contextvars.clear_contextvars()
