import structlog
from structlog.testing import capture_logs

from tourist_sentinel.logging_config import add_service_context, bind_context, clear_context, get_logger


def test_bound_context_is_visible_until_cleared():
    bind_context(replay_file="fixes.jsonl")
    try:
        assert structlog.contextvars.get_contextvars() == {"replay_file": "fixes.jsonl"}
    finally:
        clear_context()
    assert structlog.contextvars.get_contextvars() == {}


def test_get_logger_binds_initial_values():
    with capture_logs() as logs:
        get_logger("sentinel.test", tourist_id="t-1").info("session_started")
    assert logs[0]["tourist_id"] == "t-1"
    assert logs[0]["event"] == "session_started"


def test_service_context_processor():
    processor = add_service_context("tourist-sentinel")
    assert processor(None, "info", {"event": "x"}) == {"event": "x", "service": "tourist-sentinel"}
