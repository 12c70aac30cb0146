"""
Replay a JSON-lines fix file through a monitoring engine.

Each input line is a fix with a ``tourist_id`` field, e.g.::

    {"tourist_id": "t-1", "timestamp": "2024-05-01T10:00:00Z", "lat": 48.85, "lng": 2.35}

Every stream message is printed to stdout as one JSON line.
"""

import argparse
import asyncio
import json
import os
import sys
from typing import List, Optional, TextIO

from pydantic import TypeAdapter, ValidationError

from .config import Settings
from .emergency import HttpEmergencyDispatcher, LoggingEmergencyDispatcher
from .engine import MonitoringEngine
from .events import Subscription
from .logging_config import bind_context, clear_context, configure_logging, get_logger
from .schemas import GeoZone

logger = get_logger(__name__)

_zones_adapter = TypeAdapter(List[GeoZone])


def load_zones(path: str) -> List[GeoZone]:
    with open(path, "r", encoding="utf-8") as fh:
        return _zones_adapter.validate_json(fh.read())


def _emit(subscription: Subscription, out: TextIO) -> int:
    messages = subscription.drain()
    for message in messages:
        out.write(message.model_dump_json() + "\n")
    out.flush()
    return len(messages)


async def replay(
    fixes_path: str,
    zones: List[GeoZone],
    settings: Settings,
    emergency_url: Optional[str] = None,
    out: Optional[TextIO] = None,
) -> int:
    """Feed every line of the fix file through an engine. Returns messages emitted."""
    out = out or sys.stdout
    if emergency_url:
        emergency = HttpEmergencyDispatcher(emergency_url, settings.emergency_api_key, settings.dispatch_timeout_seconds)
    else:
        emergency = LoggingEmergencyDispatcher()
    engine = MonitoringEngine(settings.session_config(), emergency, zones=zones)
    subscription = engine.subscribe()
    emitted = 0

    bind_context(replay_file=os.path.basename(fixes_path))
    try:
        with open(fixes_path, "r", encoding="utf-8") as fh:
            for lineno, line in enumerate(fh, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                    tourist_id = str(record.pop("tourist_id"))
                except (json.JSONDecodeError, KeyError, AttributeError, TypeError) as e:
                    logger.warning("replay_line_skipped", line=lineno, error=str(e))
                    continue
                result = await engine.submit_fix(tourist_id, record)
                if not result.accepted:
                    logger.info("replay_fix_rejected", line=lineno, tourist_id=tourist_id, reason=result.reason.value)
                # Let background dispatches make progress between fixes
                await asyncio.sleep(0)
                emitted += _emit(subscription, out)

        await engine.shutdown()
        emitted += _emit(subscription, out)
    finally:
        clear_context()
    return emitted


def main(argv: Optional[list] = None) -> int:
    p = argparse.ArgumentParser(prog="tourist-sentinel-replay", description="Replay location fixes through Tourist Sentinel")
    p.add_argument("fixes", help="JSON-lines file of fixes, each with a tourist_id")
    p.add_argument("--zones", default=None, help="JSON file with a list of geofence zones")
    p.add_argument("--emergency-url", default=os.getenv("SENTINEL_EMERGENCY_URL"))
    p.add_argument("--log-level", default=os.getenv("SENTINEL_LOG_LEVEL", "WARNING"))
    args = p.parse_args(argv)

    settings = Settings()
    configure_logging("tourist-sentinel-replay", args.log_level, settings.json_logs)

    try:
        zones = load_zones(args.zones) if args.zones else []
    except (OSError, ValidationError) as e:
        p.error(f"cannot load zones: {e}")

    asyncio.run(replay(args.fixes, zones, settings, emergency_url=args.emergency_url))
    return 0


if __name__ == "__main__":
    sys.exit(main())
