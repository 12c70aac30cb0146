import asyncio

import pytest

from tourist_sentinel.config import SessionConfig, Settings
from tourist_sentinel.emergency import HttpEmergencyDispatcher, LoggingEmergencyDispatcher
from tourist_sentinel.engine import MonitoringEngine
from tourist_sentinel.exceptions import EscalationStateError, SessionNotFoundError
from tourist_sentinel.schemas import (
    EscalationState,
    GeoPoint,
    GeoZone,
    RiskLevel,
    StreamMessageType,
    SubmitReason,
)
from tourist_sentinel.storage import InMemoryStore, RedisStore

from testkit.builders import BASE_TIME, ORIGIN, StubDispatcher, fix_at, walk

HIGH_RISK = GeoZone(id="z-high", name="Harbour district", center=GeoPoint(lat=ORIGIN[0], lng=ORIGIN[1]),
                    radius_meters=500.0, risk_level=RiskLevel.HIGH, incident_count=6)


def _engine(dispatcher=None, **config) -> MonitoringEngine:
    return MonitoringEngine(SessionConfig(**config), dispatcher or StubDispatcher(), InMemoryStore(), zones=[HIGH_RISK])


@pytest.mark.asyncio
async def test_first_fix_creates_session():
    engine = _engine()
    result = await engine.submit_fix("t-1", fix_at(0, north_m=2000.0))
    assert result.accepted
    assert engine.tourist_ids == ["t-1"]
    assert engine.status("t-1").data_points == 1
    assert engine.metrics.value("sentinel_active_sessions") == 1
    await engine.shutdown()
    assert engine.metrics.value("sentinel_active_sessions") == 0


@pytest.mark.asyncio
async def test_concurrent_start_returns_one_session():
    engine = _engine()
    first, second = await asyncio.gather(engine.start_session("t-1"), engine.start_session("t-1"))
    assert first is second
    await engine.shutdown()


@pytest.mark.asyncio
async def test_sessions_are_independent():
    engine = _engine()
    await asyncio.gather(
        *(engine.submit_fix("t-1", f) for f in walk(3)),
    )
    await engine.submit_fix("t-2", fix_at(0, north_m=2000.0))
    # Older than t-1's history but new for t-2
    assert (await engine.submit_fix("t-2", fix_at(30, north_m=2010.0))).accepted
    assert engine.status("t-1").data_points == 3
    assert engine.status("t-2").data_points == 2
    await engine.shutdown()


@pytest.mark.asyncio
async def test_scenario_d_through_engine():
    gate = asyncio.Event()
    engine = _engine(StubDispatcher(gate=gate))
    sub = engine.subscribe(tourist_id="t-1")
    result = await engine.submit_fix("t-1", fix_at(0, base=BASE_TIME.replace(hour=2)))
    assert result.accepted

    status = engine.status("t-1")
    assert status.last_score.value < 40
    assert status.escalation.state == EscalationState.ESCALATING

    types = [m.type for m in sub.drain()]
    assert StreamMessageType.SAFETY_SCORE in types
    assert StreamMessageType.ZONE_TRANSITION in types
    assert StreamMessageType.ESCALATION in types

    gate.set()
    await engine.session("t-1").escalation.wait_dispatch()
    assert engine.status("t-1").escalation.state == EscalationState.ESCALATED

    resolved = engine.resolve_escalation("t-1", "officer-7", "tourist escorted out")
    assert resolved.state == EscalationState.IDLE
    with pytest.raises(EscalationStateError):
        engine.retry_escalation("t-1")
    await engine.shutdown()


@pytest.mark.asyncio
async def test_engine_tick_and_host_inputs():
    engine = _engine()
    assert engine.tick(BASE_TIME) == {}
    await engine.submit_fix("t-1", fix_at(0, north_m=2000.0))
    engine.set_weather_score("t-1", 50.0)
    engine.set_planned_route("t-1", [GeoPoint(lat=ORIGIN[0], lng=ORIGIN[1])])
    scores = engine.tick(BASE_TIME.replace(hour=11))
    assert scores["t-1"].factors.weather == 50.0
    assert scores["t-1"].factors.route_deviation < 95.0
    await engine.shutdown()


@pytest.mark.asyncio
async def test_unknown_tourist():
    engine = _engine()
    with pytest.raises(SessionNotFoundError):
        engine.status("nobody")
    with pytest.raises(KeyError):
        engine.resolve_escalation("nobody", "officer")
    with pytest.raises(SessionNotFoundError):
        await engine.stop_session("nobody")


@pytest.mark.asyncio
async def test_stop_session_then_restart_restores_history():
    engine = _engine()
    for fix in walk(3):
        await engine.submit_fix("t-1", fix)
    await engine.stop_session("t-1")
    assert engine.tourist_ids == []

    result = await engine.submit_fix("t-1", fix_at(600, north_m=600.0))
    assert result.accepted
    assert engine.status("t-1").data_points == 4
    await engine.shutdown()


@pytest.mark.asyncio
async def test_submit_after_shutdown_is_rejected():
    engine = _engine()
    await engine.submit_fix("t-1", fix_at(0))
    await engine.shutdown()
    result = await engine.submit_fix("t-1", fix_at(60))
    assert not result.accepted
    assert result.reason == SubmitReason.SESSION_CLOSED


@pytest.mark.asyncio
async def test_per_session_config_override():
    engine = _engine()
    session = await engine.start_session("t-1", SessionConfig(queue_capacity=5))
    assert session.config.queue_capacity == 5
    assert engine.config.queue_capacity == 100
    await engine.shutdown()


def test_from_settings_picks_collaborators():
    plain = MonitoringEngine.from_settings(Settings(_env_file=None))
    assert isinstance(plain.emergency, LoggingEmergencyDispatcher)
    assert isinstance(plain.store, InMemoryStore)

    settings = Settings(_env_file=None, emergency_url="http://emergency.local", redis_url="redis://localhost:6379/0",
                        cluster_radius_meters=250.0)
    wired = MonitoringEngine.from_settings(settings, zones=[HIGH_RISK])
    assert isinstance(wired.emergency, HttpEmergencyDispatcher)
    assert isinstance(wired.store, RedisStore)
    assert wired.store.socket_timeout == settings.storage_timeout_seconds
    assert wired.config.cluster_radius_meters == 250.0
    assert wired.zones == [HIGH_RISK]


@pytest.mark.asyncio
async def test_metrics_render():
    engine = _engine()
    await engine.submit_fix("t-1", fix_at(0))
    text = engine.metrics.render().decode()
    assert 'sentinel_fixes_total{outcome="accepted"} 1.0' in text
    assert "sentinel_active_sessions 1.0" in text
    await engine.shutdown()
