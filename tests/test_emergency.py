import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from tourist_sentinel.emergency import HttpEmergencyDispatcher, LoggingEmergencyDispatcher
from tourist_sentinel.exceptions import DispatchError
from tourist_sentinel.schemas import GeoPoint, SeverityLevel


async def _server(status: int, body: dict, seen: list) -> TestServer:
    async def handler(request: web.Request) -> web.Response:
        seen.append((request.headers.get("Authorization"), await request.json()))
        return web.json_response(body, status=status)

    app = web.Application()
    app.router.add_post("/api/v1/emergency/alerts", handler)
    server = TestServer(app)
    await server.start_server()
    return server


@pytest.mark.asyncio
async def test_acknowledged_alert():
    seen = []
    server = await _server(201, {"alert_id": "EMG-42"}, seen)
    try:
        async with HttpEmergencyDispatcher(str(server.make_url("/")), api_key="secret") as dispatcher:
            result = await dispatcher.trigger_alert(
                "t-1", "anomaly", SeverityLevel.CRITICAL, GeoPoint(lat=48.85, lng=2.35), "possible forced transportation"
            )
    finally:
        await server.close()

    assert result.success
    assert result.alert_id == "EMG-42"
    auth, payload = seen[0]
    assert auth == "Bearer secret"
    assert payload["tourist_id"] == "t-1"
    assert payload["severity"] == "critical"
    assert payload["location"] == {"lat": 48.85, "lng": 2.35}


@pytest.mark.asyncio
async def test_rejected_alert_is_unsuccessful():
    seen = []
    server = await _server(503, {"error": "busy"}, seen)
    dispatcher = HttpEmergencyDispatcher(str(server.make_url("/")))
    try:
        result = await dispatcher.trigger_alert("t-1", "low_safety_score", SeverityLevel.HIGH, None, "score 30")
    finally:
        await dispatcher.close()
        await server.close()
    assert not result.success
    assert seen[0][0] is None


@pytest.mark.asyncio
async def test_missing_alert_id_is_unsuccessful():
    server = await _server(200, {"status": "ok"}, [])
    dispatcher = HttpEmergencyDispatcher(str(server.make_url("/")))
    try:
        result = await dispatcher.trigger_alert("t-1", "anomaly", SeverityLevel.CRITICAL, None, "x")
    finally:
        await dispatcher.close()
        await server.close()
    assert not result.success


@pytest.mark.asyncio
async def test_unreachable_service_raises_dispatch_error():
    server = await _server(201, {"alert_id": "x"}, [])
    url = str(server.make_url("/"))
    await server.close()

    dispatcher = HttpEmergencyDispatcher(url, timeout=2.0)
    try:
        with pytest.raises(DispatchError):
            await dispatcher.trigger_alert("t-1", "anomaly", SeverityLevel.CRITICAL, None, "x")
    finally:
        await dispatcher.close()


@pytest.mark.asyncio
async def test_logging_dispatcher_acknowledges():
    dispatcher = LoggingEmergencyDispatcher()
    first = await dispatcher.trigger_alert("t-1", "anomaly", SeverityLevel.CRITICAL, None, "x")
    second = await dispatcher.trigger_alert("t-2", "anomaly", SeverityLevel.CRITICAL, None, "y")
    assert first.success and second.success
    assert first.alert_id != second.alert_id
