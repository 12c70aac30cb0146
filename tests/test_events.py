import asyncio

import pytest

from tourist_sentinel.events import EventBus
from tourist_sentinel.schemas import (
    RiskLevel,
    StreamMessage,
    StreamMessageType,
    ZoneTransition,
)

from testkit.builders import BASE_TIME


def _message(tourist_id: str = "t-1", zone_id: str = "z1") -> StreamMessage:
    transition = ZoneTransition(tourist_id=tourist_id, zone_id=zone_id, zone_name="Old Town",
                                risk_level=RiskLevel.MEDIUM, entered=True, timestamp=BASE_TIME)
    return StreamMessage(type=StreamMessageType.ZONE_TRANSITION, tourist_id=tourist_id, data=transition)


@pytest.mark.asyncio
async def test_publish_without_subscribers():
    assert EventBus().publish(_message()) == 0


@pytest.mark.asyncio
async def test_fan_out_and_filters():
    bus = EventBus()
    everything = bus.subscribe()
    only_t2 = bus.subscribe(tourist_id="t-2")
    only_scores = bus.subscribe(types=[StreamMessageType.SAFETY_SCORE])

    assert bus.publish(_message("t-1")) == 1
    assert bus.publish(_message("t-2")) == 2

    assert [m.tourist_id for m in everything.drain()] == ["t-1", "t-2"]
    assert [m.tourist_id for m in only_t2.drain()] == ["t-2"]
    assert only_scores.drain() == []


@pytest.mark.asyncio
async def test_full_queue_drops_oldest():
    bus = EventBus()
    sub = bus.subscribe(maxsize=2)
    for zone_id in ("a", "b", "c"):
        bus.publish(_message(zone_id=zone_id))
    assert [m.data.zone_id for m in sub.drain()] == ["b", "c"]
    assert sub.dropped == 1


@pytest.mark.asyncio
async def test_iteration_ends_on_close():
    bus = EventBus()
    sub = bus.subscribe()
    bus.publish(_message(zone_id="a"))
    bus.publish(_message(zone_id="b"))
    sub.close()
    assert bus.subscriber_count == 0

    received = [m.data.zone_id async for m in sub]
    assert received == ["a", "b"]


@pytest.mark.asyncio
async def test_get_waits_for_message():
    bus = EventBus()
    async with bus.subscribe() as sub:
        waiter = asyncio.ensure_future(sub.get(timeout=1.0))
        await asyncio.sleep(0)
        bus.publish(_message())
        message = await waiter
        assert message.type == StreamMessageType.ZONE_TRANSITION
    assert bus.subscriber_count == 0
    assert sub.get_nowait() is None
