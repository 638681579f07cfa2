from __future__ import annotations

import pytest

from paper_trader.infrastructure.event_bus import EventBus


@pytest.mark.asyncio
async def test_single_queue_receives_topics_in_order():
    bus = EventBus()
    queue = await bus.subscribe("agent", "tick", "clock")

    await bus.publish("tick", 1)
    await bus.publish("clock", 2)
    await bus.publish("other", 3)
    await bus.publish("tick", 4)

    received = [queue.get_nowait() for _ in range(queue.qsize())]
    assert [(e.topic, e.payload) for e in received] == [("tick", 1), ("clock", 2), ("tick", 4)]


@pytest.mark.asyncio
async def test_full_queue_drops_oldest():
    bus = EventBus(max_queue_size=2)
    queue = await bus.subscribe("slow", "tick")

    for i in range(4):
        await bus.publish("tick", i)

    assert [queue.get_nowait().payload for _ in range(2)] == [2, 3]
    assert bus.events_dropped == 2


@pytest.mark.asyncio
async def test_unsubscribe():
    bus = EventBus()
    queue = await bus.subscribe("a", "tick", "clock")
    other = await bus.subscribe("b", "tick")
    assert bus.subscriber_count == 3

    await bus.unsubscribe(queue)
    await bus.publish("tick", "x")

    assert queue.empty()
    assert other.get_nowait().payload == "x"

    assert bus.subscriber_count == 1
