"""Unit tests for infrastructure.external.event_bus."""

import asyncio

from tradeflow.infrastructure.external.event_bus import MARKET_TOPIC, EventBus


def test_fan_out_to_every_subscriber():
    async def scenario():
        bus = EventBus(max_queue_size=10)
        first = await bus.subscribe(MARKET_TOPIC, "a")
        second = await bus.subscribe(MARKET_TOPIC, "b")
        await bus.publish(MARKET_TOPIC, "evt")
        return first.get_nowait(), second.get_nowait()

    assert asyncio.run(scenario()) == ("evt", "evt")


def test_full_queue_drops_oldest():
    async def scenario():
        bus = EventBus(max_queue_size=2)
        queue = await bus.subscribe(MARKET_TOPIC, "slow")
        for i in range(3):
            await bus.publish(MARKET_TOPIC, i)
        return [queue.get_nowait() for _ in range(queue.qsize())], bus.stats

    items, stats = asyncio.run(scenario())
    assert items == [1, 2]
    assert stats["dropped"] == 1
    assert stats["published"] == 3


def test_unsubscribe_stops_delivery():
    async def scenario():
        bus = EventBus()
        queue = await bus.subscribe(MARKET_TOPIC, "gone")
        await bus.unsubscribe(MARKET_TOPIC, "gone")
        await bus.publish(MARKET_TOPIC, "evt")
        return queue.qsize(), bus.subscriber_count

    assert asyncio.run(scenario()) == (0, 0)
