import asyncio

import pytest

from pool_orderbook.adapters.messaging.event_bus import InMemoryEventBus
from pool_orderbook.domain.events import AlertEvent, PriceUpdated
from pool_orderbook.domain.models import AssetPair, PriceUpdate

BTC_USDC = AssetPair("BTC", "USDC")


def _price_event(tick: int) -> PriceUpdated:
    return PriceUpdated(pair=BTC_USDC, update=PriceUpdate(pair=BTC_USDC, price="0x1", sqrt_price="0x1", tick=tick))


@pytest.mark.asyncio
async def test_event_bus_dispatches():
    bus = InMemoryEventBus()
    received = {}

    async def handler(evt: PriceUpdated):
        received["tick"] = evt.update.tick

    bus.subscribe(PriceUpdated, handler)
    await bus.start()
    await bus.publish(_price_event(42))
    await asyncio.sleep(0.05)
    await bus.stop()

    assert received["tick"] == 42


@pytest.mark.asyncio
async def test_publish_before_start_is_inline():
    bus = InMemoryEventBus()
    received = []

    async def handler(evt):
        received.append(evt)

    bus.subscribe(AlertEvent, handler)
    await bus.publish(AlertEvent(level="WARNING", message="hi"))

    assert [e.message for e in received] == ["hi"]


@pytest.mark.asyncio
async def test_failing_handler_does_not_affect_others():
    bus = InMemoryEventBus()
    received = []

    async def bad(evt):
        raise RuntimeError("handler bug")

    async def good(evt):
        received.append(evt.update.tick)

    bus.subscribe(PriceUpdated, bad)
    bus.subscribe(PriceUpdated, good)
    await bus.start()
    await bus.publish(_price_event(1))
    await bus.publish(_price_event(2))
    await asyncio.sleep(0.05)
    await bus.stop()

    assert received == [1, 2]


@pytest.mark.asyncio
async def test_only_matching_type_dispatched():
    bus = InMemoryEventBus()
    received = []

    async def handler(evt):
        received.append(evt)

    bus.subscribe(AlertEvent, handler)
    await bus.publish(_price_event(1))

    assert received == []
    assert bus.subscriber_count(AlertEvent) == 1
    assert bus.subscriber_count(PriceUpdated) == 0


@pytest.mark.asyncio
async def test_stop_drains_queue():
    bus = InMemoryEventBus()
    received = []
    gate = asyncio.Event()

    async def slow(evt):
        await gate.wait()
        received.append(evt.update.tick)

    bus.subscribe(PriceUpdated, slow)
    await bus.start()
    for tick in range(3):
        await bus.publish(_price_event(tick))
    gate.set()
    await bus.stop()

    assert sorted(received) == [0, 1, 2]


@pytest.mark.asyncio
async def test_unsubscribe():
    bus = InMemoryEventBus()
    received = []

    async def handler(evt):
        received.append(evt)

    bus.subscribe(AlertEvent, handler)
    bus.unsubscribe(AlertEvent, handler)
    await bus.publish(AlertEvent(message="ignored"))

    assert received == []


@pytest.mark.asyncio
async def test_pair_filter():
    bus = InMemoryEventBus()
    dot_usdc = AssetPair("DOT", "USDC")
    btc_only, everything = [], []

    async def on_btc(evt):
        btc_only.append(evt)

    async def on_any(evt):
        everything.append(evt)

    bus.subscribe(PriceUpdated, on_btc, pair=BTC_USDC)
    bus.subscribe(PriceUpdated, on_any)
    bus.subscribe(AlertEvent, on_btc, pair=BTC_USDC)

    await bus.publish(_price_event(1))
    await bus.publish(PriceUpdated(pair=dot_usdc, update=PriceUpdate(pair=dot_usdc, price="0x1", sqrt_price="0x1", tick=2)))
    await bus.publish(AlertEvent(message="pairless"))

    assert [e.update.tick for e in everything] == [1, 2]
    assert [e.event_type for e in btc_only] == ["PriceUpdated", "AlertEvent"]
    assert bus.subscriber_count(PriceUpdated, pair=dot_usdc) == 1
    assert bus.subscriber_count(PriceUpdated, pair=BTC_USDC) == 2


@pytest.mark.asyncio
async def test_stop_waits_for_in_flight_dispatch():
    bus = InMemoryEventBus()
    started = asyncio.Event()
    release = asyncio.Event()
    received = []

    async def slow(evt):
        started.set()
        await release.wait()
        received.append(evt.update.tick)

    bus.subscribe(PriceUpdated, slow)
    await bus.start()
    await bus.publish(_price_event(7))
    await bus.publish(_price_event(8))
    await asyncio.wait_for(started.wait(), timeout=1.0)

    stopping = asyncio.create_task(bus.stop())
    await asyncio.sleep(0.01)
    assert not stopping.done()

    release.set()
    await asyncio.wait_for(stopping, timeout=1.0)

    assert received == [7, 8]
    assert not bus.is_running
