"""
Supervisor start/stop with a fake node.

OFFLINE-FIRST: the provider factory builds a real PoolInfoProvider on top of
FakeConnector, so the whole pipeline (provider, builder, relays, event bus)
runs without network access.
"""

import asyncio

import pytest

from pool_orderbook.adapters.messaging.event_bus import InMemoryEventBus
from pool_orderbook.adapters.node.provider import PoolInfoProvider
from pool_orderbook.app.supervisor import Supervisor
from pool_orderbook.domain.events import AlertEvent, OrderBookPublished, PriceUpdated

from conftest import BTC_USDC, FakeConnector, FakeWebSocket, ack_frame, price_frame, wait_until


class _Recorder:
    def __init__(self, bus: InMemoryEventBus):
        self.books: list[OrderBookPublished] = []
        self.prices: list[PriceUpdated] = []
        self.alerts: list[AlertEvent] = []
        bus.subscribe(OrderBookPublished, self._on_book)
        bus.subscribe(PriceUpdated, self._on_price)
        bus.subscribe(AlertEvent, self._on_alert)

    async def _on_book(self, event):
        self.books.append(event)

    async def _on_price(self, event):
        self.prices.append(event)

    async def _on_alert(self, event):
        self.alerts.append(event)


def _factory(connector, rpc):
    def build(node_settings, _rpc):
        return PoolInfoProvider(node_settings, rpc=rpc, connect=connector)

    return build


async def _feed_price(ws: FakeWebSocket, subscription_id: str, tick: int, sent_before: int = 0) -> None:
    sent = await ws.wait_sent(sent_before + 1)
    ws.push(ack_frame(sent[sent_before]["id"], subscription_id))
    ws.push(price_frame(subscription_id, tick=tick, sqrt_price="0x539"))


class TestSupervisorPipeline:
    @pytest.mark.asyncio
    async def test_books_and_prices_reach_the_bus(self, settings, mock_rpc):
        """
        GIVEN: a supervisor following BTC-USDC against a fake node
        WHEN: the node acknowledges and pushes a price
        THEN: order books and price events are published on the bus
        """
        ws = FakeWebSocket()
        bus = InMemoryEventBus()
        recorder = _Recorder(bus)
        supervisor = Supervisor(settings, event_bus=bus, provider_factory=_factory(FakeConnector(ws), mock_rpc))

        await supervisor.start()
        try:
            assert supervisor.is_running
            await _feed_price(ws, "sub-1", tick=57040)

            await wait_until(lambda: len(recorder.books) >= 2)
            await wait_until(lambda: recorder.prices)

            book = recorder.books[0].book
            assert recorder.books[0].pair == BTC_USDC
            assert book.tick == 57040
            assert book.sqrt_price == 1337
            assert recorder.prices[0].update.tick == 57040
            assert (await supervisor.latest_price(BTC_USDC)).tick == 57040
            assert supervisor.stats["books_published"] >= 2
            assert supervisor.failed_tasks == {}
        finally:
            await supervisor.stop()

        assert not supervisor.is_running
        assert supervisor.provider.is_terminated
        assert not bus.is_running

    @pytest.mark.asyncio
    async def test_provider_rebuilt_after_connection_loss(self, settings, mock_rpc):
        """
        GIVEN: reconnect disabled inside the provider
        WHEN: the socket drops
        THEN: the supervisor builds a new provider, resubscribes and books resume
        """
        settings = settings.model_copy(
            update={"node": settings.node.model_copy(update={"reconnect_enabled": False})}
        )
        first, second = FakeWebSocket(), FakeWebSocket()
        bus = InMemoryEventBus()
        recorder = _Recorder(bus)
        supervisor = Supervisor(
            settings, event_bus=bus, provider_factory=_factory(FakeConnector(first, second), mock_rpc)
        )

        await supervisor.start()
        try:
            await _feed_price(first, "sub-1", tick=10)
            await wait_until(lambda: any(e.book.tick == 10 for e in recorder.books))
            old_provider = supervisor.provider

            first.drop()

            await _feed_price(second, "sub-2", tick=20)
            await wait_until(lambda: any(e.book.tick == 20 for e in recorder.books), timeout=3.0)

            assert supervisor.provider is not old_provider
            assert old_provider.is_terminated
            assert supervisor.failed_tasks == {}
            assert "Task restarted: provider" in [a.message for a in recorder.alerts]
            assert not any(a.level == "CRITICAL" for a in recorder.alerts)
        finally:
            await supervisor.stop()

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, settings, mock_rpc):
        supervisor = Supervisor(settings, provider_factory=_factory(FakeConnector(FakeWebSocket()), mock_rpc))

        await supervisor.start()
        await supervisor.stop()
        await supervisor.stop()

        await asyncio.wait_for(supervisor.wait_closed(), timeout=1.0)
        assert supervisor.rpc is None
