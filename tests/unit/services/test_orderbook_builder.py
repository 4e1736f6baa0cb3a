"""
Unit tests for OrderBookBuilder trigger behaviour.

OFFLINE-FIRST: the provider handle is a FakeHandle backed by a real watch
channel, so timing here is driven by the event loop clock only.
"""

import asyncio
import contextlib

import pytest

from pool_orderbook.config.settings import AssetSettings
from pool_orderbook.domain.errors import LiquidityUnavailableError, ProviderClosedError
from pool_orderbook.domain.models import PriceUpdate, TriggerReason
from pool_orderbook.services.orderbook_builder import OrderBookBuilder, create_and_start_order_book_builder
from pool_orderbook.utils.channels import WatchSender, unbounded_channel

from conftest import BTC_USDC, wait_until

DECIMALS = AssetSettings().decimals


class FakeHandle:
    """Just enough of PoolInfoProviderHandle for a builder."""

    def __init__(self, snapshot, *, stream_ready_after: int = 0):
        self.prices: WatchSender[PriceUpdate | None] = WatchSender(None)
        self.snapshot = snapshot
        self.stream_ready_after = stream_ready_after
        self.stream_calls = 0
        self.liquidity_calls = 0

    def push(self, tick: int) -> None:
        self.prices.send(PriceUpdate(pair=BTC_USDC, price="0x1", sqrt_price="0x10", tick=tick))

    async def get_streaming_pool_price_updates(self, pair):
        self.stream_calls += 1
        if self.stream_calls <= self.stream_ready_after:
            return None
        return self.prices.subscribe()

    async def get_pool_liquidity(self, pair):
        self.liquidity_calls += 1
        if isinstance(self.snapshot, BaseException):
            raise self.snapshot
        return self.snapshot


def _builder(handle, sender, *, poll_interval: float = 10.0, stream_poll_delay: float = 0.01) -> OrderBookBuilder:
    return OrderBookBuilder(
        BTC_USDC,
        handle,
        sender,
        poll_interval=poll_interval,
        decimals=DECIMALS,
        stream_poll_delay=stream_poll_delay,
    )


async def _drain(receiver) -> list:
    books = []
    while len(receiver):
        books.append(await receiver.recv())
    return books


@contextlib.asynccontextmanager
async def _running(builder):
    task = asyncio.create_task(builder.run())
    try:
        yield task
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


class TestStartup:
    @pytest.mark.asyncio
    async def test_first_book_is_immediate(self, sample_snapshot):
        """
        GIVEN: a price already available
        WHEN: the builder starts
        THEN: one book is published right away on a timer trigger
        """
        handle = FakeHandle(sample_snapshot)
        handle.push(57040)
        sender, receiver = unbounded_channel()

        async with _running(_builder(handle, sender)):
            await wait_until(lambda: len(receiver) == 1)
            book = await receiver.recv()

        assert book.trigger is TriggerReason.TIMER
        assert book.tick == 57040
        assert book.sqrt_price == 16
        assert handle.liquidity_calls == 1

    @pytest.mark.asyncio
    async def test_waits_for_first_price(self, sample_snapshot):
        handle = FakeHandle(sample_snapshot)
        sender, receiver = unbounded_channel()

        async with _running(_builder(handle, sender)):
            await asyncio.sleep(0.05)
            assert len(receiver) == 0
            assert handle.liquidity_calls == 0

            handle.push(5)
            await wait_until(lambda: len(receiver) == 1)

        assert (await receiver.recv()).tick == 5

    @pytest.mark.asyncio
    async def test_polls_until_stream_exists(self, sample_snapshot):
        handle = FakeHandle(sample_snapshot, stream_ready_after=3)
        handle.push(1)
        sender, receiver = unbounded_channel()

        async with _running(_builder(handle, sender, stream_poll_delay=0.01)):
            await wait_until(lambda: len(receiver) == 1)

        assert handle.stream_calls == 4


class TestTriggers:
    @pytest.mark.asyncio
    async def test_price_change_restarts_timer_window(self, sample_snapshot):
        """
        GIVEN: poll interval 0.5s and a price change at ~0.3s
        WHEN: observed at ~0.65s and ~1.0s
        THEN: the price wake adds exactly one book and pushes the next timer to ~0.8s
        """
        handle = FakeHandle(sample_snapshot)
        handle.push(1)
        sender, receiver = unbounded_channel()

        async with _running(_builder(handle, sender, poll_interval=0.5)):
            await asyncio.sleep(0.3)
            handle.push(2)

            await asyncio.sleep(0.35)
            books = await _drain(receiver)
            assert [b.trigger for b in books] == [TriggerReason.TIMER, TriggerReason.PRICE]
            assert [b.tick for b in books] == [1, 2]

            await asyncio.sleep(0.35)
            books = await _drain(receiver)
            assert [b.trigger for b in books] == [TriggerReason.TIMER]
            assert books[0].tick == 2

        assert handle.liquidity_calls == 3

    @pytest.mark.asyncio
    async def test_timer_keeps_last_price(self, sample_snapshot):
        handle = FakeHandle(sample_snapshot)
        handle.push(7)
        sender, receiver = unbounded_channel()

        async with _running(_builder(handle, sender, poll_interval=0.05)):
            await wait_until(lambda: len(receiver) >= 3)

        books = await _drain(receiver)
        assert all(b.trigger is TriggerReason.TIMER for b in books)
        assert {b.tick for b in books} == {7}
        assert handle.liquidity_calls == len(books)

    @pytest.mark.asyncio
    async def test_burst_of_prices_coalesces(self, sample_snapshot):
        handle = FakeHandle(sample_snapshot)
        handle.push(1)
        sender, receiver = unbounded_channel()

        async with _running(_builder(handle, sender)):
            await wait_until(lambda: len(receiver) == 1)
            for tick in (2, 3, 4):
                handle.push(tick)
            await wait_until(lambda: len(receiver) == 2)
            await asyncio.sleep(0.05)

        books = await _drain(receiver)
        assert [b.tick for b in books] == [1, 4]
        assert books[1].trigger is TriggerReason.PRICE


class TestFailures:
    @pytest.mark.asyncio
    async def test_consumer_gone_stops_builder(self, sample_snapshot):
        handle = FakeHandle(sample_snapshot)
        handle.push(1)
        sender, receiver = unbounded_channel()
        receiver.close()
        builder = _builder(handle, sender)

        await asyncio.wait_for(builder.run(), timeout=2.0)

        assert builder.books_published == 0
        assert handle.liquidity_calls == 1

    @pytest.mark.asyncio
    async def test_missing_liquidity_raises(self):
        handle = FakeHandle(None)
        handle.push(1)
        sender, _ = unbounded_channel()

        with pytest.raises(LiquidityUnavailableError):
            await asyncio.wait_for(_builder(handle, sender).run(), timeout=2.0)

    @pytest.mark.asyncio
    async def test_liquidity_error_propagates(self):
        handle = FakeHandle(ProviderClosedError("gone"))
        handle.push(1)
        sender, _ = unbounded_channel()

        with pytest.raises(ProviderClosedError):
            await asyncio.wait_for(_builder(handle, sender).run(), timeout=2.0)


class TestCreateAndStart:
    @pytest.mark.asyncio
    async def test_receiver_ends_when_builder_ends(self, sample_snapshot):
        handle = FakeHandle(sample_snapshot)
        handle.push(3)

        receiver, task = create_and_start_order_book_builder(
            BTC_USDC, handle, poll_interval=10.0, decimals=DECIMALS, stream_poll_delay=0.01
        )
        book = await asyncio.wait_for(receiver.recv(), timeout=2.0)

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

        assert book.pair == BTC_USDC
        assert await asyncio.wait_for(receiver.recv(), timeout=2.0) is None
