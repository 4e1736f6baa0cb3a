"""
Order Book Builder.

One builder per pair. It races a periodic timer against the pair's price
watch channel and, on every wake, fetches fresh liquidity and publishes an
OrderBook on its output channel.

- Price wake: adopt the new price and restart the timer window.
- Timer wake: keep the last adopted price.

Liquidity is never cached and never retried; a failed fetch ends the builder.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping

from pool_orderbook.adapters.node.handle import PoolInfoProviderHandle
from pool_orderbook.domain.errors import ConsumerGoneError, LiquidityUnavailableError
from pool_orderbook.domain.models import AssetPair, OrderBook, PriceUpdate, TriggerReason
from pool_orderbook.domain.orderbook import build_order_book
from pool_orderbook.domain.pricing import AssetDecimals, freeze_decimals
from pool_orderbook.observability.logging import LOG_TAG_BOOK, get_logger
from pool_orderbook.observability.metrics import record_book_published
from pool_orderbook.utils.channels import (
    UnboundedReceiver,
    UnboundedSender,
    WatchReceiver,
    unbounded_channel,
)

logger = get_logger(__name__)

DEFAULT_STREAM_POLL_DELAY = 5.0


class OrderBookBuilder:
    """Rebuilds the order book of one pair on a timer or on price change."""

    def __init__(
        self,
        pair: AssetPair,
        handle: PoolInfoProviderHandle,
        book_sender: UnboundedSender[OrderBook],
        *,
        poll_interval: float,
        decimals: Mapping[str, int],
        stream_poll_delay: float = DEFAULT_STREAM_POLL_DELAY,
    ):
        self.pair = pair
        self._handle = handle
        self._book_sender = book_sender
        self._poll_interval = poll_interval
        self._decimals: AssetDecimals = freeze_decimals(decimals)
        self._stream_poll_delay = stream_poll_delay
        self.books_published = 0

    async def run(self) -> None:
        """
        Build and publish books until the consumer goes away.

        Errors from the liquidity fetch or from book assembly propagate.
        """
        stream = await self._await_price_stream()
        latest = await self._await_first_price(stream)

        loop = asyncio.get_running_loop()
        deadline = loop.time()  # first book right away

        while True:
            trigger, latest = await self._wait_for_trigger(stream, latest, deadline)

            now = loop.time()
            if trigger is TriggerReason.PRICE:
                deadline = now + self._poll_interval
            else:
                deadline += self._poll_interval
                if deadline <= now:
                    deadline = now + self._poll_interval

            book = await self._build(latest, trigger)
            if not self._publish(book):
                return

    # -------------------------------------------------------------------------
    # Startup
    # -------------------------------------------------------------------------

    async def _await_price_stream(self) -> WatchReceiver[PriceUpdate | None]:
        """Poll the provider until the pair's price stream exists."""
        while True:
            stream = await self._handle.get_streaming_pool_price_updates(self.pair)
            if stream is not None:
                return stream
            logger.info(f"No price stream for {self.pair} yet; retrying in {self._stream_poll_delay}s")
            await asyncio.sleep(self._stream_poll_delay)

    async def _await_first_price(self, stream: WatchReceiver[PriceUpdate | None]) -> PriceUpdate:
        latest = stream.borrow_and_update()
        while latest is None:
            logger.debug(f"Waiting for first price of {self.pair}")
            await stream.changed()
            latest = stream.borrow_and_update()
        return latest

    # -------------------------------------------------------------------------
    # Trigger
    # -------------------------------------------------------------------------

    async def _wait_for_trigger(
        self,
        stream: WatchReceiver[PriceUpdate | None],
        latest: PriceUpdate,
        deadline: float,
    ) -> tuple[TriggerReason, PriceUpdate]:
        if not stream.has_changed():
            timeout = deadline - asyncio.get_running_loop().time()
            if timeout <= 0:
                return TriggerReason.TIMER, latest
            try:
                await asyncio.wait_for(stream.changed(), timeout=timeout)
            except TimeoutError:
                return TriggerReason.TIMER, latest

        update = stream.borrow_and_update()
        return TriggerReason.PRICE, update if update is not None else latest

    # -------------------------------------------------------------------------
    # Build + publish
    # -------------------------------------------------------------------------

    async def _build(self, latest: PriceUpdate, trigger: TriggerReason) -> OrderBook:
        snapshot = await self._handle.get_pool_liquidity(self.pair)
        if snapshot is None:
            raise LiquidityUnavailableError(f"No liquidity returned for {self.pair}", pair=str(self.pair))
        return build_order_book(self.pair, latest, snapshot, self._decimals, trigger=trigger)

    def _publish(self, book: OrderBook) -> bool:
        try:
            self._book_sender.send(book)
        except ConsumerGoneError:
            logger.warning(f"Order book consumer for {self.pair} is gone; stopping builder")
            return False

        self.books_published += 1
        record_book_published(str(self.pair), book.trigger.value)
        logger.debug(
            f"{LOG_TAG_BOOK} {self.pair} tick={book.tick} price={book.tick_price:.8g} "
            f"bids={len(book.bids)} asks={len(book.asks)} ranges={len(book.range_orders)} ({book.trigger.value})"
        )
        return True


def create_and_start_order_book_builder(
    pair: AssetPair,
    handle: PoolInfoProviderHandle,
    *,
    poll_interval: float,
    decimals: Mapping[str, int],
    stream_poll_delay: float = DEFAULT_STREAM_POLL_DELAY,
) -> tuple[UnboundedReceiver[OrderBook], asyncio.Task[None]]:
    """
    Spawn a builder for ``pair``.

    Returns the receiving end of its book channel and the running task. The
    channel is closed when the task ends, so the receiver drains then yields None.
    """
    sender, receiver = unbounded_channel()
    builder = OrderBookBuilder(
        pair,
        handle,
        sender,
        poll_interval=poll_interval,
        decimals=decimals,
        stream_poll_delay=stream_poll_delay,
    )
    task = asyncio.create_task(builder.run(), name=f"builder:{pair}")
    task.add_done_callback(lambda _: sender.close())
    return receiver, task
