"""
Per-pair pipelines and default event handlers.

These functions are designed to be used as methods of the Supervisor class.
They are defined externally and assigned to the class in manager.py.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from pool_orderbook.domain.events import AlertEvent, OrderBookPublished, PriceUpdated
from pool_orderbook.domain.models import AssetPair
from pool_orderbook.observability.logging import LOG_TAG_BOOK, LOG_TAG_HEALTH, LOG_TAG_PRICE, get_logger
from pool_orderbook.services.orderbook_builder import OrderBookBuilder
from pool_orderbook.utils.channels import unbounded_channel

if TYPE_CHECKING:
    from pool_orderbook.app.supervisor.manager import Supervisor

logger = get_logger(__name__)


def _start_pair_tasks(self: Supervisor, pair: AssetPair) -> None:
    """(Re)start builder, book relay and price relay for ``pair``."""
    if pair not in self._book_channels:
        self._book_channels[pair] = unbounded_channel()
        self._register_task(f"relay:{pair}", lambda: self._book_relay_loop(pair))

    self._register_task(f"builder:{pair}", lambda: self._builder_loop(pair))
    self._register_task(f"prices:{pair}", lambda: self._price_relay_loop(pair))


async def _builder_loop(self: Supervisor, pair: AssetPair) -> None:
    """One builder run over the pair's long-lived book channel."""
    sender, _ = self._book_channels[pair]
    builder = OrderBookBuilder(
        pair,
        self.handle,
        sender,
        poll_interval=self.settings.orderbook.poll_interval_seconds,
        decimals=self.settings.assets.decimals,
        stream_poll_delay=self.settings.orderbook.stream_poll_delay_seconds,
    )
    await builder.run()


async def _book_relay_loop(self: Supervisor, pair: AssetPair) -> None:
    """Drain the builder channel into the event bus (fan-out to any number of consumers)."""
    _, receiver = self._book_channels[pair]
    async for book in receiver:
        self._stats["books_published"] += 1
        await self.event_bus.publish(OrderBookPublished(pair=pair, book=book))


async def _price_relay_loop(self: Supervisor, pair: AssetPair) -> None:
    """Publish a PriceUpdated event for every price change the pair's watch channel shows."""
    delay = self.settings.orderbook.stream_poll_delay_seconds
    stream = await self.handle.get_streaming_pool_price_updates(pair)
    while stream is None:
        await asyncio.sleep(delay)
        stream = await self.handle.get_streaming_pool_price_updates(pair)

    while True:
        await stream.changed()
        update = stream.borrow_and_update()
        if update is None:
            continue
        self._stats["price_updates"] += 1
        await self.event_bus.publish(PriceUpdated(pair=pair, update=update))


# =============================================================================
# Default event handlers
# =============================================================================


async def _on_order_book(self: Supervisor, event: OrderBookPublished) -> None:
    book = event.book
    if book is None:
        return
    best_bid = max((o.tick for o in book.bids), default=None)
    best_ask = min((o.tick for o in book.asks), default=None)
    logger.info(
        f"{LOG_TAG_BOOK} {book.pair} price={book.tick_price:.8g} tick={book.tick} "
        f"bids={len(book.bids)} asks={len(book.asks)} ranges={len(book.range_orders)} "
        f"best_bid_tick={best_bid} best_ask_tick={best_ask} ({book.trigger.value})",
        extra={"pair": str(book.pair), "trigger": book.trigger.value},
    )


async def _on_price_updated(self: Supervisor, event: PriceUpdated) -> None:
    update = event.update
    if update is None:
        return
    logger.debug(f"{LOG_TAG_PRICE} {update.pair} tick={update.tick}", extra={"pair": str(update.pair)})


async def _on_alert(self: Supervisor, event: AlertEvent) -> None:
    level = logging.getLevelName(event.level)
    if not isinstance(level, int):
        level = logging.INFO
    logger.log(level, f"{LOG_TAG_HEALTH} {event.message} {event.details}")
