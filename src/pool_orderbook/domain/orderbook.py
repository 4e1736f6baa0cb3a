"""
Order book assembly.

Pure transform from (latest price, liquidity snapshot) into an OrderBook.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from pool_orderbook.domain.models import (
    AssetPair,
    LimitOrder,
    LiquiditySnapshot,
    OrderBook,
    PriceUpdate,
    RangeOrder,
    RawLimitOrder,
    RawRangeOrder,
    Side,
    TriggerReason,
)
from pool_orderbook.domain.pricing import AssetDecimals, tick_to_price
from pool_orderbook.utils.hexint import parse_hex_u256


def limit_orders(raw: Iterable[RawLimitOrder], side: Side) -> tuple[LimitOrder, ...]:
    return tuple(LimitOrder(side=side, tick=o.tick, amount=parse_hex_u256(o.amount)) for o in raw)


def range_brackets(points: Sequence[RawRangeOrder]) -> tuple[RangeOrder, ...]:
    """
    Pair each boundary point with its successor.

    Point i and point i+1 form ``[point[i].tick, point[i+1].tick)`` carrying
    point i's liquidity. The last point only closes the previous bracket; its
    own liquidity is not carried anywhere.
    """
    return tuple(
        RangeOrder(
            start_tick=start.tick,
            end_tick=end.tick,
            liquidity=parse_hex_u256(start.liquidity),
        )
        for start, end in zip(points, points[1:], strict=False)
    )


def build_order_book(
    pair: AssetPair,
    price: PriceUpdate,
    snapshot: LiquiditySnapshot,
    decimals: AssetDecimals,
    *,
    trigger: TriggerReason = TriggerReason.TIMER,
) -> OrderBook:
    """Assemble an OrderBook for ``pair`` at ``price`` from ``snapshot``."""
    return OrderBook(
        pair=pair,
        sqrt_price=parse_hex_u256(price.sqrt_price),
        tick=price.tick,
        tick_price=tick_to_price(price.tick, pair, decimals),
        bids=limit_orders(snapshot.bids, Side.BUY),
        asks=limit_orders(snapshot.asks, Side.SELL),
        range_orders=range_brackets(snapshot.range_orders),
        trigger=trigger,
    )
