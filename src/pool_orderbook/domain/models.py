"""
Canonical Domain Models.

Big unsigned quantities (amounts, liquidity, sqrt prices) are plain Python
ints after parsing; on the wire they travel as hex strings.
These models are the single source of truth - wire payloads are mapped to these.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pool_orderbook.domain.errors import InvalidAssetPairError

# =============================================================================
# ENUMS
# =============================================================================


class Side(str, Enum):
    """Order side."""

    BUY = "BUY"
    SELL = "SELL"


class TriggerReason(str, Enum):
    """Why an order book was rebuilt."""

    TIMER = "TIMER"
    PRICE = "PRICE"


# =============================================================================
# VALUE OBJECTS
# =============================================================================


@dataclass(frozen=True, slots=True)
class AssetPair:
    """Ordered (base, quote) pair identifying a pool."""

    base: str
    quote: str

    def __str__(self) -> str:
        return f"{self.base}-{self.quote}"

    @classmethod
    def parse(cls, value: str) -> AssetPair:
        """Parse ``BTC-USDC`` or ``BTC/USDC`` (case-insensitive)."""
        normalized = str(value).strip().upper().replace("/", "-")
        base, sep, quote = normalized.partition("-")
        if not sep or not base or not quote or "-" in quote:
            raise InvalidAssetPairError(f"Invalid asset pair: {value!r}", pair=str(value))
        return cls(base=base, quote=quote)


@dataclass(frozen=True, slots=True)
class PriceUpdate:
    """Latest pool price pushed by the node."""

    pair: AssetPair
    price: str
    sqrt_price: str
    tick: int


@dataclass(frozen=True, slots=True)
class RawLimitOrder:
    """Limit order as returned by ``cf_pool_liquidity``."""

    tick: int
    amount: str


@dataclass(frozen=True, slots=True)
class RawRangeOrder:
    """Range-order boundary point as returned by ``cf_pool_liquidity``."""

    tick: int
    liquidity: str


@dataclass(frozen=True, slots=True)
class LiquiditySnapshot:
    """Point-in-time pool liquidity. Never cached."""

    bids: tuple[RawLimitOrder, ...] = ()
    asks: tuple[RawLimitOrder, ...] = ()
    range_orders: tuple[RawRangeOrder, ...] = ()


# =============================================================================
# ORDER BOOK
# =============================================================================


@dataclass(frozen=True, slots=True)
class LimitOrder:
    """Resting limit order at a single tick."""

    side: Side
    tick: int
    amount: int


@dataclass(frozen=True, slots=True)
class RangeOrder:
    """Liquidity bracket covering ``[start_tick, end_tick)``."""

    start_tick: int
    end_tick: int
    liquidity: int


@dataclass(frozen=True, slots=True)
class OrderBook:
    """Derived, read-only view of a pool."""

    pair: AssetPair
    sqrt_price: int
    tick: int
    tick_price: float
    bids: tuple[LimitOrder, ...] = ()
    asks: tuple[LimitOrder, ...] = ()
    range_orders: tuple[RangeOrder, ...] = ()
    trigger: TriggerReason = TriggerReason.TIMER
    built_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly view; big integers become decimal strings."""
        return {
            "pair": str(self.pair),
            "sqrt_price": str(self.sqrt_price),
            "tick": self.tick,
            "tick_price": self.tick_price,
            "bids": [{"tick": o.tick, "amount": str(o.amount)} for o in self.bids],
            "asks": [{"tick": o.tick, "amount": str(o.amount)} for o in self.asks],
            "range_orders": [
                {"start_tick": r.start_tick, "end_tick": r.end_tick, "liquidity": str(r.liquidity)}
                for r in self.range_orders
            ],
            "trigger": self.trigger.value,
            "built_at": self.built_at.isoformat(),
        }
