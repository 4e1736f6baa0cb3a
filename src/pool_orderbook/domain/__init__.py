"""
Domain Layer: Core entities, value objects, and pure rules.

This layer has NO transport dependencies (no websocket, no HTTP types).
All types here are canonical and used throughout the application.
"""

from pool_orderbook.domain.errors import (
    ChannelClosedError,
    ConsumerGoneError,
    DomainError,
    ProtocolError,
    ProviderClosedError,
    TransportError,
    ValidationError,
)
from pool_orderbook.domain.events import (
    AlertEvent,
    DomainEvent,
    OrderBookPublished,
    PriceUpdated,
)
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

__all__ = [
    # Errors
    "DomainError",
    "ValidationError",
    "ProtocolError",
    "TransportError",
    "ChannelClosedError",
    "ProviderClosedError",
    "ConsumerGoneError",
    # Events
    "DomainEvent",
    "OrderBookPublished",
    "PriceUpdated",
    "AlertEvent",
    # Models
    "AssetPair",
    "PriceUpdate",
    "RawLimitOrder",
    "RawRangeOrder",
    "LiquiditySnapshot",
    "LimitOrder",
    "RangeOrder",
    "OrderBook",
    "Side",
    "TriggerReason",
]
