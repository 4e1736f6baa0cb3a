"""
Domain Events.

Events are immutable records of things that happened in the domain.
They are used for:
- Fanning out order books to any number of consumers
- Price change notifications
- Operational alerts (task failures, restarts)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pool_orderbook.domain.models import AssetPair, OrderBook, PriceUpdate


@dataclass(frozen=True, slots=True)
class DomainEvent:
    """Base class for all domain events."""

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def event_type(self) -> str:
        return self.__class__.__name__


@dataclass(frozen=True, slots=True)
class OrderBookPublished(DomainEvent):
    """Emitted for every order book a builder produces."""

    pair: AssetPair | None = None
    book: OrderBook | None = None


@dataclass(frozen=True, slots=True)
class PriceUpdated(DomainEvent):
    """Emitted when a pool's price changes."""

    pair: AssetPair | None = None
    update: PriceUpdate | None = None


@dataclass(frozen=True, slots=True)
class AlertEvent(DomainEvent):
    """Generic operational alert."""

    level: str = "INFO"  # INFO, WARNING, ERROR, CRITICAL
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)
