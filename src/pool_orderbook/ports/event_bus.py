"""
Event bus port.

Order books, price changes and alerts reach consumers through it, so any
number of consumers can follow a pair without touching the builders.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pool_orderbook.domain.events import DomainEvent
from pool_orderbook.domain.models import AssetPair

E = TypeVar("E", bound=DomainEvent)


class EventBusPort(ABC):
    """Typed publish/subscribe for domain events, optionally narrowed to one pair."""

    @abstractmethod
    async def start(self) -> None: ...

    @abstractmethod
    async def stop(self) -> None:
        """Deliver everything already published, then stop."""

    @abstractmethod
    def subscribe(
        self,
        event_type: type[E],
        handler: Callable[[E], Awaitable[None]],
        *,
        pair: AssetPair | None = None,
    ) -> None:
        """
        Call ``handler`` for every published ``event_type``.

        With ``pair`` set, events for other pairs are skipped; events without
        a pair are still delivered.
        """

    @abstractmethod
    def unsubscribe(self, event_type: type[E], handler: Callable[[E], Awaitable[None]]) -> None: ...

    @abstractmethod
    async def publish(self, event: DomainEvent) -> None: ...

    @abstractmethod
    def subscriber_count(self, event_type: type[DomainEvent], pair: AssetPair | None = None) -> int: ...
