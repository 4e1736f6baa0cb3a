"""Messaging adapters."""

from pool_orderbook.adapters.messaging.event_bus import InMemoryEventBus

__all__ = ["InMemoryEventBus"]
