"""
Ports: Abstract interfaces for external dependencies.

Services depend on these interfaces, not on concrete implementations.
"""

from pool_orderbook.ports.event_bus import EventBusPort

__all__ = ["EventBusPort"]
