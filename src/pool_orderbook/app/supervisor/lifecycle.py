"""
Startup and shutdown lifecycle management.

These functions are designed to be used as methods of the Supervisor class.
They are defined externally and assigned to the class in manager.py.
"""

from __future__ import annotations

from collections.abc import Coroutine
from typing import TYPE_CHECKING, Any

from pool_orderbook.adapters.messaging.event_bus import InMemoryEventBus
from pool_orderbook.adapters.node.rpc import NodeRpcClient
from pool_orderbook.app.supervisor.tasks import PROVIDER_TASK
from pool_orderbook.domain.events import AlertEvent, OrderBookPublished, PriceUpdated
from pool_orderbook.observability.logging import get_logger
from pool_orderbook.observability.metrics import start_metrics_server

if TYPE_CHECKING:
    from pool_orderbook.app.supervisor.manager import Supervisor

logger = get_logger(__name__)


async def start(self: Supervisor) -> None:
    """Start all services in correct order."""
    if self._running:
        logger.warning("Supervisor already running")
        return

    logger.info("Supervisor starting...")
    self._running = True
    self._stopping = False
    self._shutdown_event.clear()

    try:
        # Phase 1: Event bus, metrics
        await self._init_infrastructure()

        # Phase 2: Node RPC client + websocket provider
        await self._init_provider()

        # Phase 3: Per-pair builders and relays
        await self._start_pipelines()

        logger.info(f"Supervisor started with {len(self.pairs)} pairs: {', '.join(map(str, self.pairs))}")

    except Exception as e:
        logger.exception(f"Supervisor start failed: {e}")
        await self.stop()
        raise


async def stop(self: Supervisor) -> None:
    """Stop all services gracefully."""
    if self._stopping:
        logger.debug("Supervisor already stopping")
        return

    self._stopping = True
    self._running = False
    logger.info("Supervisor stopping...")

    # Signal shutdown
    self._shutdown_event.set()

    if self.provider:
        self.provider.close()

    await self._cancel_all_tasks()

    await self._close_provider()
    await self._close_infrastructure()

    logger.info("Supervisor stopped")


async def _init_infrastructure(self: Supervisor) -> None:
    """Initialize event bus and metrics exporter."""
    if self.event_bus is None:
        self.event_bus = InMemoryEventBus()

    self.event_bus.subscribe(OrderBookPublished, self._on_order_book)
    self.event_bus.subscribe(PriceUpdated, self._on_price_updated)
    self.event_bus.subscribe(AlertEvent, self._on_alert)
    await self.event_bus.start()

    start_metrics_server(self.settings.metrics)


async def _init_provider(self: Supervisor) -> None:
    """Open the RPC session and start the provider task."""
    self.rpc = NodeRpcClient(self.settings.node)
    await self.rpc.initialize()
    self._register_task(PROVIDER_TASK, self._provider_run)


def _provider_run(self: Supervisor) -> Coroutine[Any, Any, None]:
    """
    Task factory for the provider.

    A terminated provider cannot be revived, so a restart builds a fresh one,
    subscribes every pair again and restarts the pair tasks bound to the old handle.
    """
    restarted = self.provider is not None and self.provider.is_terminated
    if self.provider is None or restarted:
        self.provider = self._provider_factory(self.settings.node, self.rpc)
        self.handle = self.provider.get_handle()
        for pair in self.pairs:
            self.handle.subscribe_pool_price_updates(pair)
    if restarted:
        logger.warning("Pool info provider replaced; restarting pair tasks")
        for pair in self.pairs:
            self._start_pair_tasks(pair)
    return self.provider.run()


async def _start_pipelines(self: Supervisor) -> None:
    for pair in self.pairs:
        self._start_pair_tasks(pair)


async def _close_provider(self: Supervisor) -> None:
    if self.provider:
        self.provider.close()
    if self.rpc:
        await self.rpc.close()
        self.rpc = None


async def _close_infrastructure(self: Supervisor) -> None:
    if self.event_bus:
        await self.event_bus.stop()
