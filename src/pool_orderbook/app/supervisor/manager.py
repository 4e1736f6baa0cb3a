"""
Supervisor facade with orchestration state and method wiring.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from pool_orderbook.adapters.node.handle import PoolInfoProviderHandle
from pool_orderbook.adapters.node.provider import PoolInfoProvider
from pool_orderbook.adapters.node.rpc import NodeRpcClient
from pool_orderbook.app.supervisor.lifecycle import (
    _close_infrastructure,
    _close_provider,
    _init_infrastructure,
    _init_provider,
    _provider_run,
    _start_pipelines,
    start,
    stop,
)
from pool_orderbook.app.supervisor.loops import (
    _book_relay_loop,
    _builder_loop,
    _on_alert,
    _on_order_book,
    _on_price_updated,
    _price_relay_loop,
    _start_pair_tasks,
)
from pool_orderbook.app.supervisor.tasks import (
    _cancel_all_tasks,
    _create_task,
    _handle_task_done,
    _publish_alert,
    _register_task,
    _restart_task_after_delay,
    _spawn_background,
)
from pool_orderbook.config.settings import NodeSettings, Settings
from pool_orderbook.domain.models import AssetPair, OrderBook, PriceUpdate
from pool_orderbook.ports.event_bus import EventBusPort
from pool_orderbook.utils.channels import UnboundedReceiver, UnboundedSender

ProviderFactory = Callable[[NodeSettings, NodeRpcClient | None], PoolInfoProvider]


def _default_provider_factory(settings: NodeSettings, rpc: NodeRpcClient | None) -> PoolInfoProvider:
    return PoolInfoProvider(settings, rpc=rpc)


class Supervisor:
    """
    Central orchestrator.

    Manages lifecycle of:
    - InMemoryEventBus (order book / price / alert fan-out)
    - NodeRpcClient + PoolInfoProvider
    - per pair: OrderBookBuilder, book relay, price relay
    """

    def __init__(
        self,
        settings: Settings,
        *,
        event_bus: EventBusPort | None = None,
        provider_factory: ProviderFactory | None = None,
    ):
        self.settings = settings
        self.pairs: list[AssetPair] = settings.orderbook.asset_pairs()
        self._running = False
        self._shutdown_event = asyncio.Event()

        # Core components
        self.event_bus: EventBusPort | None = event_bus
        self.rpc: NodeRpcClient | None = None
        self.provider: PoolInfoProvider | None = None
        self.handle: PoolInfoProviderHandle | None = None
        self._provider_factory = provider_factory or _default_provider_factory

        # Per-pair book channels; outlive builder restarts
        self._book_channels: dict[AssetPair, tuple[UnboundedSender[OrderBook], UnboundedReceiver[OrderBook]]] = {}

        # Background tasks (supervised)
        self._tasks: dict[str, asyncio.Task] = {}
        self._task_factories: dict[str, Any] = {}
        self._task_restart_attempts: dict[str, int] = {}
        self._task_restart_jobs: dict[str, asyncio.Task] = {}
        self._failed_tasks: dict[str, BaseException] = {}
        self._background_jobs: set[asyncio.Task] = set()

        # Shutdown flag for coordinated stop
        self._stopping = False

        # Stats
        self._stats = {
            "books_published": 0,
            "price_updates": 0,
        }

    @property
    def is_running(self) -> bool:
        """Check if supervisor is running."""
        return self._running and not self._stopping

    @property
    def failed_tasks(self) -> dict[str, BaseException]:
        """Tasks that died with a non-restartable error."""
        return dict(self._failed_tasks)

    @property
    def stats(self) -> dict[str, int]:
        return dict(self._stats)

    async def latest_price(self, pair: AssetPair) -> PriceUpdate | None:
        """On-demand latest price for ``pair`` (None before the first push)."""
        if self.handle is None:
            return None
        return await self.handle.get_latest_pool_price(pair)

    async def wait_closed(self) -> None:
        await self._shutdown_event.wait()

    start = start
    stop = stop
    _init_infrastructure = _init_infrastructure
    _init_provider = _init_provider
    _provider_run = _provider_run
    _start_pipelines = _start_pipelines
    _close_provider = _close_provider
    _close_infrastructure = _close_infrastructure

    _start_pair_tasks = _start_pair_tasks
    _builder_loop = _builder_loop
    _book_relay_loop = _book_relay_loop
    _price_relay_loop = _price_relay_loop
    _on_order_book = _on_order_book
    _on_price_updated = _on_price_updated
    _on_alert = _on_alert

    _register_task = _register_task
    _create_task = _create_task
    _handle_task_done = _handle_task_done
    _restart_task_after_delay = _restart_task_after_delay
    _publish_alert = _publish_alert
    _spawn_background = _spawn_background
    _cancel_all_tasks = _cancel_all_tasks
