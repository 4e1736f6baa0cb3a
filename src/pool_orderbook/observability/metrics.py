"""
Prometheus metrics for observability.

Provides metrics for the websocket provider, liquidity fetches and
order book publication.

Usage:
    from pool_orderbook.observability.metrics import record_book_published

    record_book_published(pair="BTC-USDC", trigger="PRICE")

The exporter is only started when ``metrics.enabled`` is set; the
collectors below are always registered.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Generator
from contextlib import contextmanager

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from pool_orderbook.config.settings import MetricsSettings

logger = logging.getLogger(__name__)

# =============================================================================
# Metric Definitions
# =============================================================================

frames_total = Counter(
    "pool_orderbook_frames_total",
    "Websocket frames received from the node",
    ["kind"],  # kind: price, ack, rpc_error, unknown, binary
)

price_updates_total = Counter(
    "pool_orderbook_price_updates_total",
    "Pool price pushes routed to a pair",
    ["pair"],
)

subscriptions_active = Gauge(
    "pool_orderbook_subscriptions_active",
    "Pairs with an acknowledged price subscription",
)

liquidity_fetch_seconds = Histogram(
    "pool_orderbook_liquidity_fetch_seconds",
    "Duration of cf_pool_liquidity calls in seconds",
    ["pair", "outcome"],  # outcome: ok, empty, error
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0),
)

books_published_total = Counter(
    "pool_orderbook_books_published_total",
    "Order books handed to consumers",
    ["pair", "trigger"],
)

provider_reconnects_total = Counter(
    "pool_orderbook_provider_reconnects_total",
    "Websocket reconnect attempts by the pool info provider",
)

task_restarts_total = Counter(
    "pool_orderbook_task_restarts_total",
    "Supervised task restarts",
    ["task"],
)


# =============================================================================
# Helper Functions
# =============================================================================


def record_frame(kind: str) -> None:
    frames_total.labels(kind=kind).inc()


def record_price_update(pair: str) -> None:
    price_updates_total.labels(pair=pair).inc()


def update_active_subscriptions(count: int) -> None:
    subscriptions_active.set(count)


def record_book_published(pair: str, trigger: str) -> None:
    books_published_total.labels(pair=pair, trigger=trigger).inc()


def record_reconnect() -> None:
    provider_reconnects_total.inc()


def record_task_restart(task: str) -> None:
    task_restarts_total.labels(task=task).inc()


@contextmanager
def track_liquidity_fetch(pair: str) -> Generator[dict[str, str], None, None]:
    """
    Context manager timing one liquidity call.

    Usage:
        with track_liquidity_fetch("BTC-USDC") as ctx:
            snapshot = await rpc.pool_liquidity(pair)
            ctx["outcome"] = "ok" if snapshot else "empty"

    Anything that escapes the block is recorded as ``error``.
    """
    start_time = time.monotonic()
    ctx = {"outcome": "error"}
    try:
        yield ctx
    finally:
        liquidity_fetch_seconds.labels(pair=pair, outcome=ctx["outcome"]).observe(time.monotonic() - start_time)


def start_metrics_server(settings: MetricsSettings) -> bool:
    """Start the Prometheus HTTP exporter if enabled. Returns True when started."""
    if not settings.enabled:
        return False
    start_http_server(settings.port)
    logger.info(f"Metrics exporter listening on :{settings.port}")
    return True
