"""Observability: logging, metrics."""

from pool_orderbook.observability.logging import (
    LOG_TAG_BOOK,
    LOG_TAG_HEALTH,
    LOG_TAG_PRICE,
    get_logger,
    setup_logging,
)
from pool_orderbook.observability.metrics import (
    record_book_published,
    record_frame,
    record_price_update,
    record_reconnect,
    record_task_restart,
    start_metrics_server,
    track_liquidity_fetch,
    update_active_subscriptions,
)

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "LOG_TAG_BOOK",
    "LOG_TAG_PRICE",
    "LOG_TAG_HEALTH",
    # Metrics helpers
    "record_frame",
    "record_price_update",
    "update_active_subscriptions",
    "record_book_published",
    "record_reconnect",
    "record_task_restart",
    "track_liquidity_fetch",
    "start_metrics_server",
]
