"""
Shared fixtures and fakes.

OFFLINE-FIRST: nothing here opens a socket. The node websocket is replaced by
FakeWebSocket (queue-driven recv, recorded sends) and the HTTP client by an
AsyncMock exposing ``pool_liquidity``.
"""

import asyncio
import contextlib
import json
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from pool_orderbook.config.settings import (
    NodeSettings,
    OrderBookSettings,
    Settings,
    SupervisorSettings,
)
from pool_orderbook.domain.models import (
    AssetPair,
    LiquiditySnapshot,
    PriceUpdate,
    RawLimitOrder,
    RawRangeOrder,
)

BTC_USDC = AssetPair("BTC", "USDC")
DOT_USDC = AssetPair("DOT", "USDC")


# =============================================================================
# Fakes
# =============================================================================


class FakeWebSocket:
    """Stand-in for a websockets client connection."""

    def __init__(self):
        self.sent: list[dict] = []
        self._inbound: asyncio.Queue = asyncio.Queue()
        self._sent_event = asyncio.Event()

    async def send(self, data: str) -> None:
        self.sent.append(json.loads(data))
        self._sent_event.set()

    async def recv(self) -> str:
        item = await self._inbound.get()
        if isinstance(item, BaseException):
            raise item
        return item

    def push(self, payload) -> None:
        """Queue an inbound frame (dict is JSON-encoded, str and bytes go as-is)."""
        self._inbound.put_nowait(payload if isinstance(payload, (str, bytes)) else json.dumps(payload))

    def drop(self, exc: BaseException | None = None) -> None:
        """Make the next recv fail like a dropped socket."""
        self._inbound.put_nowait(exc or OSError("connection reset by peer"))

    async def wait_sent(self, count: int, timeout: float = 2.0) -> list[dict]:
        async def _wait():
            while len(self.sent) < count:
                self._sent_event.clear()
                await self._sent_event.wait()

        await asyncio.wait_for(_wait(), timeout=timeout)
        return self.sent


class FakeConnector:
    """
    Replacement for ``websockets.connect``.

    Each call hands out the next queued socket (or raises it if it is an
    exception). Once the queue is empty a fresh idle FakeWebSocket is used.
    """

    def __init__(self, *sockets):
        self._sockets = list(sockets)
        self.calls: list[tuple[str, dict]] = []

    def __call__(self, url: str, **kwargs):
        self.calls.append((url, kwargs))
        return self._open(self._sockets.pop(0) if self._sockets else FakeWebSocket())

    @contextlib.asynccontextmanager
    async def _open(self, ws):
        if isinstance(ws, BaseException):
            raise ws
        yield ws


def ack_frame(request_id: str, subscription_id: str) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "result": subscription_id}


def price_frame(subscription_id: str, *, tick: int = 0, sqrt_price: str = "0x0", price: str = "0x1") -> dict:
    return {
        "jsonrpc": "2.0",
        "method": "cf_subscribe_pool_price",
        "params": {
            "subscription": subscription_id,
            "result": {"price": price, "sqrt_price": sqrt_price, "tick": tick},
        },
    }


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.005) -> None:
    """Poll ``predicate`` until it is truthy or fail the test."""

    async def _poll():
        while not predicate():
            await asyncio.sleep(interval)

    await asyncio.wait_for(_poll(), timeout=timeout)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def node_settings():
    """Node settings with near-instant reconnects."""
    return NodeSettings(
        address="node.test:9944",
        reconnect_delay_initial=0.01,
        reconnect_delay_max=0.01,
        reconnect_jitter_factor=0.0,
    )


@pytest.fixture
def settings(node_settings):
    """Full settings for one fast pair, nothing written to disk."""
    return Settings(
        node=node_settings,
        orderbook=OrderBookSettings(
            pairs=["BTC-USDC"],
            poll_interval_seconds=0.05,
            stream_poll_delay_seconds=0.01,
        ),
        supervisor=SupervisorSettings(restart_delay_max_seconds=0.0),
        logging={"file_enabled": False, "json_enabled": False},
    )


@pytest.fixture
def sample_snapshot():
    return LiquiditySnapshot(
        bids=(RawLimitOrder(tick=-10, amount="0x64"), RawLimitOrder(tick=-20, amount="0xC8")),
        asks=(RawLimitOrder(tick=10, amount="0x539"),),
        range_orders=(
            RawRangeOrder(tick=-100, liquidity="0x10"),
            RawRangeOrder(tick=0, liquidity="0x20"),
            RawRangeOrder(tick=100, liquidity="0x30"),
        ),
    )


@pytest.fixture
def sample_price():
    return PriceUpdate(pair=BTC_USDC, price="0x1", sqrt_price="0x539", tick=57040)


@pytest.fixture
def mock_rpc(sample_snapshot):
    """Mock NodeRpcClient; only pool_liquidity is used by the provider."""
    rpc = MagicMock()
    rpc.pool_liquidity = AsyncMock(return_value=sample_snapshot)
    rpc.initialize = AsyncMock()
    rpc.close = AsyncMock()
    return rpc


@pytest.fixture
def restore_root_logging():
    """setup_logging() replaces root handlers; drop the ones it added afterwards."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
