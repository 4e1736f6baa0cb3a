"""
Client side of the pool info provider.

Handles never touch provider state. Every call is a message put on the
provider's mailbox; calls expecting an answer carry a one-shot future that
the provider resolves at most once. Once the provider has terminated, calls
raise ProviderClosedError instead of waiting forever.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Any

from pool_orderbook.domain.errors import ProviderClosedError
from pool_orderbook.domain.models import AssetPair, LiquiditySnapshot, PriceUpdate
from pool_orderbook.utils.channels import WatchReceiver

# =============================================================================
# Messages
# =============================================================================


@dataclass(slots=True)
class SubscribePoolPrice:
    pair: AssetPair


@dataclass(slots=True)
class GetLatestPoolPrice:
    pair: AssetPair
    reply: asyncio.Future[PriceUpdate | None]


@dataclass(slots=True)
class GetPriceStream:
    pair: AssetPair
    reply: asyncio.Future[WatchReceiver[PriceUpdate | None] | None]


@dataclass(slots=True)
class GetLiquidity:
    pair: AssetPair
    reply: asyncio.Future[LiquiditySnapshot | None]


ProviderRequest = SubscribePoolPrice | GetLatestPoolPrice | GetPriceStream | GetLiquidity


def resolve_reply(future: asyncio.Future[Any], value: Any) -> None:
    """Answer a request unless the caller already gave up on it."""
    if not future.done():
        future.set_result(value)


def fail_reply(future: asyncio.Future[Any], exc: BaseException) -> None:
    if not future.done():
        future.set_exception(exc)


def fail_request(request: ProviderRequest, exc: BaseException) -> None:
    reply = getattr(request, "reply", None)
    if reply is not None:
        fail_reply(reply, exc)


# =============================================================================
# Mailbox
# =============================================================================


class Mailbox:
    """Multi-producer, single-consumer request queue with an explicit closed state."""

    def __init__(self) -> None:
        self._items: deque[ProviderRequest] = deque()
        self._wakeup = asyncio.Event()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._items)

    def put(self, request: ProviderRequest) -> None:
        if self._closed:
            raise ProviderClosedError("Pool info provider is closed", pair=str(request.pair))
        self._items.append(request)
        self._wakeup.set()

    async def get(self) -> ProviderRequest:
        """Next request. Raises ProviderClosedError once closed."""
        while True:
            if self._closed:
                raise ProviderClosedError("Pool info provider mailbox closed")
            if self._items:
                return self._items.popleft()
            self._wakeup.clear()
            await self._wakeup.wait()

    def close(self) -> None:
        """Close and fail every queued request."""
        if self._closed:
            return
        self._closed = True
        while self._items:
            fail_request(self._items.popleft(), ProviderClosedError("Pool info provider closed"))
        self._wakeup.set()


# =============================================================================
# Handle
# =============================================================================


class PoolInfoProviderHandle:
    """Freely shareable front end to a PoolInfoProvider."""

    def __init__(self, mailbox: Mailbox):
        self._mailbox = mailbox

    @property
    def is_closed(self) -> bool:
        return self._mailbox.closed

    def subscribe_pool_price_updates(self, pair: AssetPair) -> None:
        """Ask the provider to subscribe to ``pair``. Subscribing twice is a no-op."""
        self._mailbox.put(SubscribePoolPrice(pair=pair))

    async def get_latest_pool_price(self, pair: AssetPair) -> PriceUpdate | None:
        return await self._call(GetLatestPoolPrice, pair)

    async def get_streaming_pool_price_updates(self, pair: AssetPair) -> WatchReceiver[PriceUpdate | None] | None:
        """Fresh reader on the pair's price channel, or None if the pair was never subscribed."""
        return await self._call(GetPriceStream, pair)

    async def get_pool_liquidity(self, pair: AssetPair) -> LiquiditySnapshot | None:
        """Fetch a fresh liquidity snapshot. Errors from the node call are raised here."""
        return await self._call(GetLiquidity, pair)

    async def _call(self, message_type: type, pair: AssetPair) -> Any:
        reply: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._mailbox.put(message_type(pair=pair, reply=reply))
        return await reply
