"""
Pool info provider: the single owner of the node websocket.

One loop serves two inputs, whichever is ready first and one at a time:
inbound websocket frames and requests from PoolInfoProviderHandle. Only this
loop reads or writes the SubscriptionRegistry, so no locks are needed.

Failure policy:
- protocol errors (unknown frame, unknown correlation id) end the provider;
- transport errors end it too unless reconnect is enabled, in which case it
  reconnects with backoff and re-subscribes every registered pair;
- close() ends it cleanly.
Requests keep being served while connecting or backing off: only the
subscribe frame needs the socket, and it is sent on the next connect.
On the way out every watch channel is closed and every outstanding reply
fails with ProviderClosedError.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import websockets
from websockets.exceptions import WebSocketException

from pool_orderbook.adapters.node.handle import (
    GetLatestPoolPrice,
    GetLiquidity,
    GetPriceStream,
    Mailbox,
    PoolInfoProviderHandle,
    ProviderRequest,
    SubscribePoolPrice,
    fail_reply,
    fail_request,
    resolve_reply,
)
from pool_orderbook.adapters.node.protocol import (
    PoolPriceFrame,
    RpcErrorFrame,
    SubscribeAckFrame,
    decode_frame,
    subscribe_request,
)
from pool_orderbook.adapters.node.reconnect import ReconnectCircuitBreaker, reconnect_delay
from pool_orderbook.adapters.node.registry import SubscriptionRegistry
from pool_orderbook.adapters.node.rpc import NodeRpcClient
from pool_orderbook.config.settings import NodeSettings
from pool_orderbook.domain.errors import ConnectionLostError, ProviderClosedError, UnknownFrameError
from pool_orderbook.observability.logging import LOG_TAG_HEALTH, LOG_TAG_PRICE
from pool_orderbook.observability.metrics import (
    record_frame,
    record_price_update,
    record_reconnect,
    track_liquidity_fetch,
    update_active_subscriptions,
)
from pool_orderbook.utils.json_parser import dumps as json_dumps

logger = logging.getLogger(__name__)

# Anything that means "the socket is gone or never came up".
_TRANSPORT_ERRORS = (OSError, WebSocketException, asyncio.TimeoutError)

ConnectFactory = Callable[..., Any]

T = TypeVar("T")


class PoolInfoProvider:
    """Owns the websocket, the subscription registry and the request mailbox."""

    def __init__(
        self,
        settings: NodeSettings,
        *,
        rpc: NodeRpcClient | None = None,
        connect: ConnectFactory | None = None,
        registry: SubscriptionRegistry | None = None,
    ):
        self._settings = settings
        self._owns_rpc = rpc is None
        self._rpc = rpc or NodeRpcClient(settings)
        self._connect = connect or websockets.connect
        self._registry = registry or SubscriptionRegistry()
        self._mailbox = Mailbox()
        self._breaker = ReconnectCircuitBreaker(
            threshold=settings.circuit_breaker_threshold,
            cooldown_seconds=settings.circuit_breaker_cooldown_seconds,
        )

        # Outstanding mailbox read; survives reconnects so no request is lost.
        self._request_task: asyncio.Task[ProviderRequest] | None = None
        self._liquidity_tasks: dict[asyncio.Task[None], asyncio.Future[Any]] = {}
        self._connected = False
        self._terminated = False

    # =========================================================================
    # Public API
    # =========================================================================

    def get_handle(self) -> PoolInfoProviderHandle:
        return PoolInfoProviderHandle(self._mailbox)

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def is_terminated(self) -> bool:
        return self._terminated

    def close(self) -> None:
        """Stop serving. run() returns once the loop notices."""
        self._mailbox.close()

    async def run(self) -> None:
        """
        Serve until closed or a fatal error.

        Raises ProtocolError subclasses on protocol violations and
        ConnectionLostError on transport failure when reconnect is disabled.
        """
        if self._owns_rpc:
            await self._rpc.initialize()
        try:
            await self._connection_loop()
        except ProviderClosedError:
            logger.info("Pool info provider closed")
        except Exception as e:
            logger.error(f"Pool info provider terminated: {e}", exc_info=not hasattr(e, "error_code"))
            raise
        finally:
            self._terminate()
            if self._owns_rpc:
                await self._rpc.close()

    # =========================================================================
    # Connection handling
    # =========================================================================

    async def _connection_loop(self) -> None:
        attempt = 0
        url = self._settings.ws_url
        while True:
            if self._mailbox.closed:
                raise ProviderClosedError("Pool info provider closed")

            cooldown = self._breaker.cooldown_remaining()
            if cooldown > 0:
                await self._serve_offline(timeout=cooldown)
                continue

            try:
                async with contextlib.AsyncExitStack() as stack:
                    connecting = stack.enter_async_context(
                        self._connect(
                            url,
                            ping_interval=self._settings.ping_interval,
                            ping_timeout=self._settings.ping_timeout,
                        )
                    )
                    ws = await self._serve_offline(until=connecting)
                    self._connected = True
                    self._breaker.record_success()
                    attempt = 0
                    logger.info(f"{LOG_TAG_HEALTH} Connected to node websocket {url}")
                    await self._serve(ws)
            except _TRANSPORT_ERRORS as e:
                if not self._settings.reconnect_enabled:
                    raise ConnectionLostError(f"Node websocket failed: {e}", details={"url": url}) from e
                self._breaker.record_failure()
                delay = reconnect_delay(
                    attempt,
                    self._settings.reconnect_delay_initial,
                    self._settings.reconnect_delay_max,
                    self._settings.reconnect_jitter_factor,
                )
                logger.warning(
                    f"{LOG_TAG_HEALTH} Node websocket lost ({e!r}); reconnecting in {delay:.1f}s (attempt {attempt + 1})"
                )
                record_reconnect()
                attempt += 1
                await self._serve_offline(timeout=delay)
            finally:
                self._connected = False
                update_active_subscriptions(self._registry.subscription_count)

    def _next_request(self) -> asyncio.Task[ProviderRequest]:
        if self._request_task is None:
            self._request_task = asyncio.ensure_future(self._mailbox.get())
        return self._request_task

    async def _serve_offline(self, until: Awaitable[T] | None = None, timeout: float | None = None) -> T | None:
        """
        Serve the mailbox without a socket until ``until`` completes or ``timeout`` passes.

        Returns the result of ``until`` (None on timeout). Subscribes made
        here only register the pair; the frame goes out on the next connect.
        """
        work = asyncio.ensure_future(until) if until is not None else None
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        try:
            while True:
                waiting: set[asyncio.Future[Any]] = {self._next_request()}
                if work is not None:
                    waiting.add(work)
                remaining = None if deadline is None else max(0.0, deadline - loop.time())

                done, _ = await asyncio.wait(waiting, timeout=remaining, return_when=asyncio.FIRST_COMPLETED)

                if work is not None and work in done:
                    return work.result()
                if self._request_task in done:
                    request_task, self._request_task = self._request_task, None
                    await self._handle_request(None, request_task.result())
                    continue
                return None
        finally:
            if work is not None and not work.done():
                work.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await work

    async def _serve(self, ws: Any) -> None:
        """Select loop over one live connection."""
        for request_id, pair in self._registry.reset_for_reconnect():
            logger.info(f"Subscribing {pair} (request {request_id})")
            await ws.send(json_dumps(subscribe_request(request_id, pair)))
        update_active_subscriptions(0)

        recv_task: asyncio.Task[Any] = asyncio.ensure_future(ws.recv())
        try:
            while True:
                request_task = self._next_request()
                done, _ = await asyncio.wait(
                    {recv_task, request_task},
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if recv_task in done:
                    raw = recv_task.result()
                    recv_task = asyncio.ensure_future(ws.recv())
                    if isinstance(raw, bytes):
                        # The node speaks text frames only
                        record_frame("binary")
                        logger.debug(f"Skipping binary websocket frame ({len(raw)} bytes)")
                        continue
                    self._handle_frame(raw)
                    continue

                self._request_task = None
                await self._handle_request(ws, request_task.result())
        finally:
            if not recv_task.done():
                recv_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await recv_task

    # =========================================================================
    # Inbound frames
    # =========================================================================

    def _handle_frame(self, raw: str) -> None:
        try:
            frame = decode_frame(raw)
        except UnknownFrameError:
            record_frame("unknown")
            raise
        record_frame(frame.kind)

        if isinstance(frame, PoolPriceFrame):
            pair = self._registry.resolve(frame.subscription_id)
            update = frame.to_update(pair)
            self._registry.publish(update)
            record_price_update(str(pair))
            logger.debug(f"{LOG_TAG_PRICE} {pair} tick={update.tick} price={update.price}")

        elif isinstance(frame, SubscribeAckFrame):
            pair = self._registry.acknowledge(frame.id, frame.result)
            update_active_subscriptions(self._registry.subscription_count)
            logger.info(f"Subscribed {pair} as {frame.result}", extra={"pair": str(pair)})

        elif isinstance(frame, RpcErrorFrame):
            pair = self._registry.reject(frame.id)
            logger.error(
                f"Node rejected request {frame.id} ({pair or 'unknown pair'}): "
                f"{frame.error.message} (code {frame.error.code})",
                extra={"pair": str(pair) if pair else None, "request_id": frame.id},
            )

    # =========================================================================
    # Mailbox requests
    # =========================================================================

    async def _handle_request(self, ws: Any | None, request: ProviderRequest) -> None:
        if isinstance(request, SubscribePoolPrice):
            request_id = self._registry.register(request.pair)
            if request_id is None:
                logger.debug(f"Already subscribed to {request.pair}")
                return
            if ws is None:
                logger.info(f"Registered {request.pair}; subscribing once connected")
                return
            logger.info(f"Subscribing {request.pair} (request {request_id})")
            await ws.send(json_dumps(subscribe_request(request_id, request.pair)))

        elif isinstance(request, GetLatestPoolPrice):
            resolve_reply(request.reply, self._registry.latest(request.pair))

        elif isinstance(request, GetPriceStream):
            resolve_reply(request.reply, self._registry.stream(request.pair))

        elif isinstance(request, GetLiquidity):
            task = asyncio.create_task(self._fetch_liquidity(request), name=f"liquidity:{request.pair}")
            self._liquidity_tasks[task] = request.reply
            task.add_done_callback(lambda t: self._liquidity_tasks.pop(t, None))

    async def _fetch_liquidity(self, request: GetLiquidity) -> None:
        """Runs beside the loop; the outcome (value or error) goes to the caller's future."""
        try:
            with track_liquidity_fetch(str(request.pair)) as ctx:
                snapshot = await self._rpc.pool_liquidity(request.pair)
                ctx["outcome"] = "ok" if snapshot is not None else "empty"
        except Exception as e:
            fail_reply(request.reply, e)
            return
        resolve_reply(request.reply, snapshot)

    # =========================================================================
    # Shutdown
    # =========================================================================

    def _terminate(self) -> None:
        self._terminated = True
        self._connected = False

        request_task, self._request_task = self._request_task, None
        if request_task is not None:
            if not request_task.done():
                request_task.cancel()
            elif not request_task.cancelled() and request_task.exception() is None:
                fail_request(request_task.result(), ProviderClosedError("Pool info provider terminated"))

        self._mailbox.close()

        for task, reply in list(self._liquidity_tasks.items()):
            task.cancel()
            fail_reply(reply, ProviderClosedError("Pool info provider terminated"))
        self._liquidity_tasks.clear()

        self._registry.close_all()
        update_active_subscriptions(0)
