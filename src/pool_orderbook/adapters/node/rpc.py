"""
Unary JSON-RPC client for the node's HTTP endpoint.

Each call is a single POST; there are no retries here. aiohttp failures map
to TransportError, undecodable bodies to ProtocolError.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from pool_orderbook.adapters.node.protocol import liquidity_request, parse_liquidity_response
from pool_orderbook.config.settings import NodeSettings
from pool_orderbook.domain.errors import ProtocolError, TransportError
from pool_orderbook.domain.models import AssetPair, LiquiditySnapshot
from pool_orderbook.utils.json_parser import dumps as json_dumps
from pool_orderbook.utils.json_parser import loads as json_loads

logger = logging.getLogger(__name__)


class NodeRpcClient:
    """POSTs JSON-RPC requests to ``node.http_url``."""

    def __init__(self, settings: NodeSettings, session: aiohttp.ClientSession | None = None):
        self._settings = settings
        self._session = session
        self._owns_session = session is None

    @property
    def url(self) -> str:
        return self._settings.http_url

    async def initialize(self) -> None:
        if self._session is not None:
            return
        timeout = aiohttp.ClientTimeout(total=self._settings.http_timeout_seconds or None)
        self._session = aiohttp.ClientSession(
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )
        self._owns_session = True
        logger.debug(f"Node RPC session opened for {self.url}")

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def call(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Send one request body and return the decoded response object."""
        if self._session is None:
            raise TransportError("Node RPC session not initialized")

        method = payload.get("method")
        try:
            async with self._session.post(self.url, data=json_dumps(payload)) as resp:
                body = await resp.text()
                if resp.status >= 400:
                    raise TransportError(
                        f"Node HTTP {resp.status} for {method}",
                        details={"status": resp.status, "response": body[:500]},
                    )
        except aiohttp.ClientError as e:
            raise TransportError(f"Connection error calling {method}: {e}") from e
        except asyncio.TimeoutError as e:
            raise TransportError(f"Timeout calling {method}") from e

        try:
            data = json_loads(body)
        except ValueError as e:
            raise ProtocolError(f"Undecodable {method} response: {e}", details={"response": body[:500]}) from e

        if not isinstance(data, dict):
            raise ProtocolError(f"{method} response is not a JSON object", details={"response": body[:500]})
        return data

    async def pool_liquidity(self, pair: AssetPair) -> LiquiditySnapshot | None:
        """``cf_pool_liquidity`` for ``pair``; None when the node has no such pool."""
        payload = await self.call(liquidity_request(pair))
        return parse_liquidity_response(payload, pair)
