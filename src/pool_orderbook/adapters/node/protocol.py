"""
Node JSON-RPC wire codec.

Inbound websocket frames carry no discriminator, so decoding tries each known
shape in a fixed order: pool price push, subscribe acknowledgement, JSON-RPC
error. The first shape that validates wins; nothing matching is an error.
"""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from pool_orderbook.domain.errors import ProtocolError, RpcError, UnknownFrameError
from pool_orderbook.domain.models import (
    AssetPair,
    LiquiditySnapshot,
    PriceUpdate,
    RawLimitOrder,
    RawRangeOrder,
)
from pool_orderbook.utils.json_parser import loads as json_loads

JSONRPC_VERSION = "2.0"
SUBSCRIBE_POOL_PRICE = "cf_subscribe_pool_price"
POOL_LIQUIDITY = "cf_pool_liquidity"
# The unary endpoint answers one request per HTTP call; a constant id is enough.
LIQUIDITY_REQUEST_ID = "1"


# =============================================================================
# Websocket frames
# =============================================================================


class PoolPriceResult(BaseModel):
    price: str
    sqrt_price: str
    tick: int


class PoolPriceParams(BaseModel):
    subscription: str
    result: PoolPriceResult


class PoolPriceFrame(BaseModel):
    """Push update for an active subscription."""

    kind: ClassVar[str] = "price"

    jsonrpc: str
    method: str
    params: PoolPriceParams

    @property
    def subscription_id(self) -> str:
        return self.params.subscription

    def to_update(self, pair: AssetPair) -> PriceUpdate:
        result = self.params.result
        return PriceUpdate(pair=pair, price=result.price, sqrt_price=result.sqrt_price, tick=result.tick)


class SubscribeAckFrame(BaseModel):
    """Acknowledgement naming the subscription id assigned to a request."""

    kind: ClassVar[str] = "ack"

    jsonrpc: str
    id: str
    result: str


class RpcErrorBody(BaseModel):
    code: int
    message: str
    data: Any = None


class RpcErrorFrame(BaseModel):
    """JSON-RPC error response. ``id`` is null when the node could not parse the request."""

    kind: ClassVar[str] = "rpc_error"

    jsonrpc: str
    id: str | None = None
    error: RpcErrorBody


InboundFrame = PoolPriceFrame | SubscribeAckFrame | RpcErrorFrame

_FRAME_PRIORITY: tuple[type[BaseModel], ...] = (PoolPriceFrame, SubscribeAckFrame, RpcErrorFrame)


def decode_frame(raw: str | bytes) -> InboundFrame:
    """Decode one websocket frame. Raises UnknownFrameError when nothing matches."""
    try:
        data = json_loads(raw)
    except ValueError as e:
        raise UnknownFrameError(f"Frame is not valid JSON: {e}", details={"frame": _preview(raw)}) from e

    if not isinstance(data, dict):
        raise UnknownFrameError("Frame is not a JSON object", details={"frame": _preview(raw)})

    for model in _FRAME_PRIORITY:
        try:
            return model.model_validate(data)  # type: ignore[return-value]
        except PydanticValidationError:
            continue

    raise UnknownFrameError("Frame matches no known shape", details={"frame": _preview(raw)})


def _preview(raw: str | bytes, limit: int = 200) -> str:
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes | bytearray) else str(raw)
    return text if len(text) <= limit else text[:limit] + "..."


# =============================================================================
# Requests
# =============================================================================


def subscribe_request(request_id: str, pair: AssetPair) -> dict[str, Any]:
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "method": SUBSCRIBE_POOL_PRICE,
        "params": {"from_asset": pair.base, "to_asset": pair.quote},
    }


def liquidity_request(pair: AssetPair) -> dict[str, Any]:
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": LIQUIDITY_REQUEST_ID,
        "method": POOL_LIQUIDITY,
        "params": {"base_asset": pair.base, "quote_asset": pair.quote},
    }


# =============================================================================
# Liquidity response
# =============================================================================


class _LimitOrderEntry(BaseModel):
    tick: int
    amount: str


class _RangeOrderEntry(BaseModel):
    tick: int
    liquidity: str


class _LimitOrders(BaseModel):
    bids: list[_LimitOrderEntry]
    asks: list[_LimitOrderEntry]


class LiquidityResult(BaseModel):
    limit_orders: _LimitOrders
    range_orders: list[_RangeOrderEntry]

    def to_snapshot(self) -> LiquiditySnapshot:
        return LiquiditySnapshot(
            bids=tuple(RawLimitOrder(tick=o.tick, amount=o.amount) for o in self.limit_orders.bids),
            asks=tuple(RawLimitOrder(tick=o.tick, amount=o.amount) for o in self.limit_orders.asks),
            range_orders=tuple(RawRangeOrder(tick=r.tick, liquidity=r.liquidity) for r in self.range_orders),
        )


def parse_liquidity_response(payload: dict[str, Any], pair: AssetPair) -> LiquiditySnapshot | None:
    """
    Map a ``cf_pool_liquidity`` response body to a snapshot.

    Returns None when the node answered with a null result (no such pool).
    Raises RpcError for an error response and ProtocolError for any other shape.
    """
    error = payload.get("error")
    if error is not None:
        message = error.get("message", "unknown error") if isinstance(error, dict) else str(error)
        code = error.get("code") if isinstance(error, dict) else None
        raise RpcError(f"{POOL_LIQUIDITY} failed: {message}", code=code, pair=str(pair))

    if "result" not in payload:
        raise ProtocolError(f"{POOL_LIQUIDITY} response has no result", pair=str(pair))

    result = payload["result"]
    if result is None:
        return None

    try:
        return LiquidityResult.model_validate(result).to_snapshot()
    except PydanticValidationError as e:
        raise ProtocolError(
            f"Malformed {POOL_LIQUIDITY} result: {e.error_count()} validation errors",
            pair=str(pair),
        ) from e
