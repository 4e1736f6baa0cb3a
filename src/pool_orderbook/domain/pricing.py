"""
Tick to price conversion.

price = 1.0001 ** tick / 10 ** (decimals(quote) - decimals(base))
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from pool_orderbook.domain.errors import UnknownAssetError
from pool_orderbook.domain.models import AssetPair

TICK_BASE = 1.0001

AssetDecimals = Mapping[str, int]


def freeze_decimals(decimals: Mapping[str, int]) -> AssetDecimals:
    """Read-only copy of a symbol -> decimals table."""
    return MappingProxyType({str(k).upper(): int(v) for k, v in decimals.items()})


def asset_decimals(decimals: AssetDecimals, symbol: str) -> int:
    try:
        return decimals[symbol]
    except KeyError:
        raise UnknownAssetError(f"No decimals configured for asset {symbol}") from None


def tick_to_price(tick: int, pair: AssetPair, decimals: AssetDecimals) -> float:
    """Convert a tick into a floating point price of base in quote units."""
    base_decimals = asset_decimals(decimals, pair.base)
    quote_decimals = asset_decimals(decimals, pair.quote)
    return TICK_BASE**tick / 10.0 ** (quote_decimals - base_decimals)
