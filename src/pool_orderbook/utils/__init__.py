"""Shared utility helpers."""

from pool_orderbook.utils.hexint import parse_hex_u256
from pool_orderbook.utils.json_parser import dumps as json_dumps
from pool_orderbook.utils.json_parser import loads as json_loads

__all__ = ["parse_hex_u256", "json_loads", "json_dumps"]
