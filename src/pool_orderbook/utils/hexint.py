"""
Hex string helpers.

The node encodes amounts, liquidity and sqrt prices as hex strings of
256-bit unsigned integers (e.g. ``"0xC0FFEE"``).
"""

from __future__ import annotations

import re

from pool_orderbook.domain.errors import HexParseError

U256_MAX = (1 << 256) - 1

_HEX_RE = re.compile(r"(?:0[xX])?([0-9a-fA-F]+)")


def parse_hex_u256(value: str) -> int:
    """Convert a hex string, with or without ``0x``, into an int.

    Raises HexParseError for anything that is not a 256-bit unsigned integer.
    """
    if not isinstance(value, str):
        raise HexParseError(f"Expected hex string, got {type(value).__name__}")

    match = _HEX_RE.fullmatch(value)
    if match is None:
        raise HexParseError(f"Malformed hex string: {value!r}")

    result = int(match.group(1), 16)
    if result > U256_MAX:
        raise HexParseError(f"Hex value exceeds 256 bits: {value!r}")
    return result
