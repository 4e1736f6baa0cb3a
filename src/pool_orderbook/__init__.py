"""
Live order books for DEX liquidity pools.

Follows pool prices over a node websocket, fetches pool liquidity over
JSON-RPC and rebuilds per-pair order books on a timer or on price change.
"""

__version__ = "0.1.0"
