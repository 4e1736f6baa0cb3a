"""Node adapter: websocket provider, handle, JSON-RPC codec and HTTP client."""

from pool_orderbook.adapters.node.handle import Mailbox, PoolInfoProviderHandle
from pool_orderbook.adapters.node.provider import PoolInfoProvider
from pool_orderbook.adapters.node.registry import SubscriptionRegistry
from pool_orderbook.adapters.node.rpc import NodeRpcClient

__all__ = [
    "PoolInfoProvider",
    "PoolInfoProviderHandle",
    "Mailbox",
    "SubscriptionRegistry",
    "NodeRpcClient",
]
