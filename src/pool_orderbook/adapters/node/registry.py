"""
Subscription bookkeeping for the pool info provider.

Owned by the provider loop and mutated nowhere else, so nothing here locks.

Three maps:
- pending request id -> pair (subscribe sent, no acknowledgement yet)
- subscription id -> pair (acknowledged)
- pair -> watch channel carrying the latest PriceUpdate (None until the first push)
"""

from __future__ import annotations

import random

from pool_orderbook.domain.errors import UnknownRequestError, UnknownSubscriptionError
from pool_orderbook.domain.models import AssetPair, PriceUpdate
from pool_orderbook.utils.channels import WatchReceiver, WatchSender

_I32_MIN = -(2**31)
_I32_MAX = 2**31 - 1


class SubscriptionRegistry:
    """Pair, request id and subscription id mappings plus per-pair price state."""

    def __init__(self, rng: random.Random | None = None):
        self._rng = rng or random.Random()
        self._pending: dict[str, AssetPair] = {}
        self._subscriptions: dict[str, AssetPair] = {}
        self._channels: dict[AssetPair, WatchSender[PriceUpdate | None]] = {}

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def is_registered(self, pair: AssetPair) -> bool:
        return pair in self._channels

    @property
    def pairs(self) -> list[AssetPair]:
        return list(self._channels)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    def latest(self, pair: AssetPair) -> PriceUpdate | None:
        channel = self._channels.get(pair)
        return channel.borrow() if channel is not None else None

    def stream(self, pair: AssetPair) -> WatchReceiver[PriceUpdate | None] | None:
        channel = self._channels.get(pair)
        return channel.subscribe() if channel is not None else None

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def register(self, pair: AssetPair) -> str | None:
        """
        Start tracking ``pair``.

        Returns the request id to put on the subscribe frame, or None when the
        pair is already registered (duplicate subscribe is a no-op).
        """
        if pair in self._channels:
            return None
        self._channels[pair] = WatchSender(None)
        return self._add_pending(pair)

    def acknowledge(self, request_id: str, subscription_id: str) -> AssetPair:
        """Bind ``subscription_id`` to the pair that ``request_id`` was sent for."""
        pair = self._pending.pop(request_id, None)
        if pair is None:
            raise UnknownRequestError(
                f"Acknowledgement for unknown request id {request_id}",
                details={"request_id": request_id, "subscription_id": subscription_id},
            )
        self._subscriptions[subscription_id] = pair
        return pair

    def reject(self, request_id: str | None) -> AssetPair | None:
        """Drop a pending request the node refused. The pair stays registered without data."""
        if request_id is None:
            return None
        return self._pending.pop(request_id, None)

    def resolve(self, subscription_id: str) -> AssetPair:
        pair = self._subscriptions.get(subscription_id)
        if pair is None:
            raise UnknownSubscriptionError(
                f"Price update for unknown subscription {subscription_id}",
                details={"subscription_id": subscription_id},
            )
        return pair

    def publish(self, update: PriceUpdate) -> None:
        self._channels[update.pair].send(update)

    def reset_for_reconnect(self) -> list[tuple[str, AssetPair]]:
        """
        Forget every request and subscription id from the previous connection.

        Each registered pair gets a fresh pending request id; the caller sends
        one subscribe frame per returned entry. Price channels are kept so
        existing readers carry on across the reconnect.
        """
        self._pending.clear()
        self._subscriptions.clear()
        return [(self._add_pending(pair), pair) for pair in self._channels]

    def close_all(self) -> None:
        """Close every price channel; readers see ChannelClosedError after the last value."""
        for channel in self._channels.values():
            channel.close()

    def _add_pending(self, pair: AssetPair) -> str:
        request_id = self.new_request_id()
        self._pending[request_id] = pair
        return request_id

    def new_request_id(self) -> str:
        """Random signed 32-bit id, unique among pending requests."""
        while True:
            request_id = str(self._rng.randint(_I32_MIN, _I32_MAX))
            if request_id not in self._pending:
                return request_id
