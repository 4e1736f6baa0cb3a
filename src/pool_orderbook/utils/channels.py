"""
Async channel primitives.

Two shapes are used between tasks:

- Watch channel: single writer, many readers, only the most recent value is
  kept. Slow readers skip intermediate values (last value wins).
- Unbounded channel: single consumer FIFO. Sending after the consumer has
  closed its end raises ConsumerGoneError so producers can stop.

All of this is single event loop; nothing here is thread-safe.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Generic, TypeVar

from pool_orderbook.domain.errors import ChannelClosedError, ConsumerGoneError

T = TypeVar("T")


# =============================================================================
# Watch channel
# =============================================================================


class WatchSender(Generic[T]):
    """Writing end of a watch channel."""

    def __init__(self, initial: T):
        self._value = initial
        self._version = 0
        self._closed = False
        self._changed = asyncio.Event()

    @property
    def version(self) -> int:
        return self._version

    @property
    def is_closed(self) -> bool:
        return self._closed

    def send(self, value: T) -> None:
        """Replace the current value and wake every waiting reader."""
        if self._closed:
            raise ChannelClosedError("send on closed watch channel")
        self._value = value
        self._version += 1
        self._notify()

    def borrow(self) -> T:
        return self._value

    def subscribe(self) -> WatchReceiver[T]:
        """New reader that treats every value sent so far as unseen."""
        return WatchReceiver(self)

    def close(self) -> None:
        """Close the channel; readers drain the last value then get ChannelClosedError."""
        if self._closed:
            return
        self._closed = True
        self._notify()

    def _notify(self) -> None:
        event = self._changed
        self._changed = asyncio.Event()
        event.set()


class WatchReceiver(Generic[T]):
    """Reading end of a watch channel. Cheap; create one per reader."""

    def __init__(self, sender: WatchSender[T], seen_version: int = 0):
        self._sender = sender
        self._seen = seen_version

    def has_changed(self) -> bool:
        return self._sender.version != self._seen

    def borrow(self) -> T:
        """Current value without marking it seen."""
        return self._sender.borrow()

    def borrow_and_update(self) -> T:
        """Current value, marking it seen."""
        self._seen = self._sender.version
        return self._sender.borrow()

    async def changed(self) -> None:
        """Wait until a value newer than the last seen one is available.

        Cancelling the wait does not consume anything.
        """
        while True:
            if self._sender.version != self._seen:
                return
            if self._sender.is_closed:
                raise ChannelClosedError("watch channel closed")
            await self._sender._changed.wait()


def watch_channel(initial: T) -> tuple[WatchSender[T], WatchReceiver[T]]:
    sender = WatchSender(initial)
    return sender, sender.subscribe()


# =============================================================================
# Unbounded channel
# =============================================================================


class _ChannelState(Generic[T]):
    def __init__(self) -> None:
        self.queue: asyncio.Queue[T] = asyncio.Queue()
        self.sender_closed = False
        self.receiver_closed = False
        self.wakeup = asyncio.Event()


class UnboundedSender(Generic[T]):
    """Producing end of an unbounded channel."""

    def __init__(self, state: _ChannelState[T]):
        self._state = state

    @property
    def is_closed(self) -> bool:
        """True once the receiver is gone."""
        return self._state.receiver_closed

    def send(self, item: T) -> None:
        if self._state.receiver_closed:
            raise ConsumerGoneError("receiver closed")
        if self._state.sender_closed:
            raise ChannelClosedError("send on closed channel")
        self._state.queue.put_nowait(item)
        self._state.wakeup.set()

    def close(self) -> None:
        self._state.sender_closed = True
        self._state.wakeup.set()


class UnboundedReceiver(Generic[T]):
    """Consuming end of an unbounded channel."""

    def __init__(self, state: _ChannelState[T]):
        self._state = state

    def __len__(self) -> int:
        return self._state.queue.qsize()

    async def recv(self) -> T | None:
        """Next item, or None once the sender is closed and the queue drained."""
        state = self._state
        while True:
            if not state.queue.empty():
                return state.queue.get_nowait()
            if state.sender_closed or state.receiver_closed:
                return None
            state.wakeup.clear()
            await state.wakeup.wait()

    def close(self) -> None:
        """Stop receiving; further sends raise ConsumerGoneError."""
        self._state.receiver_closed = True
        self._state.wakeup.set()

    def __aiter__(self) -> AsyncIterator[T]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[T]:
        while True:
            item = await self.recv()
            if item is None:
                return
            yield item


def unbounded_channel() -> tuple[UnboundedSender[T], UnboundedReceiver[T]]:
    state: _ChannelState[T] = _ChannelState()
    return UnboundedSender(state), UnboundedReceiver(state)
