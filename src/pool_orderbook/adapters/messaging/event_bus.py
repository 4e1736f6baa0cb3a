"""
In-memory event bus.

Fans order books, price changes and alerts out to any number of async
handlers. A handler may follow one pair only (``pair=...``); events that
carry no pair (alerts) reach every handler of their type.

Handler failures are logged and never reach the publisher.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from pool_orderbook.domain.events import DomainEvent
from pool_orderbook.domain.models import AssetPair
from pool_orderbook.observability.logging import get_logger
from pool_orderbook.ports.event_bus import EventBusPort

logger = get_logger(__name__)

T = TypeVar("T", bound=DomainEvent)

Handler = Callable[[DomainEvent], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class _Subscription:
    handler: Handler
    pair: AssetPair | None

    def wants(self, event: DomainEvent) -> bool:
        if self.pair is None:
            return True
        event_pair = getattr(event, "pair", None)
        return event_pair is None or event_pair == self.pair


# Queued after the last event on stop(); the processor exits when it sees it.
_STOP = object()


class InMemoryEventBus(EventBusPort):
    """
    Async pub/sub keyed by event type.

    Before start() events are dispatched inline. Once started they go
    through a queue, handled one event at a time in publish order; the
    handlers of a single event run concurrently. stop() lets everything
    already published finish.
    """

    def __init__(self):
        self._subscriptions: dict[type[DomainEvent], list[_Subscription]] = defaultdict(list)
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._processor_task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._processor_task is not None

    async def start(self) -> None:
        if self._processor_task is not None:
            return
        self._processor_task = asyncio.create_task(self._process_events(), name="event_bus_processor")
        logger.debug("Event bus started")

    async def stop(self) -> None:
        """Dispatch whatever is still queued, then stop the processor."""
        task, self._processor_task = self._processor_task, None
        if task is None:
            return
        self._queue.put_nowait(_STOP)
        await task
        logger.debug("Event bus stopped")

    def subscribe(
        self,
        event_type: type[T],
        handler: Callable[[T], Awaitable[None]],
        *,
        pair: AssetPair | None = None,
    ) -> None:
        subscriptions = self._subscriptions[event_type]
        entry = _Subscription(handler, pair)  # type: ignore[arg-type]
        if entry not in subscriptions:
            subscriptions.append(entry)
        logger.debug(f"Subscribed {getattr(handler, '__name__', handler)} to {event_type.__name__} ({pair or 'all pairs'})")

    def unsubscribe(
        self,
        event_type: type[T],
        handler: Callable[[T], Awaitable[None]],
    ) -> None:
        """Remove ``handler`` from ``event_type`` for every pair it followed."""
        self._subscriptions[event_type] = [s for s in self._subscriptions[event_type] if s.handler != handler]

    async def publish(self, event: DomainEvent) -> None:
        if self._processor_task is None:
            await self._dispatch(event)
        else:
            self._queue.put_nowait(event)

    def subscriber_count(self, event_type: type[DomainEvent], pair: AssetPair | None = None) -> int:
        subscriptions = self._subscriptions.get(event_type, [])
        if pair is None:
            return len(subscriptions)
        return sum(1 for s in subscriptions if s.pair in (None, pair))

    async def _process_events(self) -> None:
        while True:
            event = await self._queue.get()
            if event is _STOP:
                return
            await self._dispatch(event)  # type: ignore[arg-type]

    async def _dispatch(self, event: DomainEvent) -> None:
        targets = [s.handler for s in self._subscriptions.get(type(event), []) if s.wants(event)]
        if not targets:
            return
        async with asyncio.TaskGroup() as tg:
            for handler in targets:
                tg.create_task(self._call_isolated(handler, event))

    async def _call_isolated(self, handler: Handler, event: DomainEvent) -> None:
        try:
            await handler(event)
        except Exception as e:
            name = getattr(handler, "__name__", repr(handler))
            logger.exception(f"Handler {name} failed for {event.event_type}: {e}")
