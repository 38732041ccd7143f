"""In-process fan-out of row change events.

Change events arrive from the database webhook relay (``webhooks.server``) and
are routed to every :class:`Subscription` whose scope matches the event's table
and the value of its filter column.
"""

from __future__ import annotations

import asyncio
from typing import Any, List, Optional

from ..core.models import ChangeEvent
from ..utils.logger import get_logger

logger = get_logger(__name__)

_CLOSED = object()


class Subscription:
    """Async stream of change events for one ``(table, column = value)`` scope."""

    def __init__(self, hub: "RealtimeHub", table: str, column: str, value: Any):
        self.hub = hub
        self.table = table
        self.column = column
        self.value = value
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def __repr__(self) -> str:
        return f"Subscription({self.table}, {self.column}=eq.{self.value})"

    def matches(self, event: ChangeEvent) -> bool:
        if self.closed or event.table != self.table:
            return False
        return event.row.get(self.column) == self.value

    def deliver(self, event: ChangeEvent) -> None:
        self._queue.put_nowait(event)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChangeEvent:
        if self.closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._queue.task_done()
            raise StopAsyncIteration
        return item

    def task_done(self) -> None:
        """Mark the last event returned by the iterator as processed."""
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every delivered event has been processed."""
        await self._queue.join()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.hub._remove(self)
        self._queue.put_nowait(_CLOSED)


class RealtimeHub:
    def __init__(self):
        self._subscriptions: List[Subscription] = []

    @property
    def subscriptions(self) -> List[Subscription]:
        return list(self._subscriptions)

    def subscribe(self, table: str, column: str, value: Any) -> Subscription:
        subscription = Subscription(self, table, column, value)
        self._subscriptions.append(subscription)
        logger.debug(f"Subscribed {subscription}")
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
            logger.debug(f"Unsubscribed {subscription}")

    def publish(self, event: ChangeEvent) -> int:
        """Deliver ``event`` to matching subscriptions; returns how many."""
        delivered = 0
        for subscription in list(self._subscriptions):
            if subscription.matches(event):
                subscription.deliver(event)
                delivered += 1
        logger.debug(f"Change {event.type.value} on {event.table} id={event.row_id} -> {delivered} subscriber(s)")
        return delivered

    def close(self, table: Optional[str] = None) -> None:
        for subscription in list(self._subscriptions):
            if table is None or subscription.table == table:
                subscription.close()
