"""Asyncio pub/sub event bus for execution lifecycle events.

Automatons publish order lifecycle events; subscribers (server state, scripts)
observe them. Handler failures are logged and never reach the publisher.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Callable, Coroutine

from bids_matrix.core.types import EventType
from bids_matrix.core.data_types import Event

logger = logging.getLogger(__name__)

EventCallback = Callable[[Event], Coroutine[Any, Any, None] | None]


class EventBus:
    """Per-type subscriber lists with direct async delivery and a sync path."""

    def __init__(self) -> None:
        self._subscribers: dict[EventType, list[EventCallback]] = defaultdict(list)
        self._sync_subscribers: dict[EventType, list[Callable[[Event], None]]] = defaultdict(list)
        self._history: list[Event] = []
        self._history_limit = 1000

    @property
    def history(self) -> list[Event]:
        return list(self._history)

    def subscribe(self, event_type: EventType, callback: EventCallback) -> None:
        """Register a callback (sync or async) for an event type."""
        self._subscribers[event_type].append(callback)

    def subscribe_sync(self, event_type: EventType, callback: Callable[[Event], None]) -> None:
        """Register a synchronous callback."""
        self._sync_subscribers[event_type].append(callback)

    async def publish(self, event: Event) -> None:
        """Deliver to async subscribers, then sync subscribers."""
        self._remember(event)
        for callback in self._subscribers.get(event.type, []):
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Error in event handler for %s", event.type.value)
        self._deliver_sync(event)

    def publish_sync(self, event: Event) -> None:
        """Publish from non-async contexts. Only sync subscribers are called."""
        self._remember(event)
        self._deliver_sync(event)

    def _remember(self, event: Event) -> None:
        self._history.append(event)
        if len(self._history) > self._history_limit:
            del self._history[: len(self._history) - self._history_limit]

    def _deliver_sync(self, event: Event) -> None:
        for callback in self._sync_subscribers.get(event.type, []):
            try:
                callback(event)
            except Exception:
                logger.exception("Error in sync event handler for %s", event.type.value)
