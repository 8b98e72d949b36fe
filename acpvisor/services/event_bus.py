"""Fan-out of session events to UI consumers.

Producers call ``emit`` synchronously from protocol callbacks; it never
blocks. Each consumer gets its own bounded queue from ``subscribe``; when a
slow consumer's queue is full its oldest event is dropped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from acpvisor.models.events import UiEvent

logger = logging.getLogger(__name__)

Listener = Callable[[UiEvent], None]


class EventBus:
    """Broadcasts UiEvents to listeners and subscriber queues."""

    def __init__(self, maxsize: int = 1000) -> None:
        self._maxsize = maxsize
        self._queues: set[asyncio.Queue[UiEvent]] = set()
        self._listeners: list[Listener] = []

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def subscribe(self) -> asyncio.Queue[UiEvent]:
        queue: asyncio.Queue[UiEvent] = asyncio.Queue(maxsize=self._maxsize)
        self._queues.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[UiEvent]) -> None:
        self._queues.discard(queue)

    def emit(self, event: UiEvent) -> None:
        logger.debug("event %s [%s]: %.80s", event.type.value, event.session_id, event.content)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener failed for %s", event.type.value)
        for queue in list(self._queues):
            if queue.full():
                try:
                    queue.get_nowait()
                    logger.warning("Event queue full, dropped oldest event")
                except asyncio.QueueEmpty:
                    pass
            queue.put_nowait(event)
