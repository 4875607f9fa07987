# metratec_rfid/core/events.py

"""
Notification delivery for status, input and inventory events.

Each event kind owns an asyncio.Queue drained by its own worker task, so a
slow subscriber never blocks the dispatcher's reader task, and events of one
kind are delivered in the order they were published. No ordering is
guaranteed across kinds.
"""

import asyncio
import datetime
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Coroutine, Dict, List, Optional, Union

from metratec_rfid.core.status import ReaderStatus
from metratec_rfid.core.tags import Tag

logger = logging.getLogger(__name__)


class EventKind(Enum):
    STATUS = auto()
    INPUT = auto()
    INVENTORY = auto()

    def __str__(self):
        return self.name


def _now() -> datetime.datetime:
    return datetime.datetime.now()


@dataclass
class StatusEvent:
    status: ReaderStatus
    message: str = ""
    timestamp: datetime.datetime = field(default_factory=_now)
    error: Optional[Exception] = None


@dataclass
class InputEvent:
    pin: int
    is_high: bool
    timestamp: datetime.datetime = field(default_factory=_now)


@dataclass
class InventoryEvent:
    tags: List[Tag]
    timestamp: datetime.datetime = field(default_factory=_now)
    continuous: bool = True


Event = Union[StatusEvent, InputEvent, InventoryEvent]

# Subscribers may be plain callables or coroutine functions
EventCallback = Callable[[Any], Union[None, Coroutine[Any, Any, None]]]


class EventBus:
    """Fan-out of reader events to subscribers, one worker task per event kind."""

    def __init__(self):
        self._subscribers: Dict[EventKind, List[EventCallback]] = defaultdict(list)
        self._queues: Dict[EventKind, asyncio.Queue] = {}
        self._workers: Dict[EventKind, asyncio.Task] = {}

    def subscribe(self, kind: EventKind, callback: EventCallback) -> None:
        if not callable(callback):
            raise TypeError("Callback must be callable")
        if callback in self._subscribers[kind]:
            logger.warning(f"Callback {getattr(callback, '__name__', repr(callback))} already subscribed to {kind}")
            return
        self._subscribers[kind].append(callback)
        logger.debug(f"Subscribed {getattr(callback, '__name__', repr(callback))} to {kind} events")

    def unsubscribe(self, kind: EventKind, callback: EventCallback) -> None:
        try:
            self._subscribers[kind].remove(callback)
            logger.debug(f"Unsubscribed {getattr(callback, '__name__', repr(callback))} from {kind} events")
        except ValueError:
            logger.warning(f"Callback {getattr(callback, '__name__', repr(callback))} not subscribed to {kind}")

    def has_subscribers(self, kind: EventKind) -> bool:
        return bool(self._subscribers[kind])

    def publish(self, kind: EventKind, event: Event) -> None:
        """Queues an event for delivery. Never blocks. Must be called from within the event loop."""
        if not self._subscribers[kind]:
            return
        queue = self._queues.get(kind)
        if queue is None:
            queue = asyncio.Queue()
            self._queues[kind] = queue
        worker = self._workers.get(kind)
        if worker is None or worker.done():
            self._workers[kind] = asyncio.create_task(self._deliver(kind, queue))
        queue.put_nowait(event)

    async def _deliver(self, kind: EventKind, queue: asyncio.Queue) -> None:
        while True:
            event = await queue.get()
            try:
                for callback in list(self._subscribers[kind]):
                    try:
                        result = callback(event)
                        if asyncio.iscoroutine(result):
                            await result
                    except Exception as e:
                        cb_name = getattr(callback, '__name__', repr(callback))
                        logger.error(f"Error executing {kind} callback {cb_name}: {e}", exc_info=True)
            finally:
                queue.task_done()

    async def join(self, timeout: Optional[float] = None) -> None:
        """Waits until every queued event has been delivered."""
        pending = [queue.join() for queue in self._queues.values()]
        if pending:
            await asyncio.wait_for(asyncio.gather(*pending), timeout)

    async def close(self, timeout: float = 1.0) -> None:
        """
        Delivers what is queued (bounded by ``timeout``) and stops the workers.

        Publishing again afterwards starts new workers. Called from within a
        subscriber, the calling worker is left running.
        """
        current = asyncio.current_task()
        if current not in self._workers.values():
            try:
                await self.join(timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Event delivery did not finish within {timeout}s, dropping queued events")
        for kind, worker in self._workers.items():
            if worker is not current and not worker.done():
                worker.cancel()
                try:
                    await worker
                except asyncio.CancelledError:
                    logger.debug(f"{kind} event worker stopped")
        self._workers = {kind: worker for kind, worker in self._workers.items() if worker is current}
        self._queues = {kind: self._queues[kind] for kind in self._workers}
