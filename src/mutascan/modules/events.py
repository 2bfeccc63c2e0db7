"""Ordered fan-out of scan events to any number of consumers.

Producers call :meth:`EventBus.emit`, which never blocks: every subscriber
owns an unbounded queue and events are appended with ``put_nowait``. The
sequence number gives a total order across producers; events from a single
producer keep their relative order.
"""

import asyncio
import itertools
import logging
import threading
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

SCAN_LOG = "scan-log"
SCAN_FINDING = "scan-finding"
SCAN_COMPLETE = "scan-complete"

LOG_LEVELS = ("info", "success", "error", "warn", "phase")


@dataclass(frozen=True)
class ScanEvent:
    """One event as delivered to consumers."""

    kind: str
    data: dict[str, Any]
    sequence: int
    timestamp: float = field(default_factory=time.time)


class Subscription:
    """Async iterator over the events of one subscriber."""

    _CLOSED = object()

    def __init__(self, bus: "EventBus"):
        self._bus = bus
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def _push(self, item: Any) -> None:
        self._queue.put_nowait(item)

    def __aiter__(self) -> AsyncIterator[ScanEvent]:
        return self

    async def __anext__(self) -> ScanEvent:
        if self.closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is self._CLOSED:
            self.closed = True
            raise StopAsyncIteration
        return item

    def drain(self) -> list[ScanEvent]:
        """Return every event queued so far without waiting."""
        events = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is self._CLOSED:
                self.closed = True
                break
            events.append(item)
        return events

    def unsubscribe(self) -> None:
        self._bus._remove(self)


class EventBus:
    """Multi-producer, multi-consumer scan event channel."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self._subscriptions: list[Subscription] = []
        self._listeners: list[Callable[[ScanEvent], None]] = []
        self._sequence = itertools.count(1)
        self._lock = threading.Lock()
        self.last_sequence = 0

    def subscribe(self) -> Subscription:
        """Open a queue-backed subscription. Must be called inside the event loop."""
        subscription = Subscription(self)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def add_listener(self, callback: Callable[[ScanEvent], None]) -> None:
        """Register a synchronous callback invoked for every event."""
        with self._lock:
            self._listeners.append(callback)

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def emit(self, kind: str, data: dict[str, Any]) -> ScanEvent:
        with self._lock:
            event = ScanEvent(kind=kind, data=data, sequence=next(self._sequence))
            self.last_sequence = event.sequence
            subscriptions = list(self._subscriptions)
            listeners = list(self._listeners)
            # Queue inside the lock so every subscriber sees sequence order.
            for subscription in subscriptions:
                subscription._push(event)
        for callback in listeners:
            try:
                callback(event)
            except Exception:
                logger.exception("Event listener failed for %s #%d", kind, event.sequence)
        return event

    def log(self, level: str, message: str) -> ScanEvent:
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level '{level}'. Supported: {', '.join(LOG_LEVELS)}")
        return self.emit(SCAN_LOG, {"level": level, "message": message})

    def debug(self, message: str) -> ScanEvent | None:
        """Emit a verbose-only diagnostic as an ``info`` log event."""
        logger.debug(message)
        if not self.verbose:
            return None
        return self.log("info", f"[DEBUG] {message}")

    def close(self) -> None:
        """End every open subscription after the events already queued."""
        with self._lock:
            subscriptions = list(self._subscriptions)
            self._subscriptions.clear()
        for subscription in subscriptions:
            subscription._push(Subscription._CLOSED)
