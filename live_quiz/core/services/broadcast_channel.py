"""Fan-out of live session events to connected push subscribers."""

from __future__ import annotations

import asyncio
from collections import deque
import json
import logging
from threading import Condition, Lock
from typing import Any, AsyncIterator, Protocol
from uuid import uuid4

from live_quiz.constants.network_constants import (
    HEARTBEAT_INTERVAL_SECONDS,
    SUBSCRIBER_BUFFER_SIZE,
    SUBSCRIBER_WRITE_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)

_HEARTBEAT_FRAME = ": keep-alive\n\n"


class ConnectionClosed(Exception):
    """Raised when a frame can no longer be delivered to a subscriber."""


class EventConnection(Protocol):
    """Push connection supplied by the transport layer."""

    def write(self, frame: str) -> None: ...

    def close(self) -> None: ...


def format_event(event: str, payload: Any) -> str:
    """Serialize one event as a server-sent-events frame."""
    return f"event: {event}\ndata: {json.dumps(payload, default=str)}\n\n"


class QueueConnection:
    """Bounded buffer between the broadcaster and one streaming HTTP response.

    Frames are written from worker threads and read by the asyncio task that
    serves the response, so an open stream never occupies a worker thread.
    ``write`` waits at most ``write_timeout`` for room; a reader that falls
    that far behind is treated as gone. ``frames`` emits heartbeat comments
    while idle.
    """

    def __init__(
        self,
        max_buffer: int = SUBSCRIBER_BUFFER_SIZE,
        write_timeout: float = SUBSCRIBER_WRITE_TIMEOUT_SECONDS,
        heartbeat_interval: float = HEARTBEAT_INTERVAL_SECONDS,
    ) -> None:
        self.connection_id = uuid4().hex
        self._buffer: deque[str] = deque()
        self._max_buffer = max_buffer
        self._room = Condition()
        self._write_timeout = write_timeout
        self._heartbeat_interval = heartbeat_interval
        self._closed = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._wakeup: asyncio.Event | None = None

    def write(self, frame: str) -> None:
        with self._room:
            if self._closed:
                raise ConnectionClosed("Connection already closed.")
            has_room = self._room.wait_for(
                lambda: self._closed or len(self._buffer) < self._max_buffer,
                timeout=self._write_timeout,
            )
            if self._closed:
                raise ConnectionClosed("Connection already closed.")
            if not has_room:
                self._closed = True
                self._wake_reader()
                raise ConnectionClosed("Subscriber is not keeping up.")
            self._buffer.append(frame)
            self._wake_reader()

    def close(self) -> None:
        with self._room:
            if self._closed:
                return
            self._closed = True
            self._room.notify_all()
            self._wake_reader()

    def is_closed(self) -> bool:
        return self._closed

    async def frames(self) -> AsyncIterator[str]:
        """Yield buffered frames until the connection is closed and drained."""
        wakeup = asyncio.Event()
        with self._room:
            self._loop = asyncio.get_running_loop()
            self._wakeup = wakeup
        while True:
            with self._room:
                frame = self._buffer.popleft() if self._buffer else None
                closed = self._closed
                if frame is not None:
                    self._room.notify()
            if frame is not None:
                yield frame
                continue
            if closed:
                return
            try:
                await asyncio.wait_for(wakeup.wait(), timeout=self._heartbeat_interval)
            except asyncio.TimeoutError:
                yield _HEARTBEAT_FRAME
                continue
            wakeup.clear()

    def _wake_reader(self) -> None:
        # Condition held. Before ``frames`` starts there is no reader to wake.
        if self._loop is None or self._wakeup is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._wakeup.set)


class BroadcastChannel:
    """Delivers events in publish order to every subscriber of one session."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._subscribers: list[EventConnection] = []

    def subscribe(self, connection: EventConnection) -> None:
        with self._lock:
            if connection not in self._subscribers:
                self._subscribers.append(connection)

    def unsubscribe(self, connection: EventConnection) -> None:
        with self._lock:
            if connection in self._subscribers:
                self._subscribers.remove(connection)

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def send(self, connection: EventConnection, event: str, payload: Any) -> bool:
        """Write one event to a single connection. Returns False if it failed."""
        try:
            connection.write(format_event(event, payload))
        except Exception:  # write failures drop the subscriber
            logger.debug("Dropping subscriber after failed write of %s", event)
            self.unsubscribe(connection)
            return False
        return True

    def publish(self, event: str, payload: Any) -> int:
        """Write ``event`` to all subscribers and return how many received it."""
        frame = format_event(event, payload)
        with self._lock:
            subscribers = list(self._subscribers)

        dead: list[EventConnection] = []
        for connection in subscribers:
            try:
                connection.write(frame)
            except Exception:  # write failures drop the subscriber
                dead.append(connection)

        if dead:
            with self._lock:
                self._subscribers = [c for c in self._subscribers if c not in dead]
            logger.debug("Dropped %d dead subscriber(s) while publishing %s", len(dead), event)
        return len(subscribers) - len(dead)

    def close_all(self) -> None:
        with self._lock:
            subscribers = self._subscribers
            self._subscribers = []
        for connection in subscribers:
            connection.close()
