"""Event sinks: deliver batch events to whoever consumes the stream.

A sink's ``emit`` never blocks and never awaits, so job execution is not held
up by a slow reader. ``QueueEventSink`` buffers for an async consumer (the
SSE endpoint); ``BusEventSink`` fans out to EventBus subscribers (the
terminal dashboard); ``ListEventSink`` records events for inspection.
"""
import asyncio
import logging
from collections import deque
from typing import AsyncIterator, Deque, List, Protocol

from strmthumb.domain.events import CompleteEvent, Event
from strmthumb.infrastructure.event_bus import EventBus

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    def emit(self, event: Event) -> None:
        ...


class QueueEventSink:
    """Buffers events for a single async consumer.

    With ``max_buffer`` > 0 the oldest buffered event is dropped when the
    buffer is full. The terminal ``CompleteEvent`` is always kept.
    """

    def __init__(self, max_buffer: int = 0):
        if max_buffer < 0:
            raise ValueError("max_buffer must be >= 0")
        self._max_buffer = max_buffer
        self._buffer: Deque[Event] = deque()
        self._ready = asyncio.Event()
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def emit(self, event: Event) -> None:
        if self._closed:
            logger.debug(f"Event emitted after sink closed, ignored: {event.__class__.__name__}")
            return
        if self._max_buffer and len(self._buffer) >= self._max_buffer:
            for idx, buffered in enumerate(self._buffer):
                if not isinstance(buffered, CompleteEvent):
                    del self._buffer[idx]
                    self.dropped += 1
                    break
        self._buffer.append(event)
        self._ready.set()

    def close(self) -> None:
        """Marks the end of the stream; buffered events are still delivered."""
        self._closed = True
        self._ready.set()

    async def __aiter__(self) -> AsyncIterator[Event]:
        while True:
            while self._buffer:
                yield self._buffer.popleft()
            if self._closed:
                return
            self._ready.clear()
            await self._ready.wait()


class BusEventSink:
    """Publishes events on an EventBus."""

    def __init__(self, bus: EventBus):
        self.bus = bus

    def emit(self, event: Event) -> None:
        self.bus.publish(event)


class ListEventSink:
    """Keeps every event in emission order."""

    def __init__(self):
        self.events: List[Event] = []

    def emit(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type) -> List[Event]:
        return [e for e in self.events if isinstance(e, event_type)]
