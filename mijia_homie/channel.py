"""Readings channel between transport callbacks and the control loop.

Many producers (one per subscribed sensor, on transport threads), one
consumer (the event multiplexer). Sends never block and nothing is
dropped; receiving is non-blocking.
"""

from __future__ import annotations

import queue
import threading

from .types import Reading, ReadingEvent, SensorAddress


class ChannelClosed(Exception):
    """Raised when sending to, or draining, a closed channel."""


class ReadingChannel:
    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[ReadingEvent] = queue.SimpleQueue()
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def send(self, address: SensorAddress, reading: Reading) -> None:
        if self._closed.is_set():
            raise ChannelClosed("reading channel is closed")
        self._queue.put(ReadingEvent(address, reading))

    def try_recv(self) -> ReadingEvent | None:
        """Next event, None when empty; ChannelClosed once closed and drained."""
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            if self._closed.is_set():
                raise ChannelClosed("someone closed the reading channel") from None
            return None

    def close(self) -> None:
        self._closed.set()

    def __len__(self) -> int:
        return self._queue.qsize()


__all__ = ["ChannelClosed", "ReadingChannel"]
