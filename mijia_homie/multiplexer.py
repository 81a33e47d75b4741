"""Control loop: one connect attempt, a window of central events, then readings."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from .channel import ReadingChannel
from .logging_setup import bridge_logger as logger
from .ports import Central
from .sensor_manager import SensorConnectionManager

INCOMING_TIMEOUT_S = 1.0


class EventMultiplexer:
    def __init__(
        self,
        manager: SensorConnectionManager,
        central: Central,
        channel: ReadingChannel,
        incoming_timeout: float = INCOMING_TIMEOUT_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.manager = manager
        self.central = central
        self.channel = channel
        self.incoming_timeout = incoming_timeout
        self._clock = clock
        self.iterations = 0

    def drain_central_events(self) -> int:
        """Handle central events until none arrive within the timeout.

        Stops early once the window has elapsed, so this takes between one
        and two timeouts when events keep coming.
        """
        handled = 0
        recv_until = self._clock() + self.incoming_timeout
        while True:
            event = self.central.next_event(self.incoming_timeout)
            if event is None:
                break
            self.manager.handle_event(event)
            handled += 1
            if self._clock() > recv_until:
                break
        return handled

    def drain_readings(self) -> int:
        """Publish every reading currently queued; ChannelClosed propagates."""
        published = 0
        while True:
            item = self.channel.try_recv()
            if item is None:
                return published
            if self.manager.report_reading(item.address, item.reading):
                published += 1

    def run_once(self) -> None:
        self.manager.log_status()
        # TODO: bound connect_next() with a timeout; a hung connect stalls this step.
        self.manager.connect_next()
        self.drain_central_events()
        self.drain_readings()
        self.iterations += 1

    def run_forever(
        self,
        stop: threading.Event | None = None,
        before_iteration: Callable[[], None] | None = None,
    ) -> None:
        """Iterate until ``stop`` is set; any error escapes and is fatal."""
        logger.info({"event": "multiplexer_started", "incoming_timeout": self.incoming_timeout})
        while stop is None or not stop.is_set():
            if before_iteration is not None:
                before_iteration()
            self.run_once()
        logger.info({"event": "multiplexer_stopped", "iterations": self.iterations})


__all__ = ["EventMultiplexer", "INCOMING_TIMEOUT_S"]
