"""
sensor_manager.py

Turns discovery events into a managed set of subscribed sensors.

Per address: Unseen -> Queued -> Connecting -> Subscribed, with failed
attempts and observed disconnects going back to the end of the queue.
The queue, the connected set and the publisher are only touched from the
control loop; notification callbacks only ever send on the channel.
"""

from __future__ import annotations

import enum
from collections import deque

from .channel import ReadingChannel
from .homie import Datatype, HomieDevice, Node, Property
from .logging_setup import bridge_logger as logger
from .ports import Central
from .sensor import SensorError, connect_and_subscribe
from .sensor_names import SensorNames, display_name
from .types import CentralEvent, CentralEventKind, Reading, SensorAddress

NODE_TYPE = "Mijia sensor"

SENSOR_PROPERTIES: tuple[Property, ...] = (
    Property("temperature", "Temperature", Datatype.FLOAT, "ºC"),
    Property("humidity", "Humidity", Datatype.INTEGER, "%"),
    Property("battery", "Battery level", Datatype.INTEGER, "%"),
)


class SensorState(enum.Enum):
    UNSEEN = "unseen"
    QUEUED = "queued"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"


class SensorConnectionManager:
    def __init__(
        self,
        central: Central,
        homie: HomieDevice,
        sensor_names: SensorNames,
        channel: ReadingChannel,
        properties: tuple[Property, ...] = SENSOR_PROPERTIES,
    ) -> None:
        self.central = central
        self.homie = homie
        self.sensor_names = sensor_names
        self.channel = channel
        self.properties = properties
        self._queue: deque[SensorAddress] = deque()
        self._connected: set[SensorAddress] = set()
        self._connecting: SensorAddress | None = None

    # ---- views -------------------------------------------------------------

    @property
    def queued(self) -> tuple[SensorAddress, ...]:
        return tuple(self._queue)

    @property
    def connected(self) -> frozenset[SensorAddress]:
        return frozenset(self._connected)

    def state_of(self, address: SensorAddress) -> SensorState:
        if address == self._connecting:
            return SensorState.CONNECTING
        if address in self._connected:
            return SensorState.SUBSCRIBED
        if address in self._queue:
            return SensorState.QUEUED
        return SensorState.UNSEEN

    def node_for(self, address: SensorAddress) -> Node:
        return Node(address.node_id, display_name(address, self.sensor_names), NODE_TYPE, self.properties)

    def log_status(self) -> None:
        logger.info(
            "%d sensors connected and %d sensors in queue to connect.",
            len(self._connected),
            len(self._queue),
        )

    # ---- transitions -------------------------------------------------------

    def enqueue(self, address: SensorAddress) -> bool:
        """Queue a named sensor that is neither queued, connecting nor connected."""
        if address not in self.sensor_names:
            return False
        if self.state_of(address) is not SensorState.UNSEEN:
            return False
        logger.info({"event": "sensor_enqueued", "address": str(address), "name": self.sensor_names[address]})
        self._queue.append(address)
        return True

    def connect_next(self) -> SensorAddress | None:
        """Attempt one connection from the front of the queue.

        Returns the address attempted, or None when the queue is empty.
        A failed attempt is logged and the address goes to the back.
        """
        if not self._queue:
            return None
        address = self._queue.popleft()
        name = self.sensor_names.get(address, "unnamed")
        logger.info({"event": "sensor_connect_attempt", "address": str(address), "name": name})
        self._connecting = address
        try:
            connect_and_subscribe(self.central, address, self.channel.send)
        except SensorError as exc:
            logger.warning(
                {"event": "sensor_connect_failed", "address": str(address), "name": name, "error": str(exc)}
            )
            self._queue.append(address)
            return address
        finally:
            self._connecting = None
        self.homie.add_node(self.node_for(address))
        self._connected.add(address)
        logger.info({"event": "sensor_connected", "address": str(address), "name": name})
        return address

    def handle_disconnect(self, address: SensorAddress) -> bool:
        if address not in self._connected:
            logger.info({"event": "sensor_disconnect_unknown", "address": str(address)})
            return False
        self._connected.discard(address)
        logger.info({"event": "sensor_disconnected", "address": str(address), "name": display_name(address, self.sensor_names)})
        self.homie.remove_node(address.node_id)
        self._queue.append(address)
        return True

    def handle_event(self, event: CentralEvent) -> None:
        if event.kind is CentralEventKind.DEVICE_DISCOVERED:
            self.enqueue(event.address)
        elif event.kind is CentralEventKind.DEVICE_DISCONNECTED:
            self.handle_disconnect(event.address)
        else:
            logger.debug({"event": "central_event", "kind": event.kind.value, "address": str(event.address)})

    # ---- readings ----------------------------------------------------------

    def report_reading(self, address: SensorAddress, reading: Reading) -> bool:
        """Publish a reading; returns False for a sensor no longer subscribed."""
        if address not in self._connected:
            # sent before its disconnect was processed; the node is gone
            logger.debug({"event": "reading_dropped_stale", "address": str(address)})
            return False
        node_id = address.node_id
        logger.info(
            "%s Temperature: %.2fºC Humidity: %d%% Battery %d mV (%d %%) (%s)",
            address,
            reading.temperature,
            reading.humidity,
            reading.battery_voltage,
            reading.battery_percent,
            display_name(address, self.sensor_names),
        )
        self.homie.publish_value(node_id, "temperature", f"{reading.temperature:.2f}")
        self.homie.publish_value(node_id, "humidity", reading.humidity)
        self.homie.publish_value(node_id, "battery", reading.battery_percent)
        return True


__all__ = [
    "NODE_TYPE",
    "SENSOR_PROPERTIES",
    "SensorConnectionManager",
    "SensorState",
]
