"""
homie.py

Homie-style device model published over MQTT. One device per bridge,
one node per connected sensor, one property per measured quantity.

Topic layout under ``device_base`` (``<prefix>/<device_id>``)::

    $homie $name $extensions $nodes $state
    <node>/$name <node>/$type <node>/$properties
    <node>/<property>  <node>/<property>/$name|$datatype|$unit

Everything is published retained; clearing a topic publishes an empty
retained payload. All mutation happens on the control loop thread.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from .logging_setup import bridge_logger as logger
from .ports import MqttClient

HOMIE_VERSION = "4.0"
DEFAULT_QOS = 1


class HomieError(Exception):
    """Base exception for publisher misuse."""


class InvalidTransition(HomieError):
    """Raised for operations not allowed in the current device state."""


class UnknownNodeOrProperty(HomieError):
    """Raised when publishing to a node or property that was never added."""


class Datatype(enum.Enum):
    FLOAT = "float"
    INTEGER = "integer"
    STRING = "string"
    BOOLEAN = "boolean"
    ENUM = "enum"


class DeviceState(enum.Enum):
    INIT = "init"
    READY = "ready"
    DISCONNECTED = "disconnected"
    # only ever published by the broker, as the last will
    LOST = "lost"


@dataclass(frozen=True)
class Property:
    id: str
    name: str
    datatype: Datatype
    unit: str | None = None


@dataclass(frozen=True)
class Node:
    id: str
    name: str
    type: str
    properties: tuple[Property, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "properties", tuple(self.properties))

    def get_property(self, property_id: str) -> Property | None:
        for prop in self.properties:
            if prop.id == property_id:
                return prop
        return None


# Retained value published when a property first appears. Must be non-empty:
# an empty retained payload deletes the topic.
VALUE_PLACEHOLDERS = {
    Datatype.FLOAT: "0.0",
    Datatype.INTEGER: "0",
    Datatype.STRING: "-",
    Datatype.BOOLEAN: "false",
    Datatype.ENUM: "-",
}


def format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, enum.Enum):
        return str(value.value)
    return str(value)


class HomieDevice:
    def __init__(
        self,
        mqtt: MqttClient,
        device_base: str,
        device_name: str,
        *,
        qos: int = DEFAULT_QOS,
    ) -> None:
        self.mqtt = mqtt
        self.device_base = device_base
        self.device_name = device_name
        self.qos = qos
        self._state = DeviceState.INIT
        self._started = False
        self._nodes: dict[str, Node] = {}

    @staticmethod
    def last_will(device_base: str) -> tuple[str, str]:
        """(topic, payload) the broker publishes if the session is lost."""
        return f"{device_base}/$state", DeviceState.LOST.value

    @property
    def state(self) -> DeviceState:
        return self._state

    @property
    def started(self) -> bool:
        return self._started

    @property
    def nodes(self) -> Mapping[str, Node]:
        return MappingProxyType(self._nodes)

    # ---- lifecycle ---------------------------------------------------------

    def start(self) -> None:
        """Publish the static device attributes with ``$state=init``."""
        if self._state is not DeviceState.INIT or self._started:
            raise InvalidTransition(f"start() not allowed in state {self._state.value}")
        self._publish("$homie", HOMIE_VERSION)
        self._publish("$extensions", "")
        self._publish("$name", self.device_name)
        self._publish_nodes()
        self._publish_state(DeviceState.INIT)
        self._started = True
        logger.info({"event": "homie_started", "device_base": self.device_base})

    def ready(self) -> None:
        if self._state is not DeviceState.INIT or not self._started:
            raise InvalidTransition(f"ready() not allowed in state {self._state.value}")
        self._publish_state(DeviceState.READY)
        self._state = DeviceState.READY
        logger.info({"event": "homie_ready", "device_base": self.device_base})

    def disconnect(self) -> None:
        """Best-effort ``$state=disconnected``; idempotent."""
        if self._state is DeviceState.DISCONNECTED:
            return
        if not self._started:
            raise InvalidTransition("disconnect() before start()")
        self._state = DeviceState.DISCONNECTED
        try:
            self._publish_state(DeviceState.DISCONNECTED)
        except Exception as exc:  # noqa: BLE001
            logger.warning({"event": "homie_disconnect_publish_failed", "error": repr(exc)})
            return
        logger.info({"event": "homie_disconnected", "device_base": self.device_base})

    # ---- nodes -------------------------------------------------------------

    def add_node(self, node: Node) -> None:
        """Advertise a node and its property metadata; replaces an existing id."""
        self._require_ready("add_node")
        previous = self._nodes.get(node.id)
        if previous is not None:
            wanted = {p.id for p in node.properties}
            for prop in previous.properties:
                if prop.id not in wanted:
                    self._clear_property(node.id, prop)
        self._publish(f"{node.id}/$name", node.name)
        self._publish(f"{node.id}/$type", node.type)
        self._publish(f"{node.id}/$properties", ",".join(p.id for p in node.properties))
        for prop in node.properties:
            base = f"{node.id}/{prop.id}"
            self._publish(f"{base}/$name", prop.name)
            self._publish(f"{base}/$datatype", prop.datatype.value)
            if prop.unit is not None:
                self._publish(f"{base}/$unit", prop.unit)
            elif previous is not None and previous.get_property(prop.id) is not None:
                self._clear(f"{base}/$unit")
            # keep the last value of a property the replaced node already had
            if previous is None or previous.get_property(prop.id) is None:
                self._publish(base, VALUE_PLACEHOLDERS[prop.datatype])
        self._nodes[node.id] = node
        self._publish_nodes()
        logger.info({"event": "homie_node_added", "node": node.id, "replaced": previous is not None})

    def remove_node(self, node_id: str) -> bool:
        """Retract a node's topics. Returns False (and publishes nothing) if absent."""
        self._require_ready("remove_node")
        node = self._nodes.pop(node_id, None)
        if node is None:
            logger.debug({"event": "homie_node_remove_absent", "node": node_id})
            return False
        self._publish_nodes()
        for prop in node.properties:
            self._clear_property(node.id, prop)
        for attr in ("$name", "$type", "$properties"):
            self._clear(f"{node.id}/{attr}")
        logger.info({"event": "homie_node_removed", "node": node_id})
        return True

    def publish_value(self, node_id: str, property_id: str, value: Any) -> None:
        self._require_ready("publish_value")
        node = self._nodes.get(node_id)
        if node is None or node.get_property(property_id) is None:
            raise UnknownNodeOrProperty(f"{node_id}/{property_id}")
        self._publish(f"{node_id}/{property_id}", format_value(value))

    # ---- internals ---------------------------------------------------------

    def _require_ready(self, op: str) -> None:
        if self._state is not DeviceState.READY:
            raise InvalidTransition(f"{op}() not allowed in state {self._state.value}")

    def _publish_state(self, state: DeviceState) -> None:
        self._publish("$state", state.value)

    def _publish_nodes(self) -> None:
        self._publish("$nodes", ",".join(self._nodes))

    def _clear_property(self, node_id: str, prop: Property) -> None:
        base = f"{node_id}/{prop.id}"
        self._clear(base)
        for attr in ("$name", "$datatype", "$unit"):
            self._clear(f"{base}/{attr}")

    def _clear(self, subtopic: str) -> None:
        self._publish(subtopic, "")

    def _publish(self, subtopic: str, payload: str) -> None:
        topic = f"{self.device_base}/{subtopic}"
        logger.debug({"event": "homie_publish", "topic": topic, "payload": payload})
        self.mqtt.publish(topic, payload, qos=self.qos, retain=True)


__all__ = [
    "Datatype",
    "DeviceState",
    "HomieDevice",
    "HomieError",
    "InvalidTransition",
    "Node",
    "Property",
    "UnknownNodeOrProperty",
    "VALUE_PLACEHOLDERS",
    "format_value",
]
