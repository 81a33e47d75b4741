"""Bridge BLE temperature/humidity sensors to an MQTT broker as a Homie device."""

from __future__ import annotations

from .homie import Datatype, DeviceState, HomieDevice, Node, Property
from .telemetry import decode_value
from .types import Reading, ReadingEvent, SensorAddress

__version__ = "0.1.0"

__all__ = [
    "Datatype",
    "DeviceState",
    "HomieDevice",
    "Node",
    "Property",
    "Reading",
    "ReadingEvent",
    "SensorAddress",
    "decode_value",
]
