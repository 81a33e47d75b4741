"""Connect/subscribe protocol for a single temperature/humidity sensor."""

from __future__ import annotations

from collections.abc import Callable

from .logging_setup import ble_logger as logger
from .ports import Central, CentralError
from .telemetry import decode_value
from .types import Reading, SensorAddress

READINGS_CHARACTERISTIC = "ebe0ccc1-7a0a-4b0c-8a1a-6ff2997da3a6"
INTERVAL_CHARACTERISTIC = "ebe0ccd8-7a0a-4b0c-8a1a-6ff2997da3a6"
# 500 in little-endian
CONNECTION_INTERVAL_500_MS = bytes([0xF4, 0x01, 0x00])

ReadingSink = Callable[[SensorAddress, Reading], None]


class SensorError(Exception):
    """A per-sensor connect/discover/subscribe failure; never fatal."""


class MissingCharacteristic(SensorError):
    """The sensor does not expose a required characteristic."""


def _find(characteristics: list[str], uuid: str, address: SensorAddress) -> str:
    for candidate in characteristics:
        if candidate.lower() == uuid:
            return candidate
    raise MissingCharacteristic(f"could not find characteristic {uuid} on {address}")


def notification_handler(sink: ReadingSink) -> Callable[[SensorAddress, bytes], None]:
    """Wrap ``sink`` so only well-formed readings payloads reach it."""

    def _on_notification(address: SensorAddress, value: bytes) -> None:
        reading = decode_value(value)
        if reading is None:
            logger.debug({"event": "sensor_notification_ignored", "address": str(address), "value": bytes(value).hex()})
            return
        sink(address, reading)

    return _on_notification


def connect_sensor(central: Central, address: SensorAddress) -> None:
    try:
        central.connect(address)
    except CentralError as exc:
        raise SensorError(f"connecting to {address}: {exc}") from exc


def start_notify_sensor(central: Central, address: SensorAddress, sink: ReadingSink) -> None:
    """Subscribe to readings and request the preferred connection interval."""
    try:
        characteristics = central.discover_characteristics(address)
    except CentralError as exc:
        raise SensorError(f"discovering characteristics on {address}: {exc}") from exc

    readings = _find(characteristics, READINGS_CHARACTERISTIC, address)
    interval = _find(characteristics, INTERVAL_CHARACTERISTIC, address)

    try:
        central.on_notification(address, notification_handler(sink))
        central.subscribe(address, readings)
    except CentralError as exc:
        raise SensorError(f"subscribing to readings on {address}: {exc}") from exc
    try:
        central.write(address, interval, CONNECTION_INTERVAL_500_MS)
    except CentralError as exc:
        raise SensorError(f"setting connection interval on {address}: {exc}") from exc


def connect_and_subscribe(central: Central, address: SensorAddress, sink: ReadingSink) -> None:
    """Connect, discover, subscribe and configure; raises SensorError on failure."""
    connect_sensor(central, address)
    start_notify_sensor(central, address, sink)
    logger.debug({"event": "sensor_subscribed", "address": str(address)})


__all__ = [
    "CONNECTION_INTERVAL_500_MS",
    "INTERVAL_CHARACTERISTIC",
    "MissingCharacteristic",
    "READINGS_CHARACTERISTIC",
    "SensorError",
    "connect_and_subscribe",
    "notification_handler",
]
