"""Protocol definitions for the external collaborators of the bridge.

The BLE central and the MQTT client are consumed through these small
Protocols. ``ble_link.BleakCentral`` and ``mqtt_dispatcher.MqttLink``
implement them for production; the test helpers provide fakes.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from .types import CentralEvent, SensorAddress

NotificationCallback = Callable[[SensorAddress, bytes], None]


class CentralError(Exception):
    """Raised for any failure reported by the BLE transport."""


@runtime_checkable
class Central(Protocol):
    """Local BLE radio used to scan for and connect to sensors.

    Connect, discovery, subscribe and write calls block until the
    transport answers; there is no enforced timeout.
    """

    def list_adapters(self) -> list[str]:
        """Return the names of the available adapters (eg ``hci0``)."""

    def power_cycle(self, adapter: str) -> None:
        """Turn the adapter off and on again."""

    def start_scan(
        self,
        adapter: str,
        *,
        filter_duplicates: bool = False,
        active: bool = True,
    ) -> None:
        """Start scanning; discoveries arrive through ``next_event``."""

    def next_event(self, timeout: float) -> CentralEvent | None:
        """Wait up to ``timeout`` seconds for the next event."""

    def connect(self, address: SensorAddress) -> None:
        """Connect to the peripheral with the given address."""

    def discover_characteristics(self, address: SensorAddress) -> list[str]:
        """Return the characteristic UUIDs of a connected peripheral."""

    def subscribe(self, address: SensorAddress, characteristic: str) -> None:
        """Enable notifications for a characteristic."""

    def write(self, address: SensorAddress, characteristic: str, data: bytes) -> None:
        """Write raw bytes to a characteristic."""

    def on_notification(
        self,
        address: SensorAddress,
        callback: NotificationCallback,
    ) -> None:
        """Register the callback receiving notification payloads.

        The callback may run on a thread owned by the transport.
        """

    def stop(self) -> None:
        """Stop scanning and drop every connection."""


@runtime_checkable
class MqttClient(Protocol):
    """Minimal MQTT client API used by the publisher."""

    def publish(
        self,
        topic: str,
        payload: str = ...,
        qos: int = ...,
        retain: bool = ...,
    ) -> Any:
        """Hand a payload to the transport; delivery is not awaited."""


__all__ = [
    "Central",
    "CentralError",
    "MqttClient",
    "NotificationCallback",
]
