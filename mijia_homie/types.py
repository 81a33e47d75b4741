"""Small stable value types shared across mijia_homie.

These are immutable and hashable so they can key every map in the
bridge. Avoid importing local modules here to prevent cycles.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import NamedTuple

_ADDRESS_RE = re.compile(r"^[0-9A-Fa-f]{2}(:[0-9A-Fa-f]{2}){5}$")


class InvalidAddress(ValueError):
    """Raised when text cannot be parsed as a 6-byte BLE address."""


@dataclass(frozen=True, order=True)
class SensorAddress:
    """6-byte link-layer address of a sensor, most significant byte first."""

    octets: bytes

    def __post_init__(self) -> None:
        if len(self.octets) != 6:
            raise InvalidAddress(f"expected 6 octets, got {len(self.octets)}")

    @classmethod
    def parse(cls, text: str) -> SensorAddress:
        """Parse ``AA:BB:CC:DD:EE:FF`` (either case)."""
        text = text.strip()
        if not _ADDRESS_RE.match(text):
            raise InvalidAddress(f"invalid address {text!r}")
        return cls(bytes.fromhex(text.replace(":", "")))

    @property
    def node_id(self) -> str:
        return str(self).replace(":", "")

    def __str__(self) -> str:
        return ":".join(f"{b:02X}" for b in self.octets)


class CentralEventKind(enum.Enum):
    DEVICE_DISCOVERED = "device_discovered"
    DEVICE_CONNECTED = "device_connected"
    DEVICE_DISCONNECTED = "device_disconnected"
    DEVICE_UPDATED = "device_updated"


@dataclass(frozen=True)
class CentralEvent:
    kind: CentralEventKind
    address: SensorAddress


@dataclass(frozen=True)
class Reading:
    """One decoded notification from a sensor."""

    # degrees C, two decimal places of precision
    temperature: float
    # percent, not clamped
    humidity: int
    # millivolts
    battery_voltage: int
    # inferred from battery_voltage
    battery_percent: int

    def __str__(self) -> str:
        return (
            f"Temperature: {self.temperature:.2f}ºC Humidity: {self.humidity}% "
            f"Battery: {self.battery_voltage} mV ({self.battery_percent}%)"
        )


class ReadingEvent(NamedTuple):
    address: SensorAddress
    reading: Reading


__all__ = [
    "CentralEvent",
    "CentralEventKind",
    "InvalidAddress",
    "Reading",
    "ReadingEvent",
    "SensorAddress",
]
