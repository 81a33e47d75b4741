"""Decoder for the sensor's readings notification payload.

Payload layout (5 bytes, little-endian):
    0-1  temperature, signed, hundredths of a degree C
    2    relative humidity, percent
    3-4  battery voltage, millivolts
"""

from __future__ import annotations

import struct

from .types import Reading

PAYLOAD_LENGTH = 5
_PAYLOAD = struct.Struct("<hBH")

# Hand-tuned linear approximation; keep for compatibility with existing dashboards.
BATTERY_EMPTY_MV = 2100
BATTERY_MV_PER_PERCENT = 10


def battery_percent(battery_voltage: int) -> int:
    return (max(battery_voltage, BATTERY_EMPTY_MV) - BATTERY_EMPTY_MV) // BATTERY_MV_PER_PERCENT


def decode_value(value: bytes) -> Reading | None:
    """Decode a notification, or return None if it is not a readings payload."""
    if len(value) != PAYLOAD_LENGTH:
        return None
    raw_temperature, humidity, battery_voltage = _PAYLOAD.unpack(bytes(value))
    return Reading(
        temperature=raw_temperature * 0.01,
        humidity=humidity,
        battery_voltage=battery_voltage,
        battery_percent=battery_percent(battery_voltage),
    )


__all__ = ["PAYLOAD_LENGTH", "battery_percent", "decode_value"]
