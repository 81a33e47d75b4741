"""Static address -> human name table, loaded once at startup.

File format is one ``ADDRESS=NAME`` pair per line. A missing file is an
empty table; any malformed line makes the whole file invalid.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType

from .logging_setup import logger
from .types import InvalidAddress, SensorAddress

SensorNames = Mapping[SensorAddress, str]


class SensorNamesError(Exception):
    """Raised when the sensor names file cannot be used."""


def parse_sensor_names(lines) -> SensorNames:
    names: dict[SensorAddress, str] = {}
    for lineno, raw in enumerate(lines, start=1):
        line = raw.rstrip("\r\n")
        address_text, sep, name = line.partition("=")
        if not sep:
            raise SensorNamesError(f"Invalid line {lineno}: {line!r}")
        try:
            address = SensorAddress.parse(address_text)
        except InvalidAddress as exc:
            raise SensorNamesError(f"Invalid address on line {lineno}: {line!r}") from exc
        names[address] = name
    return MappingProxyType(names)


def load_sensor_names(path: str | Path) -> SensorNames:
    """Read the names file into an immutable mapping."""
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as fh:
            names = parse_sensor_names(fh)
    except FileNotFoundError:
        logger.info({"event": "sensor_names_missing", "path": str(path)})
        return MappingProxyType({})
    logger.info({"event": "sensor_names_loaded", "path": str(path), "count": len(names)})
    return names


def display_name(address: SensorAddress, names: SensorNames) -> str:
    """Configured name, falling back to the address text."""
    return names.get(address, str(address))


__all__ = [
    "SensorNames",
    "SensorNamesError",
    "display_name",
    "load_sensor_names",
    "parse_sensor_names",
]
