"""Small CLI listing every advertising BLE device with its configured name.

Useful for building the ``ADDRESS=NAME`` sensor names file.
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from bleak import BleakScanner

from .bridge_config import SENSOR_NAMES_FILENAME
from .sensor_names import SensorNames, load_sensor_names
from .types import InvalidAddress, SensorAddress

LOG = logging.getLogger(__name__)


def format_device(address: str, local_name: str | None, sensor_names: SensorNames) -> str:
    try:
        name = sensor_names.get(SensorAddress.parse(address), "")
    except InvalidAddress:
        name = ""
    return f"{address}: {local_name or ''!r}, '{name}'"


async def scan(adapter: str | None, seconds: float) -> list[tuple[str, str | None]]:
    """Scan for ``seconds`` and return (address, local name) pairs."""
    LOG.info("Scanning for %.0fs on %s ...", seconds, adapter or "default adapter")
    kwargs = {"adapter": adapter} if adapter else {}
    async with BleakScanner(**kwargs) as scanner:
        await asyncio.sleep(seconds)
        found = scanner.discovered_devices_and_advertisement_data
    return sorted(
        (device.address, adv.local_name or device.name) for device, adv in found.values()
    )


async def main(adapter: str | None, seconds: float, names_file: str) -> None:
    sensor_names = load_sensor_names(names_file)
    for address, local_name in await scan(adapter, seconds):
        print(format_device(address, local_name, sensor_names))


def cli(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="List BLE devices and their configured sensor names")
    parser.add_argument("--adapter", default=None, help="BLE adapter name (eg hci0)")
    parser.add_argument("--seconds", type=float, default=10.0, help="scan window (default: 10)")
    parser.add_argument(
        "--sensor-names",
        default=SENSOR_NAMES_FILENAME,
        help=f"ADDRESS=NAME file (default: {SENSOR_NAMES_FILENAME})",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)

    asyncio.run(main(args.adapter, args.seconds, args.sensor_names))


if __name__ == "__main__":
    cli()
