"""BLE central backed by bleak.

bleak is asyncio based; the control loop is not. A dedicated event loop
runs on its own daemon thread and every public method schedules a
coroutine on it and blocks for the result. Scanner and client callbacks
run on that thread and only ever put events on a thread-safe queue or
call the registered notification callbacks.
"""

from __future__ import annotations

import asyncio
import queue
import re
import subprocess
import threading
from collections.abc import Coroutine
from concurrent.futures import Future
from pathlib import Path
from typing import Any

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.exc import BleakError

from .logging_setup import ble_logger as log
from .ports import CentralError, NotificationCallback
from .types import CentralEvent, CentralEventKind, InvalidAddress, SensorAddress

SYSFS_BLUETOOTH = Path("/sys/class/bluetooth")
# hci0, hci1, ... but not per-connection entries like hci0:64
_ADAPTER_RE = re.compile(r"^hci\d+$")

_TRANSPORT_ERRORS = (BleakError, OSError, asyncio.TimeoutError)


class BleakCentral:
    def __init__(self, sysfs_root: Path = SYSFS_BLUETOOTH) -> None:
        self.sysfs_root = sysfs_root
        self.adapter: str | None = None
        self._events: queue.Queue[CentralEvent] = queue.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_thread: threading.Thread | None = None
        self._alive_evt = threading.Event()
        self._scanner: BleakScanner | None = None
        # owned by the BLE loop thread
        self._devices: dict[SensorAddress, BLEDevice] = {}
        self._clients: dict[SensorAddress, BleakClient] = {}
        self._callbacks: dict[SensorAddress, NotificationCallback] = {}

    # ---- loop thread -------------------------------------------------------

    def start_loop_thread(self) -> None:
        """Start the BLE event loop in a dedicated thread if not already running."""
        if self._loop_thread and self._loop_thread.is_alive():
            return

        def _run() -> None:
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
            self._loop = loop
            log.info("ble_loop_thread_started name=BLELoopThread")
            self._alive_evt.set()
            loop.run_forever()
            loop.close()

        self._loop_thread = threading.Thread(target=_run, name="BLELoopThread", daemon=True)
        self._loop_thread.start()
        # Wait briefly for loop to come up
        self._alive_evt.wait(timeout=1.0)

    def run_coro(self, coro: Coroutine[Any, Any, Any]) -> Future:
        """Schedule a coroutine on the dedicated BLE loop."""
        self.start_loop_thread()
        if self._loop is None:
            coro.close()
            raise RuntimeError("BLE loop not running")
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def _call(self, coro: Coroutine[Any, Any, Any]) -> Any:
        try:
            return self.run_coro(coro).result()
        except _TRANSPORT_ERRORS as exc:
            raise CentralError(str(exc) or type(exc).__name__) from exc

    def stop(self, timeout: float = 3.0) -> None:
        """Stop scanning, disconnect every client and stop the loop."""
        loop = self._loop
        if loop is None:
            return
        try:
            self.run_coro(self._shutdown()).result(timeout=timeout)
        except Exception as e:  # noqa: BLE001
            log.warning("ble_link_stop_exception %s", e)
        loop.call_soon_threadsafe(loop.stop)
        if self._loop_thread is not None:
            self._loop_thread.join(timeout=timeout)
        self._loop = None
        self._loop_thread = None
        self._alive_evt.clear()

    async def _shutdown(self) -> None:
        if self._scanner is not None:
            await self._scanner.stop()
        for client in list(self._clients.values()):
            await client.disconnect()
        self._clients.clear()

    # ---- adapters ----------------------------------------------------------

    def list_adapters(self) -> list[str]:
        if not self.sysfs_root.is_dir():
            return []
        return sorted(p.name for p in self.sysfs_root.iterdir() if _ADAPTER_RE.match(p.name))

    def power_cycle(self, adapter: str) -> None:
        """Bounce the adapter so stale BlueZ connections are dropped."""
        log.info({"event": "ble_adapter_power_cycle", "adapter": adapter})
        for state in ("down", "up"):
            try:
                subprocess.run(["hciconfig", adapter, state], check=True, capture_output=True, text=True)
            except (OSError, subprocess.CalledProcessError) as exc:
                raise CentralError(f"hciconfig {adapter} {state} failed: {exc}") from exc

    # ---- scanning ----------------------------------------------------------

    def start_scan(self, adapter: str, *, filter_duplicates: bool = False, active: bool = True) -> None:
        self.adapter = adapter
        log.info({"event": "ble_scan_start", "adapter": adapter, "active": active, "filter_duplicates": filter_duplicates})
        self._call(self._start_scan(adapter, filter_duplicates, active))

    async def _start_scan(self, adapter: str, filter_duplicates: bool, active: bool) -> None:
        kwargs: dict[str, Any] = {"adapter": adapter}
        if not filter_duplicates:
            kwargs["bluez"] = {"filters": {"DuplicateData": True}}
        self._scanner = BleakScanner(
            detection_callback=self._on_detection,
            scanning_mode="active" if active else "passive",
            **kwargs,
        )
        await self._scanner.start()

    def _on_detection(self, device: BLEDevice, advertisement_data: Any) -> None:
        try:
            address = SensorAddress.parse(device.address)
        except InvalidAddress:
            return
        kind = CentralEventKind.DEVICE_UPDATED if address in self._devices else CentralEventKind.DEVICE_DISCOVERED
        self._devices[address] = device
        self._events.put(CentralEvent(kind, address))

    def next_event(self, timeout: float) -> CentralEvent | None:
        try:
            return self._events.get(timeout=timeout)
        except queue.Empty:
            return None

    # ---- peripherals -------------------------------------------------------

    def connect(self, address: SensorAddress) -> None:
        self._call(self._connect(address))
        self._events.put(CentralEvent(CentralEventKind.DEVICE_CONNECTED, address))

    async def _connect(self, address: SensorAddress) -> None:
        stale = self._clients.pop(address, None)
        if stale is not None:
            await stale.disconnect()
        target: BLEDevice | str = self._devices.get(address) or str(address)

        def _disconnected(client: BleakClient) -> None:
            if self._clients.get(address) is client:
                del self._clients[address]
                self._callbacks.pop(address, None)
                self._events.put(CentralEvent(CentralEventKind.DEVICE_DISCONNECTED, address))

        kwargs: dict[str, Any] = {}
        if self.adapter:
            kwargs["adapter"] = self.adapter
        client = BleakClient(target, disconnected_callback=_disconnected, **kwargs)
        await client.connect()
        self._clients[address] = client

    def _client(self, address: SensorAddress) -> BleakClient:
        client = self._clients.get(address)
        if client is None or not client.is_connected:
            raise CentralError(f"{address} is not connected")
        return client

    def discover_characteristics(self, address: SensorAddress) -> list[str]:
        return self._call(self._discover_characteristics(address))

    async def _discover_characteristics(self, address: SensorAddress) -> list[str]:
        client = self._client(address)
        return [char.uuid for service in client.services for char in service.characteristics]

    def subscribe(self, address: SensorAddress, characteristic: str) -> None:
        self._call(self._subscribe(address, characteristic))

    async def _subscribe(self, address: SensorAddress, characteristic: str) -> None:
        client = self._client(address)

        def _on_notify(_sender: Any, data: bytearray) -> None:
            callback = self._callbacks.get(address)
            if callback is not None:
                callback(address, bytes(data))

        await client.start_notify(characteristic, _on_notify)

    def write(self, address: SensorAddress, characteristic: str, data: bytes) -> None:
        self._call(self._write(address, characteristic, data))

    async def _write(self, address: SensorAddress, characteristic: str, data: bytes) -> None:
        # write command, no response requested
        await self._client(address).write_gatt_char(characteristic, data, response=False)

    def on_notification(self, address: SensorAddress, callback: NotificationCallback) -> None:
        self._call(self._register(address, callback))

    async def _register(self, address: SensorAddress, callback: NotificationCallback) -> None:
        self._callbacks[address] = callback


__all__ = ["BleakCentral", "SYSFS_BLUETOOTH"]
