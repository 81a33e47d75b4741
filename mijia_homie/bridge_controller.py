"""
bridge_controller.py

Orchestrates BLE and MQTT setup for the bridge:
- Loads the sensor name table
- Starts the MQTT link and publishes the Homie device
- Selects, power-cycles and scans on the BLE adapter
- Runs the event multiplexer until stopped, then marks the device disconnected
"""

from __future__ import annotations

import threading

from .bridge_config import BridgeConfig
from .channel import ReadingChannel
from .homie import HomieDevice
from .logging_setup import bridge_logger as logger
from .mqtt_dispatcher import MqttLink
from .multiplexer import EventMultiplexer
from .ports import Central
from .sensor_manager import SensorConnectionManager
from .sensor_names import SensorNames, load_sensor_names


class NoAdaptersError(Exception):
    """Raised when no BLE adapter is available."""


def select_adapter(adapters: list[str], preferred: str | None) -> str:
    if not adapters:
        raise NoAdaptersError("no adapters")
    if preferred and preferred in adapters:
        return preferred
    if preferred:
        logger.warning({"event": "ble_adapter_not_found", "wanted": preferred, "using": adapters[0]})
    return adapters[0]


class BridgeController:
    def __init__(
        self,
        config: BridgeConfig,
        central: Central,
        mqtt: MqttLink,
        sensor_names: SensorNames,
        channel: ReadingChannel | None = None,
    ) -> None:
        self.config = config
        self.central = central
        self.mqtt = mqtt
        self.sensor_names = sensor_names
        self.channel = channel or ReadingChannel()
        self.homie = HomieDevice(mqtt, config.device_base, config.device_name)
        self.manager = SensorConnectionManager(central, self.homie, sensor_names, self.channel)
        self.multiplexer = EventMultiplexer(
            self.manager,
            central,
            self.channel,
            incoming_timeout=config.incoming_timeout,
        )
        self.adapter: str | None = None

    def start(self) -> None:
        self.mqtt.start()
        self.homie.start()

        self.adapter = select_adapter(self.central.list_adapters(), self.config.ble_adapter)
        # power-cycle on startup for predictable results, and to prevent
        # interference from the bluez dbus daemon
        if self.config.ble_power_cycle:
            self.central.power_cycle(self.adapter)
        logger.info({"event": "scanning", "adapter": self.adapter})
        self.central.start_scan(self.adapter, filter_duplicates=False, active=True)

        self.homie.ready()

    def run(self, stop: threading.Event | None = None) -> None:
        self.multiplexer.run_forever(stop, before_iteration=self.mqtt.raise_for_failure)

    def shutdown(self) -> None:
        """Best-effort teardown; safe after a failed start()."""
        if self.homie.started:
            self.homie.disconnect()
        self.central.stop()
        self.channel.close()
        self.mqtt.stop()


def start_bridge_controller(
    config: BridgeConfig,
    central: Central,
    mqtt: MqttLink | None = None,
    stop: threading.Event | None = None,
) -> None:
    """Load names, build the bridge and run it until ``stop`` is set."""
    sensor_names = load_sensor_names(config.sensor_names_file)
    if mqtt is None:
        mqtt = MqttLink(config, will=HomieDevice.last_will(config.device_base))
    bridge = BridgeController(config, central, mqtt, sensor_names)
    try:
        bridge.start()
        bridge.run(stop)
    finally:
        bridge.shutdown()


__all__ = [
    "BridgeController",
    "NoAdaptersError",
    "select_adapter",
    "start_bridge_controller",
]
