"""Main entrypoint: run the bridge until SIGTERM/SIGINT or a fatal error."""

from __future__ import annotations

import argparse
import atexit
import os
import signal
import sys
import threading

from .ble_link import BleakCentral
from .bridge_config import ConfigError, load_config
from .bridge_controller import start_bridge_controller
from .logging_setup import flush_all_log_handlers, logger, setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mijia-homie",
        description="Bridge BLE temperature/humidity sensors to MQTT (Homie convention)",
    )
    parser.add_argument("--sensor-names", help="ADDRESS=NAME file (overrides SENSOR_NAMES_FILE)")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING, ERROR")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    atexit.register(flush_all_log_handlers)
    logger.info("mijia_homie.main started (PID=%s)", os.getpid())

    env = dict(os.environ)
    if args.sensor_names:
        env["SENSOR_NAMES_FILE"] = args.sensor_names
    try:
        config, source = load_config(env)
    except ConfigError:
        logger.exception("Invalid configuration")
        return 1
    logger.info({"event": "config", "source": str(source), "device_base": config.device_base, "host": config.mqtt_host})

    stop = threading.Event()

    def _on_signal(signum: int, _frame: object) -> None:
        logger.info("signal_received signum=%s", signum)
        stop.set()

    signal.signal(signal.SIGTERM, _on_signal)
    signal.signal(signal.SIGINT, _on_signal)

    try:
        start_bridge_controller(config, BleakCentral(), stop=stop)
    except Exception as e:  # noqa: BLE001
        logger.exception("Fatal error in bridge: %s", e)
        return 1
    logger.info("main exiting after signal")
    return 0


if __name__ == "__main__":
    sys.exit(main())
