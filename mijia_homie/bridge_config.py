from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from .logging_setup import logger

DEFAULT_MQTT_PREFIX = "homie"
DEFAULT_DEVICE_ID = "mijia-bridge"
DEFAULT_DEVICE_NAME = "Mijia bridge"
DEFAULT_HOST = "localhost"
DEFAULT_PORT = 1883
DEFAULT_KEEPALIVE = 5
DEFAULT_INCOMING_TIMEOUT_MS = 1_000
SENSOR_NAMES_FILENAME = "sensor_names.conf"
OPTIONS_PATH = Path("/data/options.json")

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}

# field -> environment variables, first match wins
ENV_KEYS: dict[str, tuple[str, ...]] = {
    "device_id": ("DEVICE_ID",),
    "device_name": ("DEVICE_NAME",),
    "client_name": ("CLIENT_NAME",),
    "mqtt_host": ("MQTT_HOST", "HOST"),
    "mqtt_port": ("MQTT_PORT", "PORT"),
    "mqtt_username": ("MQTT_USERNAME", "USERNAME"),
    "mqtt_password": ("MQTT_PASSWORD", "PASSWORD"),
    "mqtt_tls": ("MQTT_TLS",),
    "mqtt_keepalive": ("MQTT_KEEPALIVE",),
    "mqtt_prefix": ("MQTT_PREFIX",),
    "sensor_names_file": ("SENSOR_NAMES_FILE",),
    "ble_adapter": ("BLE_ADAPTER",),
    "ble_power_cycle": ("BLE_POWER_CYCLE",),
    "incoming_timeout_ms": ("INCOMING_TIMEOUT_MS",),
}


class ConfigError(Exception):
    """Raised when a configuration value cannot be used."""


@dataclass(frozen=True)
class BridgeConfig:
    device_id: str = DEFAULT_DEVICE_ID
    device_name: str = DEFAULT_DEVICE_NAME
    client_name: str | None = None
    mqtt_host: str = DEFAULT_HOST
    mqtt_port: int = DEFAULT_PORT
    mqtt_username: str | None = None
    mqtt_password: str | None = None
    mqtt_tls: bool = False
    mqtt_keepalive: int = DEFAULT_KEEPALIVE
    mqtt_prefix: str = DEFAULT_MQTT_PREFIX
    sensor_names_file: str = SENSOR_NAMES_FILENAME
    ble_adapter: str | None = None
    ble_power_cycle: bool = True
    incoming_timeout_ms: int = DEFAULT_INCOMING_TIMEOUT_MS

    @property
    def device_base(self) -> str:
        return f"{self.mqtt_prefix}/{self.device_id}"

    @property
    def mqtt_client_id(self) -> str:
        return self.client_name or self.device_id

    @property
    def incoming_timeout(self) -> float:
        return self.incoming_timeout_ms / 1000.0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> BridgeConfig:
        """Build a config from loosely typed values (file or env)."""
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, raw in data.items():
            key = str(key).lower()
            if key not in known or raw is None:
                continue
            values[key] = raw
        for key in ("mqtt_port", "mqtt_keepalive", "incoming_timeout_ms"):
            if key in values:
                values[key] = _as_int(key, values[key])
        for key in ("mqtt_tls", "ble_power_cycle"):
            if key in values:
                values[key] = _as_bool(key, values[key])
        for key in ("device_id", "device_name", "client_name", "mqtt_host", "mqtt_prefix"):
            if key in values:
                values[key] = str(values[key])
        return cls(**values)


def _as_int(key: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer, got {value!r}") from exc


def _as_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUTHY:
        return True
    if text in _FALSY:
        return False
    raise ConfigError(f"{key} must be a boolean, got {value!r}")


def _candidate_paths(env: Mapping[str, str]) -> list[Path]:
    """Ordered YAML config locations (explicit, add-on, then local/dev)."""
    paths: list[Path] = []
    env_path = env.get("CONFIG_PATH")
    if env_path:
        paths.append(Path(env_path))
    paths.extend(
        [
            Path("/data/config.yaml"),
            Path("/config/config.yaml"),
            Path("config.yaml"),
        ]
    )
    return paths


def _load_options_json(path: Path = OPTIONS_PATH) -> tuple[dict[str, Any], Path | None]:
    """Load add-on options (JSON). Returns (data, source_path)."""
    if not path.exists():
        logger.debug("[CONFIG] options.json not found: %s", path)
        return {}, None
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except json.JSONDecodeError as exc:
        logger.warning("[CONFIG] Failed to parse options.json %s: %s", path, exc)
        return {}, None
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("[CONFIG] Failed to read options.json %s: %s", path, exc)
        return {}, None
    if not isinstance(data, dict):
        logger.warning("[CONFIG] options.json root not a mapping: %s", path)
        return {}, None
    logger.info("[CONFIG] Loaded options from: %s", path)
    return data, path


def _load_yaml_cfg(paths: list[Path]) -> tuple[dict[str, Any], Path | None]:
    """Load YAML config from the first valid candidate path."""
    for pth in paths:
        if not pth.exists():
            logger.debug("[CONFIG] Path not found: %s", pth)
            continue
        try:
            with pth.open("r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            logger.warning("[CONFIG] Failed to parse YAML %s: %s", pth, exc)
            continue
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("[CONFIG] Failed to read YAML %s: %s", pth, exc)
            continue
        if not isinstance(data, dict):
            logger.warning("[CONFIG] YAML root not a mapping: %s", pth)
            continue
        logger.info("[CONFIG] Loaded YAML config from: %s", pth)
        return data, pth
    return {}, None


def _env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    merged: dict[str, Any] = {}
    for key, names in ENV_KEYS.items():
        for name in names:
            if name in env:
                merged[key] = env[name]
                break
    # USE_TLS is a presence flag
    if "mqtt_tls" not in merged and "USE_TLS" in env:
        merged["mqtt_tls"] = True
    return merged


def load_config(
    env: Mapping[str, str] | None = None,
    paths: list[Path] | None = None,
    options_path: Path = OPTIONS_PATH,
) -> tuple[BridgeConfig, Path | None]:
    """
    Produce the effective configuration.
    Precedence: defaults < YAML < options.json < environment.
    Returns (config, primary_source_path).
    """
    env = os.environ if env is None else env
    yml, yml_src = _load_yaml_cfg(paths if paths is not None else _candidate_paths(env))
    opts, opts_src = _load_options_json(options_path)

    merged: dict[str, Any] = {}
    merged.update(yml)
    merged.update(opts)
    merged.update(_env_overrides(env))

    config = BridgeConfig.from_mapping(merged)
    source = opts_src or yml_src
    logger.debug({"event": "config_loaded", "source": str(source), "device_base": config.device_base})
    return config, source


__all__ = [
    "BridgeConfig",
    "ConfigError",
    "ENV_KEYS",
    "load_config",
]
