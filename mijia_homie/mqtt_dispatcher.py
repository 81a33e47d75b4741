"""
mqtt_dispatcher.py

Owns the paho-mqtt client: credentials, optional TLS, last will, and the
network loop thread. Publishing is fire-and-forget; paho keeps QoS>0
messages queued while disconnected and preserves their order.
"""

from __future__ import annotations

import threading
from typing import Any

import paho.mqtt.client as mqtt
from paho.mqtt.enums import CallbackAPIVersion

from .bridge_config import BridgeConfig
from .logging_setup import logger

# CONNACK refusals that will never succeed on retry (MQTT 5 reason codes;
# paho maps the 3.1.1 return codes 1, 2, 4, 5 onto these)
FATAL_REASON_CODES = {
    132: "unsupported_protocol_version",
    133: "client_identifier_not_valid",
    134: "bad_username_or_password",
    135: "not_authorized",
}


class BrokerSessionError(Exception):
    """Raised when the broker refuses the session for good."""


def _reason_value(reason_code: Any) -> int:
    return int(getattr(reason_code, "value", reason_code))


class MqttLink:
    def __init__(
        self,
        config: BridgeConfig,
        will: tuple[str, str] | None = None,
        client: mqtt.Client | None = None,
    ) -> None:
        self.config = config
        self.client = client or mqtt.Client(
            callback_api_version=CallbackAPIVersion.VERSION2,
            client_id=config.mqtt_client_id,
            protocol=mqtt.MQTTv311,
            clean_session=True,
        )
        self.connected = threading.Event()
        self._failure: BrokerSessionError | None = None

        if config.mqtt_username is not None and config.mqtt_password is not None:
            self.client.username_pw_set(config.mqtt_username, config.mqtt_password)
        if config.mqtt_tls:
            # platform CA store
            self.client.tls_set()
        if will is not None:
            topic, payload = will
            self.client.will_set(topic, payload=payload, qos=1, retain=True)
        # Reconnect backoff (let paho handle retries)
        self.client.reconnect_delay_set(min_delay=1, max_delay=30)
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect

    @property
    def failure(self) -> BrokerSessionError | None:
        return self._failure

    def raise_for_failure(self) -> None:
        if self._failure is not None:
            raise self._failure

    def start(self) -> None:
        logger.info(
            {
                "event": "mqtt_connect_attempt",
                "host": self.config.mqtt_host,
                "port": self.config.mqtt_port,
                "client_id": self.config.mqtt_client_id,
                "user": bool(self.config.mqtt_username),
                "tls": self.config.mqtt_tls,
                "keepalive": self.config.mqtt_keepalive,
            }
        )
        self.client.connect_async(self.config.mqtt_host, self.config.mqtt_port, self.config.mqtt_keepalive)
        self.client.loop_start()

    def stop(self) -> None:
        self.client.disconnect()
        self.client.loop_stop()
        logger.info({"event": "mqtt_stopped"})

    def publish(self, topic: str, payload: str = "", qos: int = 0, retain: bool = False) -> Any:
        return self.client.publish(topic, payload=payload, qos=qos, retain=retain)

    # ---- callbacks (paho network thread) -----------------------------------

    def _on_connect(self, client, userdata, flags, reason_code, properties=None) -> None:
        rc = _reason_value(reason_code)
        if rc == 0:
            self.connected.set()
            logger.info({"event": "mqtt_connected", "rc": rc})
            return
        reason = FATAL_REASON_CODES.get(rc)
        if reason is None:
            logger.warning({"event": "mqtt_connect_failed", "rc": rc, "reason": str(reason_code)})
            return
        logger.error({"event": "mqtt_connect_refused", "rc": rc, "reason": reason})
        self._failure = BrokerSessionError(f"broker refused connection: {reason} ({rc})")
        client.disconnect()

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None) -> None:
        self.connected.clear()
        # rc==0 = clean; >0 = unexpected
        logger.warning({"event": "mqtt_disconnected", "rc": _reason_value(reason_code)})


__all__ = ["BrokerSessionError", "FATAL_REASON_CODES", "MqttLink"]
