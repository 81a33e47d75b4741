from mijia_homie.telemetry import decode_value
from mijia_homie.types import SensorAddress

KITCHEN = SensorAddress.parse("A4:C1:38:00:00:01")
BEDROOM = SensorAddress.parse("A4:C1:38:00:00:02")
STRANGER = SensorAddress.parse("11:22:33:44:55:66")

DEVICE_BASE = "homie/mijia-bridge"

# 23.45ºC, 56%, 3084 mV
SAMPLE_PAYLOAD = bytes([0x29, 0x09, 0x38, 0x0C, 0x0C])
SAMPLE_READING = decode_value(SAMPLE_PAYLOAD)


def published_map(fake_mqtt):
    """Last payload per topic, in the order topics were first seen."""
    out = {}
    for topic, payload, _qos, _retain in fake_mqtt.published:
        out[topic] = payload
    return out


def assert_contains_log(caplog, needle):
    # Relaxed: allow substring match, not exact message
    assert any(
        needle in r.getMessage() or needle in r.name for r in caplog.records
    ), f"Log missing: {needle}"
