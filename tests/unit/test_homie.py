import pytest

from mijia_homie.homie import (
    Datatype,
    DeviceState,
    HomieDevice,
    InvalidTransition,
    Node,
    Property,
    VALUE_PLACEHOLDERS,
    UnknownNodeOrProperty,
    format_value,
)
from tests.helpers.util import DEVICE_BASE, published_map

TEMP = Property("temperature", "Temperature", Datatype.FLOAT, "ºC")
HUM = Property("humidity", "Humidity", Datatype.INTEGER, "%")
LABEL = Property("label", "Label", Datatype.STRING)


def _node(node_id="A4C138000001", props=(TEMP, HUM)):
    return Node(node_id, "Kitchen", "Mijia sensor", props)


class TestLifecycle:
    def test_start_publishes_device_attributes(self, fake_mqtt):
        device = HomieDevice(fake_mqtt, DEVICE_BASE, "Mijia bridge")
        device.start()
        assert fake_mqtt.published == [
            (f"{DEVICE_BASE}/$homie", "4.0", 1, True),
            (f"{DEVICE_BASE}/$extensions", "", 1, True),
            (f"{DEVICE_BASE}/$name", "Mijia bridge", 1, True),
            (f"{DEVICE_BASE}/$nodes", "", 1, True),
            (f"{DEVICE_BASE}/$state", "init", 1, True),
        ]
        assert device.started
        assert device.state is DeviceState.INIT

    def test_ready_then_disconnect(self, fake_mqtt):
        device = HomieDevice(fake_mqtt, DEVICE_BASE, "Mijia bridge")
        device.start()
        device.ready()
        device.disconnect()
        assert [p for t, p, _q, _r in fake_mqtt.published if t.endswith("$state")] == [
            "init",
            "ready",
            "disconnected",
        ]
        assert device.state is DeviceState.DISCONNECTED

    def test_disconnect_is_idempotent(self, homie, fake_mqtt):
        homie.disconnect()
        homie.disconnect()
        assert fake_mqtt.topics() == [f"{DEVICE_BASE}/$state"]

    def test_disconnect_publish_failure_is_logged(self, homie, fake_mqtt, caplog):
        fake_mqtt.fail_with = OSError("socket gone")
        homie.disconnect()
        assert homie.state is DeviceState.DISCONNECTED
        assert "homie_disconnect_publish_failed" in caplog.text

    def test_ready_before_start(self, fake_mqtt):
        with pytest.raises(InvalidTransition):
            HomieDevice(fake_mqtt, DEVICE_BASE, "x").ready()

    def test_start_twice(self, homie):
        with pytest.raises(InvalidTransition):
            homie.start()

    def test_disconnect_before_start(self, fake_mqtt):
        with pytest.raises(InvalidTransition):
            HomieDevice(fake_mqtt, DEVICE_BASE, "x").disconnect()

    def test_last_will(self):
        assert HomieDevice.last_will(DEVICE_BASE) == (f"{DEVICE_BASE}/$state", "lost")


class TestNodes:
    def test_add_node_publishes_metadata(self, homie, fake_mqtt):
        homie.add_node(_node())
        pub = published_map(fake_mqtt)
        base = f"{DEVICE_BASE}/A4C138000001"
        assert pub[f"{base}/$name"] == "Kitchen"
        assert pub[f"{base}/$type"] == "Mijia sensor"
        assert pub[f"{base}/$properties"] == "temperature,humidity"
        assert pub[f"{base}/temperature/$name"] == "Temperature"
        assert pub[f"{base}/temperature/$datatype"] == "float"
        assert pub[f"{base}/temperature/$unit"] == "ºC"
        assert pub[f"{base}/humidity/$datatype"] == "integer"
        assert pub[f"{DEVICE_BASE}/$nodes"] == "A4C138000001"
        assert all(qos == 1 and retain for _t, _p, qos, retain in fake_mqtt.published)

    def test_add_node_publishes_value_placeholders(self, homie, fake_mqtt):
        homie.add_node(_node(props=(TEMP, HUM, LABEL)))
        pub = published_map(fake_mqtt)
        base = f"{DEVICE_BASE}/A4C138000001"
        assert pub[f"{base}/temperature"] == "0.0"
        assert pub[f"{base}/humidity"] == "0"
        assert pub[f"{base}/label"] == "-"
        assert all(VALUE_PLACEHOLDERS[dt] for dt in Datatype)

    def test_replacing_node_keeps_existing_values(self, homie, fake_mqtt):
        homie.add_node(_node(props=(TEMP,)))
        homie.publish_value("A4C138000001", "temperature", "21.50")
        fake_mqtt.published.clear()
        homie.add_node(_node(props=(TEMP, HUM)))
        topics = fake_mqtt.topics()
        assert f"{DEVICE_BASE}/A4C138000001/temperature" not in topics
        assert published_map(fake_mqtt)[f"{DEVICE_BASE}/A4C138000001/humidity"] == "0"

    def test_property_without_unit_has_no_unit_topic(self, homie, fake_mqtt):
        homie.add_node(_node(props=(LABEL,)))
        assert f"{DEVICE_BASE}/A4C138000001/label/$unit" not in fake_mqtt.topics()

    def test_nodes_listed_in_insertion_order(self, homie, fake_mqtt):
        homie.add_node(_node("B"))
        homie.add_node(_node("A"))
        assert published_map(fake_mqtt)[f"{DEVICE_BASE}/$nodes"] == "B,A"
        assert list(homie.nodes) == ["B", "A"]

    def test_replacing_node_clears_dropped_properties(self, homie, fake_mqtt):
        homie.add_node(_node(props=(TEMP, HUM)))
        fake_mqtt.published.clear()
        homie.add_node(_node(props=(TEMP,)))
        pub = published_map(fake_mqtt)
        base = f"{DEVICE_BASE}/A4C138000001"
        assert pub[f"{base}/humidity"] == ""
        assert pub[f"{base}/humidity/$datatype"] == ""
        assert pub[f"{base}/$properties"] == "temperature"
        assert pub[f"{DEVICE_BASE}/$nodes"] == "A4C138000001"

    def test_remove_node_clears_topics(self, homie, fake_mqtt):
        homie.add_node(_node())
        fake_mqtt.published.clear()
        assert homie.remove_node("A4C138000001") is True
        pub = published_map(fake_mqtt)
        assert fake_mqtt.published[0] == (f"{DEVICE_BASE}/$nodes", "", 1, True)
        base = f"{DEVICE_BASE}/A4C138000001"
        for sub in ("$name", "$type", "$properties", "temperature", "temperature/$unit", "humidity/$name"):
            assert pub[f"{base}/{sub}"] == ""
        assert "A4C138000001" not in homie.nodes

    def test_remove_absent_node_publishes_nothing(self, homie, fake_mqtt):
        assert homie.remove_node("nope") is False
        assert fake_mqtt.published == []

    def test_node_ops_require_ready(self, fake_mqtt):
        device = HomieDevice(fake_mqtt, DEVICE_BASE, "x")
        device.start()
        with pytest.raises(InvalidTransition):
            device.add_node(_node())
        with pytest.raises(InvalidTransition):
            device.remove_node("A4C138000001")
        with pytest.raises(InvalidTransition):
            device.publish_value("A4C138000001", "temperature", 1)


class TestValues:
    def test_publish_value(self, homie, fake_mqtt):
        homie.add_node(_node())
        fake_mqtt.published.clear()
        homie.publish_value("A4C138000001", "temperature", "23.45")
        homie.publish_value("A4C138000001", "humidity", 56)
        assert fake_mqtt.published == [
            (f"{DEVICE_BASE}/A4C138000001/temperature", "23.45", 1, True),
            (f"{DEVICE_BASE}/A4C138000001/humidity", "56", 1, True),
        ]

    def test_unknown_node_or_property(self, homie):
        homie.add_node(_node())
        with pytest.raises(UnknownNodeOrProperty):
            homie.publish_value("OTHER", "temperature", 1)
        with pytest.raises(UnknownNodeOrProperty):
            homie.publish_value("A4C138000001", "pressure", 1)

    @pytest.mark.parametrize(
        "value,expected",
        [(True, "true"), (False, "false"), (7, "7"), ("x", "x"), (Datatype.ENUM, "enum")],
    )
    def test_format_value(self, value, expected):
        assert format_value(value) == expected
