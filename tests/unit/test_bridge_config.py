import json

import pytest

from mijia_homie.bridge_config import BridgeConfig, ConfigError, load_config


def _load(tmp_path, env=None, yaml_text=None, options=None):
    yaml_path = tmp_path / "config.yaml"
    if yaml_text is not None:
        yaml_path.write_text(yaml_text, encoding="utf-8")
    options_path = tmp_path / "options.json"
    if options is not None:
        options_path.write_text(json.dumps(options), encoding="utf-8")
    return load_config(env or {}, paths=[yaml_path], options_path=options_path)


class TestDefaults:
    def test_defaults(self, tmp_path):
        config, source = _load(tmp_path)
        assert source is None
        assert config == BridgeConfig()
        assert config.mqtt_host == "localhost"
        assert config.mqtt_port == 1883
        assert config.mqtt_keepalive == 5
        assert config.mqtt_tls is False
        assert config.sensor_names_file == "sensor_names.conf"
        assert config.device_base == "homie/mijia-bridge"
        assert config.mqtt_client_id == "mijia-bridge"
        assert config.incoming_timeout == 1.0

    def test_client_name_overrides_client_id(self):
        assert BridgeConfig(client_name="kitchen-pi").mqtt_client_id == "kitchen-pi"


class TestSources:
    def test_yaml(self, tmp_path):
        config, source = _load(tmp_path, yaml_text="mqtt_host: broker.lan\nmqtt_port: 8883\n")
        assert config.mqtt_host == "broker.lan"
        assert config.mqtt_port == 8883
        assert source == tmp_path / "config.yaml"

    def test_options_beat_yaml(self, tmp_path):
        config, source = _load(tmp_path, yaml_text="mqtt_host: a\n", options={"mqtt_host": "b"})
        assert config.mqtt_host == "b"
        assert source == tmp_path / "options.json"

    def test_env_beats_files(self, tmp_path):
        config, _ = _load(
            tmp_path,
            env={"MQTT_HOST": "c", "MQTT_PORT": "1884", "DEVICE_ID": "attic", "MQTT_PREFIX": "h"},
            options={"mqtt_host": "b"},
        )
        assert config.mqtt_host == "c"
        assert config.mqtt_port == 1884
        assert config.device_base == "h/attic"

    def test_short_env_names(self, tmp_path):
        config, _ = _load(tmp_path, env={"HOST": "h", "PORT": "1999", "USERNAME": "u", "PASSWORD": "p"})
        assert (config.mqtt_host, config.mqtt_port) == ("h", 1999)
        assert (config.mqtt_username, config.mqtt_password) == ("u", "p")

    def test_use_tls_is_presence_flag(self, tmp_path):
        config, _ = _load(tmp_path, env={"USE_TLS": ""})
        assert config.mqtt_tls is True

    @pytest.mark.parametrize("raw,expected", [("true", True), ("0", False), ("on", True), ("no", False)])
    def test_bool_values(self, tmp_path, raw, expected):
        config, _ = _load(tmp_path, env={"BLE_POWER_CYCLE": raw})
        assert config.ble_power_cycle is expected

    def test_unknown_keys_ignored(self, tmp_path):
        config, _ = _load(tmp_path, options={"legacy_option": "x", "mqtt_host": "b"})
        assert config.mqtt_host == "b"

    def test_bad_yaml_is_skipped(self, tmp_path, caplog):
        config, source = _load(tmp_path, yaml_text="mqtt_host: [unclosed\n")
        assert config.mqtt_host == "localhost"
        assert source is None
        assert "Failed to parse YAML" in caplog.text


class TestErrors:
    def test_bad_port(self, tmp_path):
        with pytest.raises(ConfigError, match="mqtt_port"):
            _load(tmp_path, env={"MQTT_PORT": "eighty"})

    def test_bad_bool(self, tmp_path):
        with pytest.raises(ConfigError, match="mqtt_tls"):
            _load(tmp_path, env={"MQTT_TLS": "maybe"})
