# tests/pytest/config/test_gateway_config_model.py
import json
from pathlib import Path

import pytest

from modbus_gateway.plugin_config_decode import (
    AnalogPointConfig,
    CommandPointConfig,
    GatewayConfig,
    GatewayConfigError,
    ModbusEndpointConfig,
    PluginConfigError,
    StatusBitConfig,
)


def _load(raw):
    config = GatewayConfig()
    config.load_from_dict(raw)
    return config


def test_analog_point_from_dict():
    point = AnalogPointConfig.from_dict({"fc": 4, "offset": "0x25", "width": 32, "index": 3})
    assert point.address == 37
    assert point.register_count == 2
    assert point.word_order == "big"
    assert point.to_dict()["offset"] == "0x25"


def test_point_requires_index_and_offset():
    with pytest.raises(ValueError):
        StatusBitConfig.from_dict({"offset": "1"})
    with pytest.raises(ValueError):
        CommandPointConfig.from_dict({"index": 0})


def test_endpoint_from_dict_defaults(make_device):
    endpoint = ModbusEndpointConfig.from_dict(make_device())
    assert endpoint.name == "pot"
    assert endpoint.byte_timeout_ms == endpoint.timeout_ms
    assert endpoint.response_timeout_s == 1.0
    assert endpoint.connection_mode == "persistent"
    assert endpoint.binary_indices() == [0, 1, 2]
    assert endpoint.status_bits[1].active_low is True
    endpoint.validate()


def test_import_config_from_file(tmp_path, make_device):
    path = tmp_path / "gateway.json"
    path.write_text(json.dumps({
        "outstation": {"port": 20001, "event_buffer_size": 20},
        "scheduling": "concurrent",
        "devices": [make_device(), make_device("meter", port=1503, status_index=3,
                                               status_bits=[], commands=[],
                                               analog={"offset": "23322", "width": 32, "index": 1})],
    }))

    config = GatewayConfig()
    config.import_config_from_file(str(path))
    config.validate()

    assert len(config.devices) == 2
    assert config.scheduling == "concurrent"
    assert config.outstation.port == 20001
    assert config.outstation.event_buffer_size == 20
    assert config.outstation.keep_alive_timeout_s == 30
    assert config.devices[1].analog.address == 23322


def test_missing_file_is_config_error(tmp_path):
    with pytest.raises(GatewayConfigError):
        GatewayConfig().import_config_from_file(str(tmp_path / "missing.json"))


def test_malformed_json_is_config_error(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json")
    with pytest.raises(PluginConfigError):
        GatewayConfig().import_config_from_file(str(path))


def test_bad_device_section_is_config_error(make_device):
    device = make_device()
    del device["config"]["analog"]
    with pytest.raises(GatewayConfigError):
        _load({"devices": [device]})


def test_no_devices():
    with pytest.raises(GatewayConfigError):
        _load({"devices": []}).validate()


@pytest.mark.parametrize("overrides", [
    {"port": 0},
    {"unit_id": 248},
    {"timeout_ms": 0},
    {"fault_threshold": -1},
    {"connection_mode": "sometimes"},
    {"analog": {"fc": 1, "offset": "0", "index": 0}},
    {"analog": {"fc": 3, "offset": "0", "width": 24, "index": 0}},
    {"status_index": None},
    {"status_bits": [{"fc": 3, "offset": "2", "index": 1}]},
    {"interlocks": [{"when_value": 10, "command_index": 9}]},
])
def test_invalid_endpoint(make_device, overrides):
    with pytest.raises(GatewayConfigError):
        _load({"devices": [make_device(**overrides)]}).validate()


def test_invalid_offset_is_rejected_at_parse(make_device):
    with pytest.raises(GatewayConfigError):
        _load({"devices": [make_device(analog={"offset": "70000", "index": 0})]})


def test_duplicate_names(make_device):
    config = _load({"devices": [make_device(), make_device(port=1503)]})
    with pytest.raises(GatewayConfigError, match="Duplicate device names"):
        config.validate()


def test_duplicate_targets(make_device):
    other = make_device("other", analog={"offset": "0", "index": 1}, status_index=5,
                        status_bits=[], commands=[])
    with pytest.raises(GatewayConfigError, match="host:port:unit_id"):
        _load({"devices": [make_device(), other]}).validate()


def test_duplicate_analog_index(make_device):
    other = make_device("other", port=1503, status_index=5, status_bits=[], commands=[])
    with pytest.raises(GatewayConfigError, match="AnalogInput index 0"):
        _load({"devices": [make_device(), other]}).validate()


def test_duplicate_binary_index(make_device):
    other = make_device("other", port=1503, analog={"offset": "0", "index": 1},
                        status_index=2, status_bits=[], commands=[])
    with pytest.raises(GatewayConfigError, match="BinaryInput index 2"):
        _load({"devices": [make_device(), other]}).validate()


def test_duplicate_command_index(make_device):
    other = make_device("other", port=1503, analog={"offset": "0", "index": 1},
                        status_index=5, status_bits=[])
    with pytest.raises(GatewayConfigError, match="command index 0"):
        _load({"devices": [make_device(), other]}).validate()


@pytest.mark.parametrize("overrides", [
    {"scheduling": "parallel"},
    {"poll_interval_ms": 0},
    {"stagger_ms": -5},
    {"outstation": {"local_addr": 1, "remote_addr": 1}},
    {"outstation": {"event_buffer_size": 0}},
])
def test_invalid_gateway_settings(make_device, overrides):
    raw = {"devices": [make_device()]}
    raw.update(overrides)
    with pytest.raises(GatewayConfigError):
        _load(raw).validate()


@pytest.mark.parametrize("outstation", [None, "20000", [1, 2]])
def test_outstation_section_must_be_object(make_device, outstation):
    with pytest.raises(GatewayConfigError, match="Outstation section"):
        _load({"devices": [make_device()], "outstation": outstation})


def test_repr(make_gateway_config):
    config = make_gateway_config()
    assert repr(config) == "GatewayConfig(devices=1, scheduling='sequential')"
    assert "pot" in repr(config.devices[0])


def test_example_config_is_valid():
    example = Path(__file__).resolve().parents[3] / "config" / "gateway_config.example.json"
    config = GatewayConfig()
    config.import_config_from_file(str(example))
    config.validate()
    assert [d.name for d in config.devices] == ["pot", "meter", "flow"]
    assert config.devices[1].connection_mode == "per_cycle"
