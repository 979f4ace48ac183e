# tests/pytest/conftest.py
import copy

import pytest

from modbus_gateway.modbus_gateway_connection import ConnectionSupervisor
from modbus_gateway.modbus_gateway_types import FailureKind, TransportFailure
from modbus_gateway.plugin_config_decode import GatewayConfig, ModbusEndpointConfig


DEVICE = {
    "name": "pot",
    "protocol": "MODBUS",
    "config": {
        "host": "127.0.0.1",
        "port": 1502,
        "unit_id": 1,
        "timeout_ms": 1000,
        "fault_threshold": 5,
        "analog": {"fc": 3, "offset": "0", "width": 16, "index": 0},
        "status_index": 0,
        "status_bits": [
            {"name": "led", "fc": 1, "offset": "2", "index": 1},
            {"name": "button", "fc": 1, "offset": "3", "index": 2, "active_low": True},
        ],
        "commands": [
            {"name": "on", "index": 0, "offset": "0", "value": True},
            {"name": "off", "index": 1, "offset": "1", "value": True},
        ],
    },
}


class FakeTransport:
    """
    Scripted stand-in for ModbusTransport.

    Flip ``connect_ok``, ``flush_ok`` or add method names to ``fail_on``
    between cycles to script a sequence of outcomes.
    """

    def __init__(self):
        self.holding = {}
        self.input_registers = {}
        self.coils = {}
        self.discrete_inputs = {}

        self.connect_ok = True
        self.flush_ok = True
        self.fail_on = set()

        self.is_open = False
        self.unit_id = None
        self.timeouts = None
        self.last_failure = None
        self.calls = []
        self.writes = []
        self.connects = 0
        self.disconnects = 0

    def set_unit_id(self, unit_id):
        self.unit_id = unit_id
        return True

    def set_timeouts(self, response_timeout, byte_timeout):
        self.timeouts = (response_timeout, byte_timeout)
        return True

    def connect(self):
        self.connects += 1
        if not self.connect_ok:
            self.last_failure = TransportFailure(FailureKind.CONNECT, "connection refused")
            return False
        self.is_open = True
        self.last_failure = None
        return True

    def disconnect(self):
        if self.is_open:
            self.disconnects += 1
        self.is_open = False

    def read_holding_registers(self, address, count=1):
        return self._read("read_holding_registers", self.holding, address, count, 0)

    def read_input_registers(self, address, count=1):
        return self._read("read_input_registers", self.input_registers, address, count, 0)

    def read_coils(self, address, count=1):
        return self._read("read_coils", self.coils, address, count, False)

    def read_discrete_inputs(self, address, count=1):
        return self._read("read_discrete_inputs", self.discrete_inputs, address, count, False)

    def write_coil(self, address, value):
        self.calls.append(("write_coil", address))
        if not self.is_open or "write_coil" in self.fail_on:
            self.last_failure = TransportFailure(FailureKind.WRITE, "write_coil failed")
            return False
        self.coils[address] = value
        self.writes.append((address, value))
        return True

    def flush(self):
        if not self.is_open or not self.flush_ok:
            self.last_failure = TransportFailure(FailureKind.WRITE, "flush failed")
            return False
        return True

    def _read(self, method, table, address, count, default):
        self.calls.append((method, address))
        if not self.is_open or method in self.fail_on:
            self.last_failure = TransportFailure(FailureKind.READ, f"{method} failed")
            return None
        return [table.get(address + i, default) for i in range(count)]


@pytest.fixture
def make_device():
    """Factory for device dictionaries; keyword arguments override ``config`` keys."""
    def _make(name="pot", **config_overrides):
        device = copy.deepcopy(DEVICE)
        device["name"] = name
        device["config"].update(config_overrides)
        return device
    return _make


@pytest.fixture
def make_gateway_config(make_device):
    """Factory for a validated GatewayConfig built from device dictionaries."""
    def _make(devices=None, **overrides):
        raw = {
            "scheduling": "sequential",
            "poll_interval_ms": 1000,
            "stagger_ms": 0,
            "devices": devices if devices is not None else [make_device()],
        }
        raw.update(overrides)
        config = GatewayConfig()
        config.load_from_dict(raw)
        config.validate()
        return config
    return _make


@pytest.fixture
def endpoint(make_device):
    return ModbusEndpointConfig.from_dict(make_device())


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def transport_factory():
    """Transport factory recording one FakeTransport per endpoint name."""
    transports = {}

    def _factory(endpoint_config):
        transports[endpoint_config.name] = FakeTransport()
        return transports[endpoint_config.name]

    _factory.transports = transports
    return _factory


@pytest.fixture
def supervisor(endpoint, fake_transport):
    return ConnectionSupervisor(endpoint, fake_transport)
