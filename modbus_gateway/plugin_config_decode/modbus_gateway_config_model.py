import json
from typing import Any, Dict, List, Optional, Tuple

from .plugin_config_contact import PluginConfigContract, PluginConfigError
from ..modbus_gateway_utils import get_register_count_for_width, parse_modbus_offset

SCHEDULING_MODES = ("sequential", "concurrent")
CONNECTION_MODES = ("persistent", "per_cycle")
ANALOG_READ_FCS = (3, 4)
STATUS_READ_FCS = (1, 2)


class GatewayConfigError(PluginConfigError):
    """Raised when the gateway configuration cannot be loaded or is invalid."""
    pass


def _require(data: Dict[str, Any], *keys: str) -> Tuple[Any, ...]:
    try:
        return tuple(data[key] for key in keys)
    except KeyError as e:
        raise ValueError(f"Missing required field {e}") from e


class AnalogPointConfig:
    """
    Model for the analog register(s) of an endpoint.
    """
    def __init__(self, fc: int, offset: str, index: int, width: int = 16, word_order: str = "big"):
        self.fc = fc  # 3 = holding registers, 4 = input registers
        self.offset = offset
        self.address = parse_modbus_offset(offset)
        self.index = index  # AnalogInput index in the outstation
        self.width = width  # 16 or 32 bits
        self.word_order = word_order

    @property
    def register_count(self) -> int:
        return get_register_count_for_width(self.width)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AnalogPointConfig':
        offset, index = _require(data, "offset", "index")
        return cls(
            fc=data.get("fc", 3),
            offset=offset,
            index=index,
            width=data.get("width", 16),
            word_order=data.get("word_order", "big"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fc": self.fc,
            "offset": self.offset,
            "index": self.index,
            "width": self.width,
            "word_order": self.word_order,
        }

    def __repr__(self) -> str:
        return (f"AnalogPointConfig(fc={self.fc}, offset='{self.offset}', "
                f"index={self.index}, width={self.width})")


class StatusBitConfig:
    """
    Model for an auxiliary device status bit published as a BinaryInput.
    """
    def __init__(self, name: str, offset: str, index: int, fc: int = 1, active_low: bool = False):
        self.name = name
        self.fc = fc  # 1 = coils, 2 = discrete inputs
        self.offset = offset
        self.address = parse_modbus_offset(offset)
        self.index = index
        self.active_low = active_low

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StatusBitConfig':
        offset, index = _require(data, "offset", "index")
        return cls(
            name=data.get("name", f"bit{index}"),
            offset=offset,
            index=index,
            fc=data.get("fc", 1),
            active_low=data.get("active_low", False),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "fc": self.fc,
            "offset": self.offset,
            "index": self.index,
            "active_low": self.active_low,
        }

    def __repr__(self) -> str:
        polarity = "active-low" if self.active_low else "active-high"
        return f"StatusBitConfig(name='{self.name}', offset='{self.offset}', index={self.index}, {polarity})"


class CommandPointConfig:
    """
    Model for a control index mapped onto a coil write.
    """
    def __init__(self, name: str, index: int, offset: str, value: bool = True, verify: bool = False):
        self.name = name
        self.index = index  # control index seen by the master
        self.offset = offset
        self.address = parse_modbus_offset(offset)
        self.value = value  # value written to the coil
        self.verify = verify  # read the coil back after writing

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CommandPointConfig':
        index, offset = _require(data, "index", "offset")
        return cls(
            name=data.get("name", f"command{index}"),
            index=index,
            offset=offset,
            value=data.get("value", True),
            verify=data.get("verify", False),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "index": self.index,
            "offset": self.offset,
            "value": self.value,
            "verify": self.verify,
        }

    def __repr__(self) -> str:
        return f"CommandPointConfig(name='{self.name}', index={self.index}, offset='{self.offset}', value={self.value})"


class InterlockConfig:
    """
    Model for a value interlock: operate a command when the analog value enters ``when_value``.
    """
    def __init__(self, when_value: int, command_index: int):
        self.when_value = when_value
        self.command_index = command_index

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InterlockConfig':
        when_value, command_index = _require(data, "when_value", "command_index")
        return cls(when_value=when_value, command_index=command_index)

    def __repr__(self) -> str:
        return f"InterlockConfig(when_value={self.when_value}, command_index={self.command_index})"


class ModbusEndpointConfig:  # pylint: disable=too-many-instance-attributes
    """
    Model for a single Modbus endpoint (source-protocol slave) configuration.
    """
    def __init__(self):
        self.name: str = "UNDEFINED"
        self.protocol: str = "MODBUS"
        self.host: str = "127.0.0.1"
        self.port: int = 502
        self.unit_id: int = 1
        self.timeout_ms: int = 1000
        self.byte_timeout_ms: int = 1000
        self.fault_threshold: int = 5
        self.connection_mode: str = "persistent"
        self.analog: Optional[AnalogPointConfig] = None
        self.status_index: Optional[int] = None
        self.status_bits: List[StatusBitConfig] = []
        self.commands: List[CommandPointConfig] = []
        self.interlocks: List[InterlockConfig] = []

    @property
    def response_timeout_s(self) -> float:
        return self.timeout_ms / 1000.0

    @property
    def byte_timeout_s(self) -> float:
        return self.byte_timeout_ms / 1000.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ModbusEndpointConfig':
        """
        Creates a ModbusEndpointConfig instance from a dictionary.
        """
        endpoint = cls()
        endpoint.name = data.get("name", "UNDEFINED")
        endpoint.protocol = data.get("protocol", "MODBUS")

        config = data.get("config", {})
        endpoint.host = config.get("host", "127.0.0.1")
        endpoint.port = config.get("port", 502)
        endpoint.unit_id = config.get("unit_id", 1)
        endpoint.timeout_ms = config.get("timeout_ms", 1000)
        endpoint.byte_timeout_ms = config.get("byte_timeout_ms", endpoint.timeout_ms)
        endpoint.fault_threshold = config.get("fault_threshold", 5)
        endpoint.connection_mode = config.get("connection_mode", "persistent")

        if "analog" not in config:
            raise ValueError(f"Missing 'analog' section for device {endpoint.name}")
        endpoint.analog = AnalogPointConfig.from_dict(config["analog"])
        endpoint.status_index = config.get("status_index")

        endpoint.status_bits = [StatusBitConfig.from_dict(p) for p in config.get("status_bits", [])]
        endpoint.commands = [CommandPointConfig.from_dict(c) for c in config.get("commands", [])]
        endpoint.interlocks = [InterlockConfig.from_dict(i) for i in config.get("interlocks", [])]

        return endpoint

    def validate(self) -> None:  # pylint: disable=too-many-branches
        """Validates the endpoint configuration."""
        if self.name == "UNDEFINED":
            raise ValueError(f"Device name is undefined for device {self.host}:{self.port}.")
        if self.protocol != "MODBUS":
            raise ValueError(f"Invalid protocol: {self.protocol}. Expected 'MODBUS' for device {self.name}.")
        if not isinstance(self.port, int) or self.port <= 0:
            raise ValueError(f"Invalid port: {self.port}. Must be a positive integer for device {self.name}.")
        if not isinstance(self.unit_id, int) or not 0 <= self.unit_id <= 247:
            raise ValueError(f"Invalid unit_id: {self.unit_id}. Must be within 0..247 for device {self.name}.")
        for field_name in ("timeout_ms", "byte_timeout_ms", "fault_threshold"):
            value = getattr(self, field_name)
            if not isinstance(value, int) or value <= 0:
                raise ValueError(f"Invalid {field_name}: {value}. Must be a positive integer for device {self.name}.")
        if self.connection_mode not in CONNECTION_MODES:
            raise ValueError(f"Invalid connection_mode: {self.connection_mode}. Expected one of {CONNECTION_MODES} for device {self.name}.")

        if not isinstance(self.analog, AnalogPointConfig):
            raise ValueError(f"Missing analog point for device {self.name}.")
        if self.analog.fc not in ANALOG_READ_FCS:
            raise ValueError(f"Invalid analog function code (fc): {self.analog.fc}. Expected 3 or 4 for device {self.name}.")
        if self.analog.width not in (16, 32):
            raise ValueError(f"Invalid analog width: {self.analog.width}. Expected 16 or 32 for device {self.name}.")
        if self.analog.word_order not in ("big", "little"):
            raise ValueError(f"Invalid word_order: {self.analog.word_order} for device {self.name}.")
        if not isinstance(self.analog.index, int) or self.analog.index < 0:
            raise ValueError(f"Invalid analog index: {self.analog.index} for device {self.name}.")
        if not isinstance(self.status_index, int) or self.status_index < 0:
            raise ValueError(f"Invalid status_index: {self.status_index} for device {self.name}.")

        for i, point in enumerate(self.status_bits):
            if point.fc not in STATUS_READ_FCS:
                raise ValueError(f"Invalid function code (fc): {point.fc}. Expected 1 or 2 for device {self.name}, status bit {i}.")
            if not isinstance(point.index, int) or point.index < 0:
                raise ValueError(f"Invalid index: {point.index} for device {self.name}, status bit {i}.")

        command_indices = [command.index for command in self.commands]
        for i, command in enumerate(self.commands):
            if not isinstance(command.index, int) or command.index < 0:
                raise ValueError(f"Invalid command index: {command.index} for device {self.name}, command {i}.")
        for interlock in self.interlocks:
            if interlock.command_index not in command_indices:
                raise ValueError(
                    f"Interlock references command index {interlock.command_index} "
                    f"which is not defined on device {self.name}."
                )

    def binary_indices(self) -> List[int]:
        """BinaryInput indices owned by this endpoint (status point first)."""
        return [self.status_index] + [point.index for point in self.status_bits]

    def __repr__(self) -> str:
        return (f"ModbusEndpointConfig(name='{self.name}', host='{self.host}', port={self.port}, "
                f"unit_id={self.unit_id}, status_bits={len(self.status_bits)}, commands={len(self.commands)})")


class OutstationConfig:
    """
    Model for the outstation (target-protocol server) parameters.
    """
    def __init__(self):
        self.host: str = "0.0.0.0"
        self.port: int = 20000
        self.local_addr: int = 2
        self.remote_addr: int = 1
        self.event_buffer_size: int = 10
        self.allow_unsolicited: bool = True
        self.keep_alive_timeout_s: int = 30

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OutstationConfig':
        outstation = cls()
        for key, default in vars(cls()).items():
            setattr(outstation, key, data.get(key, default))
        return outstation

    def validate(self) -> None:
        if not isinstance(self.port, int) or self.port <= 0:
            raise ValueError(f"Invalid outstation port: {self.port}.")
        if not isinstance(self.event_buffer_size, int) or self.event_buffer_size <= 0:
            raise ValueError(f"Invalid event_buffer_size: {self.event_buffer_size}.")
        for field_name in ("local_addr", "remote_addr"):
            value = getattr(self, field_name)
            if not isinstance(value, int) or not 0 <= value <= 0xFFEF:
                raise ValueError(f"Invalid {field_name}: {value}.")
        if self.local_addr == self.remote_addr:
            raise ValueError("Outstation local_addr and remote_addr must differ.")

    def __repr__(self) -> str:
        return (f"OutstationConfig(host='{self.host}', port={self.port}, "
                f"local_addr={self.local_addr}, remote_addr={self.remote_addr})")


class GatewayConfig(PluginConfigContract):
    """
    Gateway configuration model: outstation parameters, scheduling and endpoints.
    """
    def __init__(self):
        super().__init__()
        self.name = "modbus_gateway"
        self.protocol = "MODBUS"
        self.outstation = OutstationConfig()
        self.scheduling: str = "sequential"
        self.poll_interval_ms: int = 1000
        self.stagger_ms: int = 200
        self.devices: List[ModbusEndpointConfig] = []

    def import_config_from_file(self, file_path: str):
        """Read config from a JSON file."""
        try:
            with open(file_path, 'r', encoding="utf-8") as f:
                raw_config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise GatewayConfigError(f"Cannot read configuration file {file_path}: {e}") from e
        self.load_from_dict(raw_config)

    def load_from_dict(self, raw_config: Dict[str, Any]):
        """Populate the model from an already parsed configuration."""
        if not isinstance(raw_config, dict):
            raise GatewayConfigError("Configuration root must be a JSON object.")
        self.config = raw_config
        outstation = raw_config.get("outstation", {})
        if not isinstance(outstation, dict):
            raise GatewayConfigError("Outstation section must be a JSON object.")
        self.outstation = OutstationConfig.from_dict(outstation)
        self.scheduling = raw_config.get("scheduling", "sequential")
        self.poll_interval_ms = raw_config.get("poll_interval_ms", 1000)
        self.stagger_ms = raw_config.get("stagger_ms", 200)

        self.devices = []
        for i, device_config in enumerate(raw_config.get("devices", [])):
            try:
                self.devices.append(ModbusEndpointConfig.from_dict(device_config))
            except (ValueError, TypeError, AttributeError) as e:
                raise GatewayConfigError(f"Failed to parse device configuration #{i+1}: {e}") from e

    def validate(self) -> None:
        """Validates the configuration."""
        if not self.devices:
            raise GatewayConfigError("No devices configured. At least one Modbus device must be defined.")
        if self.scheduling not in SCHEDULING_MODES:
            raise GatewayConfigError(f"Invalid scheduling: {self.scheduling}. Expected one of {SCHEDULING_MODES}.")
        if not isinstance(self.poll_interval_ms, int) or self.poll_interval_ms <= 0:
            raise GatewayConfigError(f"Invalid poll_interval_ms: {self.poll_interval_ms}. Must be a positive integer.")
        if not isinstance(self.stagger_ms, int) or self.stagger_ms < 0:
            raise GatewayConfigError(f"Invalid stagger_ms: {self.stagger_ms}. Must be a non-negative integer.")

        try:
            self.outstation.validate()
        except ValueError as e:
            raise GatewayConfigError(f"Outstation validation failed: {e}") from e

        for i, device in enumerate(self.devices):
            try:
                device.validate()
            except ValueError as e:
                raise GatewayConfigError(f"Device #{i+1} validation failed: {e}") from e

        device_names = [device.name for device in self.devices]
        if len(device_names) != len(set(device_names)):
            raise GatewayConfigError("Duplicate device names found. Each device must have a unique name.")

        targets = [(device.host, device.port, device.unit_id) for device in self.devices]
        if len(targets) != len(set(targets)):
            raise GatewayConfigError("Duplicate host:port:unit_id combinations found.")

        self._check_injective("AnalogInput", [d.analog.index for d in self.devices])
        self._check_injective("BinaryInput", [i for d in self.devices for i in d.binary_indices()])
        self._check_injective("command", [c.index for d in self.devices for c in d.commands])

    @staticmethod
    def _check_injective(kind: str, indices: List[int]) -> None:
        seen = set()
        for index in indices:
            if index in seen:
                raise GatewayConfigError(f"{kind} index {index} is assigned more than once.")
            seen.add(index)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(devices={len(self.devices)}, scheduling='{self.scheduling}')"
